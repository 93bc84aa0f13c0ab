"""
Background scheduler for the periodic sweeps
Handles:
- Daily streak sweep shortly after midnight
- Hourly schedule alert sweep
- Weekly summary on Monday morning
"""

import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session
from study_guardian.database import SessionLocal
from study_guardian.services.sweep_service import SweepService
from study_guardian.constants import DAILY_STREAK_SWEEP_TIME, WEEKLY_SUMMARY_TIME

logger = logging.getLogger("study_guardian.scheduler")


def run_daily_streak_sweep():
    """Break stale streaks, roll point windows, reset lapsed streak goals"""
    db: Session = SessionLocal()
    try:
        result = SweepService(db).daily_streak_sweep()
        logger.info(f"Daily streak sweep: {result}")
    except Exception as e:
        logger.error(f"Error in run_daily_streak_sweep: {e}")
    finally:
        db.close()


def run_schedule_alert_sweep():
    """Schedule check for every active goal with a deadline"""
    db: Session = SessionLocal()
    try:
        result = SweepService(db).schedule_alert_sweep()
        logger.info(f"Schedule alert sweep: {result}")
    except Exception as e:
        logger.error(f"Error in run_schedule_alert_sweep: {e}")
    finally:
        db.close()


def run_weekly_summary_sweep():
    db: Session = SessionLocal()
    try:
        result = SweepService(db).weekly_summary_sweep()
        logger.info(f"Weekly summary sweep: {result}")
    except Exception as e:
        logger.error(f"Error in run_weekly_summary_sweep: {e}")
    finally:
        db.close()


def _hour_minute(time_str: str) -> tuple[int, int]:
    """'08:00' -> (8, 0)"""
    hour, minute = time_str.split(":")
    return int(hour), int(minute)


# Create scheduler instance
scheduler = BackgroundScheduler()


def start_scheduler():
    """Start the background scheduler"""
    logger.info("Starting Study Guardian background scheduler")

    hour, minute = _hour_minute(DAILY_STREAK_SWEEP_TIME)
    scheduler.add_job(
        run_daily_streak_sweep,
        CronTrigger(hour=hour, minute=minute),
        id='daily_streak_sweep',
        replace_existing=True
    )

    scheduler.add_job(
        run_schedule_alert_sweep,
        CronTrigger(minute=0),  # Every hour
        id='schedule_alert_sweep',
        replace_existing=True
    )

    hour, minute = _hour_minute(WEEKLY_SUMMARY_TIME)
    scheduler.add_job(
        run_weekly_summary_sweep,
        CronTrigger(day_of_week='mon', hour=hour, minute=minute),
        id='weekly_summary_sweep',
        replace_existing=True
    )

    # Start the scheduler
    scheduler.start()
    logger.info("Background scheduler started successfully")


def stop_scheduler():
    """Stop the background scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped")
