"""
Activity and sweep HTTP routes.
"""
from dataclasses import asdict
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from study_guardian.database import get_db
from study_guardian.auth import verify_api_key, get_current_user_id
from study_guardian.schemas import SessionCompletedEvent, ActivityResultResponse
from study_guardian.services.activity_service import ActivityService, SessionCompleted
from study_guardian.services.sweep_service import SweepService

router = APIRouter(prefix="/api/activity", tags=["activity"])
sweeps_router = APIRouter(prefix="/api/sweeps", tags=["sweeps"])


@router.post("/session-completed", response_model=ActivityResultResponse)
def session_completed(
    event: SessionCompletedEvent,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    """Apply a finished study session to goals and rewards."""
    result = ActivityService(db).handle_session_completed(
        SessionCompleted(user_id=user_id, **event.model_dump())
    )
    return asdict(result)


@sweeps_router.post("/daily-streak")
def run_daily_streak_sweep(
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    return SweepService(db).daily_streak_sweep()


@sweeps_router.post("/schedule-alerts")
def run_schedule_alert_sweep(
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    return SweepService(db).schedule_alert_sweep()


@sweeps_router.post("/weekly-summary")
def run_weekly_summary_sweep(
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    return SweepService(db).weekly_summary_sweep()
