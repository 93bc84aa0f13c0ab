from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
from pathlib import Path

from study_guardian.database import engine, Base, SessionLocal
from study_guardian import models  # Import all models to register them with Base
from study_guardian.exceptions import (
    StudyGuardianException, ValidationException, GoalNotFoundException,
    MilestoneNotFoundException, SubTaskNotFoundException,
    RewardsProfileNotFoundException, AuthorizationException,
    ConcurrencyConflictException
)
from study_guardian.routes import goals, rewards, activity
from study_guardian.scheduler import start_scheduler, stop_scheduler
from study_guardian.services.points_service import PointsService
from study_guardian.services.reward_catalog_service import RewardCatalogService

# Configure logging
from study_guardian.constants import DEFAULT_LOG_DIRECTORY_PROD, DEFAULT_LOG_DIRECTORY_DEV

LOG_DIR = os.getenv("STUDY_GUARDIAN_LOG_DIR", DEFAULT_LOG_DIRECTORY_PROD)
LOG_FILE = os.getenv("STUDY_GUARDIAN_LOG_FILE", "app.log")
SCHEDULER_ENABLED = os.getenv("STUDY_GUARDIAN_SCHEDULER_ENABLED", "true").lower() in ("1", "true", "yes")

# Create log directory if it doesn't exist (for development)
try:
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE
except PermissionError:
    # Fallback to local directory if no permissions for /var/log
    LOG_DIR = DEFAULT_LOG_DIRECTORY_DEV
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(log_path),
        logging.StreamHandler()  # Also log to console
    ]
)

logger = logging.getLogger("study_guardian")

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Study Guardian API",
    description="Study goals with progress tracking, catch-up plans and gamified rewards",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("STUDY_GUARDIAN_CORS_ORIGINS", "http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(goals.router)
app.include_router(rewards.router)
app.include_router(activity.router)
app.include_router(activity.sweeps_router)


# Error mapping
_STATUS_BY_EXCEPTION = (
    (ValidationException, status.HTTP_400_BAD_REQUEST),
    (GoalNotFoundException, status.HTTP_404_NOT_FOUND),
    (MilestoneNotFoundException, status.HTTP_404_NOT_FOUND),
    (SubTaskNotFoundException, status.HTTP_404_NOT_FOUND),
    (RewardsProfileNotFoundException, status.HTTP_404_NOT_FOUND),
    (AuthorizationException, status.HTTP_403_FORBIDDEN),
    (ConcurrencyConflictException, status.HTTP_409_CONFLICT),
)


@app.exception_handler(StudyGuardianException)
async def study_guardian_exception_handler(request: Request, exc: StudyGuardianException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for exception_type, code in _STATUS_BY_EXCEPTION:
        if isinstance(exc, exception_type):
            status_code = code
            break
    if status_code >= 500:
        logger.error(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


# Startup event
@app.on_event("startup")
async def startup_event():
    logger.info(f"Study Guardian API started. Logging to: {log_path}")
    db = SessionLocal()
    try:
        RewardCatalogService(db, PointsService(db)).seed_default_catalog()
    except Exception as e:
        logger.error(f"Reward catalog seeding failed: {e}")
    finally:
        db.close()
    if SCHEDULER_ENABLED:
        start_scheduler()

# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Study Guardian API")
    stop_scheduler()

# Health check (no auth required)
@app.get("/")
async def root():
    return {"message": "Study Guardian API", "status": "active"}
