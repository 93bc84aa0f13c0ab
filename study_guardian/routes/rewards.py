"""
Rewards HTTP routes.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List

from study_guardian.database import get_db
from study_guardian.auth import verify_api_key, get_current_user_id
from study_guardian.schemas import (
    RewardsProfileResponse, RewardProgressResponse, RewardResponse,
    LeaderboardEntry, UserRankResponse, LeaderboardSettingsUpdate,
    BonusPointsRequest, StudySuggestion
)
from study_guardian.repositories.points_repository import RewardRepository
from study_guardian.services.leaderboard_service import LeaderboardService
from study_guardian.services.points_service import PointsService
from study_guardian.services.rewards_service import RewardsService
from study_guardian.constants import LEADERBOARD_ALLTIME

router = APIRouter(prefix="/api/rewards", tags=["rewards"])


@router.get("/profile", response_model=RewardsProfileResponse)
def get_rewards_profile(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    """Points, level, lifetime stats and earned rewards."""
    return LeaderboardService(db).get_rewards_profile(user_id)


@router.get("/progress", response_model=List[RewardProgressResponse])
def get_rewards_progress(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    """Progress towards unearned rewards, closest first."""
    service = RewardsService(db)
    ledger = service.points_service.get_ledger(user_id)
    return service.catalog_service.get_rewards_progress(ledger)


@router.get("/suggestions", response_model=List[StudySuggestion])
def get_study_suggestions(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    """Streak and session-length tips, most urgent first."""
    return RewardsService(db).get_study_suggestions(user_id)


@router.get("/catalog", response_model=List[RewardResponse])
def get_catalog(
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    return RewardRepository(db).get_active()


@router.post("/check")
def check_rewards(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    """Re-run the catalog matcher for the user."""
    earned = RewardsService(db).check_rewards(user_id)
    return {"rewards_earned": [reward.name for reward in earned]}


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
def get_leaderboard(
    window: str = Query(LEADERBOARD_ALLTIME),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    return LeaderboardService(db).get_leaderboard(window, limit)


@router.get("/rank", response_model=UserRankResponse)
def get_user_rank(
    window: str = Query(LEADERBOARD_ALLTIME),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    return LeaderboardService(db).get_user_rank(user_id, window)


@router.put("/leaderboard-settings")
def update_leaderboard_settings(
    settings: LeaderboardSettingsUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    ledger = LeaderboardService(db).update_visibility(
        user_id, settings.is_public, settings.display_name
    )
    return {"is_public": ledger.is_public, "display_name": ledger.display_name}


@router.post("/bonus")
def award_bonus_points(
    request: BonusPointsRequest,
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    """Grant bonus points to a user (admin)."""
    ledger = PointsService(db).award_bonus_points(request.user_id, request.amount, request.reason)
    return {
        "points_awarded": request.amount,
        "total_points": ledger.total_points,
        "current_level": ledger.current_level
    }
