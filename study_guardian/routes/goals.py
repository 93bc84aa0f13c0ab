"""
Goal HTTP routes.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from study_guardian.database import get_db
from study_guardian.auth import verify_api_key, get_current_user_id
from study_guardian.schemas import (
    GoalCreate, GoalUpdate, GoalResponse, GoalDetailResponse,
    ManualProgressRequest, ProgressResultResponse,
    MilestoneCreate, MilestoneResponse, SubTaskCreate, SubTaskResponse,
    CatchUpSuggestionResponse, NotificationResponse, GoalRecommendation
)
from study_guardian.services.goal_service import GoalService
from study_guardian.services.summary_service import SummaryService

router = APIRouter(prefix="/api/goals", tags=["goals"])


@router.post("", response_model=GoalResponse, status_code=status.HTTP_201_CREATED)
def create_goal(
    goal: GoalCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    """Create a goal with optional milestones and sub-tasks."""
    return GoalService(db).create_goal(user_id, goal)


@router.get("", response_model=List[GoalResponse])
def get_goals(
    status_filter: Optional[str] = Query(None, alias="status"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    return GoalService(db).get_goals(user_id, status_filter)


@router.get("/summary")
def get_user_summary(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    """Real-time overview of the user's goals."""
    return SummaryService(db).get_user_summary(user_id)


@router.get("/recommendations", response_model=List[GoalRecommendation])
def get_goal_recommendations(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    """Goal ideas built from the last 30 days of study sessions."""
    return SummaryService(db).recommend_goals(user_id)


@router.get("/notifications", response_model=List[NotificationResponse])
def get_notifications(
    limit: int = Query(50, ge=1, le=200),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    return GoalService(db).get_notifications(user_id, limit)


@router.get("/{goal_id}", response_model=GoalDetailResponse)
def get_goal(
    goal_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    return GoalService(db).get_goal(goal_id, user_id)


@router.put("/{goal_id}", response_model=GoalResponse)
def update_goal(
    goal_id: int,
    goal_update: GoalUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    return GoalService(db).update_goal(goal_id, user_id, goal_update)


@router.delete("/{goal_id}")
def delete_goal(
    goal_id: int,
    permanent: bool = Query(False),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    """Cancel a goal, or delete it with its history when permanent=true."""
    GoalService(db).delete_goal(goal_id, user_id, permanent)
    return {"message": "Goal deleted" if permanent else "Goal cancelled", "goal_id": goal_id}


@router.post("/{goal_id}/progress", response_model=ProgressResultResponse)
def add_manual_progress(
    goal_id: int,
    request: ManualProgressRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    service = GoalService(db)
    result = service.add_manual_progress(goal_id, user_id, request.amount, request.notes)
    return {
        "goal": service.get_goal(goal_id, user_id),
        "amount": result.amount,
        "new_milestones": result.new_milestones,
        "goal_completed": result.goal_completed
    }


@router.post("/{goal_id}/subtasks", response_model=SubTaskResponse, status_code=status.HTTP_201_CREATED)
def add_sub_task(
    goal_id: int,
    sub_task: SubTaskCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    return GoalService(db).add_sub_task(goal_id, user_id, sub_task)


@router.patch("/{goal_id}/subtasks/{subtask_id}/toggle", response_model=SubTaskResponse)
def toggle_sub_task(
    goal_id: int,
    subtask_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    return GoalService(db).toggle_sub_task(goal_id, user_id, subtask_id)


@router.post("/{goal_id}/milestones", response_model=MilestoneResponse, status_code=status.HTTP_201_CREATED)
def add_milestone(
    goal_id: int,
    milestone: MilestoneCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    return GoalService(db).add_milestone(goal_id, user_id, milestone)


@router.patch("/{goal_id}/milestones/{milestone_id}/toggle", response_model=MilestoneResponse)
def toggle_milestone(
    goal_id: int,
    milestone_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    """Complete a milestone by hand. Completed milestones stay completed."""
    return GoalService(db).toggle_milestone(goal_id, user_id, milestone_id)


@router.get("/{goal_id}/summary")
def get_goal_summary(
    goal_id: int,
    days: int = Query(7, ge=1, le=365),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    goal = GoalService(db).get_goal(goal_id, user_id)
    return SummaryService(db).get_goal_progress_summary(goal, days)


@router.get("/{goal_id}/weekly")
def get_weekly_progress(
    goal_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    goal = GoalService(db).get_goal(goal_id, user_id)
    return SummaryService(db).get_weekly_progress(goal)


@router.get("/{goal_id}/monthly")
def get_monthly_progress(
    goal_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    goal = GoalService(db).get_goal(goal_id, user_id)
    return SummaryService(db).get_monthly_progress(goal)


@router.get("/{goal_id}/catch-up", response_model=List[CatchUpSuggestionResponse])
def get_catch_up_suggestions(
    goal_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    _: str = Depends(verify_api_key)
):
    """Run a schedule check now and return the catch-up plan."""
    return GoalService(db).get_catch_up_suggestions(goal_id, user_id)
