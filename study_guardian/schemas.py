from pydantic import BaseModel, Field, field_validator
from datetime import datetime, date
from typing import Optional, List

from study_guardian.services.date_service import DateService


class LocalDatetimeModel(BaseModel):
    """Stores incoming start, due and end times as naive server-local time"""

    @field_validator("start_date", "due_date", "ended_at", check_fields=False)
    @classmethod
    def to_local_naive(cls, value: Optional[datetime]) -> Optional[datetime]:
        return DateService.to_local_naive(value)


# Goal schemas
class MilestoneCreate(LocalDatetimeModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    target: float
    due_date: Optional[datetime] = None
    reward: Optional[str] = None

class MilestoneResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    target: float
    completed: bool
    completed_at: Optional[datetime]
    due_date: Optional[datetime]
    reward: Optional[str]

    class Config:
        from_attributes = True

class SubTaskCreate(LocalDatetimeModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    due_date: Optional[datetime] = None

class SubTaskResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    completed: bool
    completed_at: Optional[datetime]
    due_date: Optional[datetime]

    class Config:
        from_attributes = True

class ProgressEntryResponse(BaseModel):
    id: int
    day: date
    value: float
    source: str
    session_id: Optional[str] = None
    notes: Optional[str]

    class Config:
        from_attributes = True

class CatchUpSuggestionResponse(BaseModel):
    type: str
    suggestion: str
    impact: Optional[str]
    difficulty: str
    required_daily_rate: Optional[float]

    class Config:
        from_attributes = True

class GoalBase(LocalDatetimeModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    type: str  # hours, sessions, tasks, streak, custom
    target: float
    period: str  # daily, weekly, monthly, quarterly, yearly, lifetime
    progress_unit: str
    category: str = "personal"
    priority: str = "medium"
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    auto_progress_from_sessions: bool = True
    linked_subjects: List[str] = Field(default_factory=list)

class GoalCreate(GoalBase):
    milestones: List[MilestoneCreate] = Field(default_factory=list)
    sub_tasks: List[SubTaskCreate] = Field(default_factory=list)

class GoalUpdate(LocalDatetimeModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    target: Optional[float] = None
    period: Optional[str] = None
    progress_unit: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    auto_progress_from_sessions: Optional[bool] = None
    linked_subjects: Optional[List[str]] = None

class GoalResponse(GoalBase):
    id: int
    user_id: int
    status: str
    current_progress: float
    completion_rate: float
    completed_at: Optional[datetime]
    is_overdue: bool
    last_schedule_check: Optional[datetime]
    created_at: datetime
    updated_at: Optional[datetime]

    # Derived figures
    progress_percentage: int
    days_remaining: Optional[int] = None
    weekly_target: Optional[float] = None
    daily_target: Optional[float] = None

    milestones: List[MilestoneResponse] = []
    sub_tasks: List[SubTaskResponse] = []
    catch_up_suggestions: List[CatchUpSuggestionResponse] = []

    class Config:
        from_attributes = True

class GoalDetailResponse(GoalResponse):
    progress_history: List[ProgressEntryResponse] = []

class ManualProgressRequest(BaseModel):
    amount: float
    notes: Optional[str] = Field(None, max_length=500)

class ProgressResultResponse(BaseModel):
    goal: GoalResponse
    amount: float
    new_milestones: List[MilestoneResponse]
    goal_completed: bool


class GoalRecommendation(BaseModel):
    type: str
    title: str
    description: str
    suggested_target: float
    suggested_period: str
    linked_subjects: List[str]
    category: str
    priority: str


# Notification schemas
class NotificationResponse(BaseModel):
    id: int
    goal_id: Optional[int]
    type: str
    title: str
    message: str
    sent: bool
    sent_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


# Activity schemas
class SessionCompletedEvent(LocalDatetimeModel):
    session_id: str = Field(..., min_length=1)
    duration_seconds: int = Field(..., ge=0)
    subject: Optional[str] = None
    ended_at: Optional[datetime] = None

class ActivityResultResponse(BaseModel):
    session_id: str
    goals_updated: List[int]
    goals_completed: List[int]
    milestones_completed: int
    points_awarded: int
    rewards_earned: List[str]
    notifications_dispatched: int
    failed_branches: List[str]


# Rewards schemas
class PointsEntryResponse(BaseModel):
    id: int
    amount: int
    reason: str
    source: str
    related_id: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True

class LifetimeStats(BaseModel):
    sessions_completed: int
    study_hours: float
    goals_completed: int
    current_streak: int
    longest_streak: int
    last_activity_day: Optional[date]

class EarnedRewardResponse(BaseModel):
    reward_id: int
    name: Optional[str]
    period_key: str
    earned_at: datetime

class RewardsProfileResponse(BaseModel):
    user_id: int
    total_points: int
    current_level: int
    level_progress: float
    points_to_next_level: int
    weekly_points: int
    monthly_points: int
    lifetime_stats: LifetimeStats
    earned_rewards: List[EarnedRewardResponse]
    total_badges: int
    is_public: bool
    display_name: Optional[str]
    recent_points: List[PointsEntryResponse]

class RewardResponse(BaseModel):
    id: int
    name: str
    description: str
    type: str
    category: str
    icon: Optional[str]
    points_value: int
    rarity: str
    criteria_type: str
    threshold: float
    timeframe: str
    is_recurring: bool

    class Config:
        from_attributes = True

class RewardProgressResponse(BaseModel):
    reward: RewardResponse
    current_value: float
    target_value: float
    progress_percent: int
    timeframe: str

class StudySuggestion(BaseModel):
    type: str
    priority: str
    title: str
    message: str
    action: str

class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    display_name: Optional[str]
    points: int
    current_level: int
    total_badges: int

class UserRankResponse(BaseModel):
    rank: int
    points: int
    window: str

class LeaderboardSettingsUpdate(BaseModel):
    is_public: bool
    display_name: Optional[str] = Field(None, max_length=50)

class BonusPointsRequest(BaseModel):
    user_id: int
    amount: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=200)
