"""
Application constants.
Goal and rewards vocabularies, scheduling thresholds and point formulas.
"""

# Goal types
GOAL_TYPE_HOURS = "hours"
GOAL_TYPE_SESSIONS = "sessions"
GOAL_TYPE_TASKS = "tasks"
GOAL_TYPE_STREAK = "streak"
GOAL_TYPE_CUSTOM = "custom"
GOAL_TYPES = (
    GOAL_TYPE_HOURS, GOAL_TYPE_SESSIONS, GOAL_TYPE_TASKS,
    GOAL_TYPE_STREAK, GOAL_TYPE_CUSTOM
)

# Goal periods and their length in days (lifetime has no window)
PERIOD_DAYS = {
    "daily": 1,
    "weekly": 7,
    "monthly": 30,
    "quarterly": 90,
    "yearly": 365,
    "lifetime": None,
}
GOAL_PERIODS = tuple(PERIOD_DAYS.keys())

PROGRESS_UNITS = ("hours", "minutes", "sessions", "tasks", "points", "days")
GOAL_CATEGORIES = ("academic", "personal", "professional", "health", "skill", "other")
GOAL_PRIORITIES = ("low", "medium", "high", "critical")

# Goal statuses
GOAL_STATUS_ACTIVE = "active"
GOAL_STATUS_PAUSED = "paused"
GOAL_STATUS_COMPLETED = "completed"
GOAL_STATUS_CANCELLED = "cancelled"
GOAL_STATUSES = (
    GOAL_STATUS_ACTIVE, GOAL_STATUS_PAUSED,
    GOAL_STATUS_COMPLETED, GOAL_STATUS_CANCELLED
)
TERMINAL_GOAL_STATUSES = (GOAL_STATUS_COMPLETED, GOAL_STATUS_CANCELLED)

# Progress sources
PROGRESS_SOURCE_SESSION = "session"
PROGRESS_SOURCE_MANUAL = "manual"
PROGRESS_SOURCE_SYSTEM = "system"
PROGRESS_SOURCES = (PROGRESS_SOURCE_SESSION, PROGRESS_SOURCE_MANUAL, PROGRESS_SOURCE_SYSTEM)

# Schedule monitor
SCHEDULE_SLACK = 0.10
OBSERVED_RATE_WINDOW_DAYS = 14
HARD_GAP_RATIO = 1.5
DEADLINE_EXTENSION_RATIO = 0.3
FOCUSED_SESSION_MINUTES = 90

SUGGESTION_INCREASE_DAILY = "increase_daily"
SUGGESTION_EXTEND_DEADLINE = "extend_deadline"
SUGGESTION_BREAK_DOWN = "break_down"
SUGGESTION_SCHEDULE_SESSIONS = "schedule_sessions"

# Notification types
NOTIFICATION_MILESTONE_ACHIEVED = "milestone_achieved"
NOTIFICATION_GOAL_COMPLETED = "goal_completed"
NOTIFICATION_BEHIND_SCHEDULE = "behind_schedule"
NOTIFICATION_WEEKLY_SUMMARY = "weekly_summary"
NOTIFICATION_LEVEL_UP = "level_up"
NOTIFICATION_REWARD_EARNED = "reward_earned"
NOTIFICATION_STREAK_MILESTONE = "streak_milestone"
NOTIFICATION_PERSONAL_BEST = "personal_best"

STREAK_NOTIFICATION_MILESTONES = (7, 14, 30)
# Records shorter than this are not worth a personal-best notification
PERSONAL_BEST_MIN_STREAK = 3

# Points ledger sources
POINTS_SOURCE_SESSION = "session"
POINTS_SOURCE_GOAL = "goal"
POINTS_SOURCE_STREAK = "streak"
POINTS_SOURCE_ACHIEVEMENT = "achievement"
POINTS_SOURCE_BONUS = "bonus"
POINTS_SOURCE_PENALTY = "penalty"
POINTS_SOURCE_OTHER = "other"
POINTS_SOURCES = (
    POINTS_SOURCE_SESSION, POINTS_SOURCE_GOAL, POINTS_SOURCE_STREAK,
    POINTS_SOURCE_ACHIEVEMENT, POINTS_SOURCE_BONUS, POINTS_SOURCE_PENALTY,
    POINTS_SOURCE_OTHER
)

# Session points
SESSION_POINTS_PER_MINUTE = 2
SESSION_BONUS_LONG_MINUTES = 60
SESSION_BONUS_LONG = 20
SESSION_BONUS_MEDIUM_MINUTES = 30
SESSION_BONUS_MEDIUM = 10

# Goal completion points
GOAL_POINTS_BASE = 50
GOAL_POINTS_PER_TARGET = {
    GOAL_TYPE_HOURS: 5,
    GOAL_TYPE_SESSIONS: 10,
    GOAL_TYPE_STREAK: 15,
}
GOAL_PRIORITY_MULTIPLIER = {
    "high": 1.5,
    "critical": 2,
}

# Level curve: step(L -> L+1) = floor(LEVEL_BASE_POINTS * LEVEL_GROWTH ** (L - 1))
LEVEL_BASE_POINTS = 100
LEVEL_GROWTH = 1.2

# Reward catalog
CRITERIA_SESSIONS_COUNT = "sessions_count"
CRITERIA_STUDY_HOURS = "study_hours"
CRITERIA_STREAK_DAYS = "streak_days"
CRITERIA_GOALS_COMPLETED = "goals_completed"
CRITERIA_TYPES = (
    CRITERIA_SESSIONS_COUNT, CRITERIA_STUDY_HOURS,
    CRITERIA_STREAK_DAYS, CRITERIA_GOALS_COMPLETED
)

TIMEFRAME_DAILY = "daily"
TIMEFRAME_WEEKLY = "weekly"
TIMEFRAME_MONTHLY = "monthly"
TIMEFRAME_ALLTIME = "alltime"
TIMEFRAME_NONE = "none"
TIMEFRAMES = (
    TIMEFRAME_DAILY, TIMEFRAME_WEEKLY, TIMEFRAME_MONTHLY,
    TIMEFRAME_ALLTIME, TIMEFRAME_NONE
)

RARITIES = ("common", "uncommon", "rare", "epic", "legendary")

# Leaderboard windows
LEADERBOARD_ALLTIME = "alltime"
LEADERBOARD_WEEKLY = "weekly"
LEADERBOARD_MONTHLY = "monthly"
LEADERBOARD_WINDOWS = (LEADERBOARD_ALLTIME, LEADERBOARD_WEEKLY, LEADERBOARD_MONTHLY)

RECENT_POINTS_LIMIT = 10

# Goal recommendations
RECOMMENDATION_LOOKBACK_DAYS = 30
RECOMMENDATION_SUBJECT_LIMIT = 3
RECOMMENDATION_WEEKS_PER_LOOKBACK = 4.3
RECOMMENDATION_GROWTH = 1.2
RECOMMENDATION_STREAK_TARGET = 30

# Study suggestions
SUGGESTION_STREAK_START = "streak_start"
SUGGESTION_STREAK_MAINTAIN = "streak_maintain"
SUGGESTION_STREAK_WARNING = "streak_warning"
SUGGESTION_SESSION_LENGTH = "session_length"
SUGGESTION_PRIORITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}
FIRST_STREAK_BADGE_DAYS = 7
SHORT_SESSION_MINUTES = 25

# Scheduler (HH:MM, server local time)
DAILY_STREAK_SWEEP_TIME = "00:05"
WEEKLY_SUMMARY_TIME = "08:00"

# Logging
DEFAULT_LOG_DIRECTORY_PROD = "/var/log/study-guardian"
DEFAULT_LOG_DIRECTORY_DEV = "./logs"
