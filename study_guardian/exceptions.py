"""
Custom exceptions for the study guardian application.
Provides specific exception types for better error handling and recovery.
"""


class StudyGuardianException(Exception):
    """Base exception for study guardian application"""
    pass


class ValidationException(StudyGuardianException):
    """Raised when data validation fails"""
    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"Validation error for {field}: {message}")


class GoalNotFoundException(StudyGuardianException):
    """Raised when a goal is not found"""
    def __init__(self, goal_id: int):
        self.goal_id = goal_id
        super().__init__(f"Goal with ID {goal_id} not found")


class MilestoneNotFoundException(StudyGuardianException):
    """Raised when a milestone is not found on a goal"""
    def __init__(self, goal_id: int, milestone_id: int):
        self.goal_id = goal_id
        self.milestone_id = milestone_id
        super().__init__(f"Milestone {milestone_id} not found on goal {goal_id}")


class SubTaskNotFoundException(StudyGuardianException):
    """Raised when a sub-task is not found on a goal"""
    def __init__(self, goal_id: int, subtask_id: int):
        self.goal_id = goal_id
        self.subtask_id = subtask_id
        super().__init__(f"Sub-task {subtask_id} not found on goal {goal_id}")


class RewardsProfileNotFoundException(StudyGuardianException):
    """Raised when a user has no rewards ledger yet"""
    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"No rewards profile for user {user_id}")


class AuthorizationException(StudyGuardianException):
    """Raised when a user mutates an aggregate they do not own"""
    def __init__(self, user_id: int, resource: str):
        self.user_id = user_id
        self.resource = resource
        super().__init__(f"User {user_id} is not allowed to modify {resource}")


class ConcurrencyConflictException(StudyGuardianException):
    """Raised when an optimistic update lost the race against another writer"""
    def __init__(self, entity: str, details: str = ""):
        self.entity = entity
        self.details = details
        message = f"Concurrent update conflict on {entity}"
        if details:
            message = f"{message}: {details}"
        super().__init__(message)
