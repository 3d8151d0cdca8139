from .user import User
from .check_in import CheckIn, EngagementAction
from .streak_state import StreakState
from .notification_preference import NotificationPreference
from .notification_dispatch import NotificationDispatch, DispatchStatus
from .daily_verse import DailyVerse

__all__ = [
    "User",
    "CheckIn",
    "EngagementAction",
    "StreakState",
    "NotificationPreference",
    "NotificationDispatch",
    "DispatchStatus",
    "DailyVerse",
]
