"""Issue lifecycle, stats, notification, profile and media services."""

from citycare.services.issues import IssueService
from citycare.services.media import MediaStorage
from citycare.services.notifications import NotificationService
from citycare.services.stats import UserStatsAggregator
from citycare.services.users import UserService

__all__ = [
    "IssueService",
    "MediaStorage",
    "NotificationService",
    "UserService",
    "UserStatsAggregator",
]
