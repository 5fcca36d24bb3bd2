"""Repository layer to abstract MongoDB access patterns."""

from .accounts import AccountRepository
from .groups import GroupRepository, ReportRepository
from .interests import InterestRegistrationRepository
from .likes import LikeRepository
from .matches import MatchRepository
from .profiles import ProfileActivityRepository, ProfileRepository
from .quota import QuotaUsageRepository

__all__ = [
    "AccountRepository",
    "GroupRepository",
    "InterestRegistrationRepository",
    "LikeRepository",
    "MatchRepository",
    "ProfileActivityRepository",
    "ProfileRepository",
    "QuotaUsageRepository",
    "ReportRepository",
]
