"""MongoDB collection names used by the matching service."""

from __future__ import annotations

ACCOUNTS_COLLECTION = "accounts"
PROFILES_COLLECTION = "profiles"
PROFILE_ACTIVITY_COLLECTION = "profile_activity"
LIKES_COLLECTION = "likes"
MATCHES_COLLECTION = "matches"
QUOTA_USAGE_COLLECTION = "quota_usage"
INTEREST_REGISTRATIONS_COLLECTION = "interest_registrations"
GROUPS_COLLECTION = "groups"
REPORTS_COLLECTION = "reports"

__all__ = [
    "ACCOUNTS_COLLECTION",
    "GROUPS_COLLECTION",
    "INTEREST_REGISTRATIONS_COLLECTION",
    "LIKES_COLLECTION",
    "MATCHES_COLLECTION",
    "PROFILES_COLLECTION",
    "PROFILE_ACTIVITY_COLLECTION",
    "QUOTA_USAGE_COLLECTION",
    "REPORTS_COLLECTION",
]
