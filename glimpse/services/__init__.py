from .anonymity import AnonymityPolicy
from .auth import AuthProvider, DevAuthProvider, JwtAuthProvider, build_auth_provider
from .groups import GroupService
from .interests import InterestService
from .matching import LikeMatchingEngine
from .profile_store import ProfileStore
from .proximity import ProximityIndex
from .quota_policy import QuotaPolicy
from .sweeper import ExpirySweeper

__all__ = [
    "AnonymityPolicy",
    "AuthProvider",
    "DevAuthProvider",
    "ExpirySweeper",
    "GroupService",
    "InterestService",
    "JwtAuthProvider",
    "LikeMatchingEngine",
    "ProfileStore",
    "ProximityIndex",
    "QuotaPolicy",
    "build_auth_provider",
]
