from . import groups, interests, likes, matches, profiles, quota, reports

__all__ = ["groups", "interests", "likes", "matches", "profiles", "quota", "reports"]
