"""Identifier helpers shared across models."""

from __future__ import annotations

import os
import time
from typing import Annotated

from pydantic import StringConstraints

EntityId = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)]


def new_id(prefix: str) -> str:
    """Return a sortable opaque id such as ``p_1718000000000_9f3a1c2e``."""
    return f"{prefix}_{int(time.time() * 1000)}_{os.urandom(4).hex()}"


def pair_key(profile_a: str, profile_b: str, context_id: str) -> str:
    """Canonical key for an unordered profile pair inside one context."""
    low, high = sorted((profile_a, profile_b))
    return f"{context_id}|{low}|{high}"


def directional_key(from_profile_id: str, to_profile_id: str, context_id: str) -> str:
    return f"{context_id}|{from_profile_id}>{to_profile_id}"


__all__ = ["EntityId", "directional_key", "new_id", "pair_key"]
