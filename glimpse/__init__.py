"""Glimpse: per-context anonymous profiles, likes, matches and staged identity reveal."""

__version__ = "0.1.0"
