"""Wires repositories and services for one application instance.

Everything a request handler needs hangs off a single ``ServiceContainer``
stored on ``app.state``; nothing is reachable through module globals.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from .cache import TTLCache
from .clock import Clock, system_clock
from .config import Settings
from .events import EventPublisher, InMemoryEventPublisher, RedisEventPublisher
from .repositories import (
    AccountRepository,
    GroupRepository,
    InterestRegistrationRepository,
    LikeRepository,
    MatchRepository,
    ProfileActivityRepository,
    ProfileRepository,
    QuotaUsageRepository,
    ReportRepository,
)
from .services import (
    AnonymityPolicy,
    AuthProvider,
    ExpirySweeper,
    GroupService,
    InterestService,
    LikeMatchingEngine,
    ProfileStore,
    ProximityIndex,
    QuotaPolicy,
    build_auth_provider,
)


@dataclass
class ServiceContainer:
    settings: Settings
    clock: Clock
    database: AsyncIOMotorDatabase
    accounts: AccountRepository
    publisher: EventPublisher
    auth: AuthProvider
    profiles: ProfileStore
    quota: QuotaPolicy
    anonymity: AnonymityPolicy
    proximity: ProximityIndex
    matching: LikeMatchingEngine
    groups: GroupService
    interests: InterestService
    sweeper: ExpirySweeper


def build_publisher(settings: Settings) -> EventPublisher:
    if settings.redis_pubsub_enabled and settings.redis_url:
        return RedisEventPublisher(settings.redis_url, prefix=settings.redis_pubsub_prefix)
    return InMemoryEventPublisher()


def build_container(
    database: AsyncIOMotorDatabase,
    settings: Settings,
    *,
    clock: Clock = system_clock,
    publisher: Optional[EventPublisher] = None,
    auth: Optional[AuthProvider] = None,
) -> ServiceContainer:
    accounts = AccountRepository(database)
    publisher = publisher or build_publisher(settings)
    auth = auth or build_auth_provider(
        settings.auth_provider,
        accounts,
        clock=clock,
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )

    profiles = ProfileStore(
        ProfileRepository(database),
        ProfileActivityRepository(database),
        clock=clock,
        instant_ttl_hours=settings.instant_profile_ttl_hours,
        retention_days=settings.profile_retention_days,
    )
    quota = QuotaPolicy(
        QuotaUsageRepository(database),
        accounts,
        InterestRegistrationRepository(database),
        limits_for=settings.limits_for,
        timezone=settings.quota_timezone,
        clock=clock,
    )
    matches = MatchRepository(database)
    anonymity = AnonymityPolicy(matches, profiles, clock=clock, skew_ms=settings.reveal_clock_skew_ms)
    group_repository = GroupRepository(database)
    proximity = ProximityIndex(group_repository, TTLCache(clock), clock=clock)
    matching = LikeMatchingEngine(
        LikeRepository(database),
        matches,
        ReportRepository(database),
        accounts,
        profiles,
        quota,
        anonymity,
        publisher,
        clock=clock,
        cooldown_hours=settings.like_cooldown_hours,
        like_ttl_hours=settings.like_ttl_hours,
    )
    groups = GroupService(
        group_repository,
        profiles,
        proximity,
        clock=clock,
        instant_ttl_hours=settings.instant_profile_ttl_hours,
    )
    interests = InterestService(
        InterestRegistrationRepository(database),
        quota,
        clock=clock,
        ttl_days=settings.interest_ttl_days,
        cooldown_hours=settings.interest_cooldown_hours,
        pepper=settings.interest_hash_pepper,
    )
    sweeper = ExpirySweeper(profiles, matching, quota, interval_seconds=settings.sweep_interval_seconds)

    return ServiceContainer(
        settings=settings,
        clock=clock,
        database=database,
        accounts=accounts,
        publisher=publisher,
        auth=auth,
        profiles=profiles,
        quota=quota,
        anonymity=anonymity,
        proximity=proximity,
        matching=matching,
        groups=groups,
        interests=interests,
        sweeper=sweeper,
    )


__all__ = ["ServiceContainer", "build_container", "build_publisher"]
