import logging
import os
from typing import Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from ..config import Settings
from .collections import (
    ACCOUNTS_COLLECTION,
    GROUPS_COLLECTION,
    INTEREST_REGISTRATIONS_COLLECTION,
    LIKES_COLLECTION,
    MATCHES_COLLECTION,
    PROFILES_COLLECTION,
    PROFILE_ACTIVITY_COLLECTION,
    QUOTA_USAGE_COLLECTION,
    REPORTS_COLLECTION,
)

LOGGER = logging.getLogger("uvicorn.error")


async def connect_to_mongo(settings: Settings) -> Tuple[AsyncIOMotorClient, AsyncIOMotorDatabase]:
    """Connect with the primary URI, falling back to ``MONGO_ALT_URI`` when set."""
    if not settings.mongo_uri and not settings.mongo_alt_uri:
        raise RuntimeError("Missing MONGO_URI env var for glimpse")

    # Fast-fail timeouts
    sel_timeout_ms = int(os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "3000"))
    conn_timeout_ms = int(os.getenv("MONGO_CONNECT_TIMEOUT_MS", "3000"))
    sock_timeout_ms = int(os.getenv("MONGO_SOCKET_TIMEOUT_MS", "5000"))

    async def _try_connect(uri: str) -> Tuple[AsyncIOMotorClient, AsyncIOMotorDatabase]:
        client = AsyncIOMotorClient(
            uri,
            maxPoolSize=20,
            serverSelectionTimeoutMS=sel_timeout_ms,
            connectTimeoutMS=conn_timeout_ms,
            socketTimeoutMS=sock_timeout_ms,
            **({"directConnection": True} if settings.mongo_direct else {}),
        )
        await client.admin.command("ping")
        return client, client[settings.mongo_db]

    primary_error: Optional[Exception] = None
    if settings.mongo_uri:
        try:
            client, db = await _try_connect(settings.mongo_uri)
            LOGGER.info("MongoDB connected: db=%s", settings.mongo_db)
            return client, db
        except Exception as exc:
            primary_error = exc
            LOGGER.error("Mongo primary URI failed: %s", exc)

    if settings.mongo_alt_uri:
        try:
            client, db = await _try_connect(settings.mongo_alt_uri)
            LOGGER.info("MongoDB connected via ALT URI: db=%s", settings.mongo_db)
            return client, db
        except Exception as exc:
            LOGGER.error("Mongo ALT URI failed: %s", exc)
            primary_error = primary_error or exc

    raise primary_error or RuntimeError("Mongo connection failed")


async def close_mongo_connection(client: Optional[AsyncIOMotorClient]) -> None:
    if client is not None:
        client.close()
        LOGGER.info("MongoDB connection closed")


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create the indexes that carry uniqueness invariants. Idempotent."""
    await db[ACCOUNTS_COLLECTION].create_index("accountId", unique=True)
    await db[ACCOUNTS_COLLECTION].create_index("phoneNumberHash", unique=True)

    profiles = db[PROFILES_COLLECTION]
    await profiles.create_index("profileId", unique=True)
    await profiles.create_index(
        [("accountId", ASCENDING), ("contextType", ASCENDING), ("contextKey", ASCENDING)],
        name="profiles_account_context_unique",
        unique=True,
    )
    await profiles.create_index([("contextType", ASCENDING), ("expiresAt", ASCENDING)])
    await profiles.create_index([("isActive", ASCENDING), ("purgeAfter", ASCENDING)])

    await db[PROFILE_ACTIVITY_COLLECTION].create_index([("profileId", ASCENDING), ("at", DESCENDING)])

    likes = db[LIKES_COLLECTION]
    await likes.create_index("likeId", unique=True)
    # One active like per directional pair per context
    await likes.create_index("activeKey", name="likes_active_key_unique", unique=True, sparse=True)
    await likes.create_index(
        [("fromProfileId", ASCENDING), ("toProfileId", ASCENDING), ("contextId", ASCENDING), ("createdAt", DESCENDING)],
        name="likes_direction_idx",
    )
    await likes.create_index([("toProfileId", ASCENDING), ("createdAt", DESCENDING)], name="likes_to_idx")

    matches = db[MATCHES_COLLECTION]
    await matches.create_index("matchId", unique=True)
    # Exactly one active match per unordered pair per context
    await matches.create_index("activePairKey", name="matches_pair_key_unique", unique=True, sparse=True)
    await matches.create_index([("profileIdA", ASCENDING), ("status", ASCENDING)])
    await matches.create_index([("profileIdB", ASCENDING), ("status", ASCENDING)])

    await db[QUOTA_USAGE_COLLECTION].create_index(
        [("accountId", ASCENDING), ("scope", ASCENDING), ("action", ASCENDING), ("windowKey", ASCENDING)],
        name="quota_usage_window_unique",
        unique=True,
    )

    registrations = db[INTEREST_REGISTRATIONS_COLLECTION]
    await registrations.create_index("registrationId", unique=True)
    await registrations.create_index([("accountId", ASCENDING), ("status", ASCENDING)])
    # One active registration per account, type and value
    await registrations.create_index(
        "activeValueKey", name="registrations_active_value_unique", unique=True, sparse=True
    )
    await registrations.create_index(
        [("accountId", ASCENDING), ("type", ASCENDING), ("valueHash", ASCENDING), ("closedAt", DESCENDING)]
    )

    await db[GROUPS_COLLECTION].create_index("groupId", unique=True)
    await db[GROUPS_COLLECTION].create_index([("contextType", ASCENDING), ("isActive", ASCENDING)])

    await db[REPORTS_COLLECTION].create_index("reportId", unique=True)
    await db[REPORTS_COLLECTION].create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
    LOGGER.info("Ensured matching indexes")


__all__ = ["close_mongo_connection", "connect_to_mongo", "ensure_indexes"]
