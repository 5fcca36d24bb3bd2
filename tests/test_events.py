from __future__ import annotations

from typing import Any, Dict

import pytest

from glimpse.events import MATCH_CREATED, EventPublisher, InMemoryEventPublisher, RedisEventPublisher


class _FailingPublisher(EventPublisher):
    async def publish(self, topic: str, event: Dict[str, Any]) -> None:
        raise ConnectionError("broker down")


def test_base_publisher_is_abstract() -> None:
    with pytest.raises(TypeError):
        EventPublisher()


@pytest.mark.asyncio
async def test_publish_later_is_drained() -> None:
    publisher = InMemoryEventPublisher()
    publisher.publish_later(MATCH_CREATED, {"matchId": "m_1"})
    await publisher.drain()
    assert publisher.events == [(MATCH_CREATED, {"matchId": "m_1"})]


@pytest.mark.asyncio
async def test_failed_publish_is_only_logged(caplog) -> None:
    publisher = _FailingPublisher()
    publisher.publish_later(MATCH_CREATED, {"matchId": "m_1"})
    await publisher.close()
    assert any("Event publish failed" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_redis_publisher_without_url_is_a_no_op() -> None:
    publisher = RedisEventPublisher(None, prefix="glimpse")
    await publisher.publish(MATCH_CREATED, {"matchId": "m_1"})
    await publisher.close()
