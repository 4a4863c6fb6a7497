"""Tests for the fire-and-forget profile resync queue."""

import asyncio
import logging
import uuid
from unittest.mock import AsyncMock

import pytest

from app.schemas.insights import ActionResult
from app.services.background import ProfileResyncQueue


@pytest.mark.asyncio
async def test_submit_returns_before_resync_finishes():
    release = asyncio.Event()
    finished = []

    async def slow_resync(user_id):
        await release.wait()
        finished.append(user_id)
        return ActionResult(success=True)

    queue = ProfileResyncQueue(slow_resync)
    user_id = uuid.uuid4()
    queue.submit(user_id)

    assert finished == []
    assert queue.pending == 1

    release.set()
    await queue.drain()
    assert finished == [user_id]
    assert queue.pending == 0
    assert not queue.dead_letters


@pytest.mark.asyncio
async def test_raised_error_goes_to_dead_letter(caplog):
    queue = ProfileResyncQueue(AsyncMock(side_effect=RuntimeError("boom")))
    user_id = uuid.uuid4()

    with caplog.at_level(logging.ERROR, logger="app.services.background.dead_letter"):
        queue.submit(user_id)
        await queue.drain()

    (letter,) = queue.dead_letters
    assert letter.user_id == user_id
    assert "boom" in letter.error
    assert any(r.name == "app.services.background.dead_letter" for r in caplog.records)


@pytest.mark.asyncio
async def test_unsuccessful_result_goes_to_dead_letter():
    queue = ProfileResyncQueue(AsyncMock(return_value=ActionResult(success=False, error="no index")))

    queue.submit(uuid.uuid4())
    await queue.drain()

    assert [letter.error for letter in queue.dead_letters] == ["no index"]


@pytest.mark.asyncio
async def test_dead_letters_are_bounded():
    queue = ProfileResyncQueue(AsyncMock(side_effect=ValueError("bad")), capacity=3)

    for _ in range(5):
        queue.submit(uuid.uuid4())
    await queue.drain()

    assert len(queue.dead_letters) == 3


@pytest.mark.asyncio
async def test_overlapping_resyncs_for_one_user_all_run():
    resync = AsyncMock(return_value=ActionResult(success=True))
    queue = ProfileResyncQueue(resync)
    user_id = uuid.uuid4()

    queue.submit(user_id)
    queue.submit(user_id)
    await queue.drain()

    assert resync.await_count == 2
