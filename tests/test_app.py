"""Tests for the self-restarting in-app worker."""

import asyncio

import pytest

from shopthumbs import app as app_module
from shopthumbs.app import create_resilient_worker


@pytest.mark.asyncio
async def test_restarted_worker_is_the_one_cancelled(monkeypatch):
    monkeypatch.setattr(app_module, "RESTART_DELAY", 0)
    shutdown_event = asyncio.Event()
    starts = 0

    async def flaky_worker():
        nonlocal starts
        starts += 1
        if starts == 1:
            raise RuntimeError("redis went away")
        await asyncio.Event().wait()

    current = create_resilient_worker(flaky_worker, "image", shutdown_event)
    first = current[0]

    for _ in range(50):
        if starts == 2:
            break
        await asyncio.sleep(0.01)
    assert starts == 2

    restarted = current[0]
    assert restarted is not first
    assert not restarted.done()

    shutdown_event.set()
    restarted.cancel()
    await asyncio.gather(restarted, return_exceptions=True)
    assert restarted.cancelled()


@pytest.mark.asyncio
async def test_no_restart_after_shutdown(monkeypatch):
    monkeypatch.setattr(app_module, "RESTART_DELAY", 0)
    shutdown_event = asyncio.Event()
    starts = 0

    async def idle_worker():
        nonlocal starts
        starts += 1
        await asyncio.Event().wait()

    current = create_resilient_worker(idle_worker, "image", shutdown_event)
    await asyncio.sleep(0)

    shutdown_event.set()
    current[0].cancel()
    await asyncio.gather(*current, return_exceptions=True)
    await asyncio.sleep(0.05)

    assert starts == 1
    assert current[0].cancelled()
