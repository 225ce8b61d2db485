"""
Tests for single-flight request slots.
Run with: pytest tests/test_single_flight.py
"""

import asyncio

import pytest

from deskline.errors import Cancelled
from deskline.gateway.single_flight import SingleFlight


@pytest.mark.asyncio
async def test_run_returns_result_and_frees_slot():
    flights = SingleFlight()

    async def work():
        return 42

    assert await flights.run("s1", work) == 42
    assert not flights.in_flight("s1")


@pytest.mark.asyncio
async def test_newer_request_supersedes_older():
    """Starting a second request for a key cancels the first."""
    flights = SingleFlight()
    started = asyncio.Event()

    async def slow():
        started.set()
        await asyncio.sleep(10)
        return "old"

    async def fast():
        return "new"

    old = asyncio.create_task(flights.run("s1", slow))
    await started.wait()
    assert flights.in_flight("s1")

    assert await flights.run("s1", fast) == "new"
    with pytest.raises(Cancelled):
        await old
    assert not flights.in_flight("s1")


@pytest.mark.asyncio
async def test_different_keys_do_not_interfere():
    flights = SingleFlight()
    gate = asyncio.Event()

    async def wait_then(value):
        await gate.wait()
        return value

    a = asyncio.create_task(flights.run("a", lambda: wait_then("A")))
    b = asyncio.create_task(flights.run("b", lambda: wait_then("B")))
    await asyncio.sleep(0)
    gate.set()
    assert await a == "A"
    assert await b == "B"


@pytest.mark.asyncio
async def test_cancel_by_key():
    flights = SingleFlight()
    started = asyncio.Event()

    async def slow():
        started.set()
        await asyncio.sleep(10)

    task = asyncio.create_task(flights.run("s1", slow))
    await started.wait()
    assert flights.cancel("s1") == 1
    with pytest.raises(Cancelled, match="User cancelled"):
        await task
    assert flights.cancel("s1") == 0


@pytest.mark.asyncio
async def test_errors_propagate_unchanged():
    flights = SingleFlight()

    async def boom():
        raise RuntimeError("nope")

    with pytest.raises(RuntimeError):
        await flights.run("s1", boom)
    assert not flights.in_flight("s1")
