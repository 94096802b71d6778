"""
Tests for NDJSON streaming of protected operations.
"""

import json

import pytest
from unittest.mock import AsyncMock, Mock

from agent import OptimizedResume
from service.operation_stream import stream_protected_operation

from conftest import OPTIMIZED_RESULT, partials_of


def connected_request(disconnect_after: int | None = None) -> Mock:
    request = Mock()
    if disconnect_after is None:
        request.is_disconnected = AsyncMock(return_value=False)
    else:
        request.is_disconnected = AsyncMock(side_effect=[False] * disconnect_after + [True] * 100)
    return request


async def collect(generator) -> list[dict]:
    return [json.loads(line) async for line in generator]


async def chunks_from(items, error: Exception | None = None):
    for item in items:
        yield item
    if error is not None:
        raise error


@pytest.fixture
def registry(components):
    return components.operation_registry


@pytest.mark.asyncio
async def test_successful_stream_settles_once(registry, profile_store):
    token = await registry.begin_operation("pro-user", 1, "resume_optimization")
    on_success = AsyncMock()

    events = await collect(stream_protected_operation(
        connected_request(), registry, token, chunks_from(partials_of(OPTIMIZED_RESULT)), OptimizedResume, on_success
    ))

    assert [e["type"] for e in events[:-1]] == ["partial"] * len(OPTIMIZED_RESULT)
    assert events[-1]["type"] == "complete"
    assert events[-1]["operationId"] == token
    assert events[-1]["data"]["summary"] == OPTIMIZED_RESULT["summary"]
    on_success.assert_awaited_once()
    assert (await profile_store.get_profile("pro-user")).credits == 4
    assert await registry.get_operation(token) is None


@pytest.mark.asyncio
async def test_model_error_fails_without_charge(registry, profile_store):
    token = await registry.begin_operation("pro-user", 1, "resume_optimization")
    chunks = chunks_from(partials_of(OPTIMIZED_RESULT)[:2], error=RuntimeError("provider timeout"))

    events = await collect(stream_protected_operation(connected_request(), registry, token, chunks, OptimizedResume))

    assert events[-1]["type"] == "error"
    assert "No credits were charged" in events[-1]["error"]
    assert (await profile_store.get_profile("pro-user")).credits == 5
    assert await registry.get_operation(token) is None


@pytest.mark.asyncio
async def test_incomplete_result_fails_without_charge(registry, profile_store):
    token = await registry.begin_operation("pro-user", 1, "resume_optimization")
    on_success = AsyncMock()

    events = await collect(stream_protected_operation(
        connected_request(), registry, token, chunks_from(partials_of(OPTIMIZED_RESULT)[:2]), OptimizedResume, on_success
    ))

    assert events[-1]["type"] == "error"
    on_success.assert_not_called()
    assert (await profile_store.get_profile("pro-user")).credits == 5


@pytest.mark.asyncio
async def test_empty_output_fails_without_charge(registry, profile_store):
    token = await registry.begin_operation("pro-user", 1, "resume_optimization")

    events = await collect(stream_protected_operation(
        connected_request(), registry, token, chunks_from([]), OptimizedResume
    ))

    assert [e["type"] for e in events] == ["error"]
    assert (await profile_store.get_profile("pro-user")).credits == 5


@pytest.mark.asyncio
async def test_client_disconnect_aborts_without_charge(registry, profile_store):
    token = await registry.begin_operation("pro-user", 1, "resume_optimization")

    events = await collect(stream_protected_operation(
        connected_request(disconnect_after=2), registry, token,
        chunks_from(partials_of(OPTIMIZED_RESULT)), OptimizedResume,
    ))

    assert [e["type"] for e in events] == ["partial", "partial"]
    assert (await profile_store.get_profile("pro-user")).credits == 5
    assert await registry.get_operation(token) is None


@pytest.mark.asyncio
async def test_stop_request_aborts_without_charge(registry, profile_store):
    token = await registry.begin_operation("pro-user", 1, "resume_optimization")
    partials = partials_of(OPTIMIZED_RESULT)

    async def chunks():
        yield partials[0]
        await registry.request_cancellation(token, "pro-user")
        for chunk in partials[1:]:
            yield chunk

    events = await collect(stream_protected_operation(
        connected_request(), registry, token, chunks(), OptimizedResume
    ))

    assert [e["type"] for e in events] == ["partial", "cancelled"]
    assert events[-1]["operationId"] == token
    assert (await profile_store.get_profile("pro-user")).credits == 5


@pytest.mark.asyncio
async def test_failing_success_hook_still_completes(registry, profile_store):
    token = await registry.begin_operation("pro-user", 1, "resume_optimization")
    on_success = AsyncMock(side_effect=RuntimeError("database down"))

    events = await collect(stream_protected_operation(
        connected_request(), registry, token, chunks_from([OPTIMIZED_RESULT]), OptimizedResume, on_success
    ))

    assert events[-1]["type"] == "complete"
    assert (await profile_store.get_profile("pro-user")).credits == 4


@pytest.mark.asyncio
async def test_closing_the_stream_early_aborts(registry, profile_store):
    token = await registry.begin_operation("pro-user", 1, "resume_optimization")
    stream = stream_protected_operation(
        connected_request(), registry, token, chunks_from(partials_of(OPTIMIZED_RESULT)), OptimizedResume
    )

    first = await stream.__anext__()
    await stream.aclose()

    assert json.loads(first)["type"] == "partial"
    assert await registry.get_operation(token) is None
    assert (await profile_store.get_profile("pro-user")).credits == 5
