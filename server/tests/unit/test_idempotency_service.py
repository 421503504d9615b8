"""Unit tests for idempotent request replay."""

import json

import pytest

from rental_core.core.exceptions import ConflictError
from rental_core.services.idempotency_service import IdempotencyMismatchError, IdempotencyService


class CountingOperation:
    def __init__(self, result=None, error=None):
        self.calls = 0
        self.result = result or {"id": "hold-1", "status": "active"}
        self.error = error

    async def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


def test_request_hash_ignores_key_order():
    first = IdempotencyService.compute_request_hash({"a": 1, "b": [1, 2]})
    second = IdempotencyService.compute_request_hash({"b": [1, 2], "a": 1})

    assert first == second
    assert first != IdempotencyService.compute_request_hash({"a": 2, "b": [1, 2]})


@pytest.mark.asyncio
async def test_replay_returns_stored_response(test_session, clock):
    service = IdempotencyService(test_session, clock)
    operation = CountingOperation()
    body = {"vehicle_id": "v-1", "customer_id": "c-1"}

    first = await service.execute("hold/create", "key-1", body, operation)
    second = await service.execute("hold/create", "key-1", body, operation)

    assert operation.calls == 1
    assert json.loads(first.body) == json.loads(second.body) == operation.result
    assert "Idempotent-Replayed" not in first.headers
    assert second.headers["Idempotent-Replayed"] == "true"


@pytest.mark.asyncio
async def test_key_is_scoped_to_the_operation(test_session, clock):
    service = IdempotencyService(test_session, clock)
    operation = CountingOperation()

    await service.execute("hold/create", "key-1", {"x": 1}, operation)
    await service.execute("hold/convert", "key-1", {"x": 1}, operation)

    assert operation.calls == 2


@pytest.mark.asyncio
async def test_reused_key_with_different_body(test_session, clock):
    service = IdempotencyService(test_session, clock)
    await service.execute("hold/create", "key-1", {"x": 1}, CountingOperation())

    with pytest.raises(IdempotencyMismatchError) as exc_info:
        await service.execute("hold/create", "key-1", {"x": 2}, CountingOperation())

    assert exc_info.value.status_code == 422
    assert exc_info.value.problem_details["code"] == "IDEMPOTENCY_KEY_MISMATCH"


@pytest.mark.asyncio
async def test_problem_responses_are_replayed(test_session, clock):
    service = IdempotencyService(test_session, clock)
    operation = CountingOperation(error=ConflictError(detail="taken", code="VEHICLE_CONFLICT"))

    with pytest.raises(ConflictError):
        await service.execute("hold/create", "key-1", {"x": 1}, operation)
    replay = await service.execute("hold/create", "key-1", {"x": 1}, operation)

    assert operation.calls == 1
    assert replay.status_code == 409
    assert json.loads(replay.body)["code"] == "VEHICLE_CONFLICT"


@pytest.mark.asyncio
async def test_without_key_every_call_runs(test_session, clock):
    service = IdempotencyService(test_session, clock)
    operation = CountingOperation()

    await service.execute("hold/create", None, {"x": 1}, operation)
    await service.execute("hold/create", None, {"x": 1}, operation)

    assert operation.calls == 2


@pytest.mark.asyncio
async def test_expired_record_runs_again(test_session, clock):
    service = IdempotencyService(test_session, clock)
    operation = CountingOperation()

    await service.execute("hold/create", "key-1", {"x": 1}, operation)
    clock.advance(hours=25)

    assert await service.check_idempotency("key-1", "hold/create", {"x": 1}) is None
