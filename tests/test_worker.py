import asyncio
import copy
import json
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from app.errors import StageTimeoutError, UpstreamModelError
from app.jobs.models import TaskStatus
from app.jobs.worker import Worker
from app.pipeline.sanitizer import DISCLAIMER

from tests.helpers import (
    BODY_REPLY,
    MEAL_FEEDBACK_REPLY,
    MEAL_REPLY,
    NUTRITION_REPLY,
    HangingClient,
    ScriptedClient,
    as_reply,
    body_task,
    claim,
    make_pipeline,
    meal_task,
)

REFUSAL = "I'm sorry, but I can't help with analysing people in images."


def body_clients(analysis_replies=None, recommendation_replies=None):
    analysis = ScriptedClient("analysis", analysis_replies or [as_reply(BODY_REPLY, fenced=True)])
    recommendation = ScriptedClient("recommendation", recommendation_replies or [as_reply(NUTRITION_REPLY)])
    return analysis, recommendation


async def wait_for_status(store, task_id, statuses, timeout=5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        task = await store.get_by_id(task_id)
        if task.status in statuses:
            return task
        await asyncio.sleep(0.01)
    raise AssertionError(f"task {task_id} never reached {statuses}")


@pytest.mark.asyncio
async def test_body_task_completes_with_full_report(store):
    analysis, recommendation = body_clients()
    worker = Worker(store, make_pipeline(analysis, recommendation))
    task = await claim(store, body_task())

    done = await worker.process(task)

    assert done.status == TaskStatus.COMPLETED
    assert done.progress == 100
    assert done.error is None
    assert done.result["bodyType"] == "mesomorph"
    assert done.result["recommendations"]["dailyCalories"] == 2600
    assert done.result["disclaimer"] == DISCLAIMER
    assert analysis.calls[0]["images"] == [task.input.image]
    assert recommendation.calls[0]["images"] is None


@pytest.mark.asyncio
async def test_progress_sequence(store):
    analysis, recommendation = body_clients()
    worker = Worker(store, make_pipeline(analysis, recommendation))
    task = await claim(store, body_task())
    assert task.progress == 10

    await worker.process(task)

    assert store.progress_updates == [30, 60, 80, 90]
    assert (await store.get_by_id(task.id)).progress == 100


@pytest.mark.asyncio
async def test_stage_two_prompt_uses_sanitized_stage_one(store):
    reply = copy.deepcopy(BODY_REPLY)
    reply["measurements"]["bodyFatPercentage"] = 999
    analysis, recommendation = body_clients([as_reply(reply)])
    worker = Worker(store, make_pipeline(analysis, recommendation))

    done = await worker.process(await claim(store, body_task()))

    assert done.result["measurements"]["bodyFatPercentage"] == 50
    assert "999" not in recommendation.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_refusal_fails_with_parse_error_and_skips_stage_two(store):
    analysis, recommendation = body_clients([REFUSAL])
    worker = Worker(store, make_pipeline(analysis, recommendation))

    done = await worker.process(await claim(store, body_task()))

    assert done.status == TaskStatus.FAILED
    assert done.result is None
    assert done.error.code == "ParseError"
    assert done.error.stage == "analysis"
    assert done.progress == 60
    # Parse failures are not retried
    assert len(analysis.calls) == 1
    assert recommendation.calls == []


@pytest.mark.asyncio
async def test_unusable_stage_two_reply_fails_task(store):
    analysis, recommendation = body_clients(recommendation_replies=["Sure! Eat more vegetables."])
    worker = Worker(store, make_pipeline(analysis, recommendation))

    done = await worker.process(await claim(store, body_task()))

    assert done.error.code == "ParseError"
    assert done.error.stage == "recommendation"


@pytest.mark.asyncio
async def test_stage_two_transport_failure_fails_task_after_retries(store):
    error = UpstreamModelError("connection refused", stage="recommendation")
    analysis, recommendation = body_clients(recommendation_replies=[error])
    worker = Worker(store, make_pipeline(analysis, recommendation, max_attempts=2))

    done = await worker.process(await claim(store, body_task()))

    assert done.status == TaskStatus.FAILED
    assert done.result is None
    assert done.error.code == "UpstreamModelError"
    assert done.error.stage == "recommendation"
    assert len(recommendation.calls) == 2


@pytest.mark.asyncio
async def test_transient_failure_is_retried(store):
    flaky = [UpstreamModelError("503", stage="analysis"), as_reply(BODY_REPLY)]
    analysis, recommendation = body_clients(flaky)
    worker = Worker(store, make_pipeline(analysis, recommendation))

    done = await worker.process(await claim(store, body_task()))

    assert done.status == TaskStatus.COMPLETED
    assert len(analysis.calls) == 2


@pytest.mark.asyncio
async def test_client_timeout_fails_with_timeout_error(store):
    analysis, recommendation = body_clients([StageTimeoutError("read timeout", stage="analysis")])
    worker = Worker(store, make_pipeline(analysis, recommendation, max_attempts=1))

    done = await worker.process(await claim(store, body_task()))

    assert done.error.code == "TimeoutError"
    assert done.error.stage == "analysis"


@pytest.mark.asyncio
async def test_stage_deadline_is_enforced(store):
    analysis = HangingClient("analysis")
    recommendation = ScriptedClient("recommendation", [as_reply(NUTRITION_REPLY)])
    pipeline = make_pipeline(analysis, recommendation, stage_one_timeout=0.05, max_attempts=2)
    worker = Worker(store, pipeline)

    done = await worker.process(await claim(store, body_task()))

    assert done.status == TaskStatus.FAILED
    assert done.error.code == "TimeoutError"
    assert analysis.calls == 2


@pytest.mark.asyncio
async def test_meal_task_completes(store):
    analysis = ScriptedClient("analysis", [as_reply(MEAL_REPLY)])
    recommendation = ScriptedClient("recommendation", [as_reply(MEAL_FEEDBACK_REPLY)])
    worker = Worker(store, make_pipeline(analysis, recommendation))

    done = await worker.process(await claim(store, meal_task()))

    assert done.status == TaskStatus.COMPLETED
    assert done.result["totalCalories"] == 450
    assert done.result["mealType"] == "lunch"
    assert done.result["feedback"]["balance"] == "high_protein"
    # Manual descriptions are sent without images
    assert analysis.calls[0]["images"] is None


@pytest.mark.asyncio
async def test_meal_with_no_foods_fails(store):
    analysis = ScriptedClient("analysis", [json.dumps({"foods": [], "mealType": "lunch"})])
    recommendation = ScriptedClient("recommendation", [as_reply(MEAL_FEEDBACK_REPLY)])
    worker = Worker(store, make_pipeline(analysis, recommendation))

    done = await worker.process(await claim(store, meal_task()))

    assert done.error.code == "ParseError"
    assert recommendation.calls == []


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_internal_error(store):
    analysis, recommendation = body_clients([RuntimeError("boom")])
    worker = Worker(store, make_pipeline(analysis, recommendation))

    done = await worker.process(await claim(store, body_task()))

    assert done.status == TaskStatus.FAILED
    assert done.error.code == "InternalError"
    assert "boom" in done.error.message


@pytest.mark.asyncio
async def test_collaborator_failures_do_not_change_outcome(store):
    analysis, recommendation = body_clients()
    sink = AsyncMock()
    sink.save.side_effect = RuntimeError("db down")
    listener = AsyncMock()
    listener.on_completed.side_effect = RuntimeError("outbox down")
    worker = Worker(store, make_pipeline(analysis, recommendation), result_sink=sink, completion_listener=listener)
    task = await claim(store, body_task(user_id="user-7"))

    done = await worker.process(task)

    assert done.status == TaskStatus.COMPLETED
    sink.save.assert_awaited_once()
    event = listener.on_completed.await_args.args[0]
    assert event.task_id == task.id
    assert event.user_id == "user-7"


@pytest.mark.asyncio
async def test_failed_tasks_are_not_handed_off(store):
    analysis, recommendation = body_clients([REFUSAL])
    sink = AsyncMock()
    worker = Worker(store, make_pipeline(analysis, recommendation), result_sink=sink)

    await worker.process(await claim(store, body_task()))

    sink.save.assert_not_awaited()


@pytest.mark.asyncio
async def test_worker_loop_keeps_going_after_a_failure(store):
    analysis = ScriptedClient("analysis", [REFUSAL, as_reply(BODY_REPLY)])
    recommendation = ScriptedClient("recommendation", [as_reply(NUTRITION_REPLY)])
    worker = Worker(store, make_pipeline(analysis, recommendation), poll_interval=0.05)
    first, second = body_task(), body_task()
    await store.enqueue(first)
    await store.enqueue(second)

    await worker.start()
    try:
        failed = await wait_for_status(store, first.id, {TaskStatus.FAILED, TaskStatus.COMPLETED})
        done = await wait_for_status(store, second.id, {TaskStatus.FAILED, TaskStatus.COMPLETED})
    finally:
        await worker.stop()

    assert failed.status == TaskStatus.FAILED
    assert done.status == TaskStatus.COMPLETED
    assert not worker.running


@pytest.mark.asyncio
async def test_stop_cancels_in_flight_task_after_grace_period(store):
    analysis = HangingClient("analysis")
    recommendation = ScriptedClient("recommendation", [as_reply(NUTRITION_REPLY)])
    pipeline = make_pipeline(analysis, recommendation, stage_one_timeout=60)
    worker = Worker(store, pipeline, poll_interval=0.05, shutdown_grace=0.1)
    task = body_task()
    await store.enqueue(task)

    await worker.start()
    await wait_for_status(store, task.id, {TaskStatus.PROCESSING})
    await worker.stop()

    stopped = await store.get_by_id(task.id)
    assert stopped.status == TaskStatus.FAILED
    assert stopped.error.code == "CancelledError"


@pytest.mark.asyncio
async def test_start_fails_tasks_left_by_a_dead_worker(store):
    orphan = await claim(store, body_task())
    analysis, recommendation = body_clients()
    worker = Worker(
        store, make_pipeline(analysis, recommendation),
        stale_lease=timedelta(seconds=-1),
    )

    await worker.housekeeping()

    stale = await store.get_by_id(orphan.id)
    assert stale.status == TaskStatus.FAILED
    assert stale.error.code == "WorkerInterruptedError"
