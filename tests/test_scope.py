import asyncio

import pytest

from cosmos_exporter.monitor.scope import FetchScope


@pytest.mark.asyncio
async def test_failing_task_does_not_cancel_siblings():
    results = []

    async def ok(value):
        await asyncio.sleep(0.01)
        results.append(value)

    async def boom():
        raise RuntimeError("upstream exploded")

    async with FetchScope(name="request") as scope:
        scope.spawn(ok(1), "ok-1")
        scope.spawn(boom(), "boom")
        scope.spawn(ok(2), "ok-2")

    assert sorted(results) == [1, 2]
    assert scope.failed == ["boom"]
    assert scope.launched == ["ok-1", "boom", "ok-2"]


@pytest.mark.asyncio
async def test_tasks_spawned_by_tasks_are_joined():
    finished = []

    async def follow_up():
        await asyncio.sleep(0.01)
        finished.append("follow-up")

    async def parent(scope):
        await asyncio.sleep(0)
        scope.spawn(follow_up(), "follow-up")
        finished.append("parent")

    async with FetchScope(name="request") as outer:
        outer.spawn(parent(outer), "parent")

    assert finished == ["parent", "follow-up"]
    assert outer.task_count == 2


@pytest.mark.asyncio
async def test_inner_scope_drains_before_dependents_launch():
    resolved = []
    observed = []

    async def producer():
        await asyncio.sleep(0.01)
        resolved.extend(["1", "2"])

    async def consumer(proposal_id):
        observed.append((proposal_id, list(resolved)))

    async with FetchScope(name="request") as outer:
        async with FetchScope(name="producers") as inner:
            inner.spawn(producer(), "producer")
        for proposal_id in resolved:
            outer.spawn(consumer(proposal_id), f"consumer:{proposal_id}")

    assert observed == [("1", ["1", "2"]), ("2", ["1", "2"])]


@pytest.mark.asyncio
async def test_spawn_on_closed_scope_raises():
    async def noop():
        return None

    scope = FetchScope(name="closed")
    with pytest.raises(RuntimeError):
        scope.spawn(noop(), "never-opened")

    async with scope:
        pass

    with pytest.raises(RuntimeError):
        scope.spawn(noop(), "after-join")
    assert scope.launched == []
