# tests/test_coordinator.py

from __future__ import annotations

import asyncio

import pytest

from tasksync.core.errors import NotFoundError, TransportError, ValidationError
from tasksync.tasks.task_models import MutationKind, MutationState, is_temp_id, parse_timestamp

from .fakes import T0, T1, canonical, settle


def _ids(store) -> list[str]:
    return [t.id for t in store.snapshot().tasks]


def _states(coordinator) -> list[tuple[MutationKind, int, MutationState]]:
    return [(r.kind, r.seq, r.state) for r in coordinator.history]


# ---- reload ----


@pytest.mark.asyncio
async def test_reload_maps_server_records(store, coordinator) -> None:
    assert await coordinator.reload() is True

    assert _ids(store) == ["3", "2", "1"]
    report = store.get("1")
    assert report is not None
    assert report.title == "Write report"
    assert report.description == "quarterly numbers"
    assert report.created_at == parse_timestamp(T0)
    assert report.completed is False and report.completed_at is None

    milk = store.get("2")
    assert milk is not None
    assert milk.description == ""
    assert milk.completed is True
    assert milk.completed_at == parse_timestamp(T1)


@pytest.mark.asyncio
async def test_reload_twice_is_idempotent(store, coordinator) -> None:
    await coordinator.reload()
    first = store.snapshot().tasks
    await coordinator.reload()
    assert store.snapshot().tasks == first


@pytest.mark.asyncio
async def test_reload_failure_keeps_local_view(store, coordinator, gateway) -> None:
    await coordinator.reload()
    before = store.snapshot().tasks

    gateway.fail_next("list")
    assert await coordinator.reload() is False
    assert store.snapshot().tasks == before


@pytest.mark.asyncio
async def test_reload_keeps_tasks_still_being_created(store, coordinator, gateway) -> None:
    await coordinator.reload()
    release = gateway.hold("create")
    fut = coordinator.create("Draft")
    await settle()

    await coordinator.reload()
    head = store.snapshot().tasks[0]
    assert is_temp_id(head.id) and head.title == "Draft"
    assert len(store) == 4

    release.set()
    created = await fut
    assert _ids(store) == [created.id, "3", "2", "1"]


@pytest.mark.asyncio
async def test_stale_list_keeps_create_committed_meanwhile(store, coordinator, gateway) -> None:
    await coordinator.reload()
    release = gateway.hold("list")
    reloading = asyncio.create_task(coordinator.reload())
    await settle()

    created = await coordinator.create("Fresh")
    assert created.id == "4" and 4 in gateway.records

    release.set()
    assert await reloading is True

    assert _ids(store) == ["4", "3", "2", "1"]
    assert store.get("4") == created


@pytest.mark.asyncio
async def test_stale_list_does_not_revert_toggle_committed_meanwhile(store, coordinator, gateway) -> None:
    await coordinator.reload()
    release = gateway.hold("list")
    reloading = asyncio.create_task(coordinator.reload())
    await settle()

    await coordinator.toggle("1")
    assert gateway.records[1].is_read is True

    release.set()
    assert await reloading is True

    report = store.get("1")
    assert report is not None
    assert report.completed is True and report.completed_at is not None
    assert report.title == "Write report"


@pytest.mark.asyncio
async def test_stale_list_does_not_bring_back_deleted_task(store, coordinator, gateway) -> None:
    await coordinator.reload()
    release = gateway.hold("list")
    reloading = asyncio.create_task(coordinator.reload())
    await settle()

    await coordinator.delete("3")

    release.set()
    assert await reloading is True
    assert _ids(store) == ["2", "1"]


@pytest.mark.asyncio
async def test_stale_list_keeps_mutation_still_in_flight(store, coordinator, gateway) -> None:
    await coordinator.reload()
    release_list = gateway.hold("list")
    reloading = asyncio.create_task(coordinator.reload())
    await settle()

    release_update = gateway.hold("update")
    pending = coordinator.update("2", "Buy oat milk")
    release_list.set()
    await reloading

    milk = store.get("2")
    assert milk is not None and milk.title == "Buy oat milk"

    release_update.set()
    await pending
    assert store.get("2").title == "Buy oat milk"


@pytest.mark.asyncio
async def test_next_reload_takes_server_state_again(store, coordinator, gateway) -> None:
    await coordinator.reload()
    release = gateway.hold("list")
    reloading = asyncio.create_task(coordinator.reload())
    await settle()
    await coordinator.toggle("3")
    release.set()
    await reloading

    # Someone else reopens the task; without mutations in between the server wins.
    gateway.records[3] = canonical(3, "Call Bob")
    await coordinator.reload()

    bob = store.get("3")
    assert bob is not None and bob.completed is False


# ---- create ----


@pytest.mark.asyncio
async def test_create_is_optimistic_then_takes_server_id(store, coordinator, gateway) -> None:
    await coordinator.reload()
    release = gateway.hold("create")

    fut = coordinator.create("  New task ", " some details ")
    head = store.snapshot().tasks[0]
    assert is_temp_id(head.id)
    assert head.title == "New task"
    assert head.description == "some details"
    assert head.completed is False and head.completed_at is None

    release.set()
    task = await fut

    assert task.id == "4"
    assert _ids(store) == ["4", "3", "2", "1"]
    assert store.get("4") == task
    assert task.title == "New task"
    assert task.description == "some details"
    assert task.created_at == parse_timestamp(T0)
    assert gateway.calls[-1] == ("create", ("New task", "some details"))


@pytest.mark.asyncio
@pytest.mark.parametrize("title", ["", "   ", "x" * 101])
async def test_create_rejects_invalid_title_without_side_effects(store, coordinator, gateway, title) -> None:
    await coordinator.reload()
    version = store.version
    calls = len(gateway.calls)

    with pytest.raises(ValidationError):
        coordinator.create(title)

    assert store.version == version
    assert len(gateway.calls) == calls


@pytest.mark.asyncio
async def test_create_rejects_long_description(coordinator) -> None:
    with pytest.raises(ValidationError):
        coordinator.create("ok", "d" * 501)


@pytest.mark.asyncio
async def test_create_failure_removes_optimistic_entry(store, coordinator, gateway) -> None:
    await coordinator.reload()
    gateway.fail_next("create")

    fut = coordinator.create("Doomed")
    assert len(store) == 4

    with pytest.raises(TransportError):
        await fut

    assert _ids(store) == ["3", "2", "1"]
    assert coordinator.history[-1].state == MutationState.ROLLED_BACK


@pytest.mark.asyncio
async def test_create_replaces_existing_entry_with_same_server_id(store, coordinator, gateway) -> None:
    await coordinator.reload()
    gateway.next_id = 3

    task = await coordinator.create("Dup")

    assert _ids(store) == ["3", "2", "1"]
    assert store.get("3") == task
    assert task.title == "Dup"


# ---- toggle ----


@pytest.mark.asyncio
async def test_toggle_commits(store, coordinator, gateway) -> None:
    await coordinator.reload()

    fut = coordinator.toggle("1")
    optimistic = store.get("1")
    assert optimistic is not None
    assert optimistic.completed is True and optimistic.completed_at is not None

    task = await fut
    assert task.completed is True
    assert task.completed_at == optimistic.completed_at
    assert gateway.records[1].is_read is True
    assert coordinator.history[-1].state == MutationState.COMMITTED


@pytest.mark.asyncio
async def test_toggle_reopens_completed_task(store, coordinator) -> None:
    await coordinator.reload()

    task = await coordinator.toggle("2")

    assert task.completed is False
    assert task.completed_at is None


@pytest.mark.asyncio
async def test_toggle_failure_rolls_back(store, coordinator, gateway) -> None:
    await coordinator.reload()
    before = store.get("1")
    gateway.fail_next("toggle")

    fut = coordinator.toggle("1")
    assert store.get("1").completed is True

    with pytest.raises(TransportError):
        await fut

    after = store.get("1")
    assert after.completed == before.completed
    assert after.completed_at == before.completed_at
    assert after == before
    assert coordinator.history[-1].state == MutationState.ROLLED_BACK


@pytest.mark.asyncio
async def test_toggle_unknown_id_raises_before_touching_anything(store, coordinator, gateway) -> None:
    await coordinator.reload()
    version = store.version

    with pytest.raises(NotFoundError):
        coordinator.toggle("999")

    assert store.version == version
    assert not [c for c in gateway.calls if c[0] == "toggle"]


@pytest.mark.asyncio
@pytest.mark.parametrize("toggle_fails", [False, True])
async def test_late_toggle_does_not_revert_newer_update(store, coordinator, gateway, toggle_fails) -> None:
    await coordinator.reload()
    release = gateway.hold("toggle")
    if toggle_fails:
        gateway.fail_next("toggle")

    toggle_fut = coordinator.toggle("1")
    await settle()

    await coordinator.update("1", "new title", "")
    assert store.get("1").title == "new title"

    release.set()
    if toggle_fails:
        with pytest.raises(TransportError):
            await toggle_fut
    else:
        await toggle_fut

    task = store.get("1")
    assert task.title == "new title"
    assert task.completed is True
    assert _states(coordinator)[-2:] == [
        (MutationKind.UPDATE, 2, MutationState.COMMITTED),
        (MutationKind.TOGGLE, 1, MutationState.SUPERSEDED),
    ]


@pytest.mark.asyncio
async def test_older_failed_toggle_does_not_clobber_newer_commit(store, coordinator, gateway) -> None:
    await coordinator.reload()
    release = gateway.hold("toggle")
    gateway.fail_next("toggle")

    first = coordinator.toggle("1")
    second = coordinator.toggle("1")
    await second

    release.set()
    with pytest.raises(TransportError):
        await first

    # Only the second toggle reached the server.
    assert gateway.records[1].is_read is True
    assert store.get("1").completed is True
    assert _states(coordinator)[-1] == (MutationKind.TOGGLE, 1, MutationState.SUPERSEDED)


@pytest.mark.asyncio
async def test_rollback_skips_fields_owned_by_pending_newer_toggle(store, coordinator, gateway) -> None:
    await coordinator.reload()
    release_first = gateway.hold("toggle")
    gateway.fail_next("toggle")
    release_second = gateway.hold("toggle")

    first = coordinator.toggle("1")
    second = coordinator.toggle("1")
    await settle()
    assert store.get("1").completed is False

    release_first.set()
    with pytest.raises(TransportError):
        await first
    assert store.get("1").completed is False

    release_second.set()
    task = await second

    assert task.completed is True
    assert gateway.records[1].is_read is True
    assert _states(coordinator)[-2:] == [
        (MutationKind.TOGGLE, 1, MutationState.SUPERSEDED),
        (MutationKind.TOGGLE, 2, MutationState.COMMITTED),
    ]


@pytest.mark.asyncio
async def test_cancelled_caller_still_gets_reconciled(store, coordinator, gateway) -> None:
    await coordinator.reload()
    before = store.get("1")
    release = gateway.hold("toggle")
    gateway.fail_next("toggle")

    async def caller() -> None:
        await coordinator.toggle("1")

    waiter = asyncio.create_task(caller())
    await settle()
    assert store.get("1").completed is True

    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    release.set()
    await coordinator.drain()

    assert store.get("1") == before
    assert coordinator.pending_count == 0


# ---- update ----


@pytest.mark.asyncio
async def test_update_commits_server_echo(store, coordinator, gateway) -> None:
    await coordinator.reload()

    fut = coordinator.update("3", " Call Alice ", " tomorrow ")
    assert store.get("3").title == "Call Alice"
    assert store.get("3").description == "tomorrow"

    task = await fut
    assert task.title == "Call Alice"
    assert task.updated_at == parse_timestamp(T1)
    assert _ids(store) == ["3", "2", "1"]
    assert gateway.calls[-1] == ("update", ("3", "Call Alice", "tomorrow"))


@pytest.mark.asyncio
async def test_update_failure_keeps_edit(store, coordinator, gateway) -> None:
    await coordinator.reload()
    gateway.fail_next("update")

    with pytest.raises(TransportError):
        await coordinator.update("1", "Edited", "typed text")

    task = store.get("1")
    assert task.title == "Edited"
    assert task.description == "typed text"
    assert coordinator.history[-1].state == MutationState.FAILED


@pytest.mark.asyncio
async def test_update_validation_and_missing_id(store, coordinator) -> None:
    await coordinator.reload()
    before = store.snapshot()

    with pytest.raises(ValidationError):
        coordinator.update("1", "   ")
    with pytest.raises(NotFoundError):
        coordinator.update("999", "Title")

    assert store.snapshot() == before


# ---- delete ----


@pytest.mark.asyncio
async def test_delete_removes_after_remote_settles(store, coordinator, gateway) -> None:
    await coordinator.reload()
    release = gateway.hold("delete")

    fut = coordinator.delete("2")
    await settle()
    assert store.get("2") is not None

    release.set()
    await fut
    assert _ids(store) == ["3", "1"]
    assert 2 not in gateway.records


@pytest.mark.asyncio
async def test_delete_failure_still_removes_locally(store, coordinator, gateway) -> None:
    await coordinator.reload()
    gateway.fail_next("delete")

    with pytest.raises(TransportError):
        await coordinator.delete("1")

    assert store.get("1") is None
    assert _ids(store) == ["3", "2"]
    assert coordinator.history[-1].state == MutationState.FAILED


@pytest.mark.asyncio
async def test_delete_unknown_id(coordinator) -> None:
    await coordinator.reload()
    with pytest.raises(NotFoundError):
        coordinator.delete("nope")


# ---- tasks that are still being created ----


@pytest.mark.asyncio
async def test_mutation_on_temp_id_waits_for_server_id(store, coordinator, gateway) -> None:
    await coordinator.reload()
    release = gateway.hold("create")

    create_fut = coordinator.create("Draft")
    temp_id = store.snapshot().tasks[0].id
    toggle_fut = coordinator.toggle(temp_id)
    assert store.get(temp_id).completed is True

    release.set()
    created = await create_fut
    toggled = await toggle_fut

    assert ("toggle", (created.id,)) in gateway.calls
    assert store.get(temp_id) is None
    assert toggled.id == created.id
    assert toggled.completed is True
    assert _ids(store) == [created.id, "3", "2", "1"]


@pytest.mark.asyncio
async def test_failed_creation_fails_dependent_mutations(store, coordinator, gateway) -> None:
    await coordinator.reload()
    release = gateway.hold("create")
    gateway.fail_next("create")

    create_fut = coordinator.create("Draft")
    temp_id = store.snapshot().tasks[0].id
    update_fut = coordinator.update(temp_id, "Draft v2")

    release.set()
    with pytest.raises(TransportError):
        await create_fut
    with pytest.raises(NotFoundError):
        await update_fut

    assert _ids(store) == ["3", "2", "1"]


# ---- properties ----


@pytest.mark.asyncio
async def test_invariants_hold_at_every_observable_change(store, coordinator, gateway) -> None:
    violations: list[str] = []

    def check(snap) -> None:
        ids = [t.id for t in snap.tasks]
        if len(ids) != len(set(ids)):
            violations.append(f"duplicate ids at version {snap.version}: {ids}")
        for t in snap.tasks:
            if t.completed != (t.completed_at is not None):
                violations.append(f"completed/completed_at mismatch on {t.id}")

    store.subscribe(check)
    await coordinator.reload()

    gateway.fail_next("toggle")
    gateway.fail_next("delete")
    futures = [
        coordinator.create("A"),
        coordinator.toggle("1"),
        coordinator.toggle("2"),
        coordinator.update("1", "Report v2"),
        coordinator.delete("3"),
        coordinator.create("B", "second"),
    ]
    temp_id = store.snapshot().tasks[0].id
    futures.append(coordinator.toggle(temp_id))

    await asyncio.gather(*futures, return_exceptions=True)
    await coordinator.drain()
    await coordinator.reload()

    assert violations == []
    assert store.version > 0
    stats = coordinator.view.stats
    assert stats.total == stats.active + stats.completed == len(store)


@pytest.mark.asyncio
async def test_view_is_recomputed_on_every_change(store, coordinator) -> None:
    await coordinator.reload()
    assert coordinator.view.stats.completed == 1

    fut = coordinator.toggle("1")
    assert coordinator.view.stats.completed == 2

    coordinator.set_filter("active")
    assert [t.id for t in coordinator.view.filtered_tasks] == ["3"]
    await fut


@pytest.mark.asyncio
async def test_history_is_bounded(store, gateway) -> None:
    from tasksync.tasks.coordinator import MutationCoordinator

    coordinator = MutationCoordinator(store, gateway, history_limit=2)
    await coordinator.reload()
    await coordinator.toggle("1")
    await coordinator.toggle("1")
    await coordinator.toggle("1")

    assert len(coordinator.history) == 2
