# src/tasksync/cli/commands.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..core.errors import TaskSyncError
from ..core.state import AppState
from ..tasks.task_models import Task, TaskFilter

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        return await handler(state, args, emit)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _split_title(args: list[str]) -> tuple[str, str]:
    """'buy milk | 2 litres' -> ('buy milk', '2 litres')."""
    title, _, description = " ".join(args).partition("|")
    return title.strip(), description.strip()


def format_task(task: Task) -> str:
    mark = "x" if task.completed else " "
    line = f"[{mark}] {task.id}  {task.title}"
    if task.description:
        line += f" - {task.description}"
    return line


def _report(
    fut: asyncio.Future[Any],
    emit: CommandEmitter | None,
    on_ok: Callable[[Any], str],
    fail_text: str,
) -> None:
    """Tell the user how a background mutation ended (no-op without an emitter)."""
    if emit is None:
        return

    def _done(f: asyncio.Future[Any]) -> None:
        if f.cancelled():
            return
        exc = f.exception()
        try:
            emit(on_ok(f.result()) if exc is None else f"{fail_text}: {exc}")
        except Exception:
            logger.debug("Command emitter failed.", exc_info=True)

    fut.add_done_callback(_done)


async def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


async def cmd_list(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    view = state.coordinator.view
    if not view.filtered_tasks:
        if view.filter == TaskFilter.ALL:
            return "No tasks yet. Add one with /add <title> [| description]."
        return f"No {view.filter.value} tasks."
    lines = [f"Tasks ({view.filter.value}):"]
    lines.extend(format_task(t) for t in view.filtered_tasks)
    return "\n".join(lines)


async def cmd_stats(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    s = state.coordinator.view.stats
    return f"Total: {s.total}  Active: {s.active}  Completed: {s.completed}"


async def cmd_add(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    title, description = _split_title(args)
    try:
        fut = state.coordinator.create(title, description)
    except TaskSyncError as e:
        return str(e)
    _report(fut, emit, lambda t: f"Task added successfully! ({t.id})", "Failed to add task")
    return f"Adding: {title}"


async def cmd_toggle(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /toggle <id>"
    task = state.store.get(args[0])
    try:
        fut = state.coordinator.toggle(args[0])
    except TaskSyncError as e:
        return str(e)
    # Message reflects the state the user asked for, like the toast in the app.
    ok = "Task marked as incomplete" if task is not None and task.completed else "Task completed! 🎉"
    _report(fut, emit, lambda _t: ok, "Failed to update task")
    return f"Toggling {args[0]}..."


async def cmd_edit(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) < 2:
        return "Usage: /edit <id> <title> [| description]"
    task_id = args[0]
    title, description = _split_title(args[1:])
    try:
        fut = state.coordinator.update(task_id, title, description)
    except TaskSyncError as e:
        return str(e)
    _report(fut, emit, lambda _t: "Task updated successfully!", "Failed to save task (your edit is kept)")
    return f"Saving {task_id}..."


async def cmd_delete(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /delete <id>"
    try:
        fut = state.coordinator.delete(args[0])
    except TaskSyncError as e:
        return str(e)
    _report(fut, emit, lambda _r: "Task deleted", "Task removed locally, but the server delete failed")
    return f"Deleting {args[0]}..."


async def cmd_filter(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return f"Filter is {state.store.filter.value}. Use /filter all | active | completed."
    try:
        state.coordinator.set_filter(args[0].lower())
    except ValueError:
        return "Usage: /filter all | active | completed."
    return await cmd_list(state, [], emit)


async def cmd_reload(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if await state.coordinator.reload():
        return f"Reloaded {len(state.store)} task(s)."
    return "Reload failed; showing the last known list."


async def cmd_history(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    records = state.coordinator.history
    if not records:
        return "No mutations yet."
    lines = ["Recent mutations:"]
    for r in records[-20:]:
        err = f" ({r.error})" if r.error else ""
        lines.append(f"  {r.kind.value} {r.task_id} #{r.seq}: {r.state.value}{err}")
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("list", cmd_list, help_text="Show tasks for the current filter.", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a task: /add <title> [| description].")
registry.register("toggle", cmd_toggle, help_text="Complete / reopen a task: /toggle <id>.", aliases=["done"])
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <id> <title> [| description].")
registry.register("delete", cmd_delete, help_text="Delete a task: /delete <id>.", aliases=["rm"])
registry.register("filter", cmd_filter, help_text="Filter tasks: /filter all | active | completed.")
registry.register("stats", cmd_stats, help_text="Show total / active / completed counts.")
registry.register("reload", cmd_reload, help_text="Reload tasks from the server.")
registry.register("history", cmd_history, help_text="Show how recent mutations ended.")
