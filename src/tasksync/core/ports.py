# src/tasksync/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The coordinator depends on Protocols instead of concrete implementations.
This keeps the HTTP backend and the offline demo backend swappable and makes testing easier.
"""

from typing import TYPE_CHECKING, Awaitable, Protocol

if TYPE_CHECKING:
    from ..tasks.task_models import CanonicalTask


class RemoteGateway(Protocol):
    """
    Remote task resource.

    Every method either returns the server's canonical data or raises:
    - TransportError (network / auth / server rejection),
    - NotFoundError (server does not know the id),
    - ValidationError (server rejected the payload).
    """

    def list(self) -> Awaitable[list[CanonicalTask]]: ...

    def create(self, title: str, description: str) -> Awaitable[CanonicalTask]: ...

    def update(self, task_id: str, title: str, description: str) -> Awaitable[CanonicalTask]: ...

    def delete(self, task_id: str) -> Awaitable[None]: ...

    def toggle(self, task_id: str) -> Awaitable[CanonicalTask]: ...


class TokenProvider(Protocol):
    """Where the HTTP gateway gets its bearer token (None -> no Authorization header)."""

    def __call__(self) -> str | None: ...
