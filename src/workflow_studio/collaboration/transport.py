"""Abstract base class for the persistence/transport collaborator."""

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .errors import TransportError
from .messages import ConflictResult, ErrorResult, SavedResult

if TYPE_CHECKING:
    from workflow_studio.persistence.hub import WorkflowHub

logger = logging.getLogger(__name__)

SaveResult = SavedResult | ConflictResult | ErrorResult
Unsubscribe = Callable[[], None]


@dataclass
class ChannelHandlers:
    """Callbacks for the persistent workflow channel."""

    connected: Callable[[], None] | None = None
    disconnected: Callable[[], None] | None = None
    saved: Callable[[SavedResult], None] | None = None
    error: Callable[[ErrorResult], None] | None = None
    conflict: Callable[[ConflictResult], None] | None = None

    def dispatch(self, result: SaveResult) -> None:
        if isinstance(result, SavedResult):
            if self.saved:
                self.saved(result)
        elif isinstance(result, ConflictResult):
            if self.conflict:
                self.conflict(result)
        elif self.error:
            self.error(result)

    def notify_connected(self) -> None:
        if self.connected:
            self.connected()

    def notify_disconnected(self) -> None:
        if self.disconnected:
            self.disconnected()


class WorkflowTransport(ABC):
    """Contract between an editor session and the persistence layer.

    Implementations raise :class:`TransportError` when the collaborator
    cannot be reached. Result shapes are returned, never raised.
    """

    @abstractmethod
    async def save(
        self, workflow_id: str, snapshot: dict[str, Any], expected_version: int
    ) -> SaveResult:
        """Submit a full workflow snapshot.

        Args:
            workflow_id: Workflow being saved.
            snapshot: The complete current content.
            expected_version: The session's last-known version.

        Returns:
            A saved, conflict or error result.
        """
        pass

    @abstractmethod
    async def subscribe(self, workflow_id: str, handlers: ChannelHandlers) -> Unsubscribe:
        """Open the channel for events originating from other clients.

        Returns:
            A callable that closes the channel.
        """
        pass

    @abstractmethod
    async def list_variables(self, workflow_id: str) -> list[str]:
        pass

    async def render_step_fragment(
        self, workflow_id: str, step_type: str, index: int, payload: dict[str, Any]
    ) -> str:
        """Server-side fragment rendering. Optional for implementations."""
        raise NotImplementedError


@dataclass
class _Channel:
    workflow_id: str
    handlers: ChannelHandlers
    unsubscribe: Unsubscribe | None


class LocalTransport(WorkflowTransport):
    """In-process client of a :class:`WorkflowHub`.

    Channel events are delivered synchronously on the thread that performed
    the save, so every session sharing a hub must run on the same event loop.
    :meth:`disconnect` and :meth:`reconnect` simulate losing the connection.
    """

    def __init__(
        self, hub: WorkflowHub, *, client_id: str | None = None, user: str | None = None
    ) -> None:
        self.hub = hub
        self.client_id = client_id or uuid.uuid4().hex
        self.user = user
        self.connected = True
        self._channels: list[_Channel] = []

    def _ensure_connected(self) -> None:
        if not self.connected:
            raise TransportError("Not connected")

    async def save(
        self, workflow_id: str, snapshot: dict[str, Any], expected_version: int
    ) -> SaveResult:
        await asyncio.sleep(0)
        self._ensure_connected()
        return self.hub.save(
            workflow_id, snapshot, expected_version, user=self.user, origin=self.client_id
        )

    async def subscribe(self, workflow_id: str, handlers: ChannelHandlers) -> Unsubscribe:
        self._ensure_connected()
        channel = _Channel(workflow_id=workflow_id, handlers=handlers, unsubscribe=None)
        self._open(channel)
        self._channels.append(channel)
        handlers.notify_connected()

        def close() -> None:
            if channel in self._channels:
                self._channels.remove(channel)
            self._close(channel)

        return close

    async def list_variables(self, workflow_id: str) -> list[str]:
        self._ensure_connected()
        return self.hub.list_variables(workflow_id)

    async def render_step_fragment(
        self, workflow_id: str, step_type: str, index: int, payload: dict[str, Any]
    ) -> str:
        self._ensure_connected()
        return self.hub.render_step_fragment(workflow_id, step_type, index, payload)

    def _open(self, channel: _Channel) -> None:
        channel.unsubscribe = self.hub.subscribe(
            channel.workflow_id, channel.handlers.dispatch, origin=self.client_id, user=self.user
        )

    def _close(self, channel: _Channel) -> None:
        if channel.unsubscribe is not None:
            channel.unsubscribe()
            channel.unsubscribe = None

    def disconnect(self) -> None:
        if not self.connected:
            return
        self.connected = False
        logger.info("Transport disconnected", extra={"client_id": self.client_id})
        for channel in self._channels:
            self._close(channel)
            channel.handlers.notify_disconnected()

    def reconnect(self) -> None:
        if self.connected:
            return
        self.connected = True
        logger.info("Transport reconnected", extra={"client_id": self.client_id})
        for channel in self._channels:
            self._open(channel)
            channel.handlers.notify_connected()
