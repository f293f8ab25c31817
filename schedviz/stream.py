from __future__ import annotations

"""
File: schedviz/stream.py
Purpose: Socket.IO channel for live (streamed) simulations.
Key responsibilities:
- Connect to the scheduler service and route server events to handlers.
- Emit simulation control commands (start/pause/resume/step/reset/tick speed).
- Tear down cleanly; handlers of a torn-down channel never fire.
Key entrypoints:
- StreamChannel.initialize(), StreamChannel.teardown()
Config/env vars:
- SCHEDULER_STREAM_URL
"""

from dataclasses import dataclass
import logging
from typing import Any, Awaitable, Callable, Optional, Union

import socketio

from schedviz.settings import settings

logger = logging.getLogger("schedviz-stream")

Handler = Callable[[Any], Union[None, Awaitable[None]]]

SERVER_EVENTS = {
    "step": "simulation-step",
    "completed": "simulation-completed",
    "error": "simulation-error",
    "state": "simulation-state",
}


class ChannelNotInitializedError(RuntimeError):
    """A control command was issued before initialize() (or after teardown())."""


@dataclass
class StreamHandlers:
    """Callbacks for the server-emitted events."""
    on_step: Handler
    on_completed: Handler
    on_error: Handler
    on_state: Handler

    def by_kind(self) -> dict[str, Handler]:
        return {
            "step": self.on_step,
            "completed": self.on_completed,
            "error": self.on_error,
            "state": self.on_state,
        }


class StreamChannel:
    """Owns at most one live Socket.IO connection at a time."""
    def __init__(
        self,
        url: str | None = None,
        client_factory: Callable[[], Any] | None = None,
    ) -> None:
        self.url = url or settings.scheduler_stream_url
        self.client_factory = client_factory or (lambda: socketio.AsyncClient(reconnection=True))
        self._client: Optional[Any] = None
        self._generation = 0

    @property
    def active(self) -> bool:
        return self._client is not None

    async def initialize(self, handlers: StreamHandlers) -> None:
        """Connect a fresh channel; an already active channel is torn down first."""
        if self._client is not None:
            await self.teardown()

        self._generation += 1
        generation = self._generation
        client = self.client_factory()
        for kind, handler in handlers.by_kind().items():
            client.on(SERVER_EVENTS[kind], self._guard(generation, kind, handler))
        self._client = client
        try:
            await client.connect(self.url)
        except Exception:
            self._client = None
            self._generation += 1
            raise
        logger.info("stream channel connected url=%s generation=%s", self.url, generation)

    async def teardown(self) -> None:
        """Disconnect and invalidate every handler registered so far."""
        client, self._client = self._client, None
        self._generation += 1
        if client is None:
            return
        try:
            await client.disconnect()
        except Exception as exc:  # noqa: BLE001
            logger.warning("stream disconnect failed err=%s", exc)
        logger.info("stream channel torn down")

    async def start(
        self,
        algorithm: str,
        processes: list[dict[str, Any]],
        step_interval_ms: int,
        config: dict[str, Any] | None = None,
    ) -> None:
        await self._emit(
            "start-simulation",
            {
                "algorithm": algorithm,
                "processes": processes,
                "stepInterval": step_interval_ms,
                "config": dict(config or {}),
            },
        )

    async def pause(self) -> None:
        await self._emit("pause-simulation")

    async def resume(self) -> None:
        await self._emit("resume-simulation")

    async def step(self) -> None:
        await self._emit("step-simulation")

    async def reset(self) -> None:
        await self._emit("reset-simulation")

    async def change_tick_speed(self, step_interval_ms: int) -> None:
        await self._emit("change-tick-speed", {"tickSpeed": step_interval_ms})

    async def _emit(self, event: str, data: Any = None) -> None:
        if self._client is None:
            raise ChannelNotInitializedError("Stream channel not initialized. Call initialize first.")
        if data is None:
            await self._client.emit(event)
        else:
            await self._client.emit(event, data)
        logger.debug("emitted event=%s", event)

    def _guard(self, generation: int, kind: str, handler: Handler) -> Callable[..., Awaitable[None]]:
        """Wrap a handler so it is a no-op once its channel generation is stale."""
        async def _dispatch(data: Any = None, *_: Any) -> None:
            if generation != self._generation:
                logger.debug("ignore %s event from stale channel generation=%s", kind, generation)
                return
            try:
                result = handler(data)
                if result is not None:
                    await result
            except Exception as exc:  # noqa: BLE001
                logger.exception("stream handler error kind=%s err=%s", kind, exc)

        return _dispatch
