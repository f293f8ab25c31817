from __future__ import annotations

"""
File: schedviz/ws.py
Purpose: WebSocket fan-out of snapshot and result updates to dashboard clients.
"""

import asyncio
import json
import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger("schedviz-ws")


class SnapshotBroadcaster:
    """Track dashboard sockets; late joiners get the last message of each type."""
    def __init__(self) -> None:
        self.clients: set[WebSocket] = set()
        self.latest: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        self._pending: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self.clients.add(websocket)
            replay = [self._encode(payload) for payload in self.latest.values()]
        for data in replay:
            await websocket.send_text(data)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self.clients.discard(websocket)

    async def broadcast(self, payload: dict[str, Any]) -> None:
        """Push one update; sockets that fail to receive it are forgotten."""
        data = self._encode(payload)
        async with self._lock:
            self.latest[str(payload.get("type", ""))] = payload
            targets = list(self.clients)
        failed = []
        for websocket in targets:
            try:
                await websocket.send_text(data)
            except Exception:  # noqa: BLE001
                failed.append(websocket)
        if failed:
            async with self._lock:
                self.clients.difference_update(failed)

    @staticmethod
    def _encode(payload: dict[str, Any]) -> str:
        return json.dumps(payload, separators=(",", ":"), sort_keys=True)

    def publish(self, payload: dict[str, Any]) -> None:
        """Queue a payload for run(); safe to call from synchronous listeners."""
        self._pending.put_nowait(payload)

    async def run(self) -> None:
        """Single consumer: broadcasts queued payloads one at a time, in order."""
        while True:
            payload = await self._pending.get()
            try:
                await self.broadcast(payload)
            except Exception as exc:  # noqa: BLE001
                logger.exception("broadcast failed type=%s err=%s", payload.get("type"), exc)
            finally:
                self._pending.task_done()

    async def flush(self) -> None:
        """Wait until every queued payload has been broadcast."""
        await self._pending.join()
