"""
Connectivity monitor — periodic ping that drains the offline queue.

Runs as an asyncio task next to the UI event loop. Every tick it pings
the gateway; whenever the API answers and work is pending, it replays
the offline queue.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Optional

from .gateway import RemoteGateway
from .models import DrainReport, utcnow
from .offline_queue import OfflineQueue

logger = logging.getLogger("emotionaid.connectivity")


class MonitorState:
    """Latest results from connectivity checks and queue drains."""

    def __init__(self) -> None:
        self.is_connected: bool = False
        self.last_check: Optional[datetime] = None
        self.last_sync: Optional[datetime] = None
        self.last_report: Optional[DrainReport] = None
        self.syncs_completed: int = 0
        self.errors: list[str] = []

    def record_error(self, error: str) -> None:
        self.errors.append(f"{utcnow().isoformat()}: {error}")
        if len(self.errors) > 50:
            self.errors = self.errors[-50:]

    def snapshot(self) -> dict[str, Any]:
        return {
            "is_connected": self.is_connected,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
            "last_report": self.last_report.model_dump() if self.last_report else None,
            "syncs_completed": self.syncs_completed,
            "recent_errors": self.errors[-10:],
        }


class ConnectivityMonitor:
    """Ping the gateway on an interval and drain the queue when online.

    Args:
        gateway: Remote API.
        queue: Offline queue to drain.
        interval: Seconds between checks.
    """

    def __init__(
        self,
        gateway: RemoteGateway,
        queue: OfflineQueue,
        interval: float = 60.0,
    ) -> None:
        self._gateway = gateway
        self._queue = queue
        self._interval = interval
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.state = MonitorState()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def check_connection(self) -> bool:
        """Ping the gateway and record the result."""
        try:
            connected = await self._gateway.ping()
        except Exception as exc:
            logger.error("Connectivity check failed: %s", exc)
            self.state.record_error(f"ping: {exc}")
            connected = False

        if connected != self.state.is_connected:
            logger.info("Connection %s", "restored" if connected else "lost")
        self.state.is_connected = connected
        self.state.last_check = utcnow()
        return connected

    async def run_once(self) -> Optional[DrainReport]:
        """One tick: ping, then drain if online and work is pending.

        Returns:
            The DrainReport, or None when offline or the queue is empty.
        """
        if not await self.check_connection():
            return None
        if await self._queue.count() == 0:
            return None

        report = await self._queue.drain_and_sync(self._gateway, cancel=self._stop_event)
        self.state.last_sync = utcnow()
        self.state.last_report = report
        self.state.syncs_completed += 1
        return report

    def start(self) -> asyncio.Task:
        """Start the periodic loop on the running event loop."""
        if self.running:
            return self._task
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name="emotionaid-connectivity")
        logger.info("Connectivity monitor started (interval=%ss)", self._interval)
        return self._task

    async def stop(self) -> None:
        """Stop the loop; an in-flight drain stops at the next item."""
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("Connectivity monitor stopped")

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:
                logger.error("Offline queue sync failed: %s", exc)
                self.state.record_error(f"sync: {exc}")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue
