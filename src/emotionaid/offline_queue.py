"""
Offline queue — durable FIFO of remote operations awaiting a connection.

When a remote call fails the feature code enqueues the operation here.
A later drain (triggered by the connectivity monitor or by hand)
replays every item against the gateway in enqueue order.

Item lifecycle:
    Pending ──(remote call ok + local side effect ok)──> removed
    Pending ──(any failure)──> Pending, attempts += 1
    Pending ──(attempts reach max_attempts)──> dropped with a warning
    Pending ──(unknown action tag)──> dropped with a warning

The queue lives in its own encrypted file, separate from the KV
records, and is rewritten whole on every change under the queue's
own lock.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, TypeAdapter, ValidationError

from .errors import GatewayError, StorageError
from .gateway import RemoteGateway
from .models import (
    QUEUE_ACTIONS,
    CreateDiaryEntryPayload,
    DrainReport,
    OfflineQueueItem,
    QueuePayload,
    SendAudioPayload,
    SendMessagePayload,
)
from .protection import DataProtector
from .repositories import ChatRepository
from .storage import decode_payload, encode_payload, read_bytes, write_atomic

logger = logging.getLogger("emotionaid.offline_queue")

_PAYLOAD_ADAPTER: TypeAdapter = TypeAdapter(QueuePayload)

PayloadLike = Union[BaseModel, Mapping[str, Any]]


def decode_queue_payload(action: str, payload: PayloadLike) -> BaseModel:
    """Decode raw payload data into the tagged variant for action.

    Raises:
        ValueError: Unknown action, or fields missing/invalid for it.
    """
    if action not in QUEUE_ACTIONS:
        raise ValueError(f"Unknown queue action: {action!r}")

    if isinstance(payload, BaseModel):
        data = payload.model_dump(mode="json")
    else:
        data = dict(payload)
    if data.get("action", action) != action:
        raise ValueError(f"Payload is for {data['action']!r}, not {action!r}")
    data["action"] = action

    try:
        return _PAYLOAD_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid {action} payload: {exc}") from exc


class OfflineQueue:
    """Persisted FIFO of pending remote operations.

    Args:
        path: The dedicated queue file.
        protector: Encryption for the queue file.
        history: Chat history that receives replies of drained messages.
        max_attempts: Failed drains after which an item is dropped
            (0 keeps items forever).
    """

    def __init__(
        self,
        path: Path,
        protector: DataProtector,
        history: Optional[ChatRepository] = None,
        max_attempts: int = 5,
    ) -> None:
        self._path = path
        self._protector = protector
        self._history = history
        self._max_attempts = max_attempts
        self._lock = asyncio.Lock()
        self._drain_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def enqueue(self, action: str, payload: PayloadLike) -> OfflineQueueItem:
        """Append an operation to the queue and persist it.

        Args:
            action: Action tag (SendMessage, SendAudio, CreateDiaryEntry).
            payload: Payload model or mapping with the action's fields.

        Returns:
            The queued item.

        Raises:
            ValueError: The payload does not decode for the action.
            StorageError: The queue file could not be written.
        """
        decoded = decode_queue_payload(action, payload)
        item = OfflineQueueItem(
            action=action,
            data=decoded.model_dump(mode="json", exclude={"action"}),
        )
        async with self._lock:
            queue = await self._load()
            queue.append(item)
            await self._save(queue)
        logger.info("Queued offline action: %s (%s)", action, item.item_id)
        return item

    async def items(self) -> list[OfflineQueueItem]:
        """Return the persisted queue in FIFO order."""
        async with self._lock:
            return await self._load()

    async def count(self) -> int:
        return len(await self.items())

    async def clear(self) -> int:
        """Drop every pending item. Returns the number removed."""
        async with self._lock:
            queue = await self._load()
            await self._save([])
        logger.info("Offline queue cleared (%d items)", len(queue))
        return len(queue)

    async def drain_and_sync(
        self,
        gateway: RemoteGateway,
        cancel: Optional[asyncio.Event] = None,
    ) -> DrainReport:
        """Replay queued operations against the gateway.

        Items are processed in FIFO order without holding the queue lock,
        so enqueue stays available while a drain runs. Only one drain
        runs at a time; a second caller waits and then sees what the
        first one left. A failing item is logged and kept; the drain
        continues with the next one. Setting ``cancel`` stops the pass
        between items. Items removed from the file while the pass runs
        (clear, wipe) stay removed.

        Returns:
            DrainReport with counts of sent, failed, dropped and
            remaining items.
        """
        async with self._drain_lock:
            return await self._drain(gateway, cancel)

    async def _drain(
        self,
        gateway: RemoteGateway,
        cancel: Optional[asyncio.Event],
    ) -> DrainReport:
        async with self._lock:
            snapshot = await self._load()
        report = DrainReport()
        if not snapshot:
            return report

        logger.info("Draining offline queue: %d item(s)", len(snapshot))
        snapshot_ids = {item.item_id for item in snapshot}
        working = list(snapshot)

        try:
            for item in snapshot:
                if cancel is not None and cancel.is_set():
                    report.cancelled = True
                    logger.info("Offline queue drain cancelled")
                    break

                if item.action not in QUEUE_ACTIONS:
                    logger.warning(
                        "Dropping queued item %s with unknown action %r",
                        item.item_id, item.action,
                    )
                    working.remove(item)
                    report.dropped += 1
                    continue

                try:
                    await self._dispatch(gateway, item)
                except (GatewayError, StorageError, ValueError, OSError) as exc:
                    self._record_failure(item, exc, working, report)
                    continue
                except Exception as exc:
                    logger.exception("Unexpected error syncing %s", item.action)
                    self._record_failure(item, exc, working, report)
                    continue

                working.remove(item)
                report.sent += 1
                logger.info("Synced offline action: %s (%s)", item.action, item.item_id)
        finally:
            async with self._lock:
                current = await self._load()
                current_ids = {i.item_id for i in current}
                working = [i for i in working if i.item_id in current_ids]
                working.extend(i for i in current if i.item_id not in snapshot_ids)
                await self._save(working)
            report.remaining = len(working)

        logger.info(
            "Offline queue drain finished: sent=%d failed=%d dropped=%d remaining=%d",
            report.sent, report.failed, report.dropped, report.remaining,
        )
        return report

    # -------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------

    async def _dispatch(self, gateway: RemoteGateway, item: OfflineQueueItem) -> None:
        payload = decode_queue_payload(item.action, item.data)

        if isinstance(payload, SendMessagePayload):
            history = payload.history
            if history is None:
                history = await self._history.load_messages(payload.user_id) if self._history else []
            reply = await gateway.send_message(payload.user_id, payload.text, history, payload.params)
            if self._history is not None:
                await self._history.append_exchange(payload.user_id, payload.text, reply)

        elif isinstance(payload, SendAudioPayload):
            reply = await gateway.send_audio(payload.user_id, payload.file_path)
            if self._history is not None:
                await self._history.append_exchange(payload.user_id, None, reply)

        elif isinstance(payload, CreateDiaryEntryPayload):
            await gateway.create_diary_entry(payload.user_id, payload.entry)

    def _record_failure(
        self,
        item: OfflineQueueItem,
        exc: BaseException,
        working: list[OfflineQueueItem],
        report: DrainReport,
    ) -> None:
        item.attempts += 1
        if self._max_attempts > 0 and item.attempts >= self._max_attempts:
            logger.warning(
                "Dropping %s (%s) after %d failed attempts: %s",
                item.action, item.item_id, item.attempts, exc,
            )
            working.remove(item)
            report.dropped += 1
            return
        logger.error(
            "Failed to sync offline action %s (%s, attempt %d): %s",
            item.action, item.item_id, item.attempts, exc,
        )
        report.failed += 1

    # -------------------------------------------------------------------
    # Persistence (caller holds the lock)
    # -------------------------------------------------------------------

    async def _load(self) -> list[OfflineQueueItem]:
        blob = await asyncio.to_thread(read_bytes, self._path)
        if blob is None:
            return []
        raw = decode_payload(self._protector, blob, label=self._path.name)
        if not isinstance(raw, list):
            logger.warning("Offline queue file is not a list; ignoring contents")
            return []

        queue: list[OfflineQueueItem] = []
        for entry in raw:
            try:
                queue.append(OfflineQueueItem.model_validate(entry))
            except ValidationError as exc:
                logger.warning("Dropping malformed queue entry: %s", exc)
        return queue

    async def _save(self, queue: list[OfflineQueueItem]) -> None:
        data = [item.model_dump(mode="json") for item in queue]
        blob = encode_payload(self._protector, data)
        await asyncio.to_thread(write_atomic, self._path, blob)
