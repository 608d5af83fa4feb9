"""Fixed-cadence snapshot producer with status tracking and an event log."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from pimonitor_telemetry import Snapshot, SnapshotAssembler

from .broadcast import BroadcastHub

logger = logging.getLogger("pimonitor.stream")

ON_ERROR_MODES = ("stop", "skip")


@dataclass
class ProducerStatus:
    running: bool = False
    interval_ms: int = 0
    ticks: int = 0
    errors: int = 0
    last_error: str | None = None
    last_timestamp: int | None = None
    receivers: int = 0


class StreamProducer:
    """Turns a ``SnapshotAssembler`` into a timed sequence of snapshots.

    ``start`` yields one snapshot per tick until a collection fails (``on_error="stop"``)
    or the consuming task is cancelled. With ``on_error="skip"`` a failed tick is
    logged and the sequence carries on. When the sequence ends, the assembler is
    closed unless ``close_assembler`` is false.
    """

    def __init__(
        self,
        assembler: SnapshotAssembler,
        interval_ms: int = 500,
        on_error: str = "stop",
        close_assembler: bool = True,
    ) -> None:
        if interval_ms <= 0:
            raise ValueError(f"interval must be positive, got {interval_ms}ms")
        if on_error not in ON_ERROR_MODES:
            raise ValueError(f"on_error must be one of {ON_ERROR_MODES}, got {on_error!r}")
        self.interval_ms = interval_ms
        self.on_error = on_error
        self.close_assembler = close_assembler

        self._assembler = assembler
        self._status = ProducerStatus(interval_ms=interval_ms)
        self._events: list[dict[str, Any]] = []
        self._stop_requested = False

    @property
    def status(self) -> ProducerStatus:
        return self._status

    def recent_events(self, limit: int = 200) -> list[dict[str, Any]]:
        return self._events[-limit:]

    def _log_event(self, event: str, **fields: Any) -> None:
        row = {
            "ts_utc": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "running": self._status.running,
        }
        row.update(fields)
        self._events.append(row)
        if len(self._events) > 1000:
            self._events = self._events[-1000:]

    def stop(self) -> None:
        """Ask a running sequence to end before its next tick."""
        self._stop_requested = True

    def _stamp(self, snapshot: Snapshot) -> Snapshot:
        last = self._status.last_timestamp
        if last is not None and snapshot.timestamp < last:
            logger.debug("wall clock stepped back %dms, holding timestamp", last - snapshot.timestamp)
            snapshot = dataclasses.replace(snapshot, timestamp=last)
        self._status.last_timestamp = snapshot.timestamp
        return snapshot

    async def _close_assembler(self) -> None:
        # close() waits on the collection lock, which a cancelled tick's worker may still hold.
        try:
            await asyncio.to_thread(self._assembler.close)
        except RuntimeError:
            # Loop is shutting down and no longer runs worker threads.
            self._assembler.close()

    async def start(self, interval_ms: int | None = None) -> AsyncIterator[Snapshot]:
        if interval_ms is not None:
            if interval_ms <= 0:
                raise ValueError(f"interval must be positive, got {interval_ms}ms")
            self.interval_ms = interval_ms
        interval = self.interval_ms / 1000.0
        loop = asyncio.get_running_loop()

        self._stop_requested = False
        self._status.running = True
        self._status.interval_ms = self.interval_ms
        self._log_event("stream_start", interval_ms=self.interval_ms)
        logger.info("snapshot stream started every %dms", self.interval_ms)

        next_tick = loop.time()
        try:
            while not self._stop_requested:
                delay = next_tick - loop.time()
                if delay > 0:
                    await asyncio.sleep(delay)
                if self._stop_requested:
                    break

                # Ticks missed while collecting are dropped, not replayed.
                next_tick += interval
                now = loop.time()
                if next_tick < now:
                    missed = int((now - next_tick) // interval) + 1
                    next_tick += missed * interval
                    self._log_event("ticks_missed", count=missed)

                try:
                    snapshot = await asyncio.to_thread(self._assembler.collect)
                except Exception as exc:
                    self._status.errors += 1
                    self._status.last_error = str(exc)
                    self._log_event("collect_error", error=str(exc), on_error=self.on_error)
                    if self.on_error == "stop":
                        logger.error("snapshot collection failed, ending stream: %s", exc)
                        return
                    logger.warning("snapshot collection failed, skipping tick: %s", exc)
                    continue

                self._status.ticks += 1
                yield self._stamp(snapshot)
        finally:
            self._status.running = False
            self._log_event("stream_stop", ticks=self._status.ticks, errors=self._status.errors)
            logger.info("snapshot stream stopped after %d ticks", self._status.ticks)
            if self.close_assembler:
                await self._close_assembler()

    async def run(self, hub: BroadcastHub) -> None:
        """Publish every produced snapshot into ``hub`` until the sequence ends."""
        stream = self.start()
        try:
            async for snapshot in stream:
                try:
                    self._status.receivers = hub.publish(snapshot)
                except Exception as exc:
                    self._status.last_error = str(exc)
                    self._log_event("publish_error", error=str(exc))
                    logger.warning("publish failed: %s", exc)
        finally:
            await stream.aclose()
