"""Background worker that runs the expiry sweep on an interval.

The sweep itself is synchronous SQLite work, so every run is pushed to a
thread with :func:`asyncio.to_thread` and the event loop stays responsive.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Literal

from gavel.infrastructure.db import iso_utcnow
from gavel.infrastructure.observability import get_logger

from .dto import EventPublisher, SweepResultDTO, noop_event_publisher

SweepCallable = Callable[[], SweepResultDTO]
SweepRunnerStatus = Literal["idle", "running", "stopping"]


@dataclass
class SweepRunnerState:
    """Current state snapshot for the sweep runner."""

    status: SweepRunnerStatus = "idle"
    interval_seconds: float | None = None
    runs: int = 0
    failures: int = 0
    last_run_at: str | None = None
    last_result: SweepResultDTO | None = None
    last_error: str | None = None

    def to_dict(self) -> dict:
        payload = asdict(self)
        if self.last_result is not None:
            payload["last_result"] = self.last_result.model_dump()
        return payload


class SweepRunner:
    """Repeatedly invokes ``sweep`` until stopped.

    Example usage:
        runner = SweepRunner(sweep=service.sweep_expired, interval_seconds=60)
        await runner.start()
        ...
        await runner.stop()
    """

    def __init__(
        self,
        *,
        sweep: SweepCallable,
        interval_seconds: float = 60.0,
        event_publisher: EventPublisher = noop_event_publisher,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("Sweep interval must be positive")
        self._sweep = sweep
        self._interval_seconds = interval_seconds
        self._event_publisher = event_publisher
        self._logger = get_logger(__name__)

        self._state = SweepRunnerState(interval_seconds=interval_seconds)
        self._task: asyncio.Task | None = None
        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()

    @property
    def state(self) -> SweepRunnerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> SweepRunnerState:
        async with self._lock:
            if self.is_running:
                raise RuntimeError("Sweep runner is already running")
            self._stop_event.clear()
            self._state.last_error = None
            self._state.status = "running"
            self._task = asyncio.create_task(self._run_loop())
        self._logger.info(
            "Sweep runner started with a %.1fs interval", self._interval_seconds
        )
        return self._state

    async def stop(self) -> SweepRunnerState:
        """Signal the loop to exit and wait for the current run to finish."""
        async with self._lock:
            self._stop_event.set()
            if self._task is not None:
                self._state.status = "stopping"

        if self._task is not None:
            await self._task

        async with self._lock:
            self._task = None
            self._state.status = "idle"
        self._logger.info("Sweep runner stopped after %d runs", self._state.runs)
        return self._state

    def get_status(self) -> dict:
        return self._state.to_dict()

    async def run_once(self) -> SweepResultDTO | None:
        """Run a single sweep, recording its outcome in the state."""
        self._state.last_run_at = iso_utcnow()
        try:
            result = await asyncio.to_thread(self._sweep)
        except Exception as exc:
            self._logger.exception("Sweep run failed: %s", exc)
            self._state.last_error = str(exc)
            self._state.failures += 1
            await self._publish_event(
                {"type": "sweep_error", "message": str(exc), "time": iso_utcnow()}
            )
            return None
        self._state.runs += 1
        self._state.last_result = result
        self._state.last_error = None
        await self._publish_event(
            {"type": "sweep_result", "time": iso_utcnow(), "payload": result.model_dump()}
        )
        return result

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self._interval_seconds
                )
            except asyncio.TimeoutError:
                continue

    async def _publish_event(self, payload: dict) -> None:
        try:
            await self._event_publisher(payload)
        except Exception:  # pragma: no cover - isolate subscriber errors
            self._logger.exception("Failed to publish sweep event")
