"""
Request Lifecycle Controller — owns the single active analysis slot.

    Idle → Capturing → Awaiting Response → {Succeeded | Failed | Cancelled} → Idle

Every ``begin`` draws a new operation token from a monotonic counter and
preempts whatever operation held the slot: its cancellation token fires
immediately and the transport call it may be waiting on is aborted.
Results are committed to the presentation state only while the
completing operation's token is still the active one, so a slow
superseded request can never overwrite a newer result.

All capture and transport errors end here as a ``FAILED`` view with a
display-ready message; cancellations are dropped silently.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import os
from dataclasses import dataclass, replace
from typing import Callable

from modules.analysis_client import AnalysisTransport
from modules.cancellation import CancellationToken
from modules.errors import (
    AnalysisCancelledError,
    AnalysisTimeoutError,
    ForageAnalysisError,
)
from modules.formatter import FormattedAnalysis, format_analysis
from modules.sites import Site
from modules.viewport_capture import NOT_READY_MESSAGE, ViewportCapture

logger = logging.getLogger(__name__)

ANALYSIS_TIMEOUT_SECONDS = float(os.getenv("ANALYSIS_TIMEOUT_SECONDS", "90"))
TIMEOUT_MESSAGE = "The analysis took too long and was aborted. Please try again."


class AnalysisStatus(str, enum.Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    AWAITING_RESPONSE = "awaiting_response"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class AnalysisView:
    """What the results view shows. Replaced wholesale on every transition."""

    status: AnalysisStatus = AnalysisStatus.IDLE
    token: int = 0
    site: Site | None = None
    result: FormattedAnalysis | None = None
    error: str | None = None
    is_open: bool = False

    @property
    def is_loading(self) -> bool:
        return self.status in (AnalysisStatus.CAPTURING, AnalysisStatus.AWAITING_RESPONSE)


class EventKind(str, enum.Enum):
    STARTED = "started"
    RESULT = "result"
    FAILED = "failed"


@dataclass(frozen=True)
class AnalysisEvent:
    kind: EventKind
    token: int
    site: Site | None = None
    result: FormattedAnalysis | None = None
    message: str | None = None


Listener = Callable[[AnalysisEvent], None]


@dataclass
class _Operation:
    token: int
    site: Site
    cancel: CancellationToken
    task: asyncio.Task | None = None


class AnalysisController:
    """Drives one analysis at a time from capture to formatted result.

    Args:
        capture: Viewport capture bound to the map surface.
        transport: Path to the analysis proxy.
        site_lookup: Resolves a site id against the site store.
        timeout: Seconds to wait for the proxy before giving up.
    """

    def __init__(
        self,
        capture: ViewportCapture,
        transport: AnalysisTransport,
        site_lookup: Callable[[str], Site | None],
        timeout: float = ANALYSIS_TIMEOUT_SECONDS,
    ) -> None:
        self._capture = capture
        self.transport = transport
        self._lookup = site_lookup
        self.timeout = timeout
        self.view = AnalysisView()
        self._last_token = 0
        self._active: _Operation | None = None
        self._last_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[Listener] = []

    # ── Notifications ───────────────────────────────────────────── #

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a function that unregisters it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _emit(self, event: AnalysisEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    # ── Slot ────────────────────────────────────────────────────── #

    @property
    def active_token(self) -> int | None:
        return self._active.token if self._active is not None else None

    def _is_current(self, op: _Operation) -> bool:
        return self._active is not None and self._active.token == op.token

    def begin(self, site_id: str) -> int:
        """Start analysing *site_id*, preempting any active operation.

        Must be called from within the running event loop. Returns the
        new operation token.
        """
        self._last_token += 1
        token = self._last_token

        previous = self._active
        if previous is not None:
            logger.info("Analysis #%d superseded by #%d", previous.token, token)
            previous.cancel.cancel("Superseded by a newer analysis.")
            self._active = None

        site = self._lookup(site_id)
        if site is None or self._capture.surface is None:
            self.view = AnalysisView(
                status=AnalysisStatus.FAILED, token=token, error=NOT_READY_MESSAGE, is_open=True,
            )
            self._emit(AnalysisEvent(EventKind.FAILED, token, message=NOT_READY_MESSAGE))
            return token

        op = _Operation(token=token, site=site, cancel=CancellationToken())
        self._active = op
        self.view = AnalysisView(
            status=AnalysisStatus.CAPTURING, token=token, site=site, is_open=True,
        )
        logger.info("Analysis #%d started for site %s", token, site.id)
        self._emit(AnalysisEvent(EventKind.STARTED, token, site=site))

        # a cancelled or superseded capture may still be unwinding
        wait_for = self._last_task
        if wait_for is not None and wait_for.done():
            wait_for = None
        op.task = asyncio.get_running_loop().create_task(self._run(op, wait_for))
        self._last_task = op.task
        self._tasks.add(op.task)
        op.task.add_done_callback(self._tasks.discard)
        return token

    def cancel(self) -> bool:
        """Abort the active operation, if any, and free the slot."""
        op = self._active
        if op is None:
            return False
        self._active = None
        op.cancel.cancel("Analysis cancelled.")
        self.view = replace(self.view, status=AnalysisStatus.CANCELLED)
        logger.info("Analysis #%d cancelled", op.token)
        return True

    def close(self) -> None:
        """Close the results view: cancel and return to ``IDLE``."""
        self.cancel()
        self.view = AnalysisView()

    async def join(self) -> None:
        """Wait until every started operation has unwound."""
        while self._tasks:
            await asyncio.wait(set(self._tasks))

    async def analyze(self, site_id: str) -> AnalysisView:
        """Run one analysis to completion and return the final view."""
        self.begin(site_id)
        await self.join()
        return self.view

    async def aclose(self) -> None:
        self.cancel()
        await self.join()

    # ── Operation ───────────────────────────────────────────────── #

    async def _run(self, op: _Operation, previous: asyncio.Task | None) -> None:
        if previous is not None:
            # the superseded capture must restore its overlay first
            await asyncio.wait({previous})

        site = op.site
        try:
            op.cancel.raise_if_cancelled()
            image_b64 = await self._capture.capture_base64(site.id, op.cancel, snapshot=site)

            if not self._is_current(op):
                return
            self.view = replace(self.view, status=AnalysisStatus.AWAITING_RESPONSE)

            try:
                text = await asyncio.wait_for(
                    op.cancel.run(
                        self.transport.analyze(image_b64, site.lat, site.lng, site.radius)
                    ),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                raise AnalysisTimeoutError(TIMEOUT_MESSAGE) from None

        except AnalysisCancelledError as exc:
            logger.info("Analysis #%d stopped: %s", op.token, exc.message)
            return
        except ForageAnalysisError as exc:
            self._finish(op, AnalysisStatus.FAILED, error=exc.message)
            return
        except Exception as exc:
            logger.exception("Analysis #%d failed unexpectedly", op.token)
            self._finish(op, AnalysisStatus.FAILED, error=str(exc) or "The analysis failed.")
            return

        self._finish(op, AnalysisStatus.SUCCEEDED, result=format_analysis(text))

    def _finish(
        self,
        op: _Operation,
        status: AnalysisStatus,
        result: FormattedAnalysis | None = None,
        error: str | None = None,
    ) -> None:
        if not self._is_current(op):
            logger.warning("Discarding %s result of superseded analysis #%d", status.value, op.token)
            return

        self._active = None
        self.view = replace(self.view, status=status, result=result, error=error)
        logger.info("Analysis #%d %s", op.token, status.value)
        if status is AnalysisStatus.SUCCEEDED:
            self._emit(AnalysisEvent(EventKind.RESULT, op.token, site=op.site, result=result))
        else:
            self._emit(AnalysisEvent(EventKind.FAILED, op.token, site=op.site, message=error))
