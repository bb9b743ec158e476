"""Stop requests for a running pipeline.

A stop arrives either as SIGINT / SIGTERM or through ``request_stop``.
The run record is saved with ``interrupted`` set the moment the stop
arrives; the controller polls ``should_stop`` at each phase boundary and
ends the run as ``Aborted`` with ``stop_reason``.

Unix registers through ``loop.add_signal_handler`` when a loop is
running; Windows (and callers without a loop) fall back to
``signal.signal``.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from src.foundry_orchestrator.state import PipelineRun

logger = logging.getLogger(__name__)

_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class GracefulShutdown:
    """Stop flag shared between signal handlers and the phase loop.

    Usage::

        with GracefulShutdown() as shutdown:
            shutdown.set_run(run)
            ...
            if shutdown.should_stop:
                raise RunAborted(shutdown.stop_reason)
    """

    def __init__(self) -> None:
        self._reason = ""
        self._run: PipelineRun | None = None
        self._in_stop = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._registered: list[signal.Signals] = []

    @property
    def should_stop(self) -> bool:
        return bool(self._reason)

    @should_stop.setter
    def should_stop(self, value: bool) -> None:
        self._reason = (self._reason or "Stop requested") if value else ""

    @property
    def stop_reason(self) -> str:
        return self._reason

    def set_run(self, run: Any) -> None:
        """Attach the run record saved when a stop arrives."""
        self._run = run

    def request_stop(self, reason: str = "Stop requested") -> None:
        self._stop(reason)

    def install(self) -> None:
        """Route SIGINT and SIGTERM to this handler."""
        loop: asyncio.AbstractEventLoop | None = None
        if sys.platform != "win32":
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
        for sig in _SIGNALS:
            if loop is not None:
                loop.add_signal_handler(sig, self._stop, f"Signal {sig.name} received")
                self._registered.append(sig)
            else:
                signal.signal(sig, self._signal_handler)
        self._loop = loop

    def uninstall(self) -> None:
        if self._loop is not None:
            for sig in self._registered:
                self._loop.remove_signal_handler(sig)
        self._registered.clear()
        self._loop = None

    def __enter__(self) -> GracefulShutdown:
        self.install()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.uninstall()

    def _signal_handler(self, signum: int, frame: Any) -> None:
        self._stop(f"Signal {signal.Signals(signum).name} received")

    def _stop(self, reason: str) -> None:
        if self._in_stop:
            return
        self._in_stop = True
        try:
            if not self._reason:
                self._reason = reason
            logger.warning("%s; the run stops at the next phase boundary", reason)
            self._save_interrupted(reason)
        finally:
            self._in_stop = False

    def _save_interrupted(self, reason: str) -> None:
        if self._run is None:
            logger.warning("No run attached; nothing saved on stop")
            return
        try:
            self._run.interrupted = True
            self._run.interrupt_reason = reason
            self._run.save()
            logger.info("Run %s saved as interrupted", self._run.run_id)
        except Exception:
            logger.exception("Failed to save the run on stop")
