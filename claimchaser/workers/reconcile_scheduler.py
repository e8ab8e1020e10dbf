"""
Reconcile Scheduler Worker.

Runs one reconciliation sweep every ``reconcile_interval_seconds`` so
calls get completed, processed and chained into the next dial even when
no webhook or cron request arrives. Runs as a long-lived background
process.

Start with:
    python -m claimchaser.workers.reconcile_scheduler
"""

from __future__ import annotations

import asyncio
import signal
import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..")))

from dotenv import load_dotenv
load_dotenv(".env.local")

from claimchaser.config import get_settings
from claimchaser.logging_config import setup_logging, get_logger
from claimchaser.services.call_orchestrator import CallOrchestrator, open_orchestrator

setup_logging()
logger = get_logger(__name__)
settings = get_settings()


class ReconcileSchedulerWorker:
    """
    Periodically sweeps calls whose local state may lag the provider.

    A failed sweep is logged and retried on the next interval.
    """

    def __init__(self, orchestrator: CallOrchestrator, interval: float) -> None:
        self._orchestrator = orchestrator
        self._interval = interval
        self._stop = asyncio.Event()

    async def start(self) -> None:
        """Start the sweep loop; returns once ``stop`` is called."""
        logger.info("reconcile_scheduler_started", interval=self._interval)

        while not self._stop.is_set():
            try:
                await self._orchestrator.run_sweep()
            except Exception as e:
                logger.error("reconcile_sweep_error", error=str(e), error_type=type(e).__name__)

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

        logger.info("reconcile_scheduler_stopped")

    def stop(self) -> None:
        """Gracefully stop after the current sweep."""
        self._stop.set()


async def main() -> None:
    async with open_orchestrator(settings) as orchestrator:
        worker = ReconcileSchedulerWorker(orchestrator, settings.reconcile_interval_seconds)

        # Handle graceful shutdown
        loop = asyncio.get_running_loop()

        def shutdown_handler() -> None:
            logger.info("shutdown_signal_received")
            worker.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, shutdown_handler)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                pass

        await worker.start()


if __name__ == "__main__":
    asyncio.run(main())
