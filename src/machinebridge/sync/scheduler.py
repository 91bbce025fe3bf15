"""Scheduler for periodic reconciliation.

This module provides:
- ReconcileScheduler: one APScheduler job per machine, refreshing the host's
  view every interval
- Manual ticks for the CLI and for tests
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from machinebridge.core.config import DEFAULT_POLL_INTERVAL

if TYPE_CHECKING:
    from apscheduler.schedulers.base import BaseScheduler

    from machinebridge.core.types import StateView
    from machinebridge.sync.synchronizer import MachineSynchronizer

logger = logging.getLogger(__name__)


def _job_id(machine_id: str) -> str:
    return f"reconcile:{machine_id}"


class ReconcileScheduler:
    """Owns the reconciliation timers of every machine.

    Each machine gets its own interval job so a slow remote read for one
    machine never delays the others.
    """

    def __init__(
        self,
        interval: float = DEFAULT_POLL_INTERVAL,
        scheduler: BaseScheduler | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            interval: Seconds between reconciliations of a machine.
            scheduler: APScheduler instance to drive the jobs
                (default: a new AsyncIOScheduler).
        """
        self._interval = interval
        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self._running = False
        self._syncs: dict[str, MachineSynchronizer] = {}

    @property
    def running(self) -> bool:
        """Check if the scheduler is running."""
        return self._running

    @property
    def machine_ids(self) -> list[str]:
        """Ids of the scheduled machines."""
        return list(self._syncs)

    def get(self, machine_id: str) -> MachineSynchronizer | None:
        """Get the synchronizer of a scheduled machine."""
        return self._syncs.get(machine_id)

    async def _reconcile_job(self, machine_id: str) -> None:
        """Job function for scheduled reconciliation."""
        sync = self._syncs.get(machine_id)
        if sync is None:
            return
        try:
            await sync.reconcile()
        except Exception:
            logger.exception("Error during scheduled refresh of machine %s", machine_id)

    def _add_job(self, machine_id: str) -> None:
        if self._scheduler is None:
            raise RuntimeError("Refresh scheduler has no APScheduler instance")
        self._scheduler.add_job(
            self._reconcile_job,
            trigger=IntervalTrigger(seconds=self._interval),
            args=[machine_id],
            id=_job_id(machine_id),
            name=f"Refresh machine {machine_id}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def add(self, sync: MachineSynchronizer) -> None:
        """Schedule periodic reconciliation of a machine.

        Args:
            sync: Synchronizer of the machine.
        """
        self._syncs[sync.machine_id] = sync
        if self._running:
            self._add_job(sync.machine_id)
        logger.debug("Scheduled refresh of machine %s every %.0fs", sync.machine_id, self._interval)

    def remove(self, machine_id: str) -> MachineSynchronizer | None:
        """Stop reconciling a machine.

        Returns:
            The removed synchronizer, or None if it was not scheduled.
        """
        sync = self._syncs.pop(machine_id, None)
        if sync is not None and self._running and self._scheduler is not None:
            if self._scheduler.get_job(_job_id(machine_id)) is not None:
                self._scheduler.remove_job(_job_id(machine_id))
        return sync

    def start(self) -> None:
        """Start the scheduler.

        Must be called from within a running event loop when the default
        AsyncIOScheduler is used.
        """
        if self._running:
            return  # Already running

        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler()

        for machine_id in self._syncs:
            self._add_job(machine_id)

        if not self._scheduler.running:
            self._scheduler.start()
        self._running = True
        logger.info(
            "Refresh scheduler started (%d machines, every %.0fs)",
            len(self._syncs),
            self._interval,
        )

    def stop(self) -> None:
        """Stop the scheduler."""
        if not self._running or self._scheduler is None:
            return
        for machine_id in self._syncs:
            if self._scheduler.get_job(_job_id(machine_id)) is not None:
                self._scheduler.remove_job(_job_id(machine_id))
        if self._owns_scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        self._running = False
        logger.info("Refresh scheduler stopped")

    async def tick(self) -> dict[str, StateView | None]:
        """Reconcile every machine once, concurrently (manual trigger).

        Returns:
            Pushed view per machine id (None where nothing was pushed).
        """
        machine_ids = list(self._syncs)
        results = await asyncio.gather(
            *(self.run_now(machine_id) for machine_id in machine_ids)
        )
        return dict(zip(machine_ids, results))

    async def run_now(self, machine_id: str) -> StateView | None:
        """Reconcile one machine immediately (manual trigger).

        Returns:
            The pushed view, or None if nothing was pushed.

        Raises:
            KeyError: If the machine is not scheduled.
        """
        sync = self._syncs[machine_id]
        try:
            return await sync.reconcile()
        except Exception:
            logger.exception("Error during refresh of machine %s", machine_id)
            return None
