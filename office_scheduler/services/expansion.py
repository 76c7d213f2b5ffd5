"""Background loop that keeps recurring events materialized up to the horizon."""

from __future__ import annotations

import asyncio
import logging

from office_scheduler.domain.notifier import ChangeNotifier
from office_scheduler.repos.memory import EventRepository
from office_scheduler.services.events import EventService

logger = logging.getLogger(__name__)


class HorizonMaintenanceLoop:
    """Periodically rolls every recurring event's horizon forward.

    Each pass only inserts occurrences whose start is missing; removing stale
    occurrences is left to :meth:`EventService.update_event`. The loop exits
    once *stop* is set, checking it between passes.
    """

    def __init__(
        self,
        event_service: EventService,
        event_repo: EventRepository,
        notifier: ChangeNotifier,
        stop: asyncio.Event,
        interval_seconds: float,
    ) -> None:
        self.event_service = event_service
        self.event_repo = event_repo
        self.notifier = notifier
        self.stop = stop
        self.interval_seconds = interval_seconds

    def run_once(self) -> int:
        total = 0
        for event in self.event_repo.list_recurring():
            total += self.event_service.extend_horizon(event.id)

        if total:
            logger.info("Expanded %d new occurrences for recurring events", total)
            self.notifier.notify()
        return total

    async def run(self) -> None:
        logger.info(
            "Horizon maintenance started (every %.0f seconds)", self.interval_seconds
        )
        while not self.stop.is_set():
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("Error expanding recurring events")

            try:
                await asyncio.wait_for(self.stop.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Horizon maintenance stopped")
