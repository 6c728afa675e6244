"""Registry of open enrollment panels."""

import logging
import time
from collections.abc import Callable, Sequence
from uuid import UUID

from admissions.core.config import settings
from admissions.services.branches import BranchAdapter
from admissions.services.cache import CacheSynchronizer, QueryCache
from admissions.services.enrollment import EnrollmentPanel
from admissions.services.receipts import ReceiptStore

logger = logging.getLogger(__name__)


class PanelRegistry:
    """Open panels by id, sharing one query cache and receipt store.

    Panels untouched for ``idle_timeout`` seconds are closed on the next
    ``open`` or ``get``, which releases their receipts.
    """

    def __init__(
        self,
        cache: QueryCache,
        receipts: ReceiptStore,
        refetch_delays: Sequence[float] | None = None,
        idle_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cache = cache
        self.receipts = receipts
        self.refetch_delays = refetch_delays
        self.idle_timeout = settings.PANEL_IDLE_TIMEOUT_SECONDS if idle_timeout is None else idle_timeout
        self.clock = clock
        self._panels: dict[UUID, EnrollmentPanel] = {}
        self._last_used: dict[UUID, float] = {}

    async def open(self, adapter: BranchAdapter, reservation_id: int) -> EnrollmentPanel:
        """Load a reservation into a new panel; nothing is registered on failure."""
        self.evict_idle()
        panel = EnrollmentPanel(
            adapter,
            CacheSynchronizer(self.cache, self.refetch_delays),
            self.receipts,
        )
        await panel.load(reservation_id)
        self._panels[panel.id] = panel
        self._last_used[panel.id] = self.clock()
        return panel

    def get(self, panel_id: UUID) -> EnrollmentPanel | None:
        self.evict_idle()
        panel = self._panels.get(panel_id)
        if panel is not None:
            self._last_used[panel_id] = self.clock()
        return panel

    def close(self, panel_id: UUID) -> bool:
        panel = self._panels.pop(panel_id, None)
        self._last_used.pop(panel_id, None)
        if panel is None:
            return False
        panel.close()
        return True

    def evict_idle(self) -> int:
        """Close idle panels with no operation running. Returns how many were closed."""
        now = self.clock()
        idle = [
            panel_id
            for panel_id, last_used in self._last_used.items()
            if now - last_used >= self.idle_timeout and not self._panels[panel_id].busy
        ]
        for panel_id in idle:
            self.close(panel_id)
        if idle:
            logger.info("Evicted %d idle enrollment panels", len(idle))
        return len(idle)

    def close_all(self) -> None:
        for panel_id in list(self._panels):
            self.close(panel_id)
        self.cache.clear()
        logger.debug("Closed all enrollment panels")

    def __len__(self) -> int:
        return len(self._panels)
