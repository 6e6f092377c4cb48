"""
Application service that merges both providers into one availability view.

The aggregator fans out to the provider adapters, joins their results and
delegates free-slot derivation to the domain-level ``SlotCalculator``.
Adapters are reached through a small protocol, so the real HTTP adapters
and the mock ones are interchangeable in tests.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from ..domain.models import (
    BusyBlock,
    EventDetail,
    FetchMode,
    Period,
    Source,
    TimeRange,
    ViewMode,
    WorkWeek,
)
from ..domain.periods import period_for
from ..domain.slot_calculator import SlotCalculator
from .session_manager import SessionManager

logger = logging.getLogger(__name__)


class CalendarAdapterProtocol(Protocol):
    """Protocol describing the adapter behaviour needed by the aggregator."""

    source: Source

    async def fetch_busy(self, period: Period) -> List[BusyBlock]:
        """Return busy ranges of the period."""

    async def fetch_details(self, period: Period) -> List[EventDetail]:
        """Return redacted event details of the period."""


@dataclass
class AvailabilitySnapshot:
    """Result of one refresh cycle."""
    period: Period
    mode: FetchMode
    busy: List[BusyBlock]
    details: List[EventDetail]
    free_slots: Dict[str, List[TimeRange]]
    generation: int
    auth_errors: Dict[Source, str] = field(default_factory=dict)
    stale: bool = False


@dataclass(frozen=True)
class ViewInputs:
    """Inputs whose change re-triggers a refresh."""
    day: date
    view: ViewMode
    mode: FetchMode
    connected: Tuple[Tuple[Source, bool], ...] = ()


class AvailabilityAggregator:
    """
    Orchestrates busy/detail retrieval across providers and slot derivation.

    Every ``refresh`` gets a generation number; only the newest one may
    replace ``latest``, so a slow, superseded refresh cannot overwrite
    fresher results.
    """

    def __init__(
        self,
        adapters: Sequence[CalendarAdapterProtocol],
        slot_calculator: SlotCalculator,
        session_manager: Optional[SessionManager] = None,
        timezone: str = "Europe/Oslo",
    ) -> None:
        self._adapters = list(adapters)
        self._slot_calculator = slot_calculator
        self._sessions = session_manager
        self.timezone = timezone
        self._generation = 0
        self._inputs: Optional[ViewInputs] = None
        self.latest: Optional[AvailabilitySnapshot] = None

        if session_manager is not None:
            session_manager.on_reset(self.reset_all)

    async def refresh(
        self,
        period: Period,
        mode: FetchMode = FetchMode.FREE_BUSY,
    ) -> AvailabilitySnapshot:
        """
        Fetch both providers for the period and derive free slots.

        Raises:
            CalendarAPIError: If any provider fetch fails; no partial busy
                data is returned
        """
        self._generation += 1
        generation = self._generation

        if self._sessions is not None:
            self._sessions.clear_auth_errors()

        busy_lists = await asyncio.gather(
            *(adapter.fetch_busy(period) for adapter in self._adapters)
        )
        busy = sorted((b for blocks in busy_lists for b in blocks), key=lambda b: b.start)

        details: List[EventDetail] = []
        if mode == FetchMode.DETAILS:
            # A provider whose sign-in just failed is not prompted a second time
            signed_out = set(self._sessions.auth_errors()) if self._sessions is not None else set()
            detail_lists = await asyncio.gather(
                *(
                    adapter.fetch_details(period)
                    for adapter in self._adapters
                    if adapter.source not in signed_out
                )
            )
            details = sorted((d for items in detail_lists for d in items), key=lambda d: d.start)

        snapshot = AvailabilitySnapshot(
            period=period,
            mode=mode,
            busy=busy,
            details=details,
            free_slots=self._slot_calculator.free_slots_by_day(period, busy),
            generation=generation,
            auth_errors=self._collect_auth_errors(),
        )

        if generation == self._generation:
            self.latest = snapshot
        else:
            snapshot.stale = True
            logger.debug("Discarding refresh %d, superseded by %d", generation, self._generation)

        return snapshot

    async def update_view(
        self,
        day: date,
        view: ViewMode = ViewMode.DAY,
        mode: FetchMode = FetchMode.FREE_BUSY,
    ) -> AvailabilitySnapshot:
        """
        Refresh only if the date, view, mode or a connection state changed.
        """
        inputs = ViewInputs(day=day, view=view, mode=mode, connected=self._connection_states())
        period = period_for(day, view, self.timezone)

        if self.latest is not None and inputs == self._inputs and self.latest.period == period:
            return self.latest

        # Inputs are only recorded once a refresh for them succeeded
        snapshot = await self.refresh(period, mode)
        if not snapshot.stale:
            self._inputs = inputs
        return snapshot

    def set_work_week(self, work_week: WorkWeek) -> Optional[AvailabilitySnapshot]:
        """Swap work hours and re-derive free slots without refetching."""
        self._slot_calculator.work_week = work_week
        return self._recompute_latest()

    def set_min_gap(self, minutes: int) -> Optional[AvailabilitySnapshot]:
        self._slot_calculator.min_gap_minutes = minutes
        return self._recompute_latest()

    def reset_all(self) -> None:
        """Drop every result; in-flight refreshes become stale."""
        self._generation += 1
        self._inputs = None
        self.latest = None

    def _recompute_latest(self) -> Optional[AvailabilitySnapshot]:
        if self.latest is None:
            return None

        self.latest = replace(
            self.latest,
            free_slots=self._slot_calculator.free_slots_by_day(self.latest.period, self.latest.busy),
        )
        return self.latest

    def _connection_states(self) -> Tuple[Tuple[Source, bool], ...]:
        if self._sessions is None:
            return ()
        return tuple((source, self._sessions.is_connected(source)) for source in self._sessions.sources)

    def _collect_auth_errors(self) -> Dict[Source, str]:
        if self._sessions is None:
            return {}
        return {source: str(error) for source, error in self._sessions.auth_errors().items()}
