# inventory_service/availability.py

"""
Tracks whether the relational backend is usable and which optional
database routines exist.

The prober holds a cached judgment: `is_available()` never touches the database.
Callers that hit a failure while acting on "available" report it with
`mark_unavailable()`. A routine flag that is disabled after a failed call stays
off until the next successful `probe()`.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

# Server-side routines used when present; each has a generic fallback path.
OPTIONAL_ROUTINES = ("get_inventory_stats", "update_inventory")


class AvailabilityProber:
    def __init__(
        self,
        engine: Engine,
        routines: Iterable[str] = OPTIONAL_ROUTINES,
        reprobe_interval: float = 15.0,
        max_reprobe_interval: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.engine = engine
        self.reprobe_interval = reprobe_interval
        self.max_reprobe_interval = max_reprobe_interval
        self._clock = clock
        self._available = False
        self._routines: Dict[str, bool] = {name: False for name in routines}
        self._last_probe: Optional[float] = None
        self._last_probe_at: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._failures = 0

    def probe(self) -> bool:
        """
        Round-trip `SELECT 1` against the backend and refresh every flag.

        Routine detection failures only mark that routine missing; they never fail the probe.
        """
        self._last_probe = self._clock()
        self._last_probe_at = datetime.now(timezone.utc)
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
                for name in self._routines:
                    self._routines[name] = self._detect_routine(connection, name)
        except SQLAlchemyError as e:
            if self._available or self._last_error is None:
                logger.warning(f"Relational backend unavailable: {e}")
            else:
                logger.debug(f"Relational backend still unavailable: {e}")
            self._available = False
            self._last_error = str(e)
            self._failures += 1
            return False

        if not self._available:
            logger.info(f"Relational backend available. Routines: {self._routines}")
        self._available = True
        self._last_error = None
        self._failures = 0
        return True

    def _detect_routine(self, connection, name: str) -> bool:
        if connection.dialect.name != "postgresql":
            return False
        try:
            # A nested transaction keeps a failed lookup from poisoning the probe's connection.
            with connection.begin_nested():
                result = connection.execute(
                    text("SELECT EXISTS (SELECT 1 FROM pg_proc WHERE proname = :name)"),
                    {"name": name},
                )
                return bool(result.scalar())
        except SQLAlchemyError as e:
            logger.warning(f"Could not check for routine '{name}': {e}")
            return False

    def is_available(self) -> bool:
        return self._available

    def mark_unavailable(self, reason: str = "") -> None:
        if self._available:
            logger.error(f"Marking relational backend unavailable: {reason}")
        self._available = False
        self._last_error = reason or self._last_error
        self._last_probe = self._clock()
        self._failures = max(self._failures, 1)

    def has_routine(self, name: str) -> bool:
        return self._available and self._routines.get(name, False)

    def disable_routine(self, name: str) -> None:
        if self._routines.get(name):
            logger.warning(f"Routine '{name}' failed; using the generic query path from now on.")
        self._routines[name] = False

    def maybe_reprobe(self) -> bool:
        """
        Re-probe an unavailable backend once the backoff interval has elapsed.

        Each failed probe doubles the interval up to `max_reprobe_interval`.
        Returns the availability after the (possible) probe.
        """
        if self._available:
            return True
        if self._last_probe is not None and self._clock() - self._last_probe < self.backoff:
            return False
        return self.probe()

    @property
    def backoff(self) -> float:
        """Seconds to wait after the last probe before re-probing."""
        if self._failures <= 1:
            return self.reprobe_interval
        return min(
            self.reprobe_interval * 2 ** (self._failures - 1), self.max_reprobe_interval
        )

    @property
    def next_reprobe_in(self) -> float:
        if self._available or self._last_probe is None:
            return 0.0
        return max(0.0, self.backoff - (self._clock() - self._last_probe))

    def status(self) -> dict:
        return {
            "available": self._available,
            "routines": dict(self._routines),
            "last_probe_at": self._last_probe_at.isoformat() if self._last_probe_at else None,
            "last_error": self._last_error,
            "next_reprobe_in": round(self.next_reprobe_in, 1),
        }
