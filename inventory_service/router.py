# inventory_service/router.py

"""
Picks the store that serves each request.

The relational store is used while the prober reports the backend as available.
A backend failure flips availability off and, when fallback is enabled, the same
operation is re-executed against the in-memory store.
"""

import logging
from typing import Callable, TypeVar

from sqlalchemy.orm import Session

from .availability import AvailabilityProber
from .errors import BackendUnavailableError
from .stores import MemoryStore, RelationalStore, Store

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StoreRouter:
    def __init__(
        self,
        prober: AvailabilityProber,
        memory_store: MemoryStore,
        fallback_enabled: bool = True,
        low_stock_threshold: int = 10,
    ):
        self.prober = prober
        self.memory_store = memory_store
        self.fallback_enabled = fallback_enabled
        self.low_stock_threshold = low_stock_threshold

    def active_backend(self) -> str:
        if self.prober.is_available():
            return "relational"
        return "memory" if self.fallback_enabled else "none"

    def run(self, session: Session, operation: Callable[[Store], T]) -> T:
        """
        Run `operation` against the working store.

        Raises BackendUnavailableError only when the relational store fails and
        fallback is disabled. NotFound and reference errors pass through unchanged.
        """
        self.prober.maybe_reprobe()
        if self.prober.is_available():
            store = RelationalStore(session, self.prober, self.low_stock_threshold)
            try:
                return operation(store)
            except BackendUnavailableError as e:
                logger.error(f"Relational store failed: {e}", exc_info=True)
                self.prober.mark_unavailable(str(e))
                if not self.fallback_enabled:
                    raise
                logger.warning("Re-running the request against the in-memory store.")
        elif not self.fallback_enabled:
            raise BackendUnavailableError("Relational backend unavailable and fallback disabled")
        return operation(self.memory_store)
