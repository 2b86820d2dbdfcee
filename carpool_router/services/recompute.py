"""
Latest-request bookkeeping for route recomputation.

A group's route is recomputed whenever its members change. Requests for
the same scope get increasing sequence numbers; only the latest one may
store its result, and a request superseded during the debounce period is
abandoned before any work is done.
"""
import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence

from carpool_router.errors import StaleRequestError
from carpool_router.services.route_types import RouteConstraints, Waypoint

logger = logging.getLogger(__name__)


def route_inputs_key(origin: Waypoint, pickups: Sequence[Waypoint], destination: Waypoint,
                     constraints: Optional[RouteConstraints] = None) -> str:
    """Stable digest of everything that determines a computed route"""
    constraints = constraints or RouteConstraints()

    def _point(wp: Waypoint):
        return [round(wp.location.lat, 6), round(wp.location.lng, 6), wp.type.value]

    payload = {
        "origin": _point(origin),
        "pickups": [_point(wp) for wp in pickups],
        "destination": _point(destination),
        "objective": constraints.objective.value,
        "algorithm": constraints.algorithm.value,
        "max_passengers": constraints.max_passengers,
        "max_distance_m": constraints.max_distance_m,
        "max_duration_s": constraints.max_duration_s,
        "traffic": constraints.traffic.value if constraints.traffic else None,
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


@dataclass(frozen=True)
class RecomputeTicket:
    scope: str
    seq: int
    inputs_key: str
    issued_at: float


class RecomputeTracker:
    def __init__(self, debounce_s: float = 0.4,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.debounce_s = debounce_s
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._latest: Dict[str, int] = {}
        self._committed: Dict[str, str] = {}

    def issue(self, scope: str, inputs_key: str, seq: Optional[int] = None) -> RecomputeTicket:
        """Register a new request; an explicit seq must be newer than any seen"""
        with self._lock:
            latest = self._latest.get(scope, 0)
            if seq is None:
                seq = latest + 1
            elif seq <= latest:
                raise StaleRequestError(scope, seq, latest)
            self._latest[scope] = seq
        logger.debug(f"Issued recompute ticket {seq} for {scope}")
        return RecomputeTicket(scope=scope, seq=seq, inputs_key=inputs_key, issued_at=self._clock())

    def latest_seq(self, scope: str) -> int:
        with self._lock:
            return self._latest.get(scope, 0)

    def is_current(self, ticket: RecomputeTicket) -> bool:
        with self._lock:
            return self._latest.get(ticket.scope, 0) == ticket.seq

    def settle(self, ticket: RecomputeTicket) -> bool:
        """Wait out the quiet period; False when a newer request arrived meanwhile"""
        remaining = ticket.issued_at + self.debounce_s - self._clock()
        if remaining > 0:
            self._sleep(remaining)
        current = self.is_current(ticket)
        if not current:
            logger.info(f"Recompute {ticket.seq} for {ticket.scope} superseded during debounce")
        return current

    def commit(self, ticket: RecomputeTicket, write: Optional[Callable[[], Any]] = None,
               publish: Optional[Callable[[Any], None]] = None) -> bool:
        """
        Record the ticket's inputs as computed, unless it has been superseded.

        ``write`` persists the result and runs under the tracker lock, so a
        newer ticket cannot commit between the currency check and the write.
        ``publish`` receives whatever ``write`` returned and runs after the
        lock is released, so it may call back into the tracker.
        """
        with self._lock:
            if self._latest.get(ticket.scope, 0) != ticket.seq:
                logger.info(f"Discarding result of superseded recompute {ticket.seq} for {ticket.scope}")
                return False
            written = write() if write is not None else None
            self._committed[ticket.scope] = ticket.inputs_key
        if publish is not None:
            publish(written)
        return True

    def last_computed_key(self, scope: str) -> Optional[str]:
        with self._lock:
            return self._committed.get(scope)

    def is_unchanged(self, ticket: RecomputeTicket) -> bool:
        return self.last_computed_key(ticket.scope) == ticket.inputs_key
