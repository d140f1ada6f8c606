"""
In-process dispatch registry.

Keeps the short-lived dispatch state that does not belong in the database:

- which (booking, driver) pairs already received an offer (dedup with TTL)
- the freshest live location reported by each driver
- runtime availability, tracked per open driver connection

Everything here is process-local and lost on restart. Dispatch treats a
missing entry as "not yet dispatched" / "no live location" / "unavailable",
so losing it is safe.
"""

import logging
import os
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Set, Tuple

from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)

DEFAULT_DISPATCH_TTL_SECONDS = 24 * 60 * 60


@dataclass
class LiveLocation:
    latitude: float
    longitude: float
    bearing: Optional[float] = None
    updated_at: object = field(default_factory=timezone.now)

    def as_dict(self) -> Dict:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "bearing": self.bearing,
            "updated_at": self.updated_at.isoformat() if hasattr(self.updated_at, "isoformat") else self.updated_at,
        }


def _key(value) -> str:
    return str(value)


class DispatchRegistry:
    """Thread-safe store for dispatch dedup, live locations and availability."""

    def __init__(self, dispatch_ttl_seconds: float = DEFAULT_DISPATCH_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.dispatch_ttl_seconds = dispatch_ttl_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._dispatched: Dict[Tuple[str, str], float] = {}
        self._live_locations: Dict[str, LiveLocation] = {}
        self._connections: Dict[str, Set[str]] = {}
        self._available_connections: Dict[str, Set[str]] = {}
        self._passenger_connections: Dict[str, Set[str]] = {}

    # ---------------------- Dispatch dedup ----------------------

    def mark_dispatched(self, booking_id, driver_id) -> None:
        """Record that an offer went out. The first mark is kept."""
        key = (_key(booking_id), _key(driver_id))
        with self._lock:
            if not self._is_live(key):
                self._dispatched[key] = self._clock()

    def was_dispatched(self, booking_id, driver_id) -> bool:
        key = (_key(booking_id), _key(driver_id))
        with self._lock:
            return self._is_live(key)

    def _is_live(self, key) -> bool:
        marked_at = self._dispatched.get(key)
        if marked_at is None:
            return False
        if self._clock() - marked_at >= self.dispatch_ttl_seconds:
            del self._dispatched[key]
            return False
        return True

    def dispatched_drivers(self, booking_id) -> Set[str]:
        booking_key = _key(booking_id)
        with self._lock:
            return {
                driver for (booking, driver) in list(self._dispatched)
                if booking == booking_key and self._is_live((booking, driver))
            }

    def clear_booking(self, booking_id) -> int:
        booking_key = _key(booking_id)
        with self._lock:
            keys = [key for key in self._dispatched if key[0] == booking_key]
            for key in keys:
                del self._dispatched[key]
            return len(keys)

    def sweep_expired(self) -> int:
        """Evict every dedup entry older than the TTL."""
        with self._lock:
            now = self._clock()
            expired = [key for key, marked_at in self._dispatched.items() if now - marked_at >= self.dispatch_ttl_seconds]
            for key in expired:
                del self._dispatched[key]
            return len(expired)

    # ---------------------- Live locations ----------------------

    def set_live_location(self, driver_id, latitude, longitude, bearing=None) -> None:
        try:
            location = LiveLocation(
                latitude=float(latitude),
                longitude=float(longitude),
                bearing=float(bearing) if bearing is not None else None,
            )
        except (TypeError, ValueError):
            logger.debug("Ignoring malformed live location for driver %s", driver_id)
            return
        with self._lock:
            self._live_locations[_key(driver_id)] = location

    def get_live_location(self, driver_id) -> Optional[LiveLocation]:
        with self._lock:
            return self._live_locations.get(_key(driver_id))

    # ---------------------- Connections & availability ----------------------

    def register_connection(self, driver_id, connection_id) -> None:
        with self._lock:
            self._connections.setdefault(_key(driver_id), set()).add(_key(connection_id))

    def unregister_connection(self, driver_id, connection_id) -> None:
        driver_key = _key(driver_id)
        connection_key = _key(connection_id)
        with self._lock:
            for store in (self._connections, self._available_connections):
                connections = store.get(driver_key)
                if connections is None:
                    continue
                connections.discard(connection_key)
                if not connections:
                    del store[driver_key]

    def set_availability(self, driver_id, connection_id, available: bool) -> None:
        driver_key = _key(driver_id)
        connection_key = _key(connection_id)
        with self._lock:
            if available:
                self._connections.setdefault(driver_key, set()).add(connection_key)
                self._available_connections.setdefault(driver_key, set()).add(connection_key)
                return
            connections = self._available_connections.get(driver_key)
            if connections is not None:
                connections.discard(connection_key)
                if not connections:
                    del self._available_connections[driver_key]

    def is_available(self, driver_id) -> bool:
        with self._lock:
            return bool(self._available_connections.get(_key(driver_id)))

    def connection_count(self, driver_id) -> int:
        with self._lock:
            return len(self._connections.get(_key(driver_id), ()))

    # ---------------------- Passenger connections ----------------------

    def register_passenger_connection(self, passenger_id, connection_id) -> int:
        with self._lock:
            connections = self._passenger_connections.setdefault(_key(passenger_id), set())
            connections.add(_key(connection_id))
            return len(connections)

    def unregister_passenger_connection(self, passenger_id, connection_id) -> int:
        """Drop one passenger socket and return how many are still open."""
        passenger_key = _key(passenger_id)
        with self._lock:
            connections = self._passenger_connections.get(passenger_key)
            if connections is None:
                return 0
            connections.discard(_key(connection_id))
            if not connections:
                del self._passenger_connections[passenger_key]
                return 0
            return len(connections)

    def passenger_connection_count(self, passenger_id) -> int:
        with self._lock:
            return len(self._passenger_connections.get(_key(passenger_id), ()))


_registry: Optional[DispatchRegistry] = None
_registry_lock = threading.Lock()


def get_dispatch_registry() -> DispatchRegistry:
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = DispatchRegistry(
                    getattr(settings, "DISPATCH_TTL_SECONDS", DEFAULT_DISPATCH_TTL_SECONDS)
                )
    return _registry


def set_dispatch_registry(registry: Optional[DispatchRegistry]) -> None:
    """Install a specific registry (tests) or None to rebuild lazily."""
    global _registry
    with _registry_lock:
        _registry = registry


# ---------------------- Background sweeper ----------------------

_sweeper_instance: Optional["RegistrySweeper"] = None


class RegistrySweeper:
    def __init__(self, interval_seconds: int):
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name="dispatch-registry-sweeper")

    def start(self):
        if not self._thread.is_alive():
            logger.info("Starting dispatch registry sweeper (interval=%ss)", self.interval_seconds)
            self._thread.start()

    def stop(self):
        self._stop_event.set()

    def _run(self):
        while not self._stop_event.wait(self.interval_seconds):
            try:
                evicted = get_dispatch_registry().sweep_expired()
                if evicted:
                    logger.info("Dispatch registry sweeper evicted %s entries", evicted)
            except Exception:  # pragma: no cover - best effort logging
                logger.exception("Dispatch registry sweeper encountered an error")


def start_registry_sweeper():
    global _sweeper_instance

    if getattr(settings, "ENABLE_DISPATCH_REGISTRY_SWEEPER", True) is False:
        return

    # Avoid double-start in Django's autoreload parent process
    run_main = os.environ.get("RUN_MAIN")
    if run_main not in (None, "true"):
        return

    if _sweeper_instance is None:
        interval = getattr(settings, "DISPATCH_SWEEP_INTERVAL_SECONDS", 300)
        _sweeper_instance = RegistrySweeper(interval)
        _sweeper_instance.start()
