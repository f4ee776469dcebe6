"""Periodic, mutually exclusive refresh of the configuration cache."""

import threading
import time
from collections.abc import Callable
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from datetime import datetime
from enum import Enum

from dynconfig.logger.logger import get_logger
from dynconfig.logger.types import Category, duration_ms, param
from dynconfig.reader.cache import ConfigCache
from dynconfig.repository.store import ConfigStore


class RefreshState(str, Enum):
    """Lifecycle state of the coordinator."""

    IDLE = "idle"
    REFRESHING = "refreshing"
    STOPPED = "stopped"


class RefreshOutcome(str, Enum):
    """Result of a single refresh request."""

    COMPLETED = "completed"  # New snapshot installed
    FAILED = "failed"  # Store failed, previous snapshot kept
    SKIPPED = "skipped"  # Another refresh was in flight
    STOPPED = "stopped"  # Coordinator already shut down


class RefreshCoordinator:
    """
    Drives synchronization of a ConfigCache with a ConfigStore.

    A single permit guarantees at most one refresh in flight. Timer ticks,
    the warm-up and fire-and-forget requests drop when the permit is
    taken; blocking requests queue behind it.
    """

    def __init__(
        self,
        store: ConfigStore,
        cache: ConfigCache,
        interval_ms: int,
        on_failure: Callable[[Exception], None] | None = None,
    ) -> None:
        """
        Initialize RefreshCoordinator.

        Args:
            store: Configuration store
            cache: Cache the snapshots are installed into
            interval_ms: Period of the background refresh in milliseconds
            on_failure: Called with the error of every failed refresh
        """
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")

        self.store = store
        self.cache = cache
        self.application_name = cache.application_name
        self.interval = interval_ms / 1000.0
        self.on_failure = on_failure
        self.logger = get_logger().with_category(Category.REFRESH).with_application(
            self.application_name
        )

        self._permit = threading.Lock()
        self._state_lock = threading.Lock()
        self._state = RefreshState.IDLE
        self._stop_event = threading.Event()
        self._executor = ThreadPoolExecutor(
            max_workers=2, thread_name_prefix=f"config-refresh-{self.application_name}"
        )
        self._timer: threading.Thread | None = None
        self._warm_up: Future[None] | None = None

        self.refresh_count = 0
        self.failure_count = 0
        self.last_refreshed_at: datetime | None = None
        self.last_error: Exception | None = None

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def stopped(self) -> bool:
        return self._state is RefreshState.STOPPED

    def start(self) -> None:
        """Schedule the warm-up fetch and start the periodic timer."""
        with self._state_lock:
            if self.stopped or self._timer is not None:
                return
            self._warm_up = self._executor.submit(self._run_warm_up)
            self._timer = threading.Thread(
                target=self._run_timer,
                name=f"config-refresh-timer-{self.application_name}",
                daemon=True,
            )
            self._timer.start()

        self.logger.info(
            "Refresh coordinator started",
            param("interval_ms", int(self.interval * 1000)),
        )

    def wait_warm_up(self, timeout: float | None = None) -> bool:
        """Wait for the warm-up fetch; True if it finished in time."""
        future = self._warm_up
        if future is None:
            return False
        try:
            future.result(timeout=timeout)
        except (TimeoutError, CancelledError):
            return False
        return True

    def refresh_now(self) -> Future[RefreshOutcome] | None:
        """Request a refresh without waiting for it."""
        with self._state_lock:
            if self.stopped:
                return None
            return self._executor.submit(self.run_cycle, False)

    def refresh_and_wait(self, timeout: float | None = None) -> RefreshOutcome:
        """
        Refresh and block until done.

        Queues behind a refresh already in flight.

        Args:
            timeout: Maximum seconds to wait for the permit (None = no limit)
        """
        return self.run_cycle(wait=True, timeout=timeout)

    def run_cycle(self, wait: bool = False, timeout: float | None = None) -> RefreshOutcome:
        """
        Run one refresh cycle under the permit.

        Args:
            wait: Queue behind an in-flight refresh instead of dropping
            timeout: Maximum seconds to wait for the permit when wait is set

        Returns:
            RefreshOutcome
        """
        if self.stopped:
            return RefreshOutcome.STOPPED

        if wait:
            acquired = self._permit.acquire(timeout=-1 if timeout is None else timeout)
        else:
            acquired = self._permit.acquire(blocking=False)
        if not acquired:
            self.logger.trace("Refresh already in flight, request dropped")
            return RefreshOutcome.SKIPPED

        try:
            with self._state_lock:
                if self.stopped:
                    return RefreshOutcome.STOPPED
                self._state = RefreshState.REFRESHING
            return self._refresh()
        finally:
            with self._state_lock:
                if not self.stopped:
                    self._state = RefreshState.IDLE
            self._permit.release()

    def _refresh(self) -> RefreshOutcome:
        started = time.monotonic()
        self.logger.debug("Refreshing configuration")

        try:
            items = self.store.fetch_all(self.application_name)
        except Exception as e:
            self.failure_count += 1
            self.last_error = e
            self.logger.error(
                "Configuration refresh failed, keeping previous snapshot",
                e,
                param("cached_count", len(self.cache)),
            )
            if self.on_failure is not None:
                self.on_failure(e)
            return RefreshOutcome.FAILED

        count = self.cache.replace_all(items)
        self.refresh_count += 1
        self.last_refreshed_at = datetime.utcnow()
        self.last_error = None

        self.logger.info(
            f"{count} configuration items loaded",
            param("fetched", len(items)),
            duration_ms(int((time.monotonic() - started) * 1000)),
        )
        return RefreshOutcome.COMPLETED

    def _run_warm_up(self) -> None:
        """Probe the store, then load the first snapshot."""
        try:
            reachable = self.store.probe_connectivity()
        except Exception as e:
            self.logger.error("Connectivity probe failed", e)
            reachable = False

        if not reachable:
            self.logger.warn(
                "Configuration store unreachable at startup, "
                "continuing with an empty cache until the next refresh"
            )
            return

        self.run_cycle(wait=False)

    def _run_timer(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.run_cycle(wait=False)

    def stop(self, timeout: float = 1.0) -> None:
        """
        Stop the timer and refuse new refresh cycles.

        A refresh already in flight is left to finish on its own.
        Safe to call more than once.
        """
        with self._state_lock:
            if self.stopped:
                return
            self._state = RefreshState.STOPPED
            self._stop_event.set()
            timer = self._timer

        if timer is not None and timer is not threading.current_thread():
            timer.join(timeout)
        self._executor.shutdown(wait=False, cancel_futures=True)

        self.logger.info(
            "Refresh coordinator stopped",
            param("refresh_count", self.refresh_count),
            param("failure_count", self.failure_count),
        )
