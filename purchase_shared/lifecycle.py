"""Service lifecycle: connect dependencies, keep them connected, report readiness.

Both services follow the same shape:

    STARTING -> CONNECTING(store) -> CONNECTING(stream) -> READY

A single supervisor thread owns every dependency. It connects them in order,
then either runs the service's worker (the consumer loop) or periodically
checks the dependencies. When something fails it moves to DEGRADED, closes the
failed dependency and every dependency connected after it, waits
`retry_delay` seconds and starts over. It never gives up and never exits the
process; only `stop()` ends it.

Handlers never touch the dependencies' connection state directly. They read an
immutable `LifecycleSnapshot` from a `StateCell`, which only the supervisor
writes.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Mapping, Optional, Sequence

from .errors import DependencyUnavailable
from .logger_config import log
from .metrics import SERVICE_READY


class ServiceState(str, Enum):
    STARTING = "STARTING"
    CONNECTING = "CONNECTING"
    READY = "READY"
    DEGRADED = "DEGRADED"
    STOPPING = "STOPPING"


@dataclass(frozen=True)
class LifecycleSnapshot:
    """Point-in-time view of a service's state.

    `reason` is machine readable (`starting`, `store_connecting`,
    `stream_unavailable`, `stopping`, ...). `detail` is for humans and logs.
    """

    state: ServiceState
    dependencies: Mapping[str, bool] = field(default_factory=dict)
    reason: Optional[str] = None
    detail: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.state is ServiceState.READY

    def is_connected(self, name: str) -> bool:
        return self.dependencies.get(name, False)


class StateCell:
    """Single-writer, multi-reader holder for the current snapshot."""

    def __init__(self, initial: LifecycleSnapshot):
        self._snapshot = initial
        self._changed = threading.Condition()

    def get(self) -> LifecycleSnapshot:
        return self._snapshot

    def set(self, snapshot: LifecycleSnapshot) -> None:
        with self._changed:
            self._snapshot = snapshot
            self._changed.notify_all()

    def wait_for(
        self, predicate: Callable[[LifecycleSnapshot], bool], timeout: float
    ) -> bool:
        """Block until `predicate(snapshot)` holds or `timeout` expires."""
        with self._changed:
            return self._changed.wait_for(lambda: predicate(self._snapshot), timeout)


class Dependency(ABC):
    """An external resource the service needs before it is ready.

    Subclasses raise from `connect()`/`check()` when the resource is not
    usable; the supervisor turns that into DEGRADED and retries.
    """

    name: str = "dependency"

    @abstractmethod
    def connect(self) -> None:
        """Open the connection. Raise if the resource is not reachable."""

    def check(self) -> None:
        """Raise if a previously connected resource has been lost."""

    def close(self) -> None:
        """Release the connection. Must be safe to call when not connected."""


Worker = Callable[[threading.Event], None]


class ServiceLifecycle:
    """Supervises a service's dependencies in a background thread.

    Args:
        name: Service name, used in logs.
        dependencies: Connected in this order. Later ones may rely on earlier
            ones, so losing one also resets those after it.
        worker: Optional blocking loop run while READY. It must return when
            the stop event is set and raise `DependencyUnavailable` when it
            loses a dependency.
        retry_delay: Fixed delay between reconnection attempts.
        check_interval: How often to call `check()` on every dependency when
            there is no worker.
    """

    def __init__(
        self,
        name: str,
        dependencies: Sequence[Dependency],
        worker: Optional[Worker] = None,
        retry_delay: float = 5.0,
        check_interval: float = 10.0,
    ):
        self.name = name
        self._dependencies = list(dependencies)
        self._worker = worker
        self.retry_delay = retry_delay
        self.check_interval = check_interval

        self._connected = {dep.name: False for dep in self._dependencies}
        self._cell = StateCell(
            LifecycleSnapshot(ServiceState.STARTING, dict(self._connected), "starting")
        )
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # --- Read side -------------------------------------------------------------

    @property
    def snapshot(self) -> LifecycleSnapshot:
        return self._cell.get()

    def is_ready(self) -> bool:
        return self._cell.get().ready

    def wait_until(
        self, predicate: Callable[[LifecycleSnapshot], bool], timeout: float = 5.0
    ) -> bool:
        return self._cell.wait_for(predicate, timeout)

    # --- Control -----------------------------------------------------------------

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._supervise, name=f"{self.name}-lifecycle", daemon=True
        )
        self._thread.start()
        log.info("Lifecycle started", service=self.name)

    def stop(self, timeout: float = 10.0) -> None:
        """Signal shutdown, wait for the supervisor, close everything."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                log.warning("Lifecycle thread did not stop in time", service=self.name)
            self._thread = None
        self._close_from(0)
        self._publish(ServiceState.STOPPING, "stopping")
        log.info("Lifecycle stopped", service=self.name)

    # --- Supervisor (the only writer) ---------------------------------------------

    def _supervise(self) -> None:
        while not self._stop_event.is_set():
            try:
                self._connect_all()
                if self._stop_event.is_set():
                    break
                self._publish(ServiceState.READY)
                log.info("Service ready", service=self.name)
                self._serve()
            except DependencyUnavailable as exc:
                self._degrade(exc.dependency, exc)
            except Exception as exc:
                log.exception("Unexpected failure in service lifecycle", service=self.name)
                self._degrade(self._dependencies[-1].name if self._dependencies else None, exc)

            if self._stop_event.wait(self.retry_delay):
                break

    def _connect_all(self) -> None:
        for dep in self._dependencies:
            if self._connected[dep.name]:
                continue
            self._publish(ServiceState.CONNECTING, f"{dep.name}_connecting")
            log.info("Connecting dependency", service=self.name, dependency=dep.name)
            try:
                dep.connect()
            except DependencyUnavailable:
                raise
            except Exception as exc:
                raise DependencyUnavailable(dep.name, str(exc), original_exception=exc) from exc
            self._connected[dep.name] = True
            log.info("Dependency connected", service=self.name, dependency=dep.name)

    def _serve(self) -> None:
        if self._worker is not None:
            self._worker(self._stop_event)
            return

        while not self._stop_event.wait(self.check_interval):
            for dep in self._dependencies:
                try:
                    dep.check()
                except DependencyUnavailable:
                    raise
                except Exception as exc:
                    raise DependencyUnavailable(dep.name, str(exc), original_exception=exc) from exc

    def _degrade(self, dependency: Optional[str], exc: Exception) -> None:
        index = self._index_of(dependency)
        self._close_from(index)
        reason = f"{dependency}_unavailable" if dependency else "unavailable"
        self._publish(ServiceState.DEGRADED, reason, detail=str(exc))
        log.warning(
            "Dependency lost, retrying",
            service=self.name,
            dependency=dependency,
            error=str(exc),
            retry_in=self.retry_delay,
        )

    def _index_of(self, dependency: Optional[str]) -> int:
        for index, dep in enumerate(self._dependencies):
            if dep.name == dependency:
                return index
        return 0

    def _close_from(self, index: int) -> None:
        for dep in reversed(self._dependencies[index:]):
            try:
                dep.close()
            except Exception as exc:
                log.warning(
                    "Failed to close dependency", dependency=dep.name, error=str(exc)
                )
            self._connected[dep.name] = False

    def _publish(
        self, state: ServiceState, reason: Optional[str] = None, detail: Optional[str] = None
    ) -> None:
        self._cell.set(LifecycleSnapshot(state, dict(self._connected), reason, detail))
        SERVICE_READY.set(1 if state is ServiceState.READY else 0)
