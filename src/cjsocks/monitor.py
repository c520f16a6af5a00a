"""EventMonitor: keep the NameRegistry in step with workload lifecycle events.

Brief:
  - start() enumerates running workloads synchronously, then subscribes to the
    runtime event feed from the moment enumeration began and hands the feed to
    a single background worker thread.
  - The worker registers workloads on "start", removes them on
    stop/destroy/kill/die, optionally attaches new workloads to the
    connectivity network on "create", and reconnects with exponential backoff
    when the feed closes.
  - All per-event failures are logged and contained in the worker.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from cjsocks.addressing import select_address
from cjsocks.events import (
    EXEC_ACTIONS,
    REMOVAL_ACTIONS,
    LifecycleAction,
    WorkloadEvent,
)
from cjsocks.naming import DEFAULT_BASE_DOMAIN, derive_fqdns
from cjsocks.registry import NameRegistry, normalize_name
from cjsocks.runtime import (
    EventStream,
    RuntimeClient,
    RuntimeClientError,
    RuntimeUnavailableError,
)
from cjsocks.workload import WorkloadMetadata

logger = logging.getLogger(__name__)

DEFAULT_NETWORK_NAME = "cj-socks5"


class EventMonitor:
    """Brief: Drive NameRegistry updates from the runtime event feed.

    Inputs:
      - runtime: RuntimeClient (or an object with the same methods).
      - registry: NameRegistry to update.
      - base_domain: Default base domain for derived FQDNs.
      - network_name: Connectivity network; preferred for addresses and used
        for auto-attach.
      - auto_attach: When true, newly created workloads are connected to the
        connectivity network.
      - backoff_initial: First reconnect delay in seconds.
      - backoff_max: Upper bound for reconnect delays in seconds.
      - clock: Callable returning epoch seconds (tests override it).

    Outputs:
      - EventMonitor instance; call start() to begin monitoring.
    """

    def __init__(
        self,
        runtime: RuntimeClient,
        registry: NameRegistry,
        *,
        base_domain: str = DEFAULT_BASE_DOMAIN,
        network_name: str = DEFAULT_NETWORK_NAME,
        auto_attach: bool = False,
        backoff_initial: float = 1.0,
        backoff_max: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.runtime = runtime
        self.registry = registry
        self.base_domain = base_domain
        self.network_name = network_name
        self.auto_attach = bool(auto_attach)
        self.backoff_initial = max(0.0, float(backoff_initial))
        self.backoff_max = max(self.backoff_initial, float(backoff_max))
        self._clock = clock

        # FQDNs registered per workload id, kept so removal does not depend on
        # inspecting a workload that may already be gone.
        self._registered: Dict[str, Tuple[List[str], str]] = {}
        self._state_lock = threading.Lock()

        # Serializes sync() with event application so a resync requested from
        # another thread never interleaves with the worker.
        self._apply_lock = threading.RLock()

        self._stream: Optional[EventStream] = None
        self._since: Optional[int] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.ready = threading.Event()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Brief: Enumerate running workloads and start the event worker.

        Inputs:
          - None.

        Outputs:
          - None. Raises RuntimeUnavailableError when the runtime cannot be
            reached at all; no worker is started in that case.
        """

        if self._thread is not None:
            return

        since = int(self._clock())
        self.runtime.ping()
        self.sync()
        self._stream = self.runtime.subscribe_events(since=since)
        self._since = since

        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="cjsocks-events",
            daemon=True,
        )
        self._thread.start()
        self.ready.set()
        logger.info(
            "monitoring runtime events (%d names registered)", len(self.registry)
        )

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the worker thread and close the event feed."""

        self._stop.set()
        stream = self._stream
        if stream is not None:
            stream.close()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._thread = None
        self.ready.clear()

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    # ------------------------------------------------------------------
    # Registration helpers
    # ------------------------------------------------------------------

    def registered_names(self, workload_id: str) -> List[str]:
        with self._state_lock:
            entry = self._registered.get(workload_id)
        return list(entry[0]) if entry else []

    def register(self, metadata: WorkloadMetadata) -> List[str]:
        """Brief: Register one workload from its metadata.

        Inputs:
          - metadata: WorkloadMetadata snapshot.

        Outputs:
          - list[str]: FQDNs registered; empty when no address is known yet.
        """

        fqdns = derive_fqdns(metadata, self.base_domain)
        address = select_address(metadata, self.network_name)
        if not address:
            logger.debug(
                "no address for %s (%s); not registering",
                metadata.display_name or metadata.short_id,
                ",".join(fqdns),
            )
            return []

        with self._state_lock:
            previous = self._registered.get(metadata.id)
            self._registered[metadata.id] = (list(fqdns), address)
        if previous is not None:
            stale = [n for n in previous[0] if n not in fqdns]
            if stale:
                self._release(stale)
        self.registry.upsert(fqdns, address)
        return fqdns

    def unregister(self, workload_id: str) -> List[str]:
        """Brief: Remove the names registered for a workload.

        Inputs:
          - workload_id: Runtime id of the workload.

        Outputs:
          - list[str]: FQDNs released. When nothing was retained for the id
            the names are recomputed from a fresh inspection; if that fails the
            registry is left unchanged and an empty list is returned.
        """

        with self._state_lock:
            entry = self._registered.pop(workload_id, None)

        if entry is not None:
            fqdns = entry[0]
        else:
            try:
                metadata = self.runtime.inspect_workload(workload_id)
            except RuntimeClientError as exc:
                logger.debug(
                    "cannot determine names for %s; leaving registry unchanged: %s",
                    workload_id,
                    exc,
                )
                return []
            fqdns = derive_fqdns(metadata, self.base_domain)

        self._release(fqdns)
        return fqdns

    def _release(self, fqdns: List[str]) -> None:
        # Names still claimed by another running workload (e.g. scaled compose
        # services) are pointed at that workload instead of being removed.
        with self._state_lock:
            claims = {
                normalize_name(name): address
                for names, address in self._registered.values()
                for name in names
            }
        orphaned = [n for n in fqdns if normalize_name(n) not in claims]
        if orphaned:
            self.registry.remove(orphaned)
        for name in fqdns:
            key = normalize_name(name)
            if key in claims:
                self.registry.upsert([key], claims[key])

    def sync(self, prune: bool = False) -> int:
        """Brief: Register every running workload.

        Inputs:
          - prune: When true, workloads registered earlier that are no longer
            running are unregistered.

        Outputs:
          - int: Number of workloads registered.

        Notes:
          - Safe to call from any thread (e.g. a SIGUSR1 handler loop): events
            that arrive while the runtime is listed are applied afterwards,
            so a workload started mid-sync is not pruned and one that died
            mid-sync is not left registered.
        """

        with self._apply_lock:
            workloads = self.runtime.list_workloads()
            count = 0
            for metadata in workloads:
                try:
                    if self.register(metadata):
                        count += 1
                except Exception:  # pragma: nocover
                    logger.exception("failed to register workload %s", metadata.id)

            if prune:
                running = {m.id for m in workloads}
                with self._state_lock:
                    gone = [wid for wid in self._registered if wid not in running]
                for workload_id in gone:
                    self.unregister(workload_id)

        logger.info("registered %d of %d running workloads", count, len(workloads))
        return count

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def handle_event(self, event: WorkloadEvent) -> None:
        """Brief: Apply one lifecycle event to the registry.

        Inputs:
          - event: WorkloadEvent decoded from the feed.

        Outputs:
          - None. Runtime errors are logged, never raised.
        """

        action = event.action
        if action in EXEC_ACTIONS:
            return

        if action is LifecycleAction.UNRECOGNIZED:
            logger.debug(
                "ignoring event %r for %s", event.raw_action, event.workload_id
            )
            return

        if not event.workload_id:
            logger.debug("event %r without workload id; ignoring", event.raw_action)
            return

        logger.info("event [%s] %s", event.raw_action, event.workload_id[:12])

        with self._apply_lock:
            self._dispatch(event)

    def _dispatch(self, event: WorkloadEvent) -> None:
        action = event.action
        if action is LifecycleAction.CREATE:
            if self.auto_attach:
                self._attach(event.workload_id)
        elif action is LifecycleAction.START:
            try:
                metadata = self.runtime.inspect_workload(event.workload_id)
            except RuntimeClientError as exc:
                logger.warning(
                    "cannot inspect started workload %s: %s", event.workload_id, exc
                )
                return
            self.register(metadata)
        elif action in REMOVAL_ACTIONS:
            self.unregister(event.workload_id)
        else:
            # connect/disconnect: the address is not reliable at this point.
            logger.debug(
                "network event [%s] for %s (%s)",
                event.raw_action,
                event.workload_id,
                event.attributes.get("name", ""),
            )

    def _attach(self, workload_id: str) -> None:
        try:
            self.runtime.connect_workload(workload_id, self.network_name)
        except RuntimeClientError as exc:
            logger.warning(
                "could not attach %s to network %s: %s",
                workload_id,
                self.network_name,
                exc,
            )
            return
        logger.info("attached %s to network %s", workload_id[:12], self.network_name)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _consume(self, stream: EventStream) -> None:
        for event in stream:
            if self._stop.is_set():
                return
            if event.time:
                self._since = event.time
            try:
                self.handle_event(event)
            except Exception:
                logger.exception(
                    "error handling event %r for %s",
                    event.raw_action,
                    event.workload_id,
                )

    def _run(self) -> None:
        delay = self.backoff_initial
        while not self._stop.is_set():
            stream = self._stream
            if stream is not None:
                try:
                    self._consume(stream)
                except RuntimeUnavailableError as exc:
                    logger.warning("event feed failed: %s", exc)
                else:
                    if not self._stop.is_set():
                        logger.warning("event feed closed by runtime")
                stream.close()
                self._stream = None

            if self._stop.is_set():
                break

            if not self._reconnect(delay):
                delay = min(max(delay * 2, self.backoff_initial), self.backoff_max)
                continue
            delay = self.backoff_initial

    def _reconnect(self, delay: float) -> bool:
        """Brief: Wait delay seconds, then resubscribe and resync.

        Inputs:
          - delay: Seconds to wait before the attempt.

        Outputs:
          - bool: True when a new stream is in place.
        """

        logger.info("reconnecting to event feed in %.1fs", delay)
        if self._stop.wait(delay):
            return False
        try:
            stream = self.runtime.subscribe_events(since=self._since)
        except RuntimeUnavailableError as exc:
            logger.warning("event feed reconnect failed: %s", exc)
            return False

        self._stream = stream
        if self._stop.is_set():
            stream.close()
            return False
        try:
            self.sync(prune=True)
        except RuntimeUnavailableError as exc:
            logger.warning("resync after reconnect failed; keeping mappings: %s", exc)
        logger.info("event feed reconnected")
        return True
