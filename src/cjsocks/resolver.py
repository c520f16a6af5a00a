"""ResolutionService: the name -> address capability handed to the proxy.

Brief:
  - Names present in the NameRegistry are answered from it without any
    external lookup.
  - Other names go through the system resolver (socket.getaddrinfo) on a
    bounded worker pool so that each call honours its own timeout and an
    optional cancellation event.
"""

from __future__ import annotations

import concurrent.futures
import ipaddress
import logging
import socket
import threading
from typing import Optional, Union

from cachetools import TTLCache

from cjsocks.registry import NameRegistry

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

# Poll interval used while waiting on a lookup that can be cancelled.
_CANCEL_POLL_SECONDS = 0.05


class ResolutionError(Exception):
    """
    Brief: Name resolution failed.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


class NameNotFoundError(ResolutionError):
    """The name is neither registered nor resolvable by the system resolver."""


class ResolutionTimeoutError(ResolutionError):
    """The system resolver did not answer within the allowed time."""


class ResolutionCancelledError(ResolutionError):
    """The caller cancelled the lookup."""


def system_lookup(name: str) -> IPAddress:
    """Brief: Resolve name with the system resolver.

    Inputs:
      - name: Hostname or address literal.

    Outputs:
      - First IPv4 address returned by getaddrinfo, else the first IPv6 one.

    Raises:
      - NameNotFoundError when the resolver has no usable answer.
    """

    try:
        infos = socket.getaddrinfo(name, None, proto=socket.IPPROTO_TCP)
    except (socket.gaierror, UnicodeError) as exc:
        raise NameNotFoundError(f"{name}: {exc}") from exc

    v6: Optional[IPAddress] = None
    for family, _socktype, _proto, _canonname, sockaddr in infos:
        try:
            addr = ipaddress.ip_address(str(sockaddr[0]).split("%", 1)[0])
        except ValueError:
            continue
        if family == socket.AF_INET:
            return addr
        if family == socket.AF_INET6 and v6 is None:
            v6 = addr
    if v6 is not None:
        return v6
    raise NameNotFoundError(f"{name}: no usable address")


class ResolutionService:
    """Brief: Resolve names from the registry first, then the system resolver.

    Inputs:
      - registry: NameRegistry populated by the event monitor.
      - timeout_ms: Default timeout for system lookups in milliseconds.
      - cache_ttl: Seconds to cache successful system lookups; 0 disables the
        cache.
      - workers: Maximum concurrent system lookups.
      - lookup: Callable used for system lookups (tests override it).

    Outputs:
      - ResolutionService instance. It only reads the registry.
    """

    def __init__(
        self,
        registry: NameRegistry,
        *,
        timeout_ms: int = 2000,
        cache_ttl: int = 0,
        workers: int = 8,
        lookup=system_lookup,
    ) -> None:
        self.registry = registry
        self.timeout = max(0.0, timeout_ms / 1000.0)
        self._lookup = lookup
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max(1, int(workers)),
            thread_name_prefix="cjsocks-resolve",
        )
        self._cache: Optional[TTLCache] = None
        self._cache_lock = threading.Lock()
        if cache_ttl > 0:
            self._cache = TTLCache(maxsize=4096, ttl=cache_ttl)

    def resolve(
        self,
        name: str,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> IPAddress:
        """Brief: Turn a name into an address.

        Inputs:
          - name: Name requested by the proxy.
          - timeout: Seconds allowed for a system lookup; defaults to the
            configured timeout. None or 0 in the configuration means no limit.
          - cancel: Optional event; when set the pending lookup is abandoned.

        Outputs:
          - ipaddress.IPv4Address or IPv6Address.

        Raises:
          - ResolutionError for an unusable registered value.
          - NameNotFoundError, ResolutionTimeoutError or
            ResolutionCancelledError for system lookups.
        """

        stored = self.registry.lookup(name)
        if stored is not None:
            try:
                addr = ipaddress.ip_address(stored)
            except ValueError as exc:
                raise ResolutionError(
                    f"{name}: registered address {stored!r} is not an IP address"
                ) from exc
            logger.debug("resolved %s -> %s (registry)", name, addr)
            return addr

        cached = self._cache_get(name)
        if cached is not None:
            return cached

        addr = self._resolve_external(name, timeout, cancel)
        self._cache_put(name, addr)
        logger.debug("resolved %s -> %s (system)", name, addr)
        return addr

    __call__ = resolve

    def _resolve_external(
        self,
        name: str,
        timeout: Optional[float],
        cancel: Optional[threading.Event],
    ) -> IPAddress:
        limit = self.timeout if timeout is None else max(0.0, float(timeout))
        future = self._executor.submit(self._lookup, name)

        if cancel is None:
            try:
                return future.result(timeout=limit or None)
            except concurrent.futures.TimeoutError as exc:
                future.cancel()
                raise ResolutionTimeoutError(
                    f"{name}: lookup timed out after {limit:.3f}s"
                ) from exc

        waited = 0.0
        while True:
            step = _CANCEL_POLL_SECONDS
            if limit:
                step = min(step, max(0.0, limit - waited))
            done, _ = concurrent.futures.wait([future], timeout=step)
            if done:
                return future.result()
            if cancel.is_set():
                future.cancel()
                raise ResolutionCancelledError(f"{name}: lookup cancelled")
            waited += step
            if limit and waited >= limit:
                future.cancel()
                raise ResolutionTimeoutError(
                    f"{name}: lookup timed out after {limit:.3f}s"
                )

    def _cache_get(self, name: str) -> Optional[IPAddress]:
        if self._cache is None:
            return None
        with self._cache_lock:
            return self._cache.get(name.lower())

    def _cache_put(self, name: str, addr: IPAddress) -> None:
        if self._cache is None:
            return
        with self._cache_lock:
            self._cache[name.lower()] = addr

    def close(self) -> None:
        """Release the lookup worker pool."""

        self._executor.shutdown(wait=False, cancel_futures=True)
