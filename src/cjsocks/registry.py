"""NameRegistry: concurrent FQDN -> address mapping.

Brief:
  - Writers (the event monitor) are serialized by a lock and publish a fresh
    mapping on every change.
  - Readers (resolution requests) read the current mapping reference without
    taking the lock, so lookups never wait on a writer and always observe a
    fully applied state.
"""

from __future__ import annotations

import logging
import threading
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)


def normalize_name(name: str) -> str:
    """Brief: Normalize a name for use as a registry key.

    Inputs:
      - name: Hostname/FQDN, any case, optional trailing dot.

    Outputs:
      - Lowercased name without surrounding whitespace or trailing dot.
    """

    return str(name or "").strip().rstrip(".").lower()


class NameRegistry:
    """In-memory FQDN registry safe for one writer and many readers."""

    def __init__(self) -> None:
        self._write_lock = threading.Lock()
        self._entries: Mapping[str, str] = MappingProxyType({})

    def upsert(self, fqdns: Iterable[str], address: str) -> None:
        """Brief: Point every FQDN at address, overwriting prior values.

        Inputs:
          - fqdns: Names to register.
          - address: Address string; when empty the call is a no-op so that
            later fallback resolution is not masked.

        Outputs:
          - None.
        """

        if not address:
            return
        keys = [k for k in (normalize_name(n) for n in fqdns) if k]
        if not keys:
            return
        with self._write_lock:
            updated: Dict[str, str] = dict(self._entries)
            for key in keys:
                updated[key] = address
            self._entries = MappingProxyType(updated)
        for key in keys:
            logger.info("registered %s -> %s", key, address)

    def remove(self, fqdns: Iterable[str]) -> None:
        """Delete every listed FQDN; absent names are ignored."""

        keys = [k for k in (normalize_name(n) for n in fqdns) if k]
        with self._write_lock:
            current = self._entries
            present = {k for k in keys if k in current}
            if not present:
                return
            updated = {k: v for k, v in current.items() if k not in present}
            self._entries = MappingProxyType(updated)
        for key in sorted(present):
            logger.info("removed %s", key)

    def lookup(self, name: str) -> Optional[str]:
        """Return the address for name, or None when it is not registered."""

        return self._entries.get(normalize_name(name))

    def snapshot(self) -> Dict[str, str]:
        """Return a plain copy of the current mapping."""

        return dict(self._entries)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.lookup(name) is not None

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        # An empty registry is still a registry.
        return True
