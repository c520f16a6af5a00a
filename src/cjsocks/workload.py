"""Workload metadata snapshots parsed from container runtime inspect data.

Brief:
  - WorkloadMetadata is an immutable view of the parts of a Docker inspect
    record that naming and address selection care about.
  - Labels wraps the raw label mapping and reports absent/empty values as
    None so precedence chains never compare against empty strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, Mapping, Optional, Tuple

# Label keys understood by the naming rules.
LABEL_HOST_NAME = "org.cj-tools.hosts.host_name"
LABEL_SUB_DOMAIN = "org.cj-tools.hosts.sub_domain"
LABEL_DOMAIN_NAME = "org.cj-tools.hosts.domain_name"
LABEL_USE_CONTAINER_BASE_DOMAIN = "org.cj-tools.hosts.use_container_base_domain"
LABEL_COMPOSE_SERVICE = "com.docker.compose.service"
LABEL_COMPOSE_PROJECT = "com.docker.compose.project"


class Labels(Mapping[str, str]):
    """Read-only label mapping with explicit presence semantics.

    Inputs:
      - raw: Optional mapping of label key -> value. Non-string values are
        coerced with str(); None values are dropped.

    Outputs:
      - Labels instance; get() returns None for missing or empty labels.
    """

    __slots__ = ("_data",)

    def __init__(self, raw: Optional[Mapping[str, object]] = None) -> None:
        data: Dict[str, str] = {}
        for key, value in (raw or {}).items():
            if value is None:
                continue
            data[str(key)] = str(value)
        self._data = data

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Labels({self._data!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Labels):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(sorted(self._data.items())))

    def get(  # type: ignore[override]
        self, key: str, default: Optional[str] = None
    ) -> Optional[str]:
        """Return the label value, or default when missing or empty."""

        value = self._data.get(key)
        if value is None or value == "":
            return default
        return value

    def flag(self, key: str) -> bool:
        """Return True only when the label value is exactly "true"."""

        return self._data.get(key) == "true"


@dataclass(frozen=True)
class NetworkAttachment:
    network: str
    address: str = ""


@dataclass(frozen=True)
class PortBinding:
    container_port: str
    host_address: str = ""


@dataclass(frozen=True)
class WorkloadMetadata:
    """Brief: Immutable snapshot of one workload.

    Inputs:
      - id: Opaque runtime identifier.
      - name: Conventional name as reported by the runtime (Docker prefixes
        it with "/").
      - hostname: Runtime hostname or None.
      - domain_name: Runtime domain name or None.
      - labels: Labels mapping.
      - networks: Network attachments in runtime order.
      - ports: Port bindings in runtime order.

    Outputs:
      - WorkloadMetadata instance.
    """

    id: str
    name: str = ""
    hostname: Optional[str] = None
    domain_name: Optional[str] = None
    labels: Labels = field(default_factory=Labels)
    networks: Tuple[NetworkAttachment, ...] = ()
    ports: Tuple[PortBinding, ...] = ()

    @property
    def short_id(self) -> str:
        return self.id[:12]

    @property
    def display_name(self) -> str:
        """Conventional name without the leading "/" separator."""

        name = self.name or ""
        if name.startswith("/"):
            return name[1:]
        return name

    @classmethod
    def from_inspect(cls, attrs: Mapping[str, object]) -> "WorkloadMetadata":
        """Brief: Build metadata from a docker inspect-style dict.

        Inputs:
          - attrs: Container inspect mapping (Container.attrs in the Docker SDK).

        Outputs:
          - WorkloadMetadata; missing or malformed sections produce empty
            values rather than errors.
        """

        cfg = attrs.get("Config") or {}
        if not isinstance(cfg, dict):
            cfg = {}
        labels = cfg.get("Labels")
        if not isinstance(labels, dict):
            labels = {}

        settings = attrs.get("NetworkSettings") or {}
        if not isinstance(settings, dict):
            settings = {}

        networks = []
        nets = settings.get("Networks") or {}
        if isinstance(nets, dict):
            for net_name, net in nets.items():
                address = ""
                if isinstance(net, dict):
                    address = str(net.get("IPAddress") or "").strip()
                networks.append(NetworkAttachment(str(net_name), address))

        ports = []
        raw_ports = settings.get("Ports") or {}
        if isinstance(raw_ports, dict):
            for port_key, bindings in raw_ports.items():
                if not isinstance(bindings, list):
                    continue
                for b in bindings:
                    if not isinstance(b, dict):
                        continue
                    host_ip = str(b.get("HostIp") or "").strip()
                    ports.append(PortBinding(str(port_key), host_ip))

        hostname = str(cfg.get("Hostname") or "").strip() or None
        domain_name = str(cfg.get("Domainname") or "").strip() or None

        return cls(
            id=str(attrs.get("Id") or "").strip(),
            name=str(attrs.get("Name") or "").strip(),
            hostname=hostname,
            domain_name=domain_name,
            labels=Labels(labels),
            networks=tuple(networks),
            ports=tuple(ports),
        )
