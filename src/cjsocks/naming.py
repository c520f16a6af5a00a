"""Derive fully-qualified domain names for workloads from their metadata.

Brief:
  - host part: host_name label, compose service label, runtime hostname (when
    it is not an autogenerated 12 character id), conventional name.
  - domain part: either the runtime domain name alone (explicit container
    domain mode) or "[sub.]tail" built from labels and the default base
    domain.
"""

from __future__ import annotations

from typing import List, Optional

from cjsocks.workload import (
    LABEL_COMPOSE_PROJECT,
    LABEL_COMPOSE_SERVICE,
    LABEL_DOMAIN_NAME,
    LABEL_HOST_NAME,
    LABEL_SUB_DOMAIN,
    LABEL_USE_CONTAINER_BASE_DOMAIN,
    WorkloadMetadata,
)

DEFAULT_BASE_DOMAIN = "container"
DEFAULT_HOST = "workload"

# Docker assigns the short container id as hostname when none is configured.
AUTOGENERATED_HOSTNAME_LENGTH = 12


def is_autogenerated_hostname(hostname: Optional[str]) -> bool:
    """Return True when hostname looks like a runtime-assigned short id.

    Only the length is checked, so a hand-picked 12 character hostname is
    also treated as autogenerated.
    """

    return bool(hostname) and len(hostname) == AUTOGENERATED_HOSTNAME_LENGTH


def derive_host(metadata: WorkloadMetadata) -> str:
    """Brief: Pick the host (left-most) part of a workload FQDN.

    Inputs:
      - metadata: WorkloadMetadata snapshot.

    Outputs:
      - Non-empty host label string.
    """

    labels = metadata.labels
    host = labels.get(LABEL_HOST_NAME) or labels.get(LABEL_COMPOSE_SERVICE)
    if host:
        return host

    if metadata.hostname and not is_autogenerated_hostname(metadata.hostname):
        return metadata.hostname

    if metadata.display_name:
        return metadata.display_name

    return metadata.short_id or DEFAULT_HOST


def derive_domain(metadata: WorkloadMetadata, default_base_domain: str) -> str:
    """Brief: Build the domain part that follows the host label.

    Inputs:
      - metadata: WorkloadMetadata snapshot.
      - default_base_domain: Configured base domain used when no label or
        runtime domain applies.

    Outputs:
      - Domain string without leading or trailing dots.
    """

    labels = metadata.labels
    use_container_domain = labels.flag(LABEL_USE_CONTAINER_BASE_DOMAIN)

    if use_container_domain and metadata.domain_name:
        return metadata.domain_name

    sub = labels.get(LABEL_SUB_DOMAIN) or labels.get(LABEL_COMPOSE_PROJECT)

    # The runtime domain as tail is already handled by the branch above, so
    # only the label and the configured default remain here.
    tail = labels.get(LABEL_DOMAIN_NAME) or default_base_domain or DEFAULT_BASE_DOMAIN

    if sub:
        return f"{sub}.{tail}"
    return tail


def derive_fqdns(metadata: WorkloadMetadata, default_base_domain: str) -> List[str]:
    """Brief: Derive the FQDNs a workload should be reachable under.

    Inputs:
      - metadata: WorkloadMetadata snapshot.
      - default_base_domain: Configured default base domain (e.g. "container").

    Outputs:
      - list[str] with a single FQDN. Never raises.

    Example:
      >>> from cjsocks.workload import WorkloadMetadata
      >>> derive_fqdns(WorkloadMetadata(id="abc", name="/svcweb"), "container")
      ['svcweb.container']
    """

    host = derive_host(metadata)
    return [f"{host}.{derive_domain(metadata, default_base_domain)}"]
