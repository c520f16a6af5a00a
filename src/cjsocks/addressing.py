"""Pick the address a workload should be reached at."""

from __future__ import annotations

from cjsocks.workload import WorkloadMetadata


def select_address(metadata: WorkloadMetadata, preferred_network: str) -> str:
    """Brief: Choose the best address for a workload.

    Inputs:
      - metadata: WorkloadMetadata snapshot.
      - preferred_network: Name of the connectivity network; matched
        case-insensitively.

    Outputs:
      - Address string, or "" when no reachable address is known.

    Notes:
      - Precedence: preferred network, then the first non-empty address on any
        other network (ordered by network name), then the first non-empty host
        address among port bindings (host-only workloads).
      - A preferred attachment without an address does not stop the search.
    """

    wanted = (preferred_network or "").lower()
    others = []
    for attachment in metadata.networks:
        if wanted and attachment.network.lower() == wanted:
            if attachment.address:
                return attachment.address
            continue
        others.append(attachment)

    for attachment in sorted(others, key=lambda a: a.network):
        if attachment.address:
            return attachment.address

    for binding in metadata.ports:
        if binding.host_address:
            return binding.host_address

    return ""
