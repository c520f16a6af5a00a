"""RuntimeClient: thin adapter over the Docker SDK.

Brief:
  - Lists and inspects workloads, subscribes to lifecycle events and manages
    the connectivity network.
  - Translates Docker SDK and transport failures into the small exception
    hierarchy below so callers never depend on docker.errors directly.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional

import docker
import requests
from docker.errors import APIError, DockerException, NotFound

from cjsocks.events import WorkloadEvent
from cjsocks.workload import WorkloadMetadata

logger = logging.getLogger(__name__)

NETWORK_DESCRIPTION = (
    "Default network used by cjsocks to bridge communication to other containers."
)

# Lifecycle events for containers plus connect/disconnect from networks.
EVENT_FILTERS: Dict[str, List[str]] = {"type": ["container", "network"]}

_TRANSPORT_ERRORS = (DockerException, requests.exceptions.RequestException, OSError)


class RuntimeClientError(Exception):
    """
    Brief: Base error for container runtime operations.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


class WorkloadNotFoundError(RuntimeClientError):
    """The runtime no longer knows the requested workload."""


class RuntimeUnavailableError(RuntimeClientError):
    """The runtime daemon could not be reached or the request failed."""


def _is_conflict(exc: APIError) -> bool:
    """Return True when an APIError reports an already existing object."""

    status = getattr(exc, "status_code", None)
    if status == 409:
        return True
    text = str(getattr(exc, "explanation", "") or exc).lower()
    return "already exists" in text


class EventStream:
    """Brief: Iterable wrapper around a Docker events stream.

    Inputs:
      - stream: Generator returned by DockerClient.events(decode=True); must
        expose close().

    Outputs:
      - Iterator of WorkloadEvent. Iteration ends when the daemon closes the
        stream or close() is called, and raises RuntimeUnavailableError on
        transport errors.
    """

    def __init__(self, stream) -> None:
        self._stream = stream
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> Iterator[WorkloadEvent]:
        try:
            for message in self._stream:
                if not isinstance(message, dict):
                    continue
                yield WorkloadEvent.from_docker(message)
        except _TRANSPORT_ERRORS as exc:
            if self._closed:
                return
            raise RuntimeUnavailableError(f"event stream failed: {exc}") from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        close = getattr(self._stream, "close", None)
        if callable(close):
            try:
                close()
            except _TRANSPORT_ERRORS as exc:
                logger.debug("error while closing event stream: %s", exc)


class RuntimeClient:
    """Brief: Container runtime operations used by the event monitor.

    Inputs:
      - url: Docker endpoint URL (e.g. "unix:///var/run/docker.sock"). When
        None the client is configured from the environment (DOCKER_HOST).
      - timeout: Per-request timeout in seconds.
      - client: Optional pre-built docker.DockerClient (used by tests).

    Outputs:
      - RuntimeClient instance. Creating the client does not contact the
        daemon; use ping() for that.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        timeout: float = 60.0,
        client: Optional[docker.DockerClient] = None,
    ) -> None:
        self.url = url
        if client is None:
            try:
                if url:
                    client = docker.DockerClient(base_url=url, timeout=int(timeout))
                else:
                    client = docker.from_env(timeout=int(timeout))
            except DockerException as exc:
                raise RuntimeUnavailableError(
                    f"failed to create docker client for {url or 'environment'}: {exc}"
                ) from exc
        self._client = client

    def ping(self) -> None:
        """Raise RuntimeUnavailableError unless the daemon answers."""

        try:
            self._client.ping()
        except _TRANSPORT_ERRORS as exc:
            raise RuntimeUnavailableError(f"docker daemon unreachable: {exc}") from exc

    def list_workloads(self) -> List[WorkloadMetadata]:
        """Brief: Return metadata for all running workloads.

        Inputs:
          - None.

        Outputs:
          - list[WorkloadMetadata]; workloads removed while listing are skipped.
        """

        try:
            containers = self._client.containers.list(ignore_removed=True)
            return [WorkloadMetadata.from_inspect(c.attrs) for c in containers]
        except _TRANSPORT_ERRORS as exc:
            raise RuntimeUnavailableError(f"failed to list containers: {exc}") from exc

    def inspect_workload(self, workload_id: str) -> WorkloadMetadata:
        try:
            attrs = self._client.api.inspect_container(workload_id)
        except NotFound as exc:
            raise WorkloadNotFoundError(f"container {workload_id} not found") from exc
        except _TRANSPORT_ERRORS as exc:
            raise RuntimeUnavailableError(
                f"failed to inspect container {workload_id}: {exc}"
            ) from exc
        return WorkloadMetadata.from_inspect(attrs)

    def subscribe_events(self, since: Optional[int] = None) -> EventStream:
        """Brief: Open the live lifecycle event feed.

        Inputs:
          - since: Optional epoch seconds; events from that time on are
            replayed first.

        Outputs:
          - EventStream.
        """

        try:
            stream = self._client.events(
                since=since, filters=EVENT_FILTERS, decode=True
            )
        except _TRANSPORT_ERRORS as exc:
            raise RuntimeUnavailableError(
                f"failed to subscribe to events: {exc}"
            ) from exc
        return EventStream(stream)

    def ensure_network(self, name: str) -> None:
        """Brief: Create the attachable bridge network unless it already exists.

        Inputs:
          - name: Network name.

        Outputs:
          - None. Raises RuntimeUnavailableError on failures other than
            "already exists".
        """

        try:
            existing = self._client.networks.list(names=[name])
            if any(getattr(n, "name", None) == name for n in existing):
                logger.debug("network %s already exists", name)
                return
            self._client.networks.create(
                name,
                driver="bridge",
                attachable=True,
                labels={"description": NETWORK_DESCRIPTION},
            )
            logger.info("created network %s", name)
        except APIError as exc:
            if _is_conflict(exc):
                logger.debug("network %s already exists", name)
                return
            raise RuntimeUnavailableError(
                f"failed to create network {name}: {exc}"
            ) from exc
        except _TRANSPORT_ERRORS as exc:
            raise RuntimeUnavailableError(
                f"failed to create network {name}: {exc}"
            ) from exc

    def connect_workload(self, workload_id: str, network: str) -> None:
        """Attach a workload to network; an existing attachment is not an error."""

        try:
            self._client.networks.get(network).connect(workload_id)
        except NotFound as exc:
            raise WorkloadNotFoundError(
                f"network {network} or container {workload_id} not found"
            ) from exc
        except APIError as exc:
            if _is_conflict(exc):
                logger.debug("container %s already on network %s", workload_id, network)
                return
            raise RuntimeUnavailableError(
                f"failed to connect {workload_id} to {network}: {exc}"
            ) from exc
        except _TRANSPORT_ERRORS as exc:
            raise RuntimeUnavailableError(
                f"failed to connect {workload_id} to {network}: {exc}"
            ) from exc

    def close(self) -> None:
        try:
            self._client.close()
        except _TRANSPORT_ERRORS as exc:  # pragma: nocover
            logger.debug("error while closing docker client: %s", exc)
