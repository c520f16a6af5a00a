"""Typed lifecycle events decoded from the container runtime event feed."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional


class LifecycleAction(enum.Enum):
    """Closed set of runtime actions the monitor understands."""

    CREATE = "create"
    START = "start"
    STOP = "stop"
    DESTROY = "destroy"
    KILL = "kill"
    DIE = "die"
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    EXEC_CREATE = "exec_create"
    EXEC_START = "exec_start"
    EXEC_DIE = "exec_die"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "LifecycleAction":
        """Brief: Map a raw runtime action string to a LifecycleAction.

        Inputs:
          - raw: Action string such as "start" or "exec_start: sh -c ls".
            Only the part before the first ":" is considered.

        Outputs:
          - Matching LifecycleAction, or UNRECOGNIZED.
        """

        head = str(raw or "").split(":", 1)[0].strip()
        try:
            return cls(head)
        except ValueError:
            return cls.UNRECOGNIZED


EXEC_ACTIONS = frozenset(
    {LifecycleAction.EXEC_CREATE, LifecycleAction.EXEC_START, LifecycleAction.EXEC_DIE}
)

REMOVAL_ACTIONS = frozenset(
    {
        LifecycleAction.STOP,
        LifecycleAction.DESTROY,
        LifecycleAction.KILL,
        LifecycleAction.DIE,
    }
)


@dataclass(frozen=True)
class WorkloadEvent:
    """Brief: One lifecycle event for a workload.

    Inputs:
      - workload_id: Id of the affected workload.
      - action: Parsed LifecycleAction.
      - raw_action: Original action string, kept for logging.
      - time: Event time in seconds since the epoch (0 when unknown).
      - attributes: Actor attributes reported by the runtime.
    """

    workload_id: str
    action: LifecycleAction
    raw_action: str = ""
    time: int = 0
    attributes: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_docker(cls, event: Mapping[str, object]) -> "WorkloadEvent":
        """Brief: Decode a Docker events API message.

        Inputs:
          - event: Decoded JSON message from /events.

        Outputs:
          - WorkloadEvent. For network events (connect/disconnect) the
            workload id is taken from the "container" attribute because the
            actor is the network itself.
        """

        raw_action = str(event.get("Action") or event.get("status") or "")
        actor = event.get("Actor") or {}
        if not isinstance(actor, dict):
            actor = {}
        attrs = actor.get("Attributes") or {}
        attributes: Dict[str, str] = {}
        if isinstance(attrs, dict):
            attributes = {str(k): str(v) for k, v in attrs.items()}

        if str(event.get("Type") or "") == "network":
            workload_id = attributes.get("container", "")
        else:
            workload_id = str(actor.get("ID") or event.get("id") or "")

        try:
            ts = int(event.get("time") or 0)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            ts = 0

        return cls(
            workload_id=workload_id,
            action=LifecycleAction.parse(raw_action),
            raw_action=raw_action,
            time=ts,
            attributes=attributes,
        )
