"""
Brief: Tests for cjsocks.events decoding of Docker event messages.

Inputs:
  - None

Outputs:
  - None
"""

import pytest

from cjsocks.events import (
    EXEC_ACTIONS,
    REMOVAL_ACTIONS,
    LifecycleAction,
    WorkloadEvent,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("start", LifecycleAction.START),
        ("destroy", LifecycleAction.DESTROY),
        ("kill", LifecycleAction.KILL),
        ("exec_start: sh -c ls", LifecycleAction.EXEC_START),
        ("exec_create: /bin/true", LifecycleAction.EXEC_CREATE),
        ("health_status: healthy", LifecycleAction.UNRECOGNIZED),
        ("unrecognized", LifecycleAction.UNRECOGNIZED),
        ("", LifecycleAction.UNRECOGNIZED),
        (None, LifecycleAction.UNRECOGNIZED),
    ],
)
def test_lifecycle_action_parse(raw, expected):
    """Brief: Raw action strings map to the closed action set.

    Inputs:
      - raw: Raw action string.
      - expected: Expected LifecycleAction.

    Outputs:
      - None; asserts parsed action.
    """

    assert LifecycleAction.parse(raw) is expected


def test_action_groups():
    """Brief: Exec and removal action groups contain the expected members.

    Inputs:
      - None.

    Outputs:
      - None; asserts set membership.
    """

    assert LifecycleAction.EXEC_DIE in EXEC_ACTIONS
    assert LifecycleAction.START not in EXEC_ACTIONS
    assert REMOVAL_ACTIONS == {
        LifecycleAction.STOP,
        LifecycleAction.DESTROY,
        LifecycleAction.KILL,
        LifecycleAction.DIE,
    }


def test_from_docker_container_event():
    """Brief: Container events take the workload id from the actor.

    Inputs:
      - None.

    Outputs:
      - None; asserts decoded fields.
    """

    event = WorkloadEvent.from_docker(
        {
            "Type": "container",
            "Action": "start",
            "Actor": {"ID": "abc123", "Attributes": {"name": "web", "image": "nginx"}},
            "time": 1700000000,
        }
    )
    assert event.workload_id == "abc123"
    assert event.action is LifecycleAction.START
    assert event.raw_action == "start"
    assert event.time == 1700000000
    assert event.attributes["name"] == "web"


def test_from_docker_network_event_uses_container_attribute():
    """Brief: Network events take the workload id from the container attribute.

    Inputs:
      - None.

    Outputs:
      - None; asserts decoded workload id.
    """

    event = WorkloadEvent.from_docker(
        {
            "Type": "network",
            "Action": "connect",
            "Actor": {
                "ID": "netid",
                "Attributes": {"container": "abc123", "name": "cj-socks5"},
            },
        }
    )
    assert event.workload_id == "abc123"
    assert event.action is LifecycleAction.CONNECT
    assert event.time == 0


def test_from_docker_legacy_fields():
    """Brief: Older status/id fields are accepted and bad times become 0.

    Inputs:
      - None.

    Outputs:
      - None; asserts decoded fields.
    """

    event = WorkloadEvent.from_docker({"status": "die", "id": "abc", "time": "x"})
    assert event.workload_id == "abc"
    assert event.action is LifecycleAction.DIE
    assert event.time == 0
