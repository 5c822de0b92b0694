import threading
import time
from unittest.mock import MagicMock

import pytest
from pytest import mark

from remover import _controller
from remover import _runner
from remover import _types
from remover.tests import _utils

Stage = _types.Stage

FULL_RUN_CALLS = [
    "get_instance_id",
    "get_target_group_arn",
    "deregister_instance",
    "list_target_instances",
    "exclude_node",
    "list_shards",
    "shutdown_node",
    "detach_instance",
]


def _make_remover(
    calls: list,
    fleet: "_utils.FakeFleet" = None,
    cluster: "_utils.FakeCluster" = None,
    sleep: MagicMock = None,
    cancel: threading.Event = None,
    **config_overrides,
) -> "_runner.Remover":
    """Create a remover wired to fake collaborators for testing."""
    return _runner.Remover(
        configs=_utils.make_configs(**config_overrides),
        fleet=fleet or _utils.FakeFleet(calls),
        cluster=cluster or _utils.FakeCluster(calls),
        sleep=sleep or MagicMock(),
        cancel=cancel,
        progress=_utils.no_progress,
    )


def test_run():
    """Should execute every stage in order and finish."""
    calls = []
    sleep = MagicMock()
    remover = _make_remover(calls, sleep=sleep)

    status = remover.run()
    assert status.succeeded
    assert status.stage == Stage.DONE
    assert tuple(status.history) == _types.STAGE_ORDER
    assert calls == FULL_RUN_CALLS
    assert status.instance_id == "i-0abc123"
    assert status.target_group_arn == _utils.TARGET_GROUP_ARN
    assert status.attempts == {
        Stage.AWAITING_CONNECTION_DRAIN: 1,
        Stage.AWAITING_SHARD_EVACUATION: 1,
    }
    assert not sleep.called, "Expected no sleeps when already drained."


def test_run_connection_drain():
    """Should finish draining on the fourth check after exactly three sleeps."""
    calls = []
    sleep = MagicMock()
    members = ["i-0abc123", "i-0def456"]
    fleet = _utils.FakeFleet(
        calls, memberships=[members, members, members, ["i-0def456"]]
    )
    remover = _make_remover(calls, fleet=fleet, sleep=sleep)

    status = remover.run()
    assert status.attempts[Stage.AWAITING_CONNECTION_DRAIN] == 4
    assert calls.count("list_target_instances") == 4
    assert sleep.call_count == 3
    sleep.assert_called_with(5)


def test_run_shard_evacuation():
    """Should finish evacuating shards on the third check."""
    calls = []
    sleep = MagicMock()
    cluster = _utils.FakeCluster(calls, shard_counts=[2, 2, 0])
    remover = _make_remover(calls, cluster=cluster, sleep=sleep)

    status = remover.run()
    assert status.attempts[Stage.AWAITING_SHARD_EVACUATION] == 3
    assert calls.count("list_shards") == 3
    assert sleep.call_count == 2
    assert calls.index("shutdown_node") > calls.index("list_shards")


def test_run_drain_timeout():
    """Should fail without touching the cluster when draining never finishes."""
    calls = []
    sleep = MagicMock()
    fleet = _utils.FakeFleet(calls, memberships=[["i-0abc123"]])
    remover = _make_remover(calls, fleet=fleet, sleep=sleep)

    with pytest.raises(_types.DrainTimeoutError) as exc_info:
        remover.run()

    assert exc_info.value.stage == Stage.AWAITING_CONNECTION_DRAIN
    assert calls.count("list_target_instances") == 60
    assert sleep.call_count == 59
    assert "exclude_node" not in calls
    assert "detach_instance" not in calls
    assert remover.status.stage == Stage.FAILED
    assert remover.status.error is exc_info.value


def test_run_evacuation_timeout():
    """Should leave the node excluded but running when shards never move off."""
    calls = []
    sleep = MagicMock()
    cluster = _utils.FakeCluster(calls, shard_counts=[3])
    remover = _make_remover(calls, cluster=cluster, sleep=sleep, max_attempts=10)

    with pytest.raises(_types.EvacuationTimeoutError) as exc_info:
        remover.run()

    assert exc_info.value.stage == Stage.AWAITING_SHARD_EVACUATION
    assert calls.count("list_shards") == 10
    assert sleep.call_count == 9
    assert "es-data-3" in cluster.excluded
    assert "shutdown_node" not in calls
    assert "detach_instance" not in calls


@mark.parametrize("missing", ["cluster_url", "group", "node_name"])
def test_run_missing_input(missing: str):
    """Should fail validation before any collaborator is called."""
    calls = []
    remover = _make_remover(calls, **{missing: ""})

    with pytest.raises(_types.ConfigurationError) as exc_info:
        remover.run()

    assert exc_info.value.input_name == missing
    assert exc_info.value.stage == Stage.VALIDATING
    assert calls == []
    assert remover.status.history == []


def test_run_missing_input_default_collaborators():
    """Should fail validation without creating any remote clients."""
    remover = _runner.Remover(_utils.make_configs(node_name=None))
    with pytest.raises(_types.ConfigurationError):
        remover.run()
    assert remover.fleet is None
    assert remover.cluster is None


def test_validate_default_collaborators():
    """Should create AWS and Elasticsearch collaborators once inputs are valid."""
    remover = _runner.Remover(_utils.make_configs())
    remover._validate(Stage.VALIDATING)
    assert isinstance(remover.fleet, _controller.AwsFleetController)
    assert isinstance(remover.cluster, _controller.ElasticsearchClusterController)


def test_run_unknown_node():
    """Should abort on a resolution error before detaching anything."""
    calls = []
    fleet = _utils.FakeFleet(
        calls, instance_id=_types.ResolutionError("No instance found.")
    )
    remover = _make_remover(calls, fleet=fleet)

    with pytest.raises(_types.ResolutionError) as exc_info:
        remover.run()

    assert exc_info.value.stage == Stage.RESOLVING_INSTANCE
    assert calls == ["get_instance_id"]


def test_run_remote_call_error():
    """Should wrap a failed collaborator call with the stage that made it."""
    calls = []
    fleet = _utils.FakeFleet(calls, target_group_arn=RuntimeError("FAKE"))
    remover = _make_remover(calls, fleet=fleet)

    with pytest.raises(_types.RemoteCallError) as exc_info:
        remover.run()

    assert exc_info.value.stage == Stage.RESOLVING_TARGET_GROUP
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert "deregister_instance" not in calls


def test_run_poll_check_error():
    """Should fail immediately, not time out, when a drain check errors."""
    calls = []
    sleep = MagicMock()
    fleet = _utils.FakeFleet(
        calls, memberships=[["i-0abc123"], ConnectionError("FAKE")]
    )
    remover = _make_remover(calls, fleet=fleet, sleep=sleep)

    with pytest.raises(_types.RemoteCallError) as exc_info:
        remover.run()

    assert exc_info.value.stage == Stage.AWAITING_CONNECTION_DRAIN
    assert not isinstance(exc_info.value, _types.PollTimeoutError)
    assert calls.count("list_target_instances") == 2
    assert sleep.call_count == 1


def test_run_already_excluded():
    """Should carry on when the node was already excluded from allocation."""
    calls = []
    cluster = _utils.FakeCluster(calls, excluded=["es-data-3"])
    remover = _make_remover(calls, cluster=cluster)

    status = remover.run()
    assert status.succeeded
    assert calls == FULL_RUN_CALLS


def test_run_cancelled_before_start():
    """Should refuse to start any stage once cancelled."""
    calls = []
    cancel = threading.Event()
    cancel.set()
    remover = _make_remover(calls, cancel=cancel)

    with pytest.raises(_types.CancelledError):
        remover.run()
    assert calls == []


def test_run_cancelled_while_draining():
    """Should abort the drain wait before its ceiling when cancelled."""
    calls = []
    cancel = threading.Event()
    sleep = MagicMock(side_effect=lambda _: cancel.set())
    fleet = _utils.FakeFleet(calls, memberships=[["i-0abc123"]])
    remover = _make_remover(calls, fleet=fleet, sleep=sleep, cancel=cancel)

    with pytest.raises(_types.CancelledError) as exc_info:
        remover.run()

    assert exc_info.value.stage == Stage.AWAITING_CONNECTION_DRAIN
    assert calls.count("list_target_instances") == 1
    assert "exclude_node" not in calls


def test_default_sleep():
    """Should sleep on the cancel event when given one so it wakes on cancel."""
    cancel = threading.Event()
    remover = _runner.Remover(_utils.make_configs(), cancel=cancel)
    assert remover.sleep == cancel.wait
    assert _runner.Remover(_utils.make_configs()).sleep is time.sleep


def test_run_cancelled_during_sleep():
    """Should wake from a long drain sleep as soon as cancellation is requested."""
    calls = []
    cancel = threading.Event()
    fleet = _utils.FakeFleet(calls, memberships=[["i-0abc123"]])
    remover = _runner.Remover(
        configs=_utils.make_configs(poll_interval=30),
        fleet=fleet,
        cluster=_utils.FakeCluster(calls),
        cancel=cancel,
        progress=_utils.no_progress,
    )

    timer = threading.Timer(0.1, cancel.set)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(_types.CancelledError) as exc_info:
            remover.run()
    finally:
        timer.cancel()

    assert time.monotonic() - started < 10
    assert exc_info.value.stage == Stage.AWAITING_CONNECTION_DRAIN
    assert calls.count("list_target_instances") == 1


@mark.parametrize(
    "instance_ids, expected",
    [
        (["i-0abc123", "i-0def456"], False),
        (["i-0def456"], True),
        ([], True),
    ],
)
def test_is_detached(instance_ids: list, expected: bool):
    """Should consider the instance detached only once it is absent."""
    fleet = MagicMock()
    fleet.list_target_instances.return_value = instance_ids
    assert _runner.is_detached(fleet, "arn", "i-0abc123") == expected


def test_is_evacuated():
    """Should consider the node evacuated only when no shards remain."""
    cluster = _utils.FakeCluster([], shard_counts=[1, 0])
    assert not _runner.is_evacuated(cluster, "es-data-3")
    assert _runner.is_evacuated(cluster, "es-data-3")
