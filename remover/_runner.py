import pathlib
import sys
import threading
import time
import typing

from remover import _controller
from remover import _poller
from remover import _types

Stage = _types.Stage

#: Operator inputs that must be supplied before anything remote is touched,
#: paired with the command line flag that supplies them.
REQUIRED_INPUTS = (
    ("cluster_url", "--cluster-url", "Search cluster URL"),
    ("group", "--group", "Auto scaling group"),
    ("node_name", "--node-name", "Search cluster node name"),
)


def is_detached(
    fleet: "_types.FleetController",
    target_group_arn: str,
    instance_id: str,
) -> bool:
    """Whether the instance no longer appears in the target group membership."""
    return instance_id not in fleet.list_target_instances(target_group_arn)


def is_evacuated(cluster: "_types.ClusterController", node_name: str) -> bool:
    """Whether no shard data remains on the node."""
    return len(cluster.list_shards(node_name)) == 0


class Remover:
    """
    Removes a single node from the search cluster and its compute fleet.

    Stages run strictly in order and each one must succeed before the next
    begins. The node is never shut down while its instance still receives
    traffic or while shard data still resides on it, because both conditions
    are polled until they hold. Any failure halts the run where it is and
    nothing already done is undone, leaving operators to inspect the fleet
    and cluster before re-running.
    """

    def __init__(
        self,
        configs: "_types.RemovalConfigs",
        fleet: "_types.FleetController" = None,
        cluster: "_types.ClusterController" = None,
        sleep: typing.Callable[[float], typing.Any] = None,
        cancel: threading.Event = None,
        progress: typing.Callable[
            ["_types.Stage", int, bool], None
        ] = _poller.show_progress,
    ):
        """
        :param configs:
            Configuration for this removal run.
        :param fleet:
            Fleet control plane access. Defaults to AWS once inputs are valid.
        :param cluster:
            Search cluster access. Defaults to Elasticsearch at the configured
            cluster URL once inputs are valid.
        :param sleep:
            Sleep function used between wait stage attempts. Defaults to
            waiting on the cancel event when one is given so that cancellation
            interrupts a sleep immediately.
        :param cancel:
            Optional event that aborts the run once set.
        :param progress:
            Per-attempt progress callback for the wait stages.
        """
        self.configs = configs
        self.fleet = fleet
        self.cluster = cluster
        self.cancel = cancel
        self.sleep = sleep or (cancel.wait if cancel is not None else time.sleep)
        self.progress = progress
        self.status = _types.Status(node_name=configs.node_name)

    def _steps(self) -> typing.List[typing.Tuple[Stage, typing.Callable]]:
        return [
            (Stage.VALIDATING, self._validate),
            (Stage.RESOLVING_INSTANCE, self._resolve_instance),
            (Stage.RESOLVING_TARGET_GROUP, self._resolve_target_group),
            (Stage.DETACHING_FROM_LOAD_BALANCING, self._detach_from_load_balancing),
            (Stage.AWAITING_CONNECTION_DRAIN, self._await_connection_drain),
            (Stage.EXCLUDING_FROM_SHARD_ALLOCATION, self._exclude_from_allocation),
            (Stage.AWAITING_SHARD_EVACUATION, self._await_shard_evacuation),
            (Stage.SHUTTING_DOWN_NODE, self._shut_down_node),
            (Stage.DETACHING_FROM_FLEET, self._detach_from_fleet),
        ]

    def _call(self, stage: Stage, action: str, func: typing.Callable, *args):
        """
        Invoke a stage action and attribute any failure to the stage.

        Errors that are already removal errors keep their type. Anything else
        raised by a collaborator becomes a RemoteCallError chained to it.
        """
        try:
            return func(*args)
        except _types.RemovalError as error:
            if error.stage is None:
                error.stage = stage
            raise
        except Exception as error:
            raise _types.RemoteCallError(
                f"Failed to {action}: {error}", stage=stage
            ) from error

    def _wait(
        self,
        stage: Stage,
        action: str,
        predicate: typing.Callable[[], bool],
        timeout_error: typing.Type["_types.PollTimeoutError"],
    ):
        try:
            attempts = self._call(
                stage,
                action,
                lambda: _poller.poll(
                    stage,
                    predicate,
                    interval=self.configs.poll_interval,
                    max_attempts=self.configs.max_attempts,
                    sleep=self.sleep,
                    progress=self.progress,
                    cancel=self.cancel,
                    timeout_error=timeout_error,
                ),
            )
        finally:
            # End the line of progress markers.
            print("", flush=True)
        self.status.attempts[stage] = attempts

    def _check_cancelled(self, stage: Stage):
        if self.cancel is not None and self.cancel.is_set():
            raise _types.CancelledError("Cancelled by operator.", stage=stage)

    def _validate(self, stage: Stage):
        for attribute, flag, label in REQUIRED_INPUTS:
            if not getattr(self.configs, attribute):
                raise _types.ConfigurationError(
                    f"{label} ({flag}) must be specified",
                    input_name=attribute,
                    stage=stage,
                )

        if self.configs.poll_interval <= 0:
            raise _types.ConfigurationError(
                "Poll interval must be positive", "poll_interval", stage
            )
        if self.configs.max_attempts < 0:
            raise _types.ConfigurationError(
                "Max attempts must not be negative", "max_attempts", stage
            )

        if self.fleet is None:
            self.fleet = _controller.AwsFleetController(
                self.configs.session,
                decrement_desired_capacity=self.configs.decrement_desired_capacity,
                terminate_instance=self.configs.terminate_instance,
            )
        if self.cluster is None:
            try:
                self.cluster = _controller.ElasticsearchClusterController.from_url(
                    self.configs.cluster_url
                )
            except ValueError as error:
                raise _types.ConfigurationError(
                    f"Invalid search cluster URL: {error}", "cluster_url", stage
                ) from error

    def _resolve_instance(self, stage: Stage):
        self.status.instance_id = self._call(
            stage,
            "retrieve instance ID",
            self.fleet.get_instance_id,
            self.configs.node_name,
        )

    def _resolve_target_group(self, stage: Stage):
        self.status.target_group_arn = self._call(
            stage,
            "retrieve target group",
            self.fleet.get_target_group_arn,
            self.configs.group,
        )

    def _detach_from_load_balancing(self, stage: Stage):
        self._call(
            stage,
            "detach instance from target group",
            self.fleet.deregister_instance,
            self.status.target_group_arn,
            self.status.instance_id,
        )

    def _await_connection_drain(self, stage: Stage):
        self._wait(
            stage,
            "list instances attached to target group",
            lambda: is_detached(
                self.fleet, self.status.target_group_arn, self.status.instance_id
            ),
            _types.DrainTimeoutError,
        )

    def _exclude_from_allocation(self, stage: Stage):
        changed = self._call(
            stage,
            "exclude node from shard allocation",
            self.cluster.exclude_node,
            self.configs.node_name,
        )
        if not changed:
            self.configs.log(
                "already_excluded",
                {"node_name": self.configs.node_name, "stage": stage.value},
            )

    def _await_shard_evacuation(self, stage: Stage):
        self._wait(
            stage,
            "list shards on the node",
            lambda: is_evacuated(self.cluster, self.configs.node_name),
            _types.EvacuationTimeoutError,
        )

    def _shut_down_node(self, stage: Stage):
        self._call(
            stage,
            "shut down node",
            self.cluster.shutdown_node,
            self.configs.node_name,
        )

    def _detach_from_fleet(self, stage: Stage):
        self._call(
            stage,
            "detach instance from auto scaling group",
            self.fleet.detach_instance,
            self.configs.group,
            self.status.instance_id,
        )

    def run(self) -> "_types.Status":
        """
        Carry out every removal stage in order.

        :return:
            The final status of the run, which will be in the done stage.
        :raises RemovalError:
            The error from the failing stage. The status is left in the
            failed stage with the error recorded on it.
        """
        try:
            for stage, step in self._steps():
                self._check_cancelled(stage)
                self.status.stage = stage
                self.configs.log(
                    "stage", {"node_name": self.configs.node_name, "stage": stage.value}
                )
                step(stage)
                self.status.history.append(stage)
        except _types.RemovalError as error:
            self.status.error = error
            self.status.stage = Stage.FAILED
            self.configs.log("failed", self.status.to_dict())
            raise

        self.status.stage = Stage.DONE
        self.status.history.append(Stage.DONE)
        self.configs.log("finished", self.status.to_dict())
        return self.status


def main(
    args: typing.Dict[str, typing.Any],
    config_path_override: typing.Union[str, pathlib.Path] = None,
    cancel: threading.Event = None,
) -> int:
    """
    Remove the node identified by the arguments and report the outcome.

    :param args:
        Arguments parsed from the command line. These arguments will take precedence
        over arguments specified by other means during execution.
    :param config_path_override:
        An override for the config path that is only used during non-normal execution
        calls. Most commonly this will be for testing purposes.
    :param cancel:
        Optional event that aborts the removal once set, usually by a signal
        handler.
    :return:
        Process exit status, which is zero only when the removal finished.
    """
    try:
        configs = _types.RemovalConfigs().load(args, config_path_override)
        configs.log("starting", configs.to_dict())
        Remover(configs, cancel=cancel).run()
    except _types.CancelledError as error:
        print(f"{type(error).__name__}: {error}", file=sys.stderr)
        return 130
    except _types.RemovalError as error:
        print(f"{type(error).__name__}: {error}", file=sys.stderr)
        return 1

    return 0
