import dataclasses
import datetime
import json
import os
import pathlib
import typing

import boto3
import botocore.exceptions
import yaml

from remover import _configs
from remover._types import _errors
from remover._types import _stages


def _or(*args: typing.Any, default: typing.Any = None) -> typing.Any:
    """
    Find the first non-None element in the args.

    If none of the values are not None, the default value will be returned instead.
    """
    return next((x for x in args if x is not None), default)


def _or_truthy(*args: typing.Any, default: typing.Any = None) -> typing.Any:
    """
    Find the first truthy element in the args.

    If none of the values are truthy, the default value will be returned instead.
    """
    return next((x for x in args if x), default)


def _to_number(
    name: str,
    value: typing.Any,
    cast: typing.Callable[[typing.Any], typing.Any],
) -> typing.Any:
    """Convert a configured value into a number, naming the input when invalid."""
    try:
        return cast(value)
    except (TypeError, ValueError) as error:
        raise _errors.ConfigurationError(
            f'Invalid {name} value of "{value}".',
            input_name=name,
            stage=_stages.Stage.VALIDATING,
        ) from error


def _load_configs(
    args: typing.Dict[str, typing.Any],
    config_path: typing.Union[str, pathlib.Path] = None,
) -> typing.Dict[str, typing.Any]:
    """
    Load configuration data from the config path.

    Config path lookup is prioritized in the following way:
    - config_path argument specified in this function signature.
    - `--config-path` command line argument.
    - CONFIG_PATH environmental variable.
    - Default value of "~/.search-node-remover.yaml"

    If the config file fails to load because the file is not found, a blank
    configuration will be used instead.
    """
    p = pathlib.Path(
        config_path
        or args.get("config_path")
        or os.environ.get("CONFIG_PATH")
        or _configs.DEFAULT_CONFIG_PATH
    ).expanduser()
    try:
        return yaml.safe_load(p.resolve().read_text()) or {}
    except FileNotFoundError:
        return {}


@dataclasses.dataclass()
class RemovalConfigs:
    """Configuration data structure for a node removal run."""

    #: URL of the search cluster the node belongs to.
    cluster_url: typing.Optional[str] = None
    #: Name of the auto scaling group that owns the node's instance.
    group: typing.Optional[str] = None
    #: Private DNS name of the node, which is also its name in the cluster.
    node_name: typing.Optional[str] = None
    #: AWS region override. When unset, boto3's ambient configuration applies.
    region: typing.Optional[str] = None
    aws_profile: typing.Optional[str] = None
    pretty_print: bool = False
    poll_interval: float = _configs.POLL_INTERVAL
    max_attempts: int = _configs.MAX_ATTEMPTS
    #: Whether the auto scaling group should shrink by one when the instance
    #: is detached instead of launching a replacement for it.
    decrement_desired_capacity: bool = True
    #: Whether the instance is terminated through the auto scaling group,
    #: stopping the node for good, instead of only being detached from it.
    terminate_instance: bool = True
    session: boto3.Session = dataclasses.field(
        hash=False, repr=False, default_factory=lambda: boto3.Session()
    )
    last_loaded_at: datetime.datetime = dataclasses.field(
        default_factory=lambda: datetime.datetime.utcnow()
    )

    def load(
        self,
        args: typing.Dict[str, typing.Any],
        config_path: typing.Union[str, pathlib.Path] = None,
    ) -> "RemovalConfigs":
        """
        Populate removal config with data from arguments, environment and a file.

        Values given on the command line take precedence over environment
        variables, which take precedence over the config file. Config path
        lookup is prioritized in the following way:
        - config_path argument specified in this function signature.
        - `--config-path` command line argument.
        - CONFIG_PATH environmental variable.
        - Default value of "~/.search-node-remover.yaml"

        Values that cannot be used at all, like a non-numeric poll interval or
        an unknown AWS profile, raise a ConfigurationError. Missing required
        values are not rejected here. They are reported by the
        validation stage of the removal run so that nothing remote is touched.
        """
        self.last_loaded_at = datetime.datetime.utcnow()
        raw = _load_configs(args, config_path)

        self.cluster_url = _or_truthy(
            args.get("cluster_url"),
            os.environ.get("ES_CLUSTER_URL"),
            raw.get("cluster_url"),
        )
        self.group = _or_truthy(
            args.get("group"),
            os.environ.get("AUTO_SCALING_GROUP"),
            raw.get("group"),
        )
        self.node_name = _or_truthy(args.get("node_name"), raw.get("node_name"))
        self.region = _or_truthy(
            args.get("region"),
            os.environ.get("AWS_REGION"),
            raw.get("region"),
        )
        self.aws_profile = _or_truthy(
            args.get("aws_profile"), raw.get("aws_profile"), self.aws_profile
        )
        self.pretty_print = _or_truthy(
            self.pretty_print, args.get("pretty_print"), raw.get("pretty_print"), False
        )
        self.poll_interval = _to_number(
            "poll_interval",
            _or(raw.get("poll_interval"), _configs.POLL_INTERVAL),
            float,
        )
        self.max_attempts = _to_number(
            "max_attempts", _or(raw.get("max_attempts"), _configs.MAX_ATTEMPTS), int
        )
        self.decrement_desired_capacity = bool(
            _or(raw.get("decrement_desired_capacity"), True)
        )
        self.terminate_instance = bool(_or(raw.get("terminate_instance"), True))

        try:
            self.session = boto3.Session(
                profile_name=self.aws_profile,
                region_name=self.region,
            )
        except botocore.exceptions.ProfileNotFound as error:
            raise _errors.ConfigurationError(
                f'AWS profile "{self.aws_profile}" was not found.',
                input_name="aws_profile",
                stage=_stages.Stage.VALIDATING,
            ) from error
        return self

    def log(self, message: str, data: dict):
        """Log the message and data for structured output."""
        print(
            json.dumps(
                {"message": message, "data": data},
                indent=2 if self.pretty_print else None,
            ),
            flush=True,
        )

    def to_dict(self) -> typing.Dict[str, typing.Any]:
        """Convert to a dictionary representation that is JSON serializable for logs."""
        return {
            "cluster_url": self.cluster_url,
            "group": self.group,
            "node_name": self.node_name,
            "region": self.region,
            "aws_profile": self.aws_profile,
            "poll_interval": self.poll_interval,
            "max_attempts": self.max_attempts,
            "decrement_desired_capacity": self.decrement_desired_capacity,
            "terminate_instance": self.terminate_instance,
            "last_loaded_at": str(self.last_loaded_at),
        }
