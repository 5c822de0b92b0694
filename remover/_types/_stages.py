import dataclasses
import datetime
import enum
import typing


class Stage(enum.Enum):
    """Ordered states of a node removal run."""

    VALIDATING = "validating"
    RESOLVING_INSTANCE = "resolving_instance"
    RESOLVING_TARGET_GROUP = "resolving_target_group"
    DETACHING_FROM_LOAD_BALANCING = "detaching_from_load_balancing"
    AWAITING_CONNECTION_DRAIN = "awaiting_connection_drain"
    EXCLUDING_FROM_SHARD_ALLOCATION = "excluding_from_shard_allocation"
    AWAITING_SHARD_EVACUATION = "awaiting_shard_evacuation"
    SHUTTING_DOWN_NODE = "shutting_down_node"
    DETACHING_FROM_FLEET = "detaching_from_fleet"
    DONE = "done"
    FAILED = "failed"


#: Stages in the only order they are allowed to run.
STAGE_ORDER: typing.Tuple[Stage, ...] = (
    Stage.VALIDATING,
    Stage.RESOLVING_INSTANCE,
    Stage.RESOLVING_TARGET_GROUP,
    Stage.DETACHING_FROM_LOAD_BALANCING,
    Stage.AWAITING_CONNECTION_DRAIN,
    Stage.EXCLUDING_FROM_SHARD_ALLOCATION,
    Stage.AWAITING_SHARD_EVACUATION,
    Stage.SHUTTING_DOWN_NODE,
    Stage.DETACHING_FROM_FLEET,
    Stage.DONE,
)


@dataclasses.dataclass(frozen=True)
class Shard:
    """Data structure for a shard row reported by the search cluster."""

    index: str
    shard: str
    primary: bool
    state: str
    #: Node column as reported by the cluster. Relocating shards are reported
    #: as "source -> target" and still reside on the source node.
    node: typing.Optional[str]

    def resides_on(self, node_name: str) -> bool:
        """Whether this shard currently has data on the named node."""
        if not self.node:
            return False
        return self.node == node_name or self.node.startswith(f"{node_name} ")

    @classmethod
    def from_row(cls, row: typing.Dict[str, typing.Any]) -> "Shard":
        """Create a Shard from a JSON ``_cat/shards`` row."""
        return cls(
            index=row.get("index") or "",
            shard=str(row.get("shard") or ""),
            primary=row.get("prirep") == "p",
            state=row.get("state") or "",
            node=row.get("node"),
        )


@dataclasses.dataclass()
class Status:
    """Data structure tracking the progress of a single removal run."""

    node_name: typing.Optional[str] = None
    stage: Stage = Stage.VALIDATING
    #: Stages that have completed successfully, in the order they completed.
    history: typing.List[Stage] = dataclasses.field(default_factory=lambda: [])
    instance_id: typing.Optional[str] = None
    target_group_arn: typing.Optional[str] = None
    #: Number of checks each wait stage needed before its condition held.
    attempts: typing.Dict[Stage, int] = dataclasses.field(default_factory=lambda: {})
    error: typing.Optional[BaseException] = None
    started_at: datetime.datetime = dataclasses.field(
        default_factory=lambda: datetime.datetime.utcnow()
    )

    @property
    def succeeded(self) -> bool:
        """Whether the run reached the final stage."""
        return self.stage == Stage.DONE

    @property
    def seconds_elapsed(self) -> float:
        """Compute number of seconds since the run started."""
        return (datetime.datetime.utcnow() - self.started_at).total_seconds()

    def to_dict(self) -> typing.Dict[str, typing.Any]:
        """Convert to a dictionary representation that is JSON serializable for logs."""
        return {
            "node_name": self.node_name,
            "stage": self.stage.value,
            "history": [s.value for s in self.history],
            "instance_id": self.instance_id,
            "target_group_arn": self.target_group_arn,
            "attempts": {s.value: count for s, count in self.attempts.items()},
            "error": f"{type(self.error).__name__}: {self.error}"
            if self.error
            else None,
            "seconds_elapsed": round(self.seconds_elapsed, 1),
        }
