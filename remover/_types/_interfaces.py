import typing

from remover._types import _stages


class FleetController(typing.Protocol):
    """Operations the removal run needs from the compute fleet control plane."""

    def get_instance_id(self, node_name: str) -> str:
        """Resolve a node name into its instance identifier."""

    def get_target_group_arn(self, group: str) -> str:
        """Resolve an auto scaling group name into its target group reference."""

    def deregister_instance(self, target_group_arn: str, instance_id: str):
        """Request that the instance stop receiving traffic from the target group."""

    def list_target_instances(self, target_group_arn: str) -> typing.List[str]:
        """List instance identifiers currently members of the target group."""

    def detach_instance(self, group: str, instance_id: str):
        """Detach the instance from the named auto scaling group."""


class ClusterController(typing.Protocol):
    """Operations the removal run needs from the search cluster."""

    def exclude_node(self, node_name: str) -> bool:
        """Add the node to the shard allocation exclusion list."""

    def list_shards(self, node_name: str) -> typing.List["_stages.Shard"]:
        """List shards that currently reside on the node."""

    def shutdown_node(self, node_name: str):
        """Request a clean shutdown of the node."""
