import typing

import elasticsearch

from remover import _configs
from remover import _types

_SHARD_COLUMNS = "index,shard,prirep,state,node"


def _split_names(value: typing.Optional[str]) -> typing.List[str]:
    """Split a comma-separated settings value into its non-empty names."""
    return [n.strip() for n in (value or "").split(",") if n.strip()]


class ElasticsearchClusterController:
    """Search cluster access through the Elasticsearch REST API."""

    def __init__(self, client: elasticsearch.Elasticsearch):
        self.client = client

    @classmethod
    def from_url(cls, cluster_url: str) -> "ElasticsearchClusterController":
        """Create a controller connected to the cluster at the given URL."""
        return cls(elasticsearch.Elasticsearch(cluster_url))

    def exclude_node(self, node_name: str) -> bool:
        """
        Add the node to the cluster's shard allocation exclusion list.

        Names already excluded by other operations are preserved. If the node
        is already excluded nothing is written, so repeated calls are safe.
        Transient settings take precedence over persistent ones inside the
        cluster, so an existing transient exclusion list is extended in place
        rather than shadowed by a persistent one.

        :param node_name:
            Name of the node to keep shard data away from.
        :return:
            Whether the exclusion list was changed by this call.
        """
        response = self.client.cluster.get_settings(flat_settings=True)
        transient = response["transient"].get(_configs.EXCLUDE_SETTING_KEY)
        persistent = response["persistent"].get(_configs.EXCLUDE_SETTING_KEY)

        scope = "transient" if transient is not None else "persistent"
        names = _split_names(transient if transient is not None else persistent)
        if node_name in names:
            return False

        value = ",".join([*names, node_name])
        self.client.cluster.put_settings(
            **{scope: {_configs.EXCLUDE_SETTING_KEY: value}}
        )
        return True

    def list_shards(self, node_name: str) -> typing.List["_types.Shard"]:
        """List shards that still have data on the node, relocating ones included."""
        rows = self.client.cat.shards(format="json", h=_SHARD_COLUMNS)
        shards = [_types.Shard.from_row(row) for row in rows]
        return [s for s in shards if s.resides_on(node_name)]

    def get_node_id(self, node_name: str) -> str:
        """Resolve the node name into the node ID the cluster APIs address it by."""
        response = self.client.nodes.info(node_id=node_name)
        node_id = next(
            (
                node_id
                for node_id, info in (response["nodes"] or {}).items()
                if info.get("name") == node_name
            ),
            None,
        )
        if node_id is None:
            raise _types.ResolutionError(f"Node '{node_name}' not found in cluster.")
        return node_id

    def shutdown_node(self, node_name: str):
        """
        Register the node for a clean removal shutdown.

        This only records the pending shutdown so the cluster prepares for the
        node leaving. The process itself is stopped when its instance is
        terminated through the auto scaling group afterwards.
        """
        self.client.shutdown.put_node(
            node_id=self.get_node_id(node_name),
            type="remove",
            reason=f"Removing {node_name} from the cluster.",
        )
