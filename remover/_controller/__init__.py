from remover._controller._cluster import ElasticsearchClusterController  # noqa: F401
from remover._controller._fleet import AwsFleetController  # noqa: F401
