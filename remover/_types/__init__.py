from remover._types._configs import RemovalConfigs  # noqa: F401
from remover._types._errors import CancelledError  # noqa: F401
from remover._types._errors import ConfigurationError  # noqa: F401
from remover._types._errors import DrainTimeoutError  # noqa: F401
from remover._types._errors import EvacuationTimeoutError  # noqa: F401
from remover._types._errors import PollTimeoutError  # noqa: F401
from remover._types._errors import RemoteCallError  # noqa: F401
from remover._types._errors import RemovalError  # noqa: F401
from remover._types._errors import ResolutionError  # noqa: F401
from remover._types._interfaces import ClusterController  # noqa: F401
from remover._types._interfaces import FleetController  # noqa: F401
from remover._types._stages import STAGE_ORDER  # noqa: F401
from remover._types._stages import Shard  # noqa: F401
from remover._types._stages import Stage  # noqa: F401
from remover._types._stages import Status  # noqa: F401
