#: Fixed wait policy for both asynchronous wait stages. Five seconds between
#: checks and at most sixty checks gives operators a five minute ceiling for
#: connection draining and again for shard evacuation.
POLL_INTERVAL = 5
MAX_ATTEMPTS = 60

#: Cluster setting holding the comma-separated list of node names that shards
#: may not be allocated onto.
EXCLUDE_SETTING_KEY = "cluster.routing.allocation.exclude._name"

#: Instance states that still identify a live node. Terminated instances keep
#: their private DNS name for a while and must never be resolved.
LIVE_INSTANCE_STATES = ("pending", "running", "stopping", "stopped")

DEFAULT_CONFIG_PATH = "~/.search-node-remover.yaml"
