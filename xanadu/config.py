"""Central configuration -- all settings driven by environment variables.

Scripts call load_dotenv() before importing this module, so values can also
come from a local .env file.
"""

import os

# ---------------------------------------------------------------------------
# Traversal bounds
# ---------------------------------------------------------------------------
# MAX_DEPTH caps how many reference hops from a seed a node may sit at.
# MAX_NODES caps total graph size; once reached new nodes are dropped.

MAX_DEPTH = int(os.environ.get("XANADU_MAX_DEPTH", "5"))
MAX_NODES = int(os.environ.get("XANADU_MAX_NODES", "1000"))

# ---------------------------------------------------------------------------
# Batching
# ---------------------------------------------------------------------------
# BATCH_SIZE trades discovery latency against responsiveness of the host.
# MISSING_BATCH_SIZE bounds how many dangling ids are retried per cycle.
# BATCH_DELAY is the pause (seconds) before the next batch is scheduled.

BATCH_SIZE = int(os.environ.get("XANADU_BATCH_SIZE", "10"))
MISSING_BATCH_SIZE = int(os.environ.get("XANADU_MISSING_BATCH_SIZE", "20"))
BATCH_DELAY = float(os.environ.get("XANADU_BATCH_DELAY", "0.1"))

# ---------------------------------------------------------------------------
# Relays
# ---------------------------------------------------------------------------
# Comma-separated HTTP relay gateway base URLs.

RELAY_URLS = [
    url.strip()
    for url in os.environ.get("XANADU_RELAY_URLS", "http://localhost:8080").split(",")
    if url.strip()
]
RELAY_TIMEOUT = float(os.environ.get("XANADU_RELAY_TIMEOUT", "10.0"))
RELAY_MAX_RETRIES = int(os.environ.get("XANADU_RELAY_MAX_RETRIES", "3"))
