"""
Shared constants for the gameinfo API and battleboard storage.
"""

# Gameinfo API base URLs per server region
GAMEINFO_BASE_URLS = {
    "americas": "https://gameinfo.albiononline.com/api/gameinfo",
    "asia": "https://gameinfo-sgp.albiononline.com/api/gameinfo",
    "europe": "https://gameinfo-ams.albiononline.com/api/gameinfo",
}

USER_AGENT = "albion-battleboards/1.0"

# Queue item lifecycle
STATUS_QUEUED = "queued"
STATUS_PROCESSING = "processing"
STATUS_PROCESSED = "processed"
STATUS_FAILED = "failed"

QUEUE_STATUSES = (STATUS_QUEUED, STATUS_PROCESSING, STATUS_PROCESSED, STATUS_FAILED)

# Statuses the enqueue pass hands to the worker
ELIGIBLE_STATUSES = (STATUS_QUEUED, STATUS_FAILED)

# Where a queue row came from; only discovered rows set the discovery boundary
SOURCE_DISCOVERY = "discovery"
SOURCE_MANUAL = "manual"

QUEUE_SOURCES = (SOURCE_DISCOVERY, SOURCE_MANUAL)
