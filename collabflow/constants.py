# --- Routing ---

# Routing nodes resolved back-to-back before the walk is considered a loop
MAX_ROUTING_HOPS = 10


# --- Task Graph ---

TASK_ID_PREFIX = "item-"
BATCH_ID_PREFIX = "batch-"
NO_TASKS_DIAGRAM_LABEL = "No tasks defined"


# --- Server ---

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
DEFAULT_MCP_PORT = 3000
SESSION_LIST_LIMIT = 100
EVENT_QUEUE_SIZE = 256
