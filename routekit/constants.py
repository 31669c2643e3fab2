# constants.py
from pathlib import Path

### Paths
PATH_DEFAULT_ROUTES = Path("./routes")
DIRNAME_STATIC = "public"

# Files
HANDLER_SUFFIX = ".py"

### Discovery
INCLUDE_GLOB = "**/*.py"
# dependency and cache directories that never hold handlers
EXCLUDE_DEPENDENCIES = [
    "node_modules/**",
    "__pycache__/**",
    ".venv/**",
    "venv/**",
    "_*.py",
]
# joins relative path parts into a handler's full name
FULL_NAME_SEPARATOR = "_"
# prefix of the per-directory package handler modules are loaded into
HANDLER_MODULE_PREFIX = "routekit_handlers"

### Routing
METHOD_ALL = "all"
ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
# module attributes checked in priority order during the convention pass
BINDING_ATTRIBUTES = (
    ("path", "get"),
    ("get", "get"),
    ("post", "post"),
    ("all", METHOD_ALL),
)

### Request
QUERY_DUMP = "dump"
DUMP_ENABLED = "true"

### Logging
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_LEVEL = "WARNING"
LOGGER_HANDLERS = "routekit.handlers"

### Environment Keys
ENV_PREFIX = "ROUTEKIT_"
ENV_PRODUCTION = "production"
ENV_DEVELOPMENT = "development"

### Web Interface
WEB_HOST = "127.0.0.1"
WEB_PORT = 2820
