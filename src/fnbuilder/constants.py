import re

# --- Log and Debug ---
# Short aliases for module names to keep CLI/env concise
LOG_ALIAS_MAP = {
    "ctx": "fnbuilder.builder.context",
    "context": "fnbuilder.builder.context",
    "tar": "fnbuilder.builder.archive",
    "archive": "fnbuilder.builder.archive",
    "client": "fnbuilder.builder.client",
    "cli": "fnbuilder.cli",
    "stream": "fnbuilder.builder.stream",
    "sig": "fnbuilder.builder.signature",
    "io": "fnbuilder.io",
    "fs": "fnbuilder.io.fs",
    "path": "fnbuilder.io.path",
    "conf": "fnbuilder.config",
}

# Top-level modules within fnbuilder for auto-prefixing
KNOWN_TOP_MODULES = {
    "builder",
    "io",
    "datacls",
    "utils",
    "exceptions",
    "config",
    "cli",
}

# Names selecting every fnbuilder logger
LOG_ROOT_ALIASES = {"*", "all", "fnb", "fnbuilder"}

# HTTP libraries logging each request at INFO, kept at WARNING unless debugging
CHATTY_LIBRARY_LOGGERS = ("httpx", "httpcore")

LOG_LEVELS_ENV = "FNB_LOG_LEVELS"


# --- Build Context ---
DEFAULT_BUILD_DIR = "./build"
DEFAULT_TEMPLATE_DIR = "./template"
DEFAULT_TEMPLATE_HANDLER = "function"

# language that builds the handler's own Dockerfile, no template involved
DOCKERFILE_LANGUAGE = "dockerfile"

# handler entries that never belong in a build context
SKIPPED_HANDLER_ENTRIES = frozenset({"build", "template"})

DEFAULT_DIR_PERMISSIONS = 0o700
CI_DIR_PERMISSIONS = 0o777

CI_ENV = "CI"
CI_TRUTHY_VALUES = frozenset({"true", "1"})


# --- Archive ---
CONTEXT_ARCHIVE_PREFIX = "context"
BUILDER_CONFIG_FILE_NAME = "com.openfaas.docker.config"
BUILDER_CONFIG_FILE_MODE = 0o664


# --- Builder API ---
BUILD_ENDPOINT = "build"
SIGNATURE_HEADER = "X-Build-Signature"
SIGNATURE_ALGORITHM = "sha256"
OCTET_STREAM = "application/octet-stream"
NDJSON = "application/x-ndjson"
ACCEPTED_STATUS_CODES = frozenset({200, 202})
DEFAULT_BUILDER_TIMEOUT = 120.0
DEFAULT_USER_AGENT = "fnbuilder-sdk"
# bytes of an error body kept on UnexpectedStatusError
BODY_SNIPPET_LIMIT = 4096

# statuses after which the builder sends nothing more for a build
TERMINAL_STATUSES = frozenset({"success", "failed", "error"})


# --- Project File ---
DEFAULT_CONFIG_FILE = "fnbuilder.yml"
FUNCTION_NAME_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
