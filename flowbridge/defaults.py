"""flowbridge.defaults

Centralized defaults and environment-variable helpers.

Precedence rule: args -> env var -> default.
"""

from __future__ import annotations

import os


def _env_str(name: str, default: str) -> str:
    v = os.environ.get(name)
    return v if isinstance(v, str) and v != "" else default


def _env_int(name: str, default: int) -> int:
    v = os.environ.get(name)
    if not isinstance(v, str) or v.strip() == "":
        return default
    try:
        return int(v.strip())
    except Exception:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.environ.get(name)
    if not isinstance(v, str) or v.strip() == "":
        return default
    s = v.strip().lower()
    if s in ("1", "true", "t", "yes", "y", "on"):
        return True
    if s in ("0", "false", "f", "no", "n", "off"):
        return False
    return default


# Env vars (library-level defaults; args still win via function parameters)
ENV_STRICT_MODE = "FLOWBRIDGE_STRICT_MODE"
ENV_PRESERVE_IDS = "FLOWBRIDGE_PRESERVE_IDS"
ENV_COPY_NON_MAPPED = "FLOWBRIDGE_COPY_NON_MAPPED"
ENV_SKIP_DISABLED = "FLOWBRIDGE_SKIP_DISABLED"
ENV_DEBUG = "FLOWBRIDGE_DEBUG"
ENV_MAPPING_DB = "FLOWBRIDGE_MAPPING_DB"
ENV_POSITION_STEP = "FLOWBRIDGE_POSITION_STEP"
ENV_LOG_LEVEL = "FLOWBRIDGE_LOG_LEVEL"


# Hard defaults (computed once at import)
DEFAULT_STRICT_MODE = _env_bool(ENV_STRICT_MODE, False)
DEFAULT_PRESERVE_IDS = _env_bool(ENV_PRESERVE_IDS, False)
DEFAULT_COPY_NON_MAPPED = _env_bool(ENV_COPY_NON_MAPPED, False)
DEFAULT_SKIP_DISABLED = _env_bool(ENV_SKIP_DISABLED, False)
DEFAULT_DEBUG = _env_bool(ENV_DEBUG, False)
DEFAULT_MAPPING_DB = _env_str(ENV_MAPPING_DB, "")
DEFAULT_POSITION_STEP = _env_int(ENV_POSITION_STEP, 200)
DEFAULT_LOG_LEVEL = _env_str(ENV_LOG_LEVEL, "WARNING")

DEFAULT_EVALUATE_EXPRESSIONS = False
DEFAULT_TRANSFORM_PARAMETER_VALUES = True

DEFAULT_JSON_INDENT = 2
DEFAULT_JSON_ENSURE_ASCII = False

# Neutral entity types used for placeholders.
N8N_PLACEHOLDER_TYPE = "n8n-nodes-base.noOp"
MAKE_PLACEHOLDER_TYPE = "helper:Note"

# Make references the immediate upstream bundle through module "1" when no better id is known.
MAKE_DEFAULT_JSON_REF = "1"

# Credential references on Make modules are stored as parameters with this prefix.
MAKE_CONNECTION_PREFIX = "__IMTCONN__"

DEFAULT_N8N_WORKFLOW_NAME = "Converted from Make"
DEFAULT_MAKE_WORKFLOW_NAME = "Converted from n8n"
