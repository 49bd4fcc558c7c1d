"""Environment handling for configuration values.

Two mechanisms are supported:

* ``${VAR}`` placeholders inside the YAML file are expanded from the
  environment before validation;
* ``CRISSCROSS_*`` variables override individual settings.
"""

from __future__ import annotations

import os
import re
from typing import Any, Dict, Mapping, Optional

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")

ENV_PREFIX = "CRISSCROSS_"

# setting name -> environment variable
ENV_OVERRIDES = {
    "host": ENV_PREFIX + "HOST",
    "port": ENV_PREFIX + "PORT",
    "cache_ttl": ENV_PREFIX + "CACHE_TTL",
    "request_timeout": ENV_PREFIX + "REQUEST_TIMEOUT",
    "reload_timeout": ENV_PREFIX + "RELOAD_TIMEOUT",
    "log_level": ENV_PREFIX + "LOG_LEVEL",
}


def expand_env_vars(value: Any) -> Any:
    """Recursively expand ``${VAR}`` references in string values.

    Unset variables are left as-is; dicts and lists are walked.
    """
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)
    if isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Collect non-empty ``CRISSCROSS_*`` settings.

    Values stay strings; pydantic coerces them during validation.
    """
    env = os.environ if environ is None else environ
    found: Dict[str, str] = {}
    for setting, var in ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is not None and raw.strip():
            found[setting] = raw.strip()
    return found
