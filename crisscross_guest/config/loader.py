"""Configuration file loading and validation.

Loads an optional YAML configuration file, expands ``${ENV_VAR}``
placeholders, applies ``CRISSCROSS_*`` overrides and validates the result
against :class:`~crisscross_guest.config.schema.GuestConfig`.
"""

import logging
import os
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import ValidationError

from crisscross_guest.config.env import env_overrides, expand_env_vars
from crisscross_guest.config.schema import GuestConfig
from crisscross_guest.errors import ConfigurationError

logger = logging.getLogger(__name__)

_YAML_EXTS = frozenset({".yaml", ".yml"})


def _read_config_file(cfg_fpath: str) -> Dict[str, Any]:
    """Read and parse a YAML config file from *cfg_fpath*.

    An empty file is treated as an empty mapping.  Raises
    :class:`ConfigurationError` on I/O or parse errors.
    """
    ext = os.path.splitext(cfg_fpath)[1].lower()
    if ext not in _YAML_EXTS:
        raise ConfigurationError(
            f"Unsupported config file extension '{ext}'. "
            "Only YAML files (.yaml, .yml) are supported."
        )

    try:
        with open(cfg_fpath, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f)
    except Exception as exc:
        raise ConfigurationError(f"Error reading configuration file: {cfg_fpath}\n  {exc}") from exc

    if raw_data is None:
        return {}
    if not isinstance(raw_data, dict):
        raise ConfigurationError(
            "Top-level configuration content must be a YAML mapping (dictionary)."
        )
    return raw_data


def _format_validation_errors(exc: ValidationError) -> str:
    """Format Pydantic validation errors into a readable multi-line string."""
    lines: List[str] = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"]) or "<root>"
        lines.append(f"  • {loc}: {err['msg']}")
    return "\n".join(lines)


def validate_config(raw_data: Mapping[str, Any]) -> GuestConfig:
    """Validate *raw_data*, collecting every error into one exception."""
    try:
        return GuestConfig.model_validate(dict(raw_data))
    except ValidationError as exc:
        error_summary = _format_validation_errors(exc)
        raise ConfigurationError(
            f"Configuration validation failed ({len(exc.errors())} error(s)):\n" f"{error_summary}"
        ) from exc


# ── Public API ───────────────────────────────────────────────────────────


def load_config(
    cfg_fpath: Optional[str] = None,
    *,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> GuestConfig:
    """Load the guest configuration.

    Precedence (lowest first): defaults, YAML file, ``CRISSCROSS_*``
    environment variables, explicit *overrides* (CLI flags).  ``None``
    values in *overrides* are ignored.

    Raises:
        ConfigurationError: On missing files, parse errors or validation
            failures (all errors reported at once).
    """
    raw_data: Dict[str, Any] = {}
    if cfg_fpath:
        logger.debug("Loading configuration file: %s", cfg_fpath)
        if not os.path.exists(cfg_fpath):
            raise ConfigurationError(f"Configuration file does not exist: {cfg_fpath}")
        raw_data = expand_env_vars(_read_config_file(cfg_fpath))

    raw_data.update(env_overrides(environ))
    if overrides:
        raw_data.update({k: v for k, v in overrides.items() if v is not None})

    config = validate_config(raw_data)
    logger.info(
        "Configuration loaded%s: host=%s port=%d ttl=%.1fs",
        f" from '{cfg_fpath}'" if cfg_fpath else "",
        config.host,
        config.port,
        config.cache_ttl,
    )
    return config
