"""
membership_config -- single public entrypoint for lifecycle configuration.

Responsibility:
    Provides the way to obtain a club's lifecycle configuration at runtime
    through ``get_active_config()``.  Bridges in this package translate the
    configuration into kernel objects (status graph, engine).

Architecture position:
    Configuration -- YAML-driven, validated before use.  This package sits
    above ``membership_kernel``.  The kernel MUST NEVER import from
    ``membership_config``.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set with the requested name.
    - ``ValueError`` -- validation failures, listing every error.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``MEMBERSHIP_CONFIG_TRACE`` log entry with the set name, version and
    checksum, tying lifecycle changes to the configuration that governed
    them.
"""

from __future__ import annotations

import logging
from pathlib import Path

from membership_config.loader import load_config_file
from membership_config.schema import LifecycleConfig, NamedTransitionDef
from membership_config.validator import ConfigValidationResult, validate_configuration

_logger = logging.getLogger("membership_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

__all__ = [
    "ConfigValidationResult",
    "LifecycleConfig",
    "NamedTransitionDef",
    "available_configs",
    "get_active_config",
    "validate_configuration",
]


def available_configs(config_dir: Path | None = None) -> list[str]:
    """Names of the configuration sets in ``config_dir``."""
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    return sorted(p.stem for p in sets_dir.glob("*.yaml"))


def get_active_config(
    name: str = "default",
    config_dir: Path | None = None,
) -> LifecycleConfig:
    """Load and validate the configuration set ``name``.

    Raises:
        FileNotFoundError: If no such configuration set exists.
        ValueError: If configuration validation fails.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    path = sets_dir / f"{name}.yaml"
    if not path.is_file():
        raise FileNotFoundError(
            f"Configuration set '{name}' not found in {sets_dir} "
            f"(available: {available_configs(sets_dir)})"
        )

    config = load_config_file(path)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"detail": warning})

    _logger.info(
        "MEMBERSHIP_CONFIG_TRACE",
        extra={
            "trace_type": "MEMBERSHIP_CONFIG_TRACE",
            "config_name": config.name,
            "config_version": config.version,
            "checksum": config.checksum,
            "status_graph": config.status_graph or "explicit",
        },
    )
    return config
