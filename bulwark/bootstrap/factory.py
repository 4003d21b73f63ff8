"""
bootstrap/factory.py - Build boundaries from configuration

Module 7: Bootstrap Layer
"""

from __future__ import annotations

from typing import Any, Optional
import logging

from bulwark.boundary.controller import BoundaryController

from .config import BulwarkConfig, get_config
from .logging_setup import setup_logging

logger = logging.getLogger("bootstrap.factory")


def configure_logging(config: Optional[BulwarkConfig] = None) -> None:
    """Apply the logging section of a configuration."""
    config = config or get_config()
    setup_logging(
        level=config.logging.level,
        log_file=config.logging.log_file,
        json_format=config.logging.json_logs,
        fmt=config.logging.format,
    )


def create_boundary(
    config: Optional[BulwarkConfig] = None,
    **overrides: Any,
) -> BoundaryController:
    """
    Create a controller from configuration.

    Keyword overrides are passed straight to BoundaryController and win over
    configured values (e.g. policy=CustomRecovery(...), on_error=...).
    """
    config = config or get_config()

    kwargs = {
        "policy": config.build_policy(),
        "reporters": config.build_reporters(),
        "catch_async": config.catch_async,
        "name": config.boundary_name,
        "default_severity": config.severity,
    }
    kwargs.update(overrides)

    controller = BoundaryController(**kwargs)
    logger.debug(f"Created boundary {controller.name!r} ({config.environment})")
    return controller
