"""
bootstrap/ - Configuration, logging and construction helpers
"""

from .config import (
    RecoveryConfig,
    ReportingConfig,
    LoggingConfig,
    BulwarkConfig,
    load_config,
    get_config,
    reset_config,
)

from .logging_setup import (
    JSONFormatter,
    setup_logging,
)

from .factory import (
    configure_logging,
    create_boundary,
)

__all__ = [
    # Config
    "RecoveryConfig",
    "ReportingConfig",
    "LoggingConfig",
    "BulwarkConfig",
    "load_config",
    "get_config",
    "reset_config",
    # Logging
    "JSONFormatter",
    "setup_logging",
    # Factory
    "configure_logging",
    "create_boundary",
]
