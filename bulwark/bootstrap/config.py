"""
bootstrap/config.py - Boundary configuration

Module 7: Bootstrap Layer

Provides configuration loading from files, environment variables, and defaults,
and builds recovery policies and reporters from it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import json
import logging
import os

from bulwark.core.enums import ErrorSeverity
from bulwark.core.exceptions import ConfigError
from bulwark.recovery.policies import (
    NoRecovery,
    RecoveryPolicy,
    ResetRecovery,
    RetryRecovery,
)
from bulwark.reporters.base import Reporter
from bulwark.reporters.console import LoggingReporter
from bulwark.reporters.http import HttpReporter

logger = logging.getLogger("bootstrap.config")

POLICY_NONE = "none"
POLICY_RETRY = "retry"
POLICY_RESET = "reset"

# Custom recovery needs a callable and cannot come from configuration
CONFIGURABLE_POLICIES = (POLICY_NONE, POLICY_RETRY, POLICY_RESET)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _parse_severity(value: str) -> ErrorSeverity:
    try:
        return ErrorSeverity(value.lower())
    except ValueError as e:
        raise ConfigError(f"Unknown severity: {value!r}") from e


@dataclass
class RecoveryConfig:
    """Recovery policy configuration."""

    policy: str = POLICY_NONE
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    use_backoff: bool = True

    @classmethod
    def from_env(cls) -> "RecoveryConfig":
        return cls(
            policy=os.getenv("BULWARK_RECOVERY_POLICY", POLICY_NONE).lower(),
            max_attempts=int(os.getenv("BULWARK_RECOVERY_MAX_ATTEMPTS", "3")),
            base_delay_seconds=float(os.getenv("BULWARK_RECOVERY_DELAY", "1.0")),
            use_backoff=_env_bool("BULWARK_RECOVERY_BACKOFF", "true"),
        )

    def build_policy(self) -> RecoveryPolicy:
        """Create the configured recovery policy."""
        policy = self.policy.lower()
        if policy == POLICY_NONE:
            return NoRecovery()
        if policy == POLICY_RETRY:
            return RetryRecovery(
                max_attempts=self.max_attempts,
                base_delay=self.base_delay_seconds,
                use_backoff=self.use_backoff,
            )
        if policy == POLICY_RESET:
            return ResetRecovery()
        raise ConfigError(
            f"Unknown recovery policy {self.policy!r}, "
            f"expected one of {', '.join(CONFIGURABLE_POLICIES)}"
        )


@dataclass
class ReportingConfig:
    """Reporter configuration."""

    console_enabled: bool = True
    console_min_severity: str = "low"
    include_trace: bool = True

    webhook_url: Optional[str] = None
    webhook_min_severity: str = "low"
    webhook_timeout_seconds: float = 10.0
    environment: Optional[str] = None
    release: Optional[str] = None

    user_id: Optional[str] = None
    custom_keys: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "ReportingConfig":
        return cls(
            console_enabled=_env_bool("BULWARK_CONSOLE_REPORTER", "true"),
            console_min_severity=os.getenv("BULWARK_CONSOLE_MIN_SEVERITY", "low"),
            include_trace=_env_bool("BULWARK_INCLUDE_TRACE", "true"),
            webhook_url=os.getenv("BULWARK_WEBHOOK_URL"),
            webhook_min_severity=os.getenv("BULWARK_WEBHOOK_MIN_SEVERITY", "low"),
            webhook_timeout_seconds=float(os.getenv("BULWARK_WEBHOOK_TIMEOUT", "10.0")),
            environment=os.getenv("BULWARK_ENVIRONMENT"),
            release=os.getenv("BULWARK_RELEASE"),
            user_id=os.getenv("BULWARK_USER_ID"),
        )

    def build_reporters(self) -> List[Reporter]:
        """Create the configured reporters, in console-then-webhook order."""
        reporters: List[Reporter] = []

        if self.console_enabled:
            reporters.append(LoggingReporter(
                include_trace=self.include_trace,
                min_severity=_parse_severity(self.console_min_severity),
            ))

        if self.webhook_url:
            reporters.append(HttpReporter(
                self.webhook_url,
                environment=self.environment,
                release=self.release,
                timeout_seconds=self.webhook_timeout_seconds,
                include_trace=self.include_trace,
                min_severity=_parse_severity(self.webhook_min_severity),
            ))

        for reporter in reporters:
            if self.user_id:
                reporter.set_user_identifier(self.user_id)
            for key, value in self.custom_keys.items():
                reporter.set_custom_key(key, value)

        return reporters


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file: Optional[str] = None
    json_logs: bool = False

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        return cls(
            level=os.getenv("BULWARK_LOG_LEVEL", "INFO"),
            format=os.getenv("BULWARK_LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            log_file=os.getenv("BULWARK_LOG_FILE"),
            json_logs=_env_bool("BULWARK_JSON_LOGS", "false"),
        )


@dataclass
class BulwarkConfig:
    """Root configuration for error boundaries."""

    environment: str = "development"
    boundary_name: str = "boundary"
    default_severity: str = "medium"
    catch_async: bool = True

    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    reporting: ReportingConfig = field(default_factory=ReportingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "BulwarkConfig":
        """Create configuration from environment variables."""
        return cls(
            environment=os.getenv("BULWARK_ENVIRONMENT", "development"),
            boundary_name=os.getenv("BULWARK_BOUNDARY_NAME", "boundary"),
            default_severity=os.getenv("BULWARK_DEFAULT_SEVERITY", "medium"),
            catch_async=_env_bool("BULWARK_CATCH_ASYNC", "true"),
            recovery=RecoveryConfig.from_env(),
            reporting=ReportingConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    @classmethod
    def from_file(cls, filepath: str) -> "BulwarkConfig":
        """Load configuration from JSON file."""
        path = Path(filepath)
        if not path.exists():
            logger.warning(f"Config file not found: {filepath}, using defaults")
            return cls.from_env()

        with open(path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigError(f"Invalid JSON in {filepath}: {e}") from e

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "BulwarkConfig":
        """Create config from dictionary, overlaying environment defaults."""
        config = cls.from_env()

        for key in ("environment", "boundary_name", "default_severity", "catch_async"):
            if key in data:
                setattr(config, key, data[key])

        for section in ("recovery", "reporting", "logging"):
            if section not in data:
                continue
            target = getattr(config, section)
            for key, value in data[section].items():
                if hasattr(target, key):
                    setattr(target, key, value)
                else:
                    logger.warning(f"Ignoring unknown config key: {section}.{key}")

        return config

    @property
    def severity(self) -> ErrorSeverity:
        return _parse_severity(self.default_severity)

    def build_policy(self) -> RecoveryPolicy:
        return self.recovery.build_policy()

    def build_reporters(self) -> List[Reporter]:
        return self.reporting.build_reporters()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize config to dictionary."""
        return {
            "environment": self.environment,
            "boundary_name": self.boundary_name,
            "default_severity": self.default_severity,
            "catch_async": self.catch_async,
            "recovery": {
                "policy": self.recovery.policy,
                "max_attempts": self.recovery.max_attempts,
                "base_delay_seconds": self.recovery.base_delay_seconds,
                "use_backoff": self.recovery.use_backoff,
            },
            "reporting": {
                "console_enabled": self.reporting.console_enabled,
                "console_min_severity": self.reporting.console_min_severity,
                "include_trace": self.reporting.include_trace,
                "webhook_url": self.reporting.webhook_url,
                "webhook_min_severity": self.reporting.webhook_min_severity,
                "environment": self.reporting.environment,
                "release": self.reporting.release,
            },
            "logging": {
                "level": self.logging.level,
                "log_file": self.logging.log_file,
                "json_logs": self.logging.json_logs,
            },
        }


# Global config instance
_config: Optional[BulwarkConfig] = None


def load_config(filepath: str = None) -> BulwarkConfig:
    """
    Load configuration from file or environment.

    Args:
        filepath: Optional path to JSON config file

    Returns:
        BulwarkConfig instance
    """
    global _config

    if filepath:
        _config = BulwarkConfig.from_file(filepath)
    else:
        default_paths = [
            "./bulwark.json",
            "./config/bulwark.json",
            os.path.expanduser("~/.bulwark/config.json"),
        ]

        for path in default_paths:
            if Path(path).exists():
                logger.info(f"Loading config from: {path}")
                _config = BulwarkConfig.from_file(path)
                return _config

        _config = BulwarkConfig.from_env()

    logger.info(f"Configuration loaded: environment={_config.environment}")
    return _config


def get_config() -> BulwarkConfig:
    """Get current configuration, loading if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Drop the cached configuration (tests)."""
    global _config
    _config = None
