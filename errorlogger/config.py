"""config.py - Immutable logger configuration.

LoggerConfig is built once at startup and never mutated. Each field resolves
from an explicit value, then from an ``ERRORLOGGER_*`` environment variable,
then from a built-in default, in that order.

Typical usage::

    from errorlogger import LoggerConfig

    config = LoggerConfig.from_env(project_hash="abc123", use_remote_logging=False)
    quieter = config.with_overrides(min_log_level="error")
"""

import json
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import ConfigurationError
from .levels import LogLevel

ENV_PREFIX = "ERRORLOGGER_"

_TRUE_VALUES = frozenset({"1", "true", "on", "yes"})


@dataclass(frozen=True)
class ContextFilter:
    """Suppress records whose ``context[key]`` matches ``value``.

    Attributes:
        key: Context key to inspect. Records without the key never match.
        value: Exact value to compare against, or a regex pattern when
            ``is_regex`` is set.
        is_regex: Treat ``value`` as a regular expression. Only textual
            context values are tested against a regex.
    """

    key: str
    value: Any
    is_regex: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ContextFilter":
        try:
            return cls(
                key=str(data["key"]),
                value=data["value"],
                is_regex=bool(data.get("is_regex", data.get("regex", False))),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise ConfigurationError(f"invalid context filter {data!r}: {exc}") from exc


def _default_log_file_path() -> str:
    return os.path.join(os.getcwd(), "logs", "application.log")


@dataclass(frozen=True)
class LoggerConfig:
    """Resolved settings for one ErrorLogger.

    ``sampling_rate`` is clamped to ``[0, 1]`` and ``min_log_level`` is
    normalised to a LogLevel on construction. Call ``validate()`` (done by
    ErrorLogger) to check the cross-field requirements.
    """

    project_hash: Optional[str] = None
    remote_endpoint: Optional[str] = None
    log_file_path: str = field(default_factory=_default_log_file_path)
    request_timeout: float = 2
    min_log_level: LogLevel = LogLevel.WARNING
    use_remote_logging: bool = True
    use_file_logging: bool = True
    use_error_log: bool = True
    rate_limit_per_minute: int = 60
    sampling_rate: float = 1.0
    circuit_breaker_threshold: int = 0
    circuit_breaker_cooldown: float = 60
    async_processing: bool = False
    message_filters: Tuple[str, ...] = ()
    context_filters: Tuple[ContextFilter, ...] = ()
    environment_name: str = "production"
    default_tags: Tuple[str, ...] = ()
    sensitive_keys: Tuple[str, ...] = ()
    log_file_max_bytes: int = 0

    def __post_init__(self) -> None:
        try:
            level = LogLevel.parse(self.min_log_level)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        object.__setattr__(self, "min_log_level", level)
        object.__setattr__(
            self, "sampling_rate", min(1.0, max(0.0, float(self.sampling_rate)))
        )
        object.__setattr__(self, "message_filters", tuple(self.message_filters))
        object.__setattr__(
            self,
            "context_filters",
            tuple(
                f if isinstance(f, ContextFilter) else ContextFilter.from_mapping(f)
                for f in self.context_filters
            ),
        )
        object.__setattr__(self, "default_tags", tuple(self.default_tags))
        object.__setattr__(self, "sensitive_keys", tuple(self.sensitive_keys))

    # ---------------------------------------------------------------------- #
    # Construction
    # ---------------------------------------------------------------------- #

    @classmethod
    def from_env(
        cls,
        config: Optional[Mapping[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "LoggerConfig":
        """Resolve every field from explicit values, the environment, or defaults.

        Args:
            config: Explicit values keyed by field name. ``None`` values are
                treated as absent so they fall through to the environment.
            environ: Environment mapping to read. Defaults to ``os.environ``.
            **overrides: Additional explicit values; they win over ``config``.

        Raises:
            ConfigurationError: If an explicit key is unknown or an environment
                value cannot be parsed.
        """
        env = os.environ if environ is None else environ
        explicit: Dict[str, Any] = {
            k: v for k, v in {**(config or {}), **overrides}.items() if v is not None
        }
        known = {f.name for f in fields(cls)}
        unknown = set(explicit) - known
        if unknown:
            raise ConfigurationError(f"unknown config keys: {', '.join(sorted(unknown))}")

        values: Dict[str, Any] = {}
        for name, parse in _ENV_PARSERS.items():
            if name in explicit:
                values[name] = explicit[name]
                continue
            raw = env.get(_ENV_NAMES.get(name, ENV_PREFIX + name.upper()))
            if raw is None and name == "environment_name":
                raw = env.get("APP_ENV")
            if raw is None or raw == "":
                continue
            try:
                values[name] = parse(raw)
            except (ValueError, TypeError) as exc:
                raise ConfigurationError(f"invalid value for {name}: {raw!r}") from exc
        return cls(**values)

    def with_overrides(self, **changes: Any) -> "LoggerConfig":
        """Return a new config with ``changes`` applied; ``self`` is untouched."""
        return replace(self, **changes)

    def validate(self) -> None:
        """Check the requirements a usable logger depends on.

        Raises:
            ConfigurationError: If the project hash is missing, or remote
                logging is enabled without an endpoint.
        """
        if not self.project_hash:
            raise ConfigurationError("Project hash is not configured!")
        if self.use_remote_logging and not self.remote_endpoint:
            raise ConfigurationError("Remote logging is enabled but no endpoint is configured!")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be > 0")
        if self.log_file_max_bytes < 0:
            raise ConfigurationError("log_file_max_bytes must be >= 0")


# -------------------------------------------------------------------------- #
# Environment parsing
# -------------------------------------------------------------------------- #


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in _TRUE_VALUES


def _parse_csv(raw: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _parse_json_list(raw: str) -> list:
    value = json.loads(raw)
    if not isinstance(value, list):
        raise ValueError("expected a JSON array")
    return value


def _parse_context_filters(raw: str) -> Tuple[ContextFilter, ...]:
    return tuple(ContextFilter.from_mapping(item) for item in _parse_json_list(raw))


# Field name -> parser for its environment value. Fields not listed here
# (none at present) can only be set explicitly.
_ENV_PARSERS = {
    "project_hash": str,
    "remote_endpoint": str,
    "log_file_path": str,
    "request_timeout": float,
    "min_log_level": LogLevel.parse,
    "use_remote_logging": _parse_bool,
    "use_file_logging": _parse_bool,
    "use_error_log": _parse_bool,
    "rate_limit_per_minute": int,
    "sampling_rate": float,
    "circuit_breaker_threshold": int,
    "circuit_breaker_cooldown": float,
    "async_processing": _parse_bool,
    "message_filters": lambda raw: tuple(str(p) for p in _parse_json_list(raw)),
    "context_filters": _parse_context_filters,
    "environment_name": str,
    "default_tags": _parse_csv,
    "sensitive_keys": _parse_csv,
    "log_file_max_bytes": int,
}

# Environment names that differ from ERRORLOGGER_<FIELD>.
_ENV_NAMES = {
    "remote_endpoint": ENV_PREFIX + "ENDPOINT",
    "log_file_path": ENV_PREFIX + "FILE_PATH",
    "environment_name": ENV_PREFIX + "ENVIRONMENT",
    "log_file_max_bytes": ENV_PREFIX + "FILE_MAX_BYTES",
}
