"""Configuration loading and validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Annotated, Any, Literal, Union

import yaml
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .exceptions import ConfigError, TemplateError
from .template import check_template
from .watcher.events import EventType

DEFAULT_CONFIG_PATH = "watchrun.yaml"
DEFAULT_DEBOUNCE = 0.3
DEFAULT_WEBHOOK_TIMEOUT = 10.0

ACTION_TYPES = ("command", "webhook", "log")


# ── Durations ────────────────────────────────────────────────

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Any) -> float:
    """Parse ``"500ms"``, ``"2s"``, ``"1m30s"`` or a number of seconds."""
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"duration must not be negative: {value}")
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"invalid duration: {value!r}")

    text = value.strip()
    if text == "0":
        return 0.0
    if not text:
        raise ValueError("invalid duration: empty string")

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise ValueError(f"invalid duration: {value!r} (use e.g. 500ms, 2s, 1m30s)")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    return total


def format_duration(seconds: float) -> str:
    """Render seconds the way durations are written in config files."""
    if seconds <= 0:
        return "0s"
    if seconds < 1:
        return f"{round(seconds * 1000, 3):g}ms"

    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    out = ""
    if hours:
        out += f"{int(hours)}h"
    if hours or minutes:
        out += f"{int(minutes)}m"
    return out + f"{round(secs, 3):g}s"


Duration = Annotated[float, BeforeValidator(parse_duration)]


# ── Actions ──────────────────────────────────────────────────


def _validated_template(value: str) -> str:
    try:
        check_template(value)
    except TemplateError as e:
        raise ValueError(str(e)) from None
    return value


class CommandActionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["command"] = "command"
    command: str = Field(min_length=1)
    dir: str = ""  # Empty = current directory

    @field_validator("command")
    @classmethod
    def _check_command(cls, value: str) -> str:
        return _validated_template(value)


class WebhookActionConfig(BaseModel):
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    type: Literal["webhook"] = "webhook"
    url: str = Field(min_length=1)
    method: str = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: Duration = DEFAULT_WEBHOOK_TIMEOUT

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.strip().upper() or "POST"

    @field_validator("timeout")
    @classmethod
    def _default_timeout(cls, value: float) -> float:
        return value or DEFAULT_WEBHOOK_TIMEOUT


class LogActionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["log"] = "log"
    format: str = Field(min_length=1)

    @field_validator("format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        return _validated_template(value)


ActionConfig = Annotated[
    Union[CommandActionConfig, WebhookActionConfig, LogActionConfig],
    Field(discriminator="type"),
]


# ── Rules ────────────────────────────────────────────────────


class RuleConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    watch: list[str] = Field(min_length=1)
    events: list[EventType] = Field(default_factory=list)  # Empty = all events
    debounce: Duration | None = None  # None = global debounce
    action: ActionConfig

    @field_validator("events", mode="before")
    @classmethod
    def _events_or_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class GlobalConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    debounce: Duration = DEFAULT_DEBOUNCE
    ignore: list[str] = Field(default_factory=list)

    @field_validator("ignore", mode="before")
    @classmethod
    def _ignore_or_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class WatchrunConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    rules: list[RuleConfig] = Field(default_factory=list)

    @field_validator("global_", mode="before")
    @classmethod
    def _global_or_default(cls, value: Any) -> Any:
        return {} if value is None else value

    @model_validator(mode="after")
    def _require_rules(self) -> WatchrunConfig:
        if not self.rules:
            raise ValueError("at least one rule is required")
        return self


# ── Loading ──────────────────────────────────────────────────


def _interpolate_env_vars(text: str) -> str:
    """Replace ${VAR_NAME} with environment variable values."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, "")

    return re.sub(r"\$\{(\w+)\}", replacer, text)


def _rule_label(data: Any, index: int) -> str:
    try:
        name = data["rules"][index].get("name")
    except (KeyError, IndexError, TypeError, AttributeError):
        name = None
    return f"'{name}'" if name else f"at index {index}"


def _describe_errors(err: ValidationError, data: Any) -> str:
    lines = []
    for item in err.errors():
        loc = list(item["loc"])
        prefix = ""
        if len(loc) >= 2 and loc[0] == "rules" and isinstance(loc[1], int):
            prefix = f"rule {_rule_label(data, loc[1])}: "
            loc = loc[2:]
        # Drop the discriminator tag pydantic inserts for union members
        if len(loc) >= 2 and loc[0] == "action" and loc[1] in ACTION_TYPES:
            del loc[1]
        where = ".".join(str(part) for part in loc)
        msg = item["msg"].removeprefix("Value error, ")
        lines.append(f"{prefix}{where}: {msg}" if where else f"{prefix}{msg}")
    return "invalid config:\n  " + "\n  ".join(lines)


def parse_config(text: str) -> WatchrunConfig:
    """Parse and validate YAML config text. Raises ConfigError."""
    try:
        data = yaml.safe_load(_interpolate_env_vars(text))
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML: {e}") from e

    if data is None:
        raise ConfigError("config is empty: at least one rule is required")
    if not isinstance(data, dict):
        raise ConfigError("config must be a mapping with 'global' and 'rules' keys")

    try:
        return WatchrunConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_describe_errors(e, data)) from e


def load_config(path: str | Path | None = None) -> WatchrunConfig:
    """Load and validate a YAML config file (with ${ENV} interpolation)."""
    path = Path(path or DEFAULT_CONFIG_PATH).expanduser()

    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        raw_text = path.read_text()
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e

    try:
        return parse_config(raw_text)
    except ConfigError as e:
        raise ConfigError(f"{path}: {e}") from e.__cause__


EXAMPLE_CONFIG = """\
# watchrun configuration
global:
  debounce: 300ms
  ignore:
    - .git
    - node_modules
    - "**/*.tmp"

rules:
  - name: test
    watch: ["**/*.py"]
    events: [create, modify]
    action:
      type: command
      command: pytest -q

  - name: notify
    watch: ["docs/**/*.md"]
    debounce: 2s
    action:
      type: webhook
      url: http://localhost:8080/hooks/docs
      headers:
        Authorization: Bearer ${WATCHRUN_TOKEN}

  - name: audit
    watch: ["**"]
    action:
      type: log
      format: "[{{.Time}}] {{.Event}} {{.Path}}"
"""
