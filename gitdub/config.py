"""Process settings and the routing configuration snapshot."""

from __future__ import annotations

import math
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

import yaml
from dotenv import load_dotenv

load_dotenv()

CLONE_PROTOCOLS = ("git", "ssh", "https")
NOTIFIER_PROTOCOLS = ("stdin", "args")
OVERRIDE_KEYS = ("to", "from", "subject", "uri", "diffopts")

DEFAULT_COMMANDS = {
    "stdin": "git-multimail.py",
    "args": "git-notifier",
}


@dataclass(frozen=True)
class Settings:
    """App Settings"""

    config_path: str = os.getenv("GITDUB_CONFIG", "config.yml")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()


class ConfigError(ValueError):
    """Raised when a configuration document cannot be turned into a snapshot."""


@dataclass(frozen=True)
class NotifierDefaults:
    to: tuple[str, ...] = ()
    from_: str = ""
    subject: str = ""
    diffopts: str = ""
    command: str = DEFAULT_COMMANDS["stdin"]
    protocol: str = "stdin"
    host: str = "github.com"

    def as_options(self) -> dict[str, Any]:
        """Options in the same key space as routing entry overrides."""
        return {
            "to": self.to,
            "from": self.from_,
            "subject": self.subject,
            "diffopts": self.diffopts,
        }


@dataclass(frozen=True)
class RoutingEntry:
    pattern: re.Pattern
    protocol: str = "git"
    overrides: Mapping[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.pattern.pattern


@dataclass(frozen=True)
class SSLOptions:
    enable: bool = False
    cert: Optional[str] = None
    key: Optional[str] = None


@dataclass(frozen=True)
class Configuration:
    """
    One fully parsed configuration.

    Instances are never mutated: a reload builds a new ``Configuration`` and
    replaces the published reference as a whole.
    """

    directory: Path = Path(".")
    listen_address: str = "localhost"
    listen_port: int = 8888
    allowed_sources: frozenset[str] = frozenset()
    reload_interval: float = 0
    dispatch_timeout: float = 600.0
    ssl: SSLOptions = SSLOptions()
    notifier: NotifierDefaults = NotifierDefaults()
    routing_entries: tuple[RoutingEntry, ...] = ()


def _section(doc: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = doc.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"'{name}' must be a mapping")
    return value


def _addresses(value: Any, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(s.strip() for s in value.split(",") if s.strip())
    if isinstance(value, (list, tuple)):
        return tuple(str(v).strip() for v in value if str(v).strip())
    raise ConfigError(f"'{key}' must be a string or a list of strings")


def _number(value: Any, key: str, kind=int):
    try:
        number = kind(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ConfigError(f"'{key}' must be a number, got {value!r}") from exc
    if not math.isfinite(number):
        raise ConfigError(f"'{key}' must be finite")
    if number < 0:
        raise ConfigError(f"'{key}' must not be negative")
    return number


def _timeout(value: Any) -> float:
    seconds = _number(value, "gitdub.timeout", float)
    if not seconds:
        raise ConfigError("'gitdub.timeout' must be greater than zero")
    return seconds


def _parse_entry(index: int, raw: Any) -> RoutingEntry:
    if not isinstance(raw, Mapping):
        raise ConfigError(f"github[{index}] must be a mapping")
    pattern = raw.get("id")
    if not pattern:
        raise ConfigError(f"github[{index}] has no 'id'")
    try:
        compiled = re.compile(str(pattern))
    except re.error as exc:
        raise ConfigError(f"github[{index}]: invalid id pattern {pattern!r}: {exc}") from exc

    protocol = str(raw.get("protocol") or "git").lower()
    if protocol not in CLONE_PROTOCOLS:
        raise ConfigError(
            f"github[{index}]: unknown protocol {protocol!r} "
            f"(expected one of {', '.join(CLONE_PROTOCOLS)})"
        )

    overrides: dict[str, Any] = {}
    for key in OVERRIDE_KEYS:
        if raw.get(key) is None:
            continue
        overrides[key] = _addresses(raw[key], key) if key == "to" else str(raw[key])
    return RoutingEntry(
        pattern=compiled, protocol=protocol, overrides=MappingProxyType(overrides)
    )


def _parse_notifier(section: Mapping[str, Any]) -> NotifierDefaults:
    protocol = str(section.get("protocol") or "stdin").lower()
    if protocol not in NOTIFIER_PROTOCOLS:
        raise ConfigError(f"notifier.protocol must be one of {', '.join(NOTIFIER_PROTOCOLS)}")
    diffopts = section.get("diffopts") or ""
    if isinstance(diffopts, (list, tuple)):
        diffopts = " ".join(str(o) for o in diffopts)
    return NotifierDefaults(
        to=_addresses(section.get("to"), "notifier.to"),
        from_=str(section.get("from") or ""),
        subject=str(section.get("subject") or ""),
        diffopts=str(diffopts),
        command=str(section.get("command") or DEFAULT_COMMANDS[protocol]),
        protocol=protocol,
        host=str(section.get("host") or "github.com"),
    )


def parse_config(doc: Any) -> Configuration:
    """
    Build a :class:`Configuration` from an already parsed document.

    Raises
    ------
    ConfigError
        If any part of the document is invalid. Nothing is partially applied.
    """
    if doc is None:
        doc = {}
    if not isinstance(doc, Mapping):
        raise ConfigError("configuration must be a mapping at the top level")

    gitdub = _section(doc, "gitdub")
    ssl = _section(gitdub, "ssl")
    entries = doc.get("github") or []
    if not isinstance(entries, (list, tuple)):
        raise ConfigError("'github' must be a list of entries")

    return Configuration(
        directory=Path(str(gitdub.get("directory") or ".")).expanduser(),
        listen_address=str(gitdub.get("bind") or "localhost"),
        listen_port=_number(gitdub.get("port", 8888), "gitdub.port"),
        allowed_sources=frozenset(
            _addresses(gitdub.get("allowed_sources"), "gitdub.allowed_sources")
        ),
        reload_interval=_number(gitdub.get("monitor", 0) or 0, "gitdub.monitor", float),
        dispatch_timeout=_timeout(gitdub.get("timeout", 600)),
        ssl=SSLOptions(
            enable=bool(ssl.get("enable", False)),
            cert=ssl.get("cert"),
            key=ssl.get("key"),
        ),
        notifier=_parse_notifier(_section(doc, "notifier")),
        routing_entries=tuple(_parse_entry(i, raw) for i, raw in enumerate(entries)),
    )


def load_config(path: str | os.PathLike) -> Configuration:
    """Read and parse the YAML configuration file at ``path``."""
    try:
        with open(path, encoding="utf-8") as fh:
            doc = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"cannot parse {path}: {exc}") from exc
    return parse_config(doc)
