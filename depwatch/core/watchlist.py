import os
import sys
import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Tuple

from depwatch.core.errors import ConfigError

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

CONFIG_FILE = "depwatch.toml"
REPORT_FILE = "malware-audit.csv"
RESOLVER_TIMEOUT = 300.0

# Packages named in the September 2025 npm compromise advisories
WATCHLIST: Tuple[str, ...] = (
    "backslash",
    "chalk-template",
    "supports-hyperlinks",
    "has-ansi",
    "simple-swizzle",
    "color-string",
    "error-ex",
    "color-name",
    "is-arrayish",
    "slice-ansi",
    "color-convert",
    "wrap-ansi",
    "ansi-regex",
    "supports-color",
    "strip-ansi",
    "chalk",
    "debug",
    "ansi-styles",
    "proto-tinker-wc",
)

BAD_VERSIONS: Dict[str, FrozenSet[str]] = {
    "backslash": frozenset({"0.2.1"}),
    "chalk-template": frozenset({"1.1.1"}),
    "supports-hyperlinks": frozenset({"4.1.1"}),
    "has-ansi": frozenset({"6.0.1"}),
    "simple-swizzle": frozenset({"0.2.3"}),
    "color-string": frozenset({"2.1.1"}),
    "error-ex": frozenset({"1.3.3"}),
    "color-name": frozenset({"2.0.1"}),
    "is-arrayish": frozenset({"0.3.3"}),
    "slice-ansi": frozenset({"7.1.1"}),
    "color-convert": frozenset({"3.1.1"}),
    "wrap-ansi": frozenset({"9.0.1"}),
    "ansi-regex": frozenset({"6.2.1"}),
    "supports-color": frozenset({"10.2.1"}),
    "strip-ansi": frozenset({"7.1.1"}),
    "chalk": frozenset({"5.6.1", "5.3.1"}),
    "debug": frozenset({"4.4.2"}),
    "ansi-styles": frozenset({"6.2.2"}),
    "proto-tinker-wc": frozenset({"0.1.87"}),
}

SAFE_OVERRIDES: Dict[str, str] = {
    "chalk": "5.3.0",
    "strip-ansi": "7.1.0",
    "color-convert": "2.0.1",
    "color-name": "1.1.4",
    "is-core-module": "2.13.1",
    "error-ex": "1.3.2",
    "has-ansi": "5.0.1",
}


@dataclass(frozen=True)
class AuditConfig:
    watchlist: Tuple[str, ...] = WATCHLIST
    bad_versions: Dict[str, FrozenSet[str]] = field(default_factory=lambda: dict(BAD_VERSIONS))
    safe_overrides: Dict[str, str] = field(default_factory=lambda: dict(SAFE_OVERRIDES))
    report_name: str = REPORT_FILE
    resolver_timeout: Optional[float] = RESOLVER_TIMEOUT


def default_config() -> AuditConfig:
    return AuditConfig()


def load_config(project_dir: str, path: Optional[str] = None) -> AuditConfig:
    """
    Builds the audit configuration: built-in tables plus an optional TOML file.
    Every table in the file extends the built-ins; nothing can be removed.
    """
    if path is None:
        candidate = os.path.join(project_dir, CONFIG_FILE)
        if not os.path.exists(candidate):
            return default_config()
        path = candidate
    elif not os.path.exists(path):
        raise ConfigError(f"Config file not found: {path}")

    logging.debug(f"Loading config from {path}")
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}")

    watch = list(WATCHLIST)
    for name in _string_list(data.get("watch", []), "watch"):
        if name not in watch:
            watch.append(name)

    bad_versions = dict(BAD_VERSIONS)
    extra_bad = data.get("bad_versions", {})
    if not isinstance(extra_bad, dict):
        raise ConfigError("'bad_versions' must be a table of name = [versions]")
    for name, versions in extra_bad.items():
        found = _string_list(versions, f"bad_versions.{name}")
        bad_versions[name] = bad_versions.get(name, frozenset()) | frozenset(found)

    overrides = dict(SAFE_OVERRIDES)
    extra_overrides = data.get("safe_overrides", {})
    if not isinstance(extra_overrides, dict):
        raise ConfigError("'safe_overrides' must be a table of name = \"version\"")
    for name, version in extra_overrides.items():
        if not isinstance(version, str):
            raise ConfigError(f"safe_overrides.{name} must be a string")
        overrides[name] = version

    report = data.get("report", REPORT_FILE)
    if not isinstance(report, str) or not report:
        raise ConfigError("'report' must be a non-empty file name")
    if os.path.basename(report) != report or "\\" in report or report in (".", ".."):
        raise ConfigError(f"'report' must be a file name in the project root, got {report!r}")

    timeout = data.get("resolver_timeout", RESOLVER_TIMEOUT)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout < 0:
        raise ConfigError("'resolver_timeout' must be a number of seconds (0 disables it)")

    return AuditConfig(
        watchlist=tuple(watch),
        bad_versions=bad_versions,
        safe_overrides=overrides,
        report_name=report,
        resolver_timeout=float(timeout) or None,
    )


def _string_list(value, key: str) -> list:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"'{key}' must be a list of strings")
    return value
