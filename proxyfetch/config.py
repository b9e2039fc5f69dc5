"""
ProxyFetch Configuration Management
===================================
Handles config loading, proxy credential storage, and platform-specific paths.

Precedence (highest first): CLI options → environment → config file → defaults.
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from platformdirs import user_config_dir

from proxyfetch.core.errors import ConfigError
from proxyfetch.core.request import DEFAULT_USER_AGENT

APP_NAME = "proxyfetch"

# ── paths ────────────────────────────────────────────────────────────────────

CONFIG_DIR = Path(user_config_dir(APP_NAME))
CONFIG_FILE = CONFIG_DIR / "config.yaml"


def ensure_dirs() -> None:
    """Create all required directories."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)


# ── default config ───────────────────────────────────────────────────────────

DEFAULT_CONFIG: Dict[str, Any] = {
    "proxy": {
        "url": "",
        "username": "",
        "password": "",
    },
    "transport": {
        "insecure": False,
        "timeout": 30.0,
        "user_agent": DEFAULT_USER_AGENT,
    },
    "ui": {
        "verbose": False,
        "include_headers": False,
    },
}

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")


@dataclass
class ProxyConfig:
    url: str = ""
    username: str = ""
    password: str = ""


@dataclass
class TransportConfig:
    insecure: bool = False
    timeout: Optional[float] = 30.0
    user_agent: str = DEFAULT_USER_AGENT


@dataclass
class UIConfig:
    verbose: bool = False
    include_headers: bool = False


@dataclass
class ProxyFetchConfig:
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    ui: UIConfig = field(default_factory=UIConfig)


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def _parse_timeout(name: str, value: Any) -> Optional[float]:
    if value is None or value == "" or value == 0:
        return None
    try:
        timeout = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number of seconds, got {value!r}") from e
    if timeout < 0:
        raise ConfigError(f"{name} must not be negative")
    return timeout or None


def load_config(path: Optional[Path] = None) -> ProxyFetchConfig:
    """Load configuration from disk, env vars, and defaults."""
    path = Path(path) if path else CONFIG_FILE
    raw: Dict[str, Any] = {}

    if path.exists():
        try:
            with open(path) as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"{path} must contain a mapping")

    # Merge with defaults
    merged = _deep_merge(DEFAULT_CONFIG, raw)

    # Env-var overrides
    if os.environ.get("PROXYFETCH_PROXY"):
        merged["proxy"]["url"] = os.environ["PROXYFETCH_PROXY"]
    if os.environ.get("PROXYFETCH_USER"):
        merged["proxy"]["username"] = os.environ["PROXYFETCH_USER"]
    if os.environ.get("PROXYFETCH_PASSWORD"):
        merged["proxy"]["password"] = os.environ["PROXYFETCH_PASSWORD"]
    if "PROXYFETCH_INSECURE" in os.environ:
        merged["transport"]["insecure"] = os.environ["PROXYFETCH_INSECURE"]
    if os.environ.get("PROXYFETCH_TIMEOUT"):
        merged["transport"]["timeout"] = os.environ["PROXYFETCH_TIMEOUT"]

    proxy = merged.get("proxy") or {}
    transport = merged.get("transport") or {}
    ui = merged.get("ui") or {}
    try:
        cfg = ProxyFetchConfig(
            proxy=ProxyConfig(
                url=str(proxy.get("url") or ""),
                username=str(proxy.get("username") or ""),
                password=str(proxy.get("password") or ""),
            ),
            transport=TransportConfig(
                insecure=_parse_bool("transport.insecure", transport.get("insecure", False)),
                timeout=_parse_timeout("transport.timeout", transport.get("timeout")),
                user_agent=str(transport.get("user_agent") or DEFAULT_USER_AGENT),
            ),
            ui=UIConfig(
                verbose=_parse_bool("ui.verbose", ui.get("verbose", False)),
                include_headers=_parse_bool("ui.include_headers", ui.get("include_headers", False)),
            ),
        )
    except AttributeError as e:
        raise ConfigError(f"Malformed section in {path}: {e}") from e
    return cfg


def save_config(cfg: ProxyFetchConfig, path: Optional[Path] = None) -> Path:
    """Persist current configuration to disk."""
    if path is None:
        ensure_dirs()
        path = CONFIG_FILE
    else:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "proxy": {
            "url": cfg.proxy.url,
            "username": cfg.proxy.username,
            "password": cfg.proxy.password,
        },
        "transport": {
            "insecure": cfg.transport.insecure,
            "timeout": cfg.transport.timeout,
            "user_agent": cfg.transport.user_agent,
        },
        "ui": {
            "verbose": cfg.ui.verbose,
            "include_headers": cfg.ui.include_headers,
        },
    }
    with open(path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)
    # Holds proxy credentials
    os.chmod(path, 0o600)
    return path


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    result = copy.deepcopy(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result
