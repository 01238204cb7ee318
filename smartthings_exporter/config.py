from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .smartthings import ENDPOINTS_URL

CONFIG_ENV = "SMARTTHINGS_EXPORTER_CONFIG"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ExporterConfig:
    token_file: str
    listen_address: str = ":9499"
    telemetry_path: str = "/metrics"
    endpoints_url: str = ENDPOINTS_URL
    timeout_seconds: float = 10.0
    ready_grace_seconds: float = 300.0

    @property
    def listen(self) -> Tuple[str, int]:
        return parse_listen_address(self.listen_address)


def setup_logging(level: str) -> None:
    lvl = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=lvl, format="%(asctime)s %(levelname)s %(message)s")


def parse_listen_address(s: str) -> Tuple[str, int]:
    s = s.strip()
    try:
        if s.startswith(":"):
            return "", int(s[1:])
        if ":" in s:
            host, port_s = s.rsplit(":", 1)
            return host, int(port_s)
        return "", int(s)
    except ValueError as e:
        raise ConfigError(f"invalid listen address {s!r}") from e


def load_config_file(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e

    try:
        if path.lower().endswith(".json"):
            data = json.loads(raw)
        else:
            data = yaml.safe_load(raw)
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot parse config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Config root must be a mapping/object")
    return data


def find_config_file(explicit: Optional[str]) -> Optional[str]:
    cfg_path = explicit or os.environ.get(CONFIG_ENV, "").strip() or None
    if cfg_path is not None:
        return cfg_path

    candidates = [
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parent / "config.yaml",
        Path("/config/config.yaml"),
    ]
    for c in candidates:
        if c.is_file():
            return str(c)
    return None


def _section(cfg: Dict[str, Any], name: str) -> Dict[str, Any]:
    sec = cfg.get(name, {})
    return sec if isinstance(sec, dict) else {}


def _positive(name: str, value: Any) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e
    if v <= 0:
        raise ConfigError(f"{name} must be positive, got {v}")
    return v


def build_config(
    cfg: Dict[str, Any],
    token_file: Optional[str] = None,
    listen_address: Optional[str] = None,
    telemetry_path: Optional[str] = None,
    endpoints_url: Optional[str] = None,
    timeout_seconds: Optional[float] = None,
) -> ExporterConfig:
    """Merge the config file with command-line overrides; overrides win."""
    web_cfg = _section(cfg, "web")
    st_cfg = _section(cfg, "smartthings")
    scrape_cfg = _section(cfg, "scrape")

    token = token_file or st_cfg.get("token_file")
    if not token:
        raise ConfigError("missing token file: use --smartthings.oauth-token.file=PATH or smartthings.token_file")

    path = str(telemetry_path or web_cfg.get("telemetry_path", "/metrics"))
    if not path.startswith("/"):
        raise ConfigError(f"telemetry path must start with '/', got {path!r}")

    listen = str(listen_address or web_cfg.get("listen_address", ":9499"))
    parse_listen_address(listen)

    timeout = timeout_seconds if timeout_seconds is not None else scrape_cfg.get("timeout_seconds", 10.0)
    grace = scrape_cfg.get("ready_grace_seconds", 300.0)

    return ExporterConfig(
        token_file=str(token),
        listen_address=listen,
        telemetry_path=path,
        endpoints_url=str(endpoints_url or st_cfg.get("endpoints_url", ENDPOINTS_URL)),
        timeout_seconds=_positive("scrape.timeout_seconds", timeout),
        ready_grace_seconds=_positive("scrape.ready_grace_seconds", grace),
    )
