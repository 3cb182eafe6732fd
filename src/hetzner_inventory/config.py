from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import yaml

from .auth.credentials import DEFAULT_CREDENTIALS_PATH
from .export.table import DEFAULT_FIELDS, DEFAULT_KINDS, parse_fields, parse_kinds
from .nodes.model import Kind
from .robot.client import DEFAULT_BASE_URL
from .util.errors import ConfigError

# --------
# Defaults
# --------
DEFAULT_DELIMITER = ","
ALLOWED_CONFIG_KEYS = {
    "fields",
    "kinds",
    "batch",
    "delimiter",
    "credentials",
    "base_url",
    "timeout",
    "json_logs",
    "log_level",
}
BOOL_CONFIG_KEYS = {"batch", "json_logs"}
FLOAT_CONFIG_KEYS = {"timeout"}
PATH_CONFIG_KEYS = {"credentials"}
STR_CONFIG_KEYS = {"fields", "kinds", "delimiter", "base_url", "log_level"}


@dataclass(frozen=True)
class RunConfig:
    # Output
    fields: List[str]
    kinds: FrozenSet[Kind]
    batch: bool = False
    delimiter: str = DEFAULT_DELIMITER

    # Robot webservice
    credentials: Path = DEFAULT_CREDENTIALS_PATH
    base_url: str = DEFAULT_BASE_URL
    timeout: Optional[float] = None  # None leaves requests without a timeout

    # Logging
    json_logs: bool = False
    log_level: str = "INFO"


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Top-level config must be an object")
    return data


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    return raw


def _env_bool(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip().lower()
    if not raw:
        return None
    return raw in {"1", "true", "yes", "on"}


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in {"1", "true", "yes", "on"}:
            return True
        if raw in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Config field '{key}' must be a boolean")


def _coerce_float(key: str, value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            pass
    raise ValueError(f"Config field '{key}' must be a number")


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS or value is None:
            continue
        if key in ("fields", "kinds") and isinstance(value, list):
            if not all(isinstance(v, str) for v in value):
                raise ValueError(f"Config field '{key}' must be a list of strings or comma-separated string")
            normalized[key] = ",".join(value)
        elif key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in FLOAT_CONFIG_KEYS:
            normalized[key] = _coerce_float(key, value)
        elif key in PATH_CONFIG_KEYS:
            if isinstance(value, (str, Path)):
                normalized[key] = value
            else:
                raise ValueError(f"Config field '{key}' must be a string path")
        elif key in STR_CONFIG_KEYS:
            if isinstance(value, str):
                normalized[key] = value
            else:
                raise ValueError(f"Config field '{key}' must be a string")
    return normalized


def _compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop keys with None values so they don't override lower-precedence config.
    """
    return {k: v for k, v in data.items() if v is not None}


def _merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow merge: values in b override a.
    """
    merged = dict(a)
    merged.update(b)
    return merged


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hetzner-inv", description="Hetzner Robot inventory CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
        p.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Enable JSON logs",
        )
        p.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")
        p.add_argument(
            "--credentials",
            type=Path,
            default=None,
            help=f"Properties file with login/password (default {DEFAULT_CREDENTIALS_PATH})",
        )
        p.add_argument("--base-url", default=None, help=f"Robot webservice URL (default {DEFAULT_BASE_URL})")
        p.add_argument("--timeout", type=float, default=None, help="HTTP timeout in seconds (default: none)")

    p_nodes = subparsers.add_parser("nodes", help="List hosts, ips, subnets and failover ips as nodes")
    add_common(p_nodes)
    p_nodes.add_argument(
        "--batch",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Delimiter separated output without header, handy for batch processing",
    )
    p_nodes.add_argument(
        "--delimiter",
        default=None,
        help=f"Field delimiter for batch output (default {DEFAULT_DELIMITER!r})",
    )
    p_nodes.add_argument("--fields", default=None, help="Comma separated list of output fields")
    p_nodes.add_argument("--kinds", default=None, help="Comma separated list of node kinds to output")

    p_val = subparsers.add_parser("validate-auth", help="Check that the credentials are accepted")
    add_common(p_val)
    return parser


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[List[str]] = None,
) -> Tuple[str, RunConfig]:
    """
    Build RunConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns:
      (command, RunConfig) where command is nodes|validate-auth
    """
    ns = args if args is not None else _build_parser().parse_args(argv)
    command = ns.command

    base: Dict[str, Any] = {
        "fields": DEFAULT_FIELDS,
        "kinds": DEFAULT_KINDS,
        "batch": False,
        "delimiter": DEFAULT_DELIMITER,
        "credentials": DEFAULT_CREDENTIALS_PATH,
        "base_url": DEFAULT_BASE_URL,
        "timeout": None,
        "json_logs": False,
        "log_level": "INFO",
    }

    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "fields": _env_str("HETZNER_INV_FIELDS"),
            "kinds": _env_str("HETZNER_INV_KINDS"),
            "batch": _env_bool("HETZNER_INV_BATCH"),
            "delimiter": _env_str("HETZNER_INV_DELIMITER"),
            "credentials": _env_str("HETZNER_INV_CREDENTIALS"),
            "base_url": _env_str("HETZNER_INV_BASE_URL"),
            "timeout": _env_float("HETZNER_INV_TIMEOUT"),
            "json_logs": _env_bool("HETZNER_INV_JSON_LOGS"),
            "log_level": _env_str("HETZNER_INV_LOG_LEVEL"),
        }
    )

    cli_cfg: Dict[str, Any] = _compact_dict(
        {
            "fields": getattr(ns, "fields", None),
            "kinds": getattr(ns, "kinds", None),
            "batch": getattr(ns, "batch", None),
            "delimiter": getattr(ns, "delimiter", None),
            "credentials": getattr(ns, "credentials", None),
            "base_url": getattr(ns, "base_url", None),
            "timeout": getattr(ns, "timeout", None),
            "json_logs": getattr(ns, "json_logs", None),
            "log_level": getattr(ns, "log_level", None),
        }
    )

    merged = _merge_dicts(base, _merge_dicts(file_cfg, _merge_dicts(env_cfg, cli_cfg)))

    delimiter = str(merged["delimiter"])
    if len(delimiter) != 1:
        raise ConfigError(f"delimiter must be a single character, got {delimiter!r}")
    timeout = merged.get("timeout")
    if timeout is not None and timeout <= 0:
        raise ConfigError("timeout must be positive")

    cfg = RunConfig(
        fields=parse_fields(str(merged["fields"])),
        kinds=parse_kinds(str(merged["kinds"])),
        batch=bool(merged["batch"]),
        delimiter=delimiter,
        credentials=Path(merged["credentials"]),
        base_url=str(merged["base_url"]),
        timeout=float(timeout) if timeout is not None else None,
        json_logs=bool(merged["json_logs"]),
        log_level=str(merged.get("log_level") or "INFO").upper(),
    )
    return command, cfg
