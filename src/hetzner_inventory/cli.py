from __future__ import annotations

import logging
import sys
from time import perf_counter
from typing import Any, Dict, Optional, TextIO

from .auth.credentials import load_credentials
from .config import RunConfig, load_run_config
from .export.table import filter_kinds, write_batch, write_table
from .logging import LogConfig, get_logger, setup_logging
from .nodes.model import sort_nodes
from .nodes.reconcile import reconcile
from .robot.client import RobotClient
from .robot.collections import fetch_collections
from .robot.models import RawServer
from .util.errors import ConfigError, as_exit_code

LOG = get_logger(__name__)


class _StepTimers:
    def __init__(self) -> None:
        self._starts: Dict[str, float] = {}

    def start(self, key: str) -> None:
        self._starts[key] = perf_counter()

    def finish(self, key: str) -> Optional[int]:
        started = self._starts.pop(key, None)
        if started is None:
            return None
        return int((perf_counter() - started) * 1000)


def _log_event(
    logger: Any,
    level: int,
    message: str,
    *,
    step: str,
    phase: str,
    timers: Optional[_StepTimers] = None,
    **extra: Any,
) -> None:
    duration_ms = None
    if timers is not None:
        if phase == "start":
            timers.start(step)
        elif phase in {"complete", "error"}:
            duration_ms = timers.finish(step)
    payload: Dict[str, Any] = {"step": step, "phase": phase, "event": f"{step}.{phase}"}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    payload.update(extra)
    logger.log(level, message, extra=payload)


def _make_client(cfg: RunConfig) -> RobotClient:
    creds = load_credentials(cfg.credentials)
    LOG.debug("Credentials resolved", extra={"login": creds.login, "source": creds.source})
    return RobotClient(base_url=cfg.base_url, login=creds.login, password=creds.password, timeout=cfg.timeout)


def cmd_nodes(cfg: RunConfig, out: Optional[TextIO] = None, client: Optional[RobotClient] = None) -> int:
    out = out or sys.stdout
    client = client or _make_client(cfg)
    timers = _StepTimers()

    _log_event(LOG, logging.INFO, "Fetching Robot collections", step="fetch", phase="start", timers=timers)
    collections = fetch_collections(client)
    _log_event(
        LOG,
        logging.INFO,
        "Fetched Robot collections",
        step="fetch",
        phase="complete",
        timers=timers,
        servers=len(collections.servers),
        ips=len(collections.ips),
        subnets=len(collections.subnets),
        rdns=len(collections.rdns),
        failovers=len(collections.failovers),
    )

    _log_event(LOG, logging.INFO, "Reconciling nodes", step="reconcile", phase="start", timers=timers)
    nodes = sort_nodes(reconcile(collections))
    _log_event(LOG, logging.INFO, "Reconciled nodes", step="reconcile", phase="complete", timers=timers, nodes=len(nodes))

    selected = filter_kinds(nodes, cfg.kinds)
    if cfg.batch:
        rows = write_batch(selected, cfg.fields, out, delimiter=cfg.delimiter)
    else:
        rows = write_table(selected, cfg.fields, out)
    LOG.debug("Wrote nodes", extra={"rows": rows})
    return 0


def cmd_validate_auth(cfg: RunConfig, out: Optional[TextIO] = None, client: Optional[RobotClient] = None) -> int:
    out = out or sys.stdout
    client = client or _make_client(cfg)
    servers = client.get("/server", RawServer)
    LOG.info("Authentication validated", extra={"servers": len(servers)})
    print(f"OK: credentials accepted; {len(servers)} servers visible", file=out)
    return 0


def main() -> None:
    try:
        command, cfg = load_run_config()
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))

        if command == "nodes":
            code = cmd_nodes(cfg)
        elif command == "validate-auth":
            code = cmd_validate_auth(cfg)
        else:
            raise ConfigError(f"Unknown command: {command}")

        sys.exit(code)
    except SystemExit:
        raise
    except BrokenPipeError:
        # Common when users pipe to `head` or similar tools.
        sys.exit(0)
    except Exception as e:
        setup_logging(LogConfig())
        LOG.error("Execution failed", extra={"error": str(e)})
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()
