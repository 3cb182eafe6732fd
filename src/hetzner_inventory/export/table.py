from __future__ import annotations

import csv
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Sequence, TextIO

from rich.console import Console
from rich.table import Table
from rich.text import Text

from ..logging import get_logger
from ..nodes.model import Kind, Node
from ..robot.models import PAID_UNTIL_FORMAT
from ..util.errors import ConfigError

LOG = get_logger(__name__)


@dataclass(frozen=True)
class Field:
    name: str
    fmt: str  # str | bool | int | date
    getter: Callable[[Node], Any]


def _fields(*items: Field) -> Dict[str, Field]:
    return {f.name: f for f in items}


# Output column catalog, in default column order.
FIELDS: Dict[str, Field] = _fields(
    Field("server_number", "int", lambda n: n.ancestry.server_number),
    Field("kind", "str", lambda n: n.kind),
    Field("ip", "str", lambda n: n.ip),
    Field("subnet", "str", lambda n: n.subnet),
    Field("gateway", "str", lambda n: n.gateway),
    Field("server_name", "str", lambda n: n.ancestry.server_name),
    Field("ptr", "str", lambda n: n.ptr),
    Field("server_ip", "str", lambda n: n.ancestry.server_ip),
    Field("separate_mac", "str", lambda n: n.separate_mac),
    Field("dc", "str", lambda n: n.ancestry.dc),
    Field("product", "str", lambda n: n.ancestry.product),
    Field("status", "str", lambda n: n.ancestry.status),
    Field("cancelled", "bool", lambda n: n.ancestry.cancelled),
    Field("locked", "bool", lambda n: n.locked),
    Field("paid_until", "date", lambda n: n.ancestry.paid_until),
    Field("failover", "bool", lambda n: n.failover),
    Field("flatrate", "bool", lambda n: n.ancestry.flatrate),
    Field("throttled", "bool", lambda n: n.ancestry.throttled),
    Field("traffic_warnings", "bool", lambda n: n.traffic_warnings),
    Field("traffic", "str", lambda n: n.ancestry.traffic),
    Field("traffic_daily", "int", lambda n: n.traffic_daily),
    Field("traffic_hourly", "int", lambda n: n.traffic_hourly),
    Field("traffic_monthly", "int", lambda n: n.traffic_monthly),
    Field("active_server_ip", "str", lambda n: n.active_server_ip),
)

DEFAULT_FIELDS = ",".join(FIELDS)
DEFAULT_KINDS = ",".join(k.name.lower() for k in Kind)


def parse_fields(text: str) -> List[str]:
    """
    Parse a comma separated field list. Names are case-insensitive; an unknown
    name is a configuration error.
    """
    names: List[str] = []
    for raw in text.split(","):
        name = raw.strip().lower()
        if not name:
            continue
        if name not in FIELDS:
            raise ConfigError(f"unknown field {raw.strip()}")
        names.append(name)
    if not names:
        raise ConfigError("at least one output field is required")
    return names


def parse_kinds(text: str) -> FrozenSet[Kind]:
    kinds = set()
    for raw in text.split(","):
        if not raw.strip():
            continue
        kind = Kind.from_name(raw)
        if kind is None:
            LOG.warning("Ignoring unknown node kind", extra={"kind": raw.strip()})
            continue
        kinds.add(kind)
    return frozenset(kinds)


def filter_kinds(nodes: Iterable[Node], kinds: FrozenSet[Kind]) -> List[Node]:
    return [n for n in nodes if n.kind in kinds]


def format_value(field: Field, node: Node) -> str:
    value = field.getter(node)
    if field.fmt == "bool":
        return "true" if value else "false"
    if field.fmt == "int":
        return str(int(value or 0))
    if field.fmt == "date":
        return value.strftime(PAID_UNTIL_FORMAT) if value is not None else ""
    return "" if value is None else str(value)


def format_row(node: Node, fields: Sequence[str]) -> List[str]:
    return [format_value(FIELDS[name], node) for name in fields]


def write_batch(nodes: Iterable[Node], fields: Sequence[str], stream: TextIO, *, delimiter: str = ",") -> int:
    """
    Write delimiter separated rows without a header. Returns the row count.
    """
    writer = csv.writer(stream, delimiter=delimiter, lineterminator="\n")
    count = 0
    for node in nodes:
        writer.writerow(format_row(node, fields))
        count += 1
    return count


def write_table(nodes: Iterable[Node], fields: Sequence[str], stream: TextIO) -> int:
    """
    Write a header plus space-aligned columns for reading in a terminal.
    Returns the row count.
    """
    rows = [format_row(node, fields) for node in nodes]
    widths = [max([len(name)] + [len(row[i]) for row in rows]) for i, name in enumerate(fields)]

    table = Table(box=None, pad_edge=False, show_edge=False, header_style="")
    for name in fields:
        table.add_column(name, no_wrap=True, overflow="ignore")
    for row in rows:
        # Text() keeps values such as PTR names from being read as console markup
        table.add_row(*(Text(cell) for cell in row))

    # Wide enough that rich never folds or squeezes a column.
    console = Console(file=stream, width=sum(widths) + 2 * len(widths) + 1, color_system=None, highlight=False)
    console.print(table)
    return len(rows)
