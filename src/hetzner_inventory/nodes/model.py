from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from datetime import date
from enum import IntEnum
from typing import Iterable, List, Optional, Tuple, Union

from ..robot.models import IPAddress, RawServer

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


class Kind(IntEnum):
    """Role of a node. The numeric value is the rank used for ordering."""

    HOST = 1
    MANAGEMENT = 2
    NETWORK = 3
    VIRTUAL = 4
    FAILOVER = 5

    def __str__(self) -> str:
        return self.name.capitalize()

    @classmethod
    def from_name(cls, name: str) -> Optional[Kind]:
        return cls.__members__.get(name.strip().upper())


@dataclass(frozen=True)
class Ancestry:
    """Host-level fields copied onto every node derived from a server."""

    server_ip: Optional[IPAddress]
    server_number: int
    server_name: str = ""
    product: str = ""
    dc: str = ""
    status: str = ""
    cancelled: bool = False
    flatrate: bool = False
    throttled: bool = False
    paid_until: Optional[date] = None
    traffic: str = ""

    @classmethod
    def from_server(cls, server: RawServer) -> Ancestry:
        return cls(
            server_ip=server.server_ip,
            server_number=server.server_number,
            server_name=server.server_name,
            product=server.product,
            dc=server.dc,
            status=server.status,
            cancelled=server.cancelled,
            flatrate=server.flatrate,
            throttled=server.throttled,
            paid_until=server.paid_until,
            traffic=server.traffic,
        )


@dataclass(frozen=True)
class Node:
    ip: IPAddress
    kind: Kind
    ancestry: Ancestry
    ptr: str = ""
    separate_mac: Optional[str] = None
    subnet: Optional[IPNetwork] = None
    gateway: Optional[IPAddress] = None
    failover: bool = False
    locked: bool = False
    traffic_warnings: bool = False
    traffic_hourly: int = 0
    traffic_daily: int = 0
    traffic_monthly: int = 0
    active_server_ip: Optional[IPAddress] = None

    @property
    def identity(self) -> str:
        """Address for single-IP nodes, CIDR for subnet-backed nodes."""
        if self.subnet is not None:
            return str(self.subnet)
        return str(self.ip)


def node_sort_key(node: Node) -> Tuple[int, int, int, int]:
    # address breaks ties within a (server, kind) group
    return (node.ancestry.server_number, int(node.kind), node.ip.version, int(node.ip))


def sort_nodes(nodes: Iterable[Node]) -> List[Node]:
    """
    Order by server number, then kind rank (Host first), then address.
    """
    return sorted(nodes, key=node_sort_key)
