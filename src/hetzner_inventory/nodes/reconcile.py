from __future__ import annotations

import ipaddress
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Tuple

from ..logging import get_logger
from ..robot.collections import RawCollections
from ..robot.models import IPAddress, RawFailover, RawIp, RawRdns, RawServer, RawSubnet
from ..util.errors import ReconcileError
from .model import Ancestry, Kind, Node

LOG = get_logger(__name__)

NodeTable = Dict[IPAddress, Node]


def _require_ip(ip: Optional[IPAddress], what: str) -> IPAddress:
    if ip is None:
        raise ReconcileError(f"{what} without a parsable address")
    return ip


def _owner_ancestry(table: NodeTable, server_ip: Optional[IPAddress], what: str) -> Ancestry:
    host = table.get(server_ip) if server_ip is not None else None
    if host is None or host.kind is not Kind.HOST:
        raise ReconcileError(f"no host found for {what} (server_ip {server_ip})")
    return host.ancestry


def build_hosts(servers: Iterable[RawServer]) -> NodeTable:
    """Stage 1: one Host node per server, keyed by its main address."""
    table: NodeTable = {}
    for server in servers:
        ip = _require_ip(server.server_ip, f"server {server.server_number}")
        if ip in table:
            raise ReconcileError(f"duplicate server main ip {ip}")
        table[ip] = Node(ip=ip, kind=Kind.HOST, ancestry=Ancestry.from_server(server))
    return table


def apply_ips(table: NodeTable, ips: Iterable[RawIp]) -> NodeTable:
    """
    Stage 2: attach per-address settings. A server's own main ip updates the
    Host node; any other ip becomes a Management node of its owning host.
    """
    table = dict(table)
    for rec in ips:
        ip = _require_ip(rec.ip, "ip record")
        fields = dict(
            locked=rec.locked,
            separate_mac=rec.separate_mac,
            traffic_warnings=rec.traffic_warnings,
            traffic_hourly=rec.traffic_hourly,
            traffic_daily=rec.traffic_daily,
            traffic_monthly=rec.traffic_monthly,
        )
        existing = table.get(ip)
        if existing is not None:
            table[ip] = replace(existing, **fields)
            continue
        ancestry = _owner_ancestry(table, rec.server_ip, f"ip {ip}")
        table[ip] = Node(ip=ip, kind=Kind.MANAGEMENT, ancestry=ancestry, **fields)
    return table


def _network(ip: IPAddress, mask: int) -> ipaddress.IPv4Network | ipaddress.IPv6Network:
    # Prefix length is read against 32 or 128 bits depending on the address family.
    try:
        return ipaddress.ip_network((ip, mask), strict=False)
    except ValueError as e:
        raise ReconcileError(f"invalid subnet {ip}/{mask}: {e}") from e


def apply_subnets(table: NodeTable, subnets: Iterable[RawSubnet]) -> Tuple[NodeTable, List[Node]]:
    """
    Stage 3: one Network node per routed subnet. Returns the updated table and
    the subnet nodes in creation order.
    """
    table = dict(table)
    created: List[Node] = []
    for rec in subnets:
        ip = _require_ip(rec.ip, "subnet record")
        net = _network(ip, rec.mask)
        if net.network_address != ip:
            raise ReconcileError(f"subnet {ip}/{rec.mask} has host bits set (network is {net})")
        if ip in table:
            raise ReconcileError(f"subnet {net} conflicts with existing node {ip}")
        node = Node(
            ip=ip,
            kind=Kind.NETWORK,
            ancestry=_owner_ancestry(table, rec.server_ip, f"subnet {net}"),
            subnet=net,
            gateway=rec.gateway,
            failover=rec.failover,
            locked=rec.locked,
            traffic_warnings=rec.traffic_warnings,
            traffic_hourly=rec.traffic_hourly,
            traffic_daily=rec.traffic_daily,
            traffic_monthly=rec.traffic_monthly,
        )
        table[ip] = node
        created.append(node)
    return table, created


def apply_rdns(table: NodeTable, subnets: List[Node], records: Iterable[RawRdns]) -> NodeTable:
    """
    Stage 4: bind PTR records. Known addresses get the PTR attached; an address
    inside a routed subnet becomes a Virtual node of that subnet's host.
    """
    table = dict(table)
    for rec in records:
        ip = _require_ip(rec.ip, "rdns record")
        existing = table.get(ip)
        if existing is not None:
            table[ip] = replace(existing, ptr=rec.ptr)
            continue
        owner = next((s for s in subnets if s.subnet is not None and ip in s.subnet), None)
        if owner is None:
            raise ReconcileError(f"rdns record {ip} (ptr {rec.ptr}) matches no known address or subnet")
        table[ip] = Node(ip=ip, kind=Kind.VIRTUAL, ancestry=owner.ancestry, ptr=rec.ptr)
    return table


def apply_failovers(table: NodeTable, failovers: Iterable[RawFailover]) -> NodeTable:
    """Stage 5: reclassify reserved /32 failover networks and record where they point."""
    table = dict(table)
    for rec in failovers:
        ip = _require_ip(rec.ip, "failover record")
        node = table.get(ip)
        if node is None or node.kind is not Kind.NETWORK or not node.failover:
            raise ReconcileError(f"no failover subnet for failover ip {ip}")
        table[ip] = replace(node, kind=Kind.FAILOVER, active_server_ip=rec.active_server_ip)
    return table


def reconcile(collections: RawCollections) -> List[Node]:
    """
    Merge the five Robot collections into a flat, unsorted list of nodes.
    Raises ReconcileError on the first inconsistency; no partial graph is returned.
    """
    table = build_hosts(collections.servers)
    table = apply_ips(table, collections.ips)
    table, subnets = apply_subnets(table, collections.subnets)
    table = apply_rdns(table, subnets, collections.rdns)
    table = apply_failovers(table, collections.failovers)
    LOG.debug(
        "Reconciled nodes",
        extra={"counts_by_kind": {str(k): sum(1 for n in table.values() if n.kind is k) for k in Kind}},
    )
    return list(table.values())
