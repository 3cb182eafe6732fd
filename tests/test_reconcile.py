from __future__ import annotations

import ipaddress
from datetime import date
from typing import Any, Dict, List

import pytest

from hetzner_inventory.nodes.model import Ancestry, Kind, Node
from hetzner_inventory.nodes.reconcile import apply_ips, build_hosts, reconcile
from hetzner_inventory.robot.collections import RawCollections
from hetzner_inventory.robot.models import RawFailover, RawIp, RawRdns, RawServer, RawSubnet
from hetzner_inventory.util.errors import ReconcileError


def _server(ip: str = "10.0.0.1", number: int = 100, **extra: Any) -> RawServer:
    data: Dict[str, Any] = {
        "server_ip": ip,
        "server_number": number,
        "server_name": f"srv{number}",
        "product": "EX 41",
        "dc": "FSN1-DC5",
        "traffic": "unlimited",
        "flatrate": True,
        "status": "ready",
        "throttled": False,
        "cancelled": False,
        "paid_until": "2025-01-31",
    }
    data.update(extra)
    return RawServer.from_dict(data)


def _ip(ip: str, server_ip: str = "10.0.0.1", **extra: Any) -> RawIp:
    return RawIp.from_dict({"ip": ip, "server_ip": server_ip, "server_number": 100, **extra})


def _subnet(ip: str, mask: int, server_ip: str = "10.0.0.1", **extra: Any) -> RawSubnet:
    return RawSubnet.from_dict({"ip": ip, "mask": mask, "server_ip": server_ip, "server_number": 100, **extra})


def _by_ip(nodes: List[Node]) -> Dict[str, Node]:
    return {str(n.ip): n for n in nodes}


def test_host_and_management_node() -> None:
    nodes = reconcile(RawCollections(servers=[_server()], ips=[_ip("10.0.0.2")]))

    assert len(nodes) == 2
    by_ip = _by_ip(nodes)
    host = by_ip["10.0.0.1"]
    mgmt = by_ip["10.0.0.2"]
    assert host.kind is Kind.HOST
    assert mgmt.kind is Kind.MANAGEMENT
    assert mgmt.ancestry.product == "EX 41"
    assert mgmt.ancestry.dc == "FSN1-DC5"
    assert mgmt.ancestry.server_name == "srv100"
    assert mgmt.ancestry.server_ip == ipaddress.ip_address("10.0.0.1")
    assert mgmt.ancestry.paid_until == date(2025, 1, 31)


def test_ip_record_for_main_ip_updates_host_in_place() -> None:
    nodes = reconcile(
        RawCollections(
            servers=[_server()],
            ips=[
                _ip(
                    "10.0.0.1",
                    locked=True,
                    separate_mac="00:11:22:33:44:55",
                    traffic_warnings=True,
                    traffic_hourly=200,
                    traffic_daily=2000,
                    traffic_monthly=20,
                )
            ],
        )
    )

    assert len(nodes) == 1
    host = nodes[0]
    assert host.kind is Kind.HOST
    assert host.locked is True
    assert host.separate_mac == "00:11:22:33:44:55"
    assert host.traffic_warnings is True
    assert (host.traffic_hourly, host.traffic_daily, host.traffic_monthly) == (200, 2000, 20)


def test_management_node_gets_its_own_address_fields() -> None:
    nodes = reconcile(
        RawCollections(
            servers=[_server()],
            ips=[_ip("10.0.0.1", locked=True), _ip("10.0.0.2", traffic_daily=5)],
        )
    )

    mgmt = _by_ip(nodes)["10.0.0.2"]
    assert mgmt.locked is False
    assert mgmt.traffic_daily == 5


def test_subnet_and_virtual_node() -> None:
    nodes = reconcile(
        RawCollections(
            servers=[_server()],
            subnets=[_subnet("10.1.0.0", 24, gateway="10.1.0.1")],
            rdns=[RawRdns.from_dict({"ip": "10.1.0.5", "ptr": "x.example.com"})],
        )
    )

    by_ip = _by_ip(nodes)
    network = by_ip["10.1.0.0"]
    virtual = by_ip["10.1.0.5"]
    assert network.kind is Kind.NETWORK
    assert network.identity == "10.1.0.0/24"
    assert network.gateway == ipaddress.ip_address("10.1.0.1")
    assert virtual.kind is Kind.VIRTUAL
    assert virtual.ptr == "x.example.com"
    assert virtual.ancestry == by_ip["10.0.0.1"].ancestry
    assert virtual.subnet is None


def test_ipv6_subnet_prefix_uses_128_bits() -> None:
    nodes = reconcile(
        RawCollections(
            servers=[_server()],
            subnets=[_subnet("2a01:4f8:61:20e1::", 64)],
            rdns=[RawRdns.from_dict({"ip": "2a01:4f8:61:20e1::2", "ptr": "v6.example.com"})],
        )
    )

    by_ip = _by_ip(nodes)
    assert by_ip["2a01:4f8:61:20e1::"].subnet == ipaddress.ip_network("2a01:4f8:61:20e1::/64")
    assert by_ip["2a01:4f8:61:20e1::2"].kind is Kind.VIRTUAL


def test_rdns_for_known_address_attaches_ptr() -> None:
    nodes = reconcile(
        RawCollections(
            servers=[_server()],
            ips=[_ip("10.0.0.2")],
            rdns=[
                RawRdns.from_dict({"ip": "10.0.0.1", "ptr": "host.example.com"}),
                RawRdns.from_dict({"ip": "10.0.0.2", "ptr": "mgmt.example.com"}),
            ],
        )
    )

    by_ip = _by_ip(nodes)
    assert by_ip["10.0.0.1"].ptr == "host.example.com"
    assert by_ip["10.0.0.1"].kind is Kind.HOST
    assert by_ip["10.0.0.2"].ptr == "mgmt.example.com"
    assert by_ip["10.0.0.2"].kind is Kind.MANAGEMENT


def test_rdns_uses_first_containing_subnet() -> None:
    nodes = reconcile(
        RawCollections(
            servers=[_server(), _server("10.0.0.3", 200, server_name="other")],
            subnets=[
                _subnet("10.1.0.0", 24, server_ip="10.0.0.3"),
                _subnet("10.1.0.128", 25, server_ip="10.0.0.1"),
            ],
            rdns=[RawRdns.from_dict({"ip": "10.1.0.200", "ptr": "v.example.com"})],
        )
    )

    virtual = _by_ip(nodes)["10.1.0.200"]
    assert virtual.ancestry.server_number == 200
    assert virtual.ancestry.server_name == "other"


def test_failover_promotes_reserved_network() -> None:
    nodes = reconcile(
        RawCollections(
            servers=[_server(), _server("10.0.0.3", 200)],
            subnets=[_subnet("10.9.9.9", 32, failover=True)],
            failovers=[
                RawFailover.from_dict(
                    {"ip": "10.9.9.9", "server_ip": "10.0.0.1", "server_number": 100, "active_server_ip": "10.0.0.3"}
                )
            ],
        )
    )

    node = _by_ip(nodes)["10.9.9.9"]
    assert node.kind is Kind.FAILOVER
    assert node.failover is True
    assert node.active_server_ip == ipaddress.ip_address("10.0.0.3")
    assert node.ancestry.server_number == 100


def test_failover_without_reserved_subnet_aborts() -> None:
    failover = RawFailover.from_dict({"ip": "10.9.9.9", "server_ip": "10.0.0.1", "active_server_ip": "10.0.0.1"})

    with pytest.raises(ReconcileError, match="10.9.9.9"):
        reconcile(RawCollections(servers=[_server()], failovers=[failover]))

    # A plain (non-failover) network at the address is not enough either.
    with pytest.raises(ReconcileError, match="10.9.9.9"):
        reconcile(RawCollections(servers=[_server()], subnets=[_subnet("10.9.9.9", 32)], failovers=[failover]))


def test_ip_with_unknown_host_aborts() -> None:
    with pytest.raises(ReconcileError, match="10.0.0.2"):
        reconcile(RawCollections(servers=[_server()], ips=[_ip("10.0.0.2", server_ip="10.0.0.99")]))


def test_subnet_colliding_with_node_aborts() -> None:
    with pytest.raises(ReconcileError, match="conflicts"):
        reconcile(RawCollections(servers=[_server()], ips=[_ip("10.0.0.2")], subnets=[_subnet("10.0.0.2", 32)]))


def test_subnet_with_host_bits_set_aborts() -> None:
    with pytest.raises(ReconcileError, match="host bits"):
        reconcile(RawCollections(servers=[_server()], subnets=[_subnet("10.1.0.5", 24)]))


def test_subnets_sharing_a_network_address_abort() -> None:
    with pytest.raises(ReconcileError):
        reconcile(RawCollections(servers=[_server()], subnets=[_subnet("10.1.0.0", 24), _subnet("10.1.0.5", 24)]))

    with pytest.raises(ReconcileError, match="conflicts"):
        reconcile(RawCollections(servers=[_server()], subnets=[_subnet("10.1.0.0", 24), _subnet("10.1.0.0", 25)]))


def test_subnet_with_unknown_host_aborts() -> None:
    with pytest.raises(ReconcileError, match="no host found"):
        reconcile(RawCollections(servers=[_server()], subnets=[_subnet("10.1.0.0", 24, server_ip="10.0.0.99")]))


def test_unplaceable_rdns_aborts() -> None:
    with pytest.raises(ReconcileError, match="192.0.2.10"):
        reconcile(
            RawCollections(
                servers=[_server()],
                subnets=[_subnet("10.1.0.0", 24)],
                rdns=[RawRdns.from_dict({"ip": "192.0.2.10", "ptr": "lost.example.com"})],
            )
        )


def test_duplicate_server_ip_aborts() -> None:
    with pytest.raises(ReconcileError, match="duplicate"):
        build_hosts([_server(), _server(number=101)])


def test_stages_do_not_mutate_their_input_table() -> None:
    hosts = build_hosts([_server()])
    snapshot = dict(hosts)

    updated = apply_ips(hosts, [_ip("10.0.0.1", locked=True), _ip("10.0.0.2")])

    assert hosts == snapshot
    assert len(updated) == 2
    assert hosts[ipaddress.ip_address("10.0.0.1")].locked is False


def test_identities_unique_and_ancestry_matches_host() -> None:
    nodes = reconcile(
        RawCollections(
            servers=[_server(), _server("10.0.0.3", 200, product="AX 101")],
            ips=[_ip("10.0.0.2"), _ip("10.0.0.4", server_ip="10.0.0.3")],
            subnets=[
                _subnet("10.1.0.0", 24),
                _subnet("10.2.0.0", 29, server_ip="10.0.0.3"),
                _subnet("10.9.9.9", 32, server_ip="10.0.0.3", failover=True),
            ],
            rdns=[
                RawRdns.from_dict({"ip": "10.1.0.5", "ptr": "a"}),
                RawRdns.from_dict({"ip": "10.2.0.3", "ptr": "b"}),
                RawRdns.from_dict({"ip": "10.0.0.3", "ptr": "c"}),
            ],
            failovers=[RawFailover.from_dict({"ip": "10.9.9.9", "server_ip": "10.0.0.3", "active_server_ip": "10.0.0.1"})],
        )
    )

    identities = [n.identity for n in nodes]
    assert len(identities) == len(set(identities))

    hosts: Dict[int, Ancestry] = {n.ancestry.server_number: n.ancestry for n in nodes if n.kind is Kind.HOST}
    for node in nodes:
        assert node.ancestry == hosts[node.ancestry.server_number]
    assert {n.kind for n in nodes} == set(Kind)
