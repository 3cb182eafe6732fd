from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Tuple, Type

from ..logging import get_logger
from ..util.concurrency import parallel_call_all
from ..util.errors import map_robot_error
from .client import RobotClient
from .models import RawFailover, RawIp, RawRdns, RawServer, RawSubnet

LOG = get_logger(__name__)

# name -> (path, record type)
COLLECTIONS: Dict[str, Tuple[str, Type[Any]]] = {
    "servers": ("/server", RawServer),
    "ips": ("/ip", RawIp),
    "subnets": ("/subnet", RawSubnet),
    "rdns": ("/rdns", RawRdns),
    "failovers": ("/failover", RawFailover),
}


@dataclass(frozen=True)
class RawCollections:
    servers: List[RawServer] = field(default_factory=list)
    ips: List[RawIp] = field(default_factory=list)
    subnets: List[RawSubnet] = field(default_factory=list)
    rdns: List[RawRdns] = field(default_factory=list)
    failovers: List[RawFailover] = field(default_factory=list)


def _fetcher(client: RobotClient, name: str) -> Callable[[], List[Any]]:
    path, record_type = COLLECTIONS[name]

    def fetch() -> List[Any]:
        try:
            items = client.get(path, record_type)
        except Exception as e:
            mapped = map_robot_error(e, f"Robot error while listing {name}")
            if mapped:
                raise mapped from e
            raise
        LOG.debug("Fetched collection", extra={"collection": name, "count": len(items)})
        return items

    return fetch


def fetch_collections(client: RobotClient) -> RawCollections:
    """
    Fetch servers, ips, subnets, rdns and failovers concurrently.
    Waits for all five listings; if any failed, the first failure to complete is
    raised and nothing is returned.
    """
    results = parallel_call_all({name: _fetcher(client, name) for name in COLLECTIONS}, max_workers=len(COLLECTIONS))
    return RawCollections(**results)
