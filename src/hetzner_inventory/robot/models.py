from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, ClassVar, Mapping, Optional, Union

from ..logging import get_logger

LOG = get_logger(__name__)

PAID_UNTIL_FORMAT = "%Y-%m-%d"

_MAC_RE = re.compile(r"^[0-9a-fA-F]{2}([:-])(?:[0-9a-fA-F]{2}\1){4}[0-9a-fA-F]{2}$")
_DOTTED_MAC_RE = re.compile(r"^[0-9a-fA-F]{4}\.[0-9a-fA-F]{4}\.[0-9a-fA-F]{4}$")

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def parse_ip(value: Any) -> Optional[IPAddress]:
    """
    Parse an address string from the webservice. Empty or malformed values
    yield None instead of failing the whole listing.
    """
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if not raw:
        return None
    try:
        return ipaddress.ip_address(raw)
    except ValueError:
        return None


def parse_mac(value: Any) -> Optional[str]:
    """Normalize a MAC address to lower-case colon form; anything else is None."""
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if _DOTTED_MAC_RE.match(raw):
        digits = raw.replace(".", "").lower()
        return ":".join(digits[i : i + 2] for i in range(0, 12, 2))
    if not _MAC_RE.match(raw):
        return None
    return raw.replace("-", ":").lower()


def parse_paid_until(value: Any) -> Optional[date]:
    # Unparsable dates stay unset; callers cannot tell them apart from "unknown".
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.strptime(value.strip(), PAID_UNTIL_FORMAT).date()
    except ValueError:
        LOG.debug("Ignoring malformed paid_until value", extra={"value": value})
        return None


def _str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value)


def _int(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _bool(data: Mapping[str, Any], key: str) -> bool:
    return bool(data.get(key) or False)


@dataclass(frozen=True)
class RawServer:
    """Entry of GET /server."""

    envelope: ClassVar[str] = "server"

    server_ip: Optional[IPAddress]
    server_number: int
    server_name: str = ""
    product: str = ""
    dc: str = ""
    traffic: str = ""
    flatrate: bool = False
    status: str = ""
    throttled: bool = False
    cancelled: bool = False
    paid_until: Optional[date] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RawServer:
        return cls(
            server_ip=parse_ip(data.get("server_ip")),
            server_number=_int(data, "server_number"),
            server_name=_str(data, "server_name"),
            product=_str(data, "product"),
            dc=_str(data, "dc"),
            traffic=_str(data, "traffic"),
            flatrate=_bool(data, "flatrate"),
            status=_str(data, "status"),
            throttled=_bool(data, "throttled"),
            cancelled=_bool(data, "cancelled"),
            paid_until=parse_paid_until(data.get("paid_until")),
        )


@dataclass(frozen=True)
class RawIp:
    """Entry of GET /ip."""

    envelope: ClassVar[str] = "ip"

    ip: Optional[IPAddress]
    server_ip: Optional[IPAddress]
    server_number: int = 0
    locked: bool = False
    separate_mac: Optional[str] = None
    traffic_warnings: bool = False
    traffic_hourly: int = 0
    traffic_daily: int = 0
    traffic_monthly: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RawIp:
        return cls(
            ip=parse_ip(data.get("ip")),
            server_ip=parse_ip(data.get("server_ip")),
            server_number=_int(data, "server_number"),
            locked=_bool(data, "locked"),
            separate_mac=parse_mac(data.get("separate_mac")),
            traffic_warnings=_bool(data, "traffic_warnings"),
            traffic_hourly=_int(data, "traffic_hourly"),
            traffic_daily=_int(data, "traffic_daily"),
            traffic_monthly=_int(data, "traffic_monthly"),
        )


@dataclass(frozen=True)
class RawSubnet:
    """Entry of GET /subnet."""

    envelope: ClassVar[str] = "subnet"

    ip: Optional[IPAddress]
    mask: int
    gateway: Optional[IPAddress] = None
    server_ip: Optional[IPAddress] = None
    server_number: int = 0
    failover: bool = False
    locked: bool = False
    traffic_warnings: bool = False
    traffic_hourly: int = 0
    traffic_daily: int = 0
    traffic_monthly: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RawSubnet:
        return cls(
            ip=parse_ip(data.get("ip")),
            mask=_int(data, "mask"),
            gateway=parse_ip(data.get("gateway")),
            server_ip=parse_ip(data.get("server_ip")),
            server_number=_int(data, "server_number"),
            failover=_bool(data, "failover"),
            locked=_bool(data, "locked"),
            traffic_warnings=_bool(data, "traffic_warnings"),
            traffic_hourly=_int(data, "traffic_hourly"),
            traffic_daily=_int(data, "traffic_daily"),
            traffic_monthly=_int(data, "traffic_monthly"),
        )


@dataclass(frozen=True)
class RawRdns:
    """Entry of GET /rdns."""

    envelope: ClassVar[str] = "rdns"

    ip: Optional[IPAddress]
    ptr: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RawRdns:
        return cls(ip=parse_ip(data.get("ip")), ptr=_str(data, "ptr"))


@dataclass(frozen=True)
class RawFailover:
    """Entry of GET /failover."""

    envelope: ClassVar[str] = "failover"

    ip: Optional[IPAddress]
    netmask: str = ""
    server_ip: Optional[IPAddress] = None
    server_number: int = 0
    active_server_ip: Optional[IPAddress] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RawFailover:
        return cls(
            ip=parse_ip(data.get("ip")),
            netmask=_str(data, "netmask"),
            server_ip=parse_ip(data.get("server_ip")),
            server_number=_int(data, "server_number"),
            active_server_ip=parse_ip(data.get("active_server_ip")),
        )


@dataclass(frozen=True)
class ApiError:
    """Structured error body returned by the webservice on non-200 responses."""

    envelope: ClassVar[str] = "error"

    status: int
    code: str
    message: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ApiError:
        return cls(status=_int(data, "status"), code=_str(data, "code"), message=_str(data, "message"))

    def __str__(self) -> str:
        return f"{self.message} ({self.status} {self.code})"

