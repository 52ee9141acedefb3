import ipaddress
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple, Union

from iplookup.core.errors import InvalidIpAddress

IpAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class IpKind(str, Enum):
    NONE = "none"
    RFC1918 = "rfc1918"
    LOOPBACK = "loopback"
    LINK_LOCAL = "link_local"
    CGNAT = "cgnat"
    THIS_NETWORK = "this_network"
    DOCUMENTATION = "documentation"
    MULTICAST = "multicast"
    UNIQUE_LOCAL = "unique_local"
    INVALID = "invalid"


@dataclass(frozen=True)
class Classification:
    is_public: bool
    kind: IpKind


PUBLIC = Classification(is_public=True, kind=IpKind.NONE)
INVALID = Classification(is_public=False, kind=IpKind.INVALID)

# Checked in order; first match wins.
_V4_RESERVED: List[Tuple[ipaddress.IPv4Network, IpKind]] = [
    (ipaddress.IPv4Network("10.0.0.0/8"), IpKind.RFC1918),
    (ipaddress.IPv4Network("172.16.0.0/12"), IpKind.RFC1918),
    (ipaddress.IPv4Network("192.168.0.0/16"), IpKind.RFC1918),
    (ipaddress.IPv4Network("127.0.0.0/8"), IpKind.LOOPBACK),
    (ipaddress.IPv4Network("169.254.0.0/16"), IpKind.LINK_LOCAL),
    (ipaddress.IPv4Network("100.64.0.0/10"), IpKind.CGNAT),
    (ipaddress.IPv4Network("0.0.0.0/8"), IpKind.THIS_NETWORK),
    (ipaddress.IPv4Network("192.0.2.0/24"), IpKind.DOCUMENTATION),
    (ipaddress.IPv4Network("198.51.100.0/24"), IpKind.DOCUMENTATION),
    (ipaddress.IPv4Network("203.0.113.0/24"), IpKind.DOCUMENTATION),
    (ipaddress.IPv4Network("224.0.0.0/4"), IpKind.MULTICAST),
]

_V6_RESERVED: List[Tuple[ipaddress.IPv6Network, IpKind]] = [
    (ipaddress.IPv6Network("::/128"), IpKind.LOOPBACK),
    (ipaddress.IPv6Network("::1/128"), IpKind.LOOPBACK),
    (ipaddress.IPv6Network("fe80::/10"), IpKind.LINK_LOCAL),
    (ipaddress.IPv6Network("fc00::/7"), IpKind.UNIQUE_LOCAL),
    (ipaddress.IPv6Network("ff00::/8"), IpKind.MULTICAST),
    (ipaddress.IPv6Network("2001:db8::/32"), IpKind.DOCUMENTATION),
]


def parse_ip(value) -> IpAddress:
    """
    Parse an IPv4/IPv6 literal.
    Raises InvalidIpAddress for anything else (hostnames, CIDR, zone ids, None).
    """
    if not isinstance(value, str):
        raise InvalidIpAddress(value)
    text = value.strip()
    if not text or "%" in text or "/" in text:
        raise InvalidIpAddress(value)
    try:
        return ipaddress.ip_address(text)
    except ValueError:
        raise InvalidIpAddress(value)


def classify(address: Union[IpAddress, str]) -> Classification:
    """Classify an address as public or as one of the reserved kinds."""
    if isinstance(address, str):
        try:
            address = parse_ip(address)
        except InvalidIpAddress:
            return INVALID

    if address.version == 6:
        # ::ffff:a.b.c.d is an IPv4 host; classify the embedded address
        if address.ipv4_mapped is not None:
            return classify(address.ipv4_mapped)
        table = _V6_RESERVED
    else:
        table = _V4_RESERVED

    for network, kind in table:
        if address in network:
            return Classification(is_public=False, kind=kind)
    return PUBLIC
