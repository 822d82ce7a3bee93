"""
Address Classification
======================

Public/private classification for instance addresses. Never raises:
malformed input is reported as Visibility.UNKNOWN.
"""

import ipaddress
from typing import Optional, Union

from .base import AddressFamily, Visibility

PRIVATE_IPV4_NETWORKS = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("100.64.0.0/10"),  # carrier-grade NAT
)

PRIVATE_IPV6_NETWORKS = (
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
)


def _parse(address) -> Optional[Union[ipaddress.IPv4Address, ipaddress.IPv6Address]]:
    if not isinstance(address, str):
        return None
    # Linode reports IPv6 as "addr/prefix"
    text = address.strip().split("/", 1)[0]
    if not text:
        return None
    try:
        return ipaddress.ip_address(text)
    except ValueError:
        return None


def strip_prefix(address: str) -> str:
    return address.strip().split("/", 1)[0]


def address_family(address) -> Optional[AddressFamily]:
    parsed = _parse(address)
    if parsed is None:
        return None
    return AddressFamily.IPV4 if parsed.version == 4 else AddressFamily.IPV6


def classify_address(address) -> Visibility:
    """Classify an IPv4 or IPv6 address as public, private or unknown."""
    parsed = _parse(address)
    if parsed is None:
        return Visibility.UNKNOWN

    networks = PRIVATE_IPV4_NETWORKS if parsed.version == 4 else PRIVATE_IPV6_NETWORKS
    if any(parsed in network for network in networks):
        return Visibility.PRIVATE
    return Visibility.PUBLIC
