"""
Local address discovery shared by the CLI and GUI front ends.
"""
import ipaddress
from typing import Iterable, List

from config import FALLBACK_ADDRESS

PREFERRED_NETWORKS = (
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
)


def _ipv4_candidates(addresses: Iterable[str]) -> List[ipaddress.IPv4Address]:
    candidates = []
    for text in addresses:
        try:
            addr = ipaddress.ip_address(text)
        except ValueError:
            continue
        if addr.version == 4 and not addr.is_loopback:
            candidates.append(addr)
    return candidates


def select_local_address(addresses: Iterable[str]) -> str:
    """Pick 172.16/12 first, then 192.168/16, then any non-loopback IPv4."""
    candidates = _ipv4_candidates(addresses)
    for network in PREFERRED_NETWORKS:
        for addr in candidates:
            if addr in network:
                return str(addr)
    if candidates:
        return str(candidates[0])
    return FALLBACK_ADDRESS


def interface_addresses() -> List[str]:
    from PyQt5.QtNetwork import QNetworkInterface, QAbstractSocket
    return [
        addr.toString() for addr in QNetworkInterface.allAddresses()
        if addr.protocol() == QAbstractSocket.IPv4Protocol
    ]


def get_local_address() -> str:
    return select_local_address(interface_addresses())
