"""
NAT Traversal Module
====================

Прямое UDP соединение между пирами за NAT без relay:
- Selector: выбор адреса пира (публичный или приватный)
- Hole Punch: серия пробных UDP пакетов
- STUN: обнаружение собственного публичного/приватного IP

[CONNECTION PRIORITY]
1. Private IP, если публичные IP совпадают (один NAT)
2. Public IP во всех остальных случаях
"""

from .selector import select_address, resolve_candidate, format_address, join_host_port
from .hole_punch import HolePuncher, PunchPolicy, PROBE_PAYLOAD
from .stun import STUNClient, MappedAddress, get_public_ip, get_private_ip

__all__ = [
    # Selector
    "select_address",
    "resolve_candidate",
    "format_address",
    "join_host_port",
    # Hole Punch
    "HolePuncher",
    "PunchPolicy",
    "PROBE_PAYLOAD",
    # STUN
    "STUNClient",
    "MappedAddress",
    "get_public_ip",
    "get_private_ip",
]
