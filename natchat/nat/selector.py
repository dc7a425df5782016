"""
Address Selector - Выбор адреса для hole punching
=================================================

[NAT] Каждый пир сам решает, куда стучаться:
- Публичные IP совпадают -> оба за одним NAT/шлюзом -> private_ip:port
- Иначе -> public_ip:port

[LIMITATIONS]
- Это эвристика, а не согласование: стороны решают независимо
- Симметричность не гарантируется
- Альтернативный адрес на этом уровне не пробуется
"""

import ipaddress
from typing import Optional, Tuple

from ..errors import AddressResolutionError
from ..identity import PeerIdentity


def join_host_port(host: str, port: str) -> str:
    """Склеить host и port в строку `host:port` (IPv6 в квадратных скобках)."""
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def format_address(address: Tuple[str, int]) -> str:
    """
    Каноническая строка сокет-адреса.

    Используется как ключ реестра и для кандидатов, и для отправителей
    входящих датаграмм, поэтому обе стороны должны давать одну и ту же строку.
    """
    host, port = address[0], address[1]
    try:
        host = str(ipaddress.ip_address(host))
    except ValueError:
        pass
    return join_host_port(host, str(port))


def select_address(local: PeerIdentity, remote: PeerIdentity) -> Optional[str]:
    """
    Выбрать адрес удалённого пира.

    Args:
        local: Наша адресная запись
        remote: Запись удалённого пира

    Returns:
        Строка `ip:port` или None, если и IP, и порт пустые
    """
    if local.public_ip and local.public_ip == remote.public_ip:
        ip = remote.private_ip
    else:
        ip = remote.public_ip

    if not ip and not remote.port:
        return None
    return join_host_port(ip, remote.port)


def resolve_candidate(candidate: str) -> Tuple[str, int]:
    """
    Превратить кандидата `ip:port` в сокет-адрес.

    Raises:
        AddressResolutionError: пустой IP, не IP-литерал, плохой порт
    """
    host, sep, port_str = candidate.rpartition(":")
    if not sep:
        raise AddressResolutionError(f"missing port in address {candidate!r}")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    if not host:
        raise AddressResolutionError(f"missing host in address {candidate!r}")

    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        raise AddressResolutionError(f"invalid IP in address {candidate!r}") from None

    if not port_str.isdigit():
        raise AddressResolutionError(f"invalid port in address {candidate!r}")
    port = int(port_str)
    if not 0 < port < 65536:
        raise AddressResolutionError(f"port out of range in address {candidate!r}")

    return str(ip), port
