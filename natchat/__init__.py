"""
natchat - Serverless UDP chat through NAT
=========================================
Содержит компоненты узла:
- PeerRegistry: реестр адресов пиров (кандидаты и подтверждённые)
- Reconciler: сверка реестра со списком участников комнаты
- UDPTransport: единственный UDP сокет, приём и рассылка
- NAT: выбор адреса, hole punching, обнаружение своего IP
- SignalingClient: обмен адресами через WebSocket сервер
- ChatLoop / ChatNode: консольный чат и сборка узла
"""

from .errors import (
    NatChatError,
    ConfigError,
    AddressResolutionError,
    TransportError,
    SignalingError,
    SignalingClosed,
)
from .identity import PeerIdentity
from .registry import PeerRegistry, PeerEntry
from .transport import UDPTransport
from .reconciler import Reconciler, ReconcileResult
from .signaling import SignalingClient, parse_member_list
from .chat import ChatLoop

__version__ = "0.3.0"

__all__ = [
    # Errors
    "NatChatError",
    "ConfigError",
    "AddressResolutionError",
    "TransportError",
    "SignalingError",
    "SignalingClosed",
    # Model
    "PeerIdentity",
    "PeerRegistry",
    "PeerEntry",
    # Network
    "UDPTransport",
    "Reconciler",
    "ReconcileResult",
    "SignalingClient",
    "parse_member_list",
    # Chat
    "ChatLoop",
]
