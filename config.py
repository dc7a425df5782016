"""
natchat Configuration
=====================
Централизованная конфигурация узла чата.

Значения по умолчанию можно переопределить переменными окружения
(или файлом .env, который main.py загружает до импорта этого модуля).
"""

from dataclasses import dataclass, field
from typing import List, Tuple

import os


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


# ============================================================================
# Environment overrides
# ============================================================================

SIGNALING_URL: str = os.getenv("NATCHAT_SIGNALING_URL", "ws://solana1000.synology.me:8080/ws").strip()
BIND_HOST: str = os.getenv("NATCHAT_BIND_HOST", "0.0.0.0").strip()
PUNCH_COUNT: int = _env_int("NATCHAT_PUNCH_COUNT", 10)
PUNCH_INTERVAL: float = _env_float("NATCHAT_PUNCH_INTERVAL", 0.1)
# Явный публичный IP (если STUN/HTTP недоступны или нужен фиксированный)
PUBLIC_IP: str = os.getenv("NATCHAT_PUBLIC_IP", "").strip()


@dataclass
class NetworkConfig:
    """Настройки UDP сокета."""

    # Адрес привязки; порт всегда эфемерный
    bind_host: str = BIND_HOST

    # Размер буфера для чтения датаграмм
    buffer_size: int = 1500


@dataclass
class PunchConfig:
    """Параметры hole punch серии."""

    count: int = PUNCH_COUNT
    interval: float = PUNCH_INTERVAL
    payload: bytes = b"P2P_PUNCH"


@dataclass
class SignalingConfig:
    """Сервер сигналинга."""

    url: str = SIGNALING_URL
    connect_timeout: float = 10.0


@dataclass
class DiscoveryConfig:
    """Обнаружение собственных адресов."""

    public_ip: str = PUBLIC_IP
    stun_servers: List[Tuple[str, int]] = field(default_factory=lambda: [
        ("stun.l.google.com", 19302),
        ("stun.cloudflare.com", 3478),
    ])
    stun_timeout: float = 3.0
    ip_echo_url: str = "https://api.ipify.org?format=text"
    http_timeout: float = 5.0


@dataclass
class ChatConfig:
    """Консоль чата."""

    prompt: str = ""


@dataclass
class Config:
    """Главный конфигурационный класс."""

    network: NetworkConfig = field(default_factory=NetworkConfig)
    punch: PunchConfig = field(default_factory=PunchConfig)
    signaling: SignalingConfig = field(default_factory=SignalingConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)


# Глобальный экземпляр конфигурации
config = Config()
