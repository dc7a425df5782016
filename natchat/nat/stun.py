"""
Address Discovery - Собственные публичный и приватный IP
========================================================

[STUN] RFC 5389 - Обнаружение публичного адреса:
- Отправляем Binding Request на STUN сервер
- Получаем XOR-MAPPED-ADDRESS (наш публичный IP:port)

[FALLBACK] Если все STUN серверы молчат - спрашиваем HTTP echo сервис
(api.ipify.org), который возвращает IP текстом.

Обе функции best-effort: при неудаче возвращают пустую строку,
узел продолжает работу, а AddressSelector просто не сочтёт пиров
соседями по NAT.
"""

import asyncio
import ipaddress
import logging
import os
import socket
import struct
from dataclasses import dataclass
from typing import List, Optional, Tuple

import aiohttp

logger = logging.getLogger(__name__)


# STUN Message Types
STUN_BINDING_REQUEST = 0x0001
STUN_BINDING_RESPONSE = 0x0101

# STUN Attributes
ATTR_MAPPED_ADDRESS = 0x0001
ATTR_XOR_MAPPED_ADDRESS = 0x0020

# STUN Magic Cookie (RFC 5389)
STUN_MAGIC_COOKIE = 0x2112A442

DEFAULT_STUN_SERVERS = [
    ("stun.l.google.com", 19302),
    ("stun.cloudflare.com", 3478),
]

STUN_TIMEOUT = 3.0  # seconds
STUN_RETRIES = 1

DEFAULT_IP_ECHO_URL = "https://api.ipify.org?format=text"
HTTP_TIMEOUT = 5.0


@dataclass
class MappedAddress:
    """Публичный адрес, полученный через STUN."""

    ip: str
    port: int


def build_binding_request(transaction_id: bytes) -> bytes:
    """
    Построить STUN Binding Request без атрибутов.

    Header: type (2) + length (2) + magic cookie (4) + transaction id (12)
    """
    return struct.pack(">HHI", STUN_BINDING_REQUEST, 0, STUN_MAGIC_COOKIE) + transaction_id


def parse_binding_response(data: bytes, transaction_id: bytes) -> Optional[MappedAddress]:
    """
    Разобрать STUN Binding Response.

    XOR-MAPPED-ADDRESS предпочтительнее MAPPED-ADDRESS. Поддерживается
    только IPv4.
    """
    if len(data) < 20:
        return None

    msg_type, _msg_length, magic_cookie = struct.unpack(">HHI", data[:8])
    if msg_type != STUN_BINDING_RESPONSE or magic_cookie != STUN_MAGIC_COOKIE:
        logger.debug(f"[STUN] Unexpected header: type=0x{msg_type:04x} cookie=0x{magic_cookie:08x}")
        return None
    if data[8:20] != transaction_id:
        logger.debug("[STUN] Transaction ID mismatch")
        return None

    mapped = None
    offset = 20
    while offset + 4 <= len(data):
        attr_type, attr_length = struct.unpack(">HH", data[offset:offset + 4])
        offset += 4
        value = data[offset:offset + attr_length]
        if len(value) < attr_length:
            break

        # IPv4 only: family 0x01, 8 bytes
        if len(value) >= 8 and value[1] == 0x01:
            port = struct.unpack(">H", value[2:4])[0]
            raw_ip = struct.unpack(">I", value[4:8])[0]
            if attr_type == ATTR_XOR_MAPPED_ADDRESS:
                port ^= STUN_MAGIC_COOKIE >> 16
                raw_ip ^= STUN_MAGIC_COOKIE
                return MappedAddress(ip=socket.inet_ntoa(struct.pack(">I", raw_ip)), port=port)
            if attr_type == ATTR_MAPPED_ADDRESS and mapped is None:
                mapped = MappedAddress(ip=socket.inet_ntoa(struct.pack(">I", raw_ip)), port=port)

        # Align to 4 bytes
        offset += attr_length + (-attr_length % 4)

    return mapped


class STUNClient:
    """
    Минимальный STUN клиент: только Binding Request.

    [USAGE]
    ```python
    client = STUNClient()
    mapped = await client.get_mapped_address()
    ```
    """

    def __init__(
        self,
        stun_servers: Optional[List[Tuple[str, int]]] = None,
        timeout: float = STUN_TIMEOUT,
        retries: int = STUN_RETRIES,
    ):
        self.stun_servers = stun_servers or DEFAULT_STUN_SERVERS
        self.timeout = timeout
        self.retries = retries

    async def get_mapped_address(self) -> Optional[MappedAddress]:
        """Опросить STUN серверы по очереди до первого ответа."""
        for stun_host, stun_port in self.stun_servers:
            try:
                result = await self._query(stun_host, stun_port)
            except OSError as e:
                logger.debug(f"[STUN] {stun_host}:{stun_port} failed: {e}")
                continue
            if result:
                logger.info(f"[STUN] Mapped address: {result.ip}:{result.port} (via {stun_host})")
                return result

        logger.warning("[STUN] All servers failed")
        return None

    async def _query(self, stun_host: str, stun_port: int) -> Optional[MappedAddress]:
        loop = asyncio.get_running_loop()

        infos = await loop.getaddrinfo(stun_host, stun_port, family=socket.AF_INET, type=socket.SOCK_DGRAM)
        stun_addr = infos[0][4]

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setblocking(False)
        try:
            sock.bind(("0.0.0.0", 0))
            transaction_id = os.urandom(12)
            request = build_binding_request(transaction_id)

            for attempt in range(self.retries + 1):
                await loop.sock_sendto(sock, request, stun_addr)
                try:
                    data = await asyncio.wait_for(loop.sock_recv(sock, 1024), timeout=self.timeout)
                except asyncio.TimeoutError:
                    logger.debug(f"[STUN] Timeout from {stun_host} ({attempt + 1}/{self.retries + 1})")
                    continue
                mapped = parse_binding_response(data, transaction_id)
                if mapped:
                    return mapped
            return None
        finally:
            sock.close()


def _valid_ip(text: str) -> bool:
    try:
        ipaddress.ip_address(text)
    except ValueError:
        return False
    return True


async def fetch_public_ip_http(url: str = DEFAULT_IP_ECHO_URL, timeout: float = HTTP_TIMEOUT) -> str:
    """Спросить публичный IP у HTTP echo сервиса. Пустая строка при неудаче."""
    try:
        client_timeout = aiohttp.ClientTimeout(total=timeout)
        async with aiohttp.ClientSession(timeout=client_timeout) as session:
            async with session.get(url) as response:
                if response.status != 200:
                    logger.warning(f"[STUN] IP echo {url} answered HTTP {response.status}")
                    return ""
                text = (await response.text()).strip()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.warning(f"[STUN] IP echo {url} failed: {e}")
        return ""

    if not _valid_ip(text):
        logger.warning(f"[STUN] IP echo {url} returned garbage: {text[:40]!r}")
        return ""
    return text


async def get_public_ip(
    stun_servers: Optional[List[Tuple[str, int]]] = None,
    echo_url: str = DEFAULT_IP_ECHO_URL,
    stun_timeout: float = STUN_TIMEOUT,
    http_timeout: float = HTTP_TIMEOUT,
) -> str:
    """
    Публичный IP этой машины: STUN, затем HTTP echo.

    Returns:
        IP строкой или "" если не удалось
    """
    mapped = await STUNClient(stun_servers, timeout=stun_timeout).get_mapped_address()
    if mapped:
        return mapped.ip
    if echo_url:
        return await fetch_public_ip_http(echo_url, http_timeout)
    return ""


def get_private_ip(probe_host: str = "8.8.8.8", probe_port: int = 80) -> str:
    """
    IP интерфейса, через который идёт маршрут наружу.

    connect() на UDP сокете пакетов не шлёт, только выбирает маршрут.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect((probe_host, probe_port))
            return s.getsockname()[0]
    except OSError as e:
        logger.warning(f"[STUN] Local IP lookup failed: {e}")
        return ""
