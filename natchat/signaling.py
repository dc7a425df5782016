"""
Signaling Client - Обмен адресами через сервер сигналинга
=========================================================

[SIGNALING] WebSocket канал, JSON текстовые фреймы:
- При входе: один объект {"public_ip", "private_ip", "port"}
- Далее сервер присылает массив таких объектов при каждом изменении
  комнаты (без нас самих); [] означает, что в комнате никого нет

Сервер используется только для обмена метаданными: трафик чата
идёт напрямую по UDP.
"""

import asyncio
import json
import logging
from typing import AsyncIterator, List, Optional
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from .errors import SignalingClosed, SignalingError
from .identity import PeerIdentity

logger = logging.getLogger(__name__)


CONNECT_TIMEOUT = 10.0


def parse_member_list(raw) -> List[PeerIdentity]:
    """
    Разобрать сообщение сервера со списком участников.

    `null` трактуется как пустой список.

    Raises:
        SignalingError: не JSON, не массив, или записи неверной формы
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise SignalingError(f"Malformed member list: {e}") from e

    if data is None:
        return []
    if not isinstance(data, list):
        raise SignalingError(f"Member list must be an array, got {type(data).__name__}")
    return [PeerIdentity.from_dict(item) for item in data]


class SignalingClient:
    """
    Клиент сервера сигналинга для одной комнаты.

    [USAGE]
    ```python
    client = SignalingClient("ws://host:8080/ws", room="lobby")
    await client.connect()
    await client.join(my_identity)
    async for members in client.updates():
        ...
    ```
    """

    def __init__(self, url: str, room: str, connect_timeout: float = CONNECT_TIMEOUT):
        self.url = url
        self.room = room
        self.connect_timeout = connect_timeout
        self._ws = None

    @property
    def endpoint(self) -> str:
        """URL подключения с параметром комнаты."""
        sep = "&" if "?" in self.url else "?"
        return f"{self.url}{sep}{urlencode({'room': self.room})}"

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(self) -> None:
        """
        Подключиться к серверу.

        Raises:
            SignalingError: сервер недоступен (ошибка запуска)
        """
        logger.info(f"[SIGNAL] Joining room '{self.room}' via {self.url}")
        try:
            self._ws = await asyncio.wait_for(
                websockets.connect(self.endpoint),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise SignalingError(f"Connection to {self.url} timed out") from e
        except (OSError, InvalidURI, InvalidHandshake) as e:
            raise SignalingError(f"Connection to {self.url} failed: {e}") from e
        logger.info("[SIGNAL] Connected to signaling server")

    async def join(self, identity: PeerIdentity) -> None:
        """Отправить свою адресную запись."""
        if self._ws is None:
            raise SignalingError("join() called before connect()")
        try:
            await self._ws.send(json.dumps(identity.to_dict()))
        except ConnectionClosed as e:
            raise SignalingClosed(f"Connection closed while joining: {e}") from e
        logger.debug(f"[SIGNAL] Sent identity: {identity}")

    async def updates(self) -> AsyncIterator[List[PeerIdentity]]:
        """
        Асинхронный поток списков участников.

        Raises:
            SignalingClosed: соединение закрыто
            SignalingError: сообщение не удалось разобрать
        """
        if self._ws is None:
            raise SignalingError("updates() called before connect()")
        while True:
            try:
                raw = await self._ws.recv()
            except ConnectionClosed as e:
                raise SignalingClosed(f"WebSocket connection lost: {e}") from e
            members = parse_member_list(raw)
            logger.debug(f"[SIGNAL] Member list: {len(members)} peer(s)")
            yield members

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
