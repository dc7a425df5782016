"""
Chat Node - Сборка всех компонентов
===================================

[LIFECYCLE]
1. Открываем UDP сокет на эфемерном порту
2. Определяем свой публичный и приватный IP
3. Подключаемся к серверу сигналинга и отправляем свою запись
4. Запускаем фоновые задачи: приём UDP и сверку участников
5. В основной задаче работает чат до EOF или /quit
6. Останавливаем задачи и закрываем ресурсы

Ошибки шагов 1 и 3 фатальны для запуска.
"""

import asyncio
import logging
from contextlib import suppress
from typing import Awaitable, Callable, List, Optional

from config import Config, config as default_config

from .chat import ChatLoop
from .errors import ConfigError
from .identity import PeerIdentity
from .nat.hole_punch import HolePuncher, PunchPolicy
from .nat.stun import get_private_ip, get_public_ip
from .reconciler import Reconciler
from .registry import PeerRegistry
from .signaling import SignalingClient
from .transport import UDPTransport

logger = logging.getLogger(__name__)


class ChatNode:
    """
    Узел чата в одной комнате.

    [USAGE]
    ```python
    node = ChatNode("lobby")
    await node.run()
    ```
    """

    def __init__(
        self,
        room: str,
        cfg: Optional[Config] = None,
        signaling: Optional[SignalingClient] = None,
        reader: Optional[Callable[[str], Awaitable[str]]] = None,
        writer: Callable[[str], None] = print,
    ):
        self.room = room
        self.config = cfg or default_config

        self.registry = PeerRegistry()
        self.transport = UDPTransport(
            self.registry,
            host=self.config.network.bind_host,
            buffer_size=self.config.network.buffer_size,
            probe_payload=self.config.punch.payload,
        )
        self.chat = ChatLoop(
            self.transport,
            self.registry,
            prompt=self.config.chat.prompt,
            reader=reader,
            writer=writer,
        )
        self.transport.on_message = self.chat.display

        self.signaling = signaling or SignalingClient(
            self.config.signaling.url,
            room,
            connect_timeout=self.config.signaling.connect_timeout,
        )
        try:
            policy = PunchPolicy(count=self.config.punch.count, interval=self.config.punch.interval)
        except ValueError as e:
            raise ConfigError(f"Invalid punch settings: {e}") from e
        self.puncher = HolePuncher(self.transport, policy, payload=self.config.punch.payload)

        self.identity: Optional[PeerIdentity] = None
        self.reconciler: Optional[Reconciler] = None
        self._tasks: List[asyncio.Task] = []

    async def discover_identity(self, port: int) -> PeerIdentity:
        """Собрать собственную адресную запись."""
        discovery = self.config.discovery
        private_ip = get_private_ip()
        public_ip = discovery.public_ip or await get_public_ip(
            discovery.stun_servers,
            echo_url=discovery.ip_echo_url,
            stun_timeout=discovery.stun_timeout,
            http_timeout=discovery.http_timeout,
        )
        identity = PeerIdentity(public_ip=public_ip, private_ip=private_ip, port=str(port))
        logger.info(
            f"[MAIN] Local identity - public IP: {public_ip or '?'}, "
            f"private IP: {private_ip or '?'}, port: {port}"
        )
        return identity

    async def start(self) -> None:
        """
        Запустить узел.

        Raises:
            TransportError: UDP сокет не открылся
            SignalingError: сервер сигналинга недоступен
        """
        port = self.transport.open()
        try:
            self.identity = await self.discover_identity(port)
            await self.signaling.connect()
            await self.signaling.join(self.identity)
        except BaseException:
            await self.signaling.close()
            self.transport.close()
            raise

        self.reconciler = Reconciler(self.identity, self.registry, self.puncher)
        self._tasks = [
            asyncio.create_task(self.transport.receive_loop(), name="udp-receive"),
            asyncio.create_task(self.reconciler.run(self.signaling.updates()), name="signaling"),
        ]

    async def stop(self) -> None:
        """Остановить фоновые задачи и закрыть ресурсы."""
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._tasks = []

        if self.reconciler:
            await self.reconciler.stop()
        await self.signaling.close()
        self.transport.close()
        logger.info("[MAIN] Shutdown complete")

    async def run(self) -> None:
        """Запустить узел и чат; вернуться после выхода из чата."""
        await self.start()
        try:
            await self.chat.run()
        finally:
            await self.stop()
