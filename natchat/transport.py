"""
UDP Transport - Единственный UDP сокет узла
===========================================

[TRANSPORT] Один сокет на всё:
- Hole punch серии (HolePuncher -> send_to)
- Рассылка сообщений чата (broadcast)
- Приём всех входящих датаграмм (receive_loop)

[PROMOTION] Любая входящая датаграмма подтверждает адрес отправителя
в реестре. Пробные пакеты и сообщения чата на этом уровне не различаются
по смыслу протокола: оба подтверждают пира. Пробные пакеты только не
показываются пользователю.

[WIRE] Сырые датаграммы без заголовков: PROBE_PAYLOAD или UTF-8 текст.
"""

import asyncio
import errno
import logging
import socket
from typing import Callable, Optional, Tuple

from .errors import TransportError
from .nat.hole_punch import PROBE_PAYLOAD
from .nat.selector import format_address
from .registry import PeerRegistry

logger = logging.getLogger(__name__)


# Совпадает с буфером чтения исходного клиента (MTU Ethernet)
DEFAULT_BUFFER_SIZE = 1500

# Ошибки чтения, после которых сокет непригоден
FATAL_RECV_ERRNOS = {errno.EBADF, errno.ENOTSOCK, errno.EINVAL}


MessageCallback = Callable[[str, str], None]


class UDPTransport:
    """
    Владелец UDP сокета.

    [USAGE]
    ```python
    transport = UDPTransport(registry, host="0.0.0.0")
    port = transport.open()
    asyncio.create_task(transport.receive_loop())
    await transport.broadcast("hello")
    ```
    """

    def __init__(
        self,
        registry: PeerRegistry,
        host: str = "0.0.0.0",
        port: int = 0,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        on_message: Optional[MessageCallback] = None,
        probe_payload: bytes = PROBE_PAYLOAD,
    ):
        """
        Args:
            registry: Общий реестр пиров
            host: Адрес привязки
            port: Порт привязки (0 = эфемерный)
            buffer_size: Максимальный размер читаемой датаграммы
            on_message: Колбэк (адрес отправителя, текст) для сообщений чата
            probe_payload: Содержимое пробных пакетов (не показываются)
        """
        self.registry = registry
        self.host = host
        self.port = port
        self.buffer_size = buffer_size
        self.on_message = on_message
        self.probe_payload = probe_payload
        self._sock: Optional[socket.socket] = None
        self._closed = False

    def open(self) -> int:
        """
        Создать и привязать сокет.

        Returns:
            Фактический локальный порт

        Raises:
            TransportError: bind не удался (ошибка запуска)
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setblocking(False)
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            raise TransportError(f"UDP bind to {self.host}:{self.port} failed: {e}") from e

        self._sock = sock
        self._closed = False
        self.port = sock.getsockname()[1]
        logger.info(f"[UDP] Listening on {self.host}:{self.port}")
        return self.port

    @property
    def local_port(self) -> int:
        return self.port

    @property
    def is_open(self) -> bool:
        return self._sock is not None and not self._closed

    async def send_to(self, address: Tuple[str, int], data: bytes) -> bool:
        """
        Отправить одну датаграмму.

        Ошибка отправки логируется и не пробрасывается.

        Returns:
            True если датаграмма отдана сокету
        """
        if not self.is_open:
            logger.warning(f"[UDP] Send to {format_address(address)} on closed socket dropped")
            return False

        loop = asyncio.get_running_loop()
        try:
            await loop.sock_sendto(self._sock, data, address)
            return True
        except OSError as e:
            logger.warning(f"[UDP] Send to {format_address(address)} failed: {e}")
            return False

    async def broadcast(self, text: str) -> int:
        """
        Разослать текст всем подтверждённым пирам, по датаграмме на адрес.

        Returns:
            Количество отправленных датаграмм (0 если пиров нет)
        """
        targets = await self.registry.snapshot(confirmed_only=True)
        if not targets:
            logger.warning("[CHAT] No peers connected yet")
            return 0

        data = text.encode("utf-8")
        logger.info(f"[CHAT] Sending message to {len(targets)} peer(s)")

        sent = 0
        for address in targets:
            if await self.send_to(address, data):
                sent += 1
        return sent

    async def handle_datagram(self, data: bytes, addr: Tuple) -> bool:
        """
        Обработать входящую датаграмму: подтвердить отправителя, показать текст.

        Returns:
            True если отправитель новый или только что подтверждён
        """
        address = (addr[0], addr[1])
        key = format_address(address)
        promoted = await self.registry.confirm(key, address)

        if data == self.probe_payload:
            logger.debug(f"[UDP] Probe from {key}")
            return promoted

        text = data.decode("utf-8", errors="replace")
        logger.debug(f"[UDP] Message from {key}: {text}")
        if self.on_message:
            self.on_message(key, text)
        return promoted

    async def receive_loop(self) -> None:
        """
        Читать датаграммы до закрытия сокета.

        Ошибка одной операции чтения логируется, цикл продолжается.
        Фатальная ошибка сокета завершает цикл (без перезапуска).
        """
        if not self.is_open:
            raise TransportError("receive_loop() called before open()")

        loop = asyncio.get_running_loop()
        while not self._closed:
            try:
                data, addr = await loop.sock_recvfrom(self._sock, self.buffer_size)
            except OSError as e:
                if self._closed or e.errno in FATAL_RECV_ERRNOS:
                    logger.error(f"[UDP] Receive loop stopped: {e}")
                    break
                logger.warning(f"[UDP] Receive error: {e}")
                continue

            await self.handle_datagram(data, addr)

        logger.info("[UDP] Receive loop finished")

    def close(self) -> None:
        """Закрыть сокет. Задачу receive_loop нужно отменить до этого."""
        self._closed = True
        if self._sock:
            self._sock.close()
            self._sock = None
