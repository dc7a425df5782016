"""
Chat Loop - Строчный ввод/вывод чата
====================================

Читает строки с консоли и рассылает их подтверждённым пирам.

Команды:
    /peers          - показать реестр пиров
    /quit, /exit    - выйти
    любой текст     - отправить всем подтверждённым пирам
"""

import logging
from typing import Awaitable, Callable, Optional

from aioconsole import ainput

from .registry import PeerRegistry
from .transport import UDPTransport

logger = logging.getLogger(__name__)


QUIT_COMMANDS = {"/quit", "/exit"}


class ChatLoop:
    """Интерактивный чат поверх UDPTransport."""

    def __init__(
        self,
        transport: UDPTransport,
        registry: PeerRegistry,
        prompt: str = "",
        reader: Optional[Callable[[str], Awaitable[str]]] = None,
        writer: Callable[[str], None] = print,
    ):
        self.transport = transport
        self.registry = registry
        self.prompt = prompt
        self._read = reader or ainput
        self._write = writer

    def display(self, sender: str, text: str) -> None:
        """Показать входящее сообщение (колбэк UDPTransport.on_message)."""
        self._write(f"[{sender}] {text}")

    async def show_peers(self) -> None:
        entries = await self.registry.entries()
        if not entries:
            self._write("No peers yet.")
            return
        for entry in entries:
            state = "confirmed" if entry.confirmed else "punching"
            self._write(f"  {entry.key:<24} {state}")

    async def handle_line(self, line: str) -> bool:
        """
        Обработать одну строку ввода.

        Returns:
            False если нужно выйти
        """
        text = line.strip()
        if not text:
            return True
        if text in QUIT_COMMANDS:
            return False
        if text == "/peers":
            await self.show_peers()
            return True

        if not await self.registry.snapshot():
            self._write("No peers yet.")
            return True

        if await self.transport.broadcast(text) == 0:
            logger.warning("[CHAT] Message was not sent to any peer")
        return True

    async def run(self) -> None:
        """Читать ввод до EOF или команды выхода."""
        logger.info("[CHAT] Chat started (type a message and press Enter, /quit to leave)")
        while True:
            try:
                line = await self._read(self.prompt)
            except EOFError:
                break
            if not await self.handle_line(line):
                break
        logger.info("[CHAT] Chat finished")
