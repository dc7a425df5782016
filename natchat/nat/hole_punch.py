"""
Hole Punching - UDP hole punching
=================================

[HOLE PUNCH] Принцип работы:
1. Оба узла узнают адреса друг друга через сигналинг
2. Каждый отправляет серию пакетов на адрес пира
3. NAT создаёт mapping для исходящего пакета
4. Входящий пакет от пира проходит через созданный mapping

[BURST] Серия фиксированной длины с паузами:
- Ответы здесь не читаются: их видит только общий receive loop транспорта
- Серия не повторяется, если ответа не было
- Серия прерывается только отменой задачи (пир ушёл из комнаты)

[LIMITATIONS]
- Symmetric NAT: часто не работает (разный mapping для каждого destination)
- Carrier-grade NAT (CGNAT): может не работать
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Tuple

logger = logging.getLogger(__name__)


# Constants
PUNCH_COUNT = 10  # пакетов в серии
PUNCH_INTERVAL = 0.1  # seconds between sends

# Hole punch message magic
PROBE_PAYLOAD = b"P2P_PUNCH"


@dataclass(frozen=True)
class PunchPolicy:
    """Параметры серии: сколько пакетов и с какой паузой."""

    count: int = PUNCH_COUNT
    interval: float = PUNCH_INTERVAL

    def __post_init__(self):
        if self.count < 1:
            raise ValueError(f"punch count must be positive, got {self.count}")
        if self.interval < 0:
            raise ValueError(f"punch interval must be non-negative, got {self.interval}")


class HolePuncher:
    """
    UDP Hole Puncher поверх общего сокета транспорта.

    [USAGE]
    ```python
    puncher = HolePuncher(transport, PunchPolicy(count=10, interval=0.1))
    task = asyncio.create_task(puncher.punch(("203.0.113.1", 54321)))
    ```
    """

    def __init__(
        self,
        sender: Any,
        policy: PunchPolicy = PunchPolicy(),
        payload: bytes = PROBE_PAYLOAD,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            sender: Объект с `async send_to(address, data) -> bool` (UDPTransport)
            policy: Длина серии и пауза между пакетами
            payload: Содержимое пробного пакета
            sleep: Функция ожидания (подменяется в тестах)
        """
        self.sender = sender
        self.policy = policy
        self.payload = payload
        self._sleep = sleep

    async def punch(self, address: Tuple[str, int]) -> int:
        """
        Отправить серию пробных пакетов на address.

        Returns:
            Количество пакетов, успешно отданных сокету
        """
        host, port = address
        logger.info(f"[PUNCH] Starting burst to {host}:{port} ({self.policy.count} probes)")

        sent = 0
        for attempt in range(self.policy.count):
            if await self.sender.send_to(address, self.payload):
                sent += 1
            if attempt < self.policy.count - 1:
                await self._sleep(self.policy.interval)

        logger.debug(f"[PUNCH] Burst to {host}:{port} done: {sent}/{self.policy.count} sent")
        return sent
