"""
Peer Registry - Реестр адресов пиров
====================================

[CONCURRENCY] Единственное разделяемое состояние узла. Его меняют:
- Reconciler: создаёт неподтверждённые записи и удаляет ушедших
- UDPTransport: подтверждает адреса, от которых пришла датаграмма
- ChatLoop: читает снимок подтверждённых адресов для рассылки

Все операции выполняются под одним asyncio.Lock; сетевой I/O под
блокировкой не выполняется.

[INVARIANTS]
- Не больше одной записи на каноническую строку адреса
- confirmed только растёт: False -> True, обратно только через удаление
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


Address = Tuple[str, int]


@dataclass
class PeerEntry:
    """Запись реестра."""

    key: str
    address: Address
    confirmed: bool = False
    created_at: float = field(default_factory=time.time)
    confirmed_at: Optional[float] = None

    def confirm(self) -> bool:
        """Отметить как подтверждённый. True если статус изменился."""
        if self.confirmed:
            return False
        self.confirmed = True
        self.confirmed_at = time.time()
        return True


class PeerRegistry:
    """
    Потокобезопасный (в рамках event loop) набор адресов пиров.

    [USAGE]
    ```python
    registry = PeerRegistry()
    await registry.add_candidate("1.2.3.4:5000", ("1.2.3.4", 5000))
    await registry.confirm("1.2.3.4:5000", ("1.2.3.4", 5000))
    targets = await registry.snapshot()
    ```
    """

    def __init__(self):
        self._entries: Dict[str, PeerEntry] = {}
        self._lock = asyncio.Lock()

    async def add_candidate(self, key: str, address: Address) -> bool:
        """
        Добавить неподтверждённого кандидата.

        Returns:
            True если запись создана, False если ключ уже есть
        """
        async with self._lock:
            if key in self._entries:
                return False
            self._entries[key] = PeerEntry(key=key, address=address)
            return True

    async def confirm(self, key: str, address: Address) -> bool:
        """
        Подтвердить адрес (от него пришла датаграмма).

        Неизвестный адрес добавляется сразу подтверждённым.

        Returns:
            True если запись создана или повышена до подтверждённой
        """
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = PeerEntry(key=key, address=address)
                entry.confirm()
                self._entries[key] = entry
                logger.info(f"[PEER] First reply from new peer {key}, added as confirmed")
                return True
            if entry.confirm():
                logger.info(f"[PEER] Peer {key} confirmed")
                return True
            return False

    async def apply_candidates(
        self,
        active: Dict[str, Address],
    ) -> Tuple[List[str], List[str]]:
        """
        Сверить реестр с актуальным набором кандидатов за одну блокировку.

        - Новые кандидаты добавляются неподтверждёнными
        - Ключи, которых нет в active, удаляются

        Returns:
            (добавленные ключи, удалённые ключи)
        """
        async with self._lock:
            added = []
            for key, address in active.items():
                if key not in self._entries:
                    self._entries[key] = PeerEntry(key=key, address=address)
                    added.append(key)

            removed = [key for key in self._entries if key not in active]
            for key in removed:
                del self._entries[key]
                logger.info(f"[PEER] Peer disconnected: {key}")

            return added, removed

    async def clear(self) -> List[str]:
        """Удалить все записи. Возвращает удалённые ключи."""
        async with self._lock:
            removed = list(self._entries)
            self._entries.clear()
            return removed

    async def snapshot(self, confirmed_only: bool = True) -> List[Address]:
        """
        Снимок адресов для рассылки.

        Args:
            confirmed_only: только подтверждённые (политика рассылки по умолчанию)
        """
        async with self._lock:
            return [
                entry.address
                for entry in self._entries.values()
                if entry.confirmed or not confirmed_only
            ]

    async def entries(self) -> List[PeerEntry]:
        """Копии всех записей (для отображения)."""
        async with self._lock:
            return [replace(e) for e in self._entries.values()]

    async def get(self, key: str) -> Optional[PeerEntry]:
        """Копия записи или None."""
        async with self._lock:
            entry = self._entries.get(key)
            return replace(entry) if entry else None

    async def contains(self, key: str) -> bool:
        async with self._lock:
            return key in self._entries

    @property
    def size(self) -> int:
        """Количество записей (без блокировки, для логов и тестов)."""
        return len(self._entries)

    @property
    def confirmed_count(self) -> int:
        return sum(1 for e in self._entries.values() if e.confirmed)

    def __len__(self) -> int:
        return len(self._entries)
