"""
Reconciler - Сверка реестра со списком участников комнаты
=========================================================

[SIGNALING] Сервер сигналинга при каждом изменении комнаты присылает
полный список участников (без нас самих). На каждое обновление:

1. Пустой список -> все ушли: реестр очищается, серии отменяются
2. Для каждого участника считаем кандидата (AddressSelector)
3. Новые кандидаты -> неподтверждённая запись + hole punch серия
4. Ключи реестра, которых нет среди кандидатов -> удаляются

Кандидаты пересчитываются заново на каждом обновлении и между
обновлениями не хранятся.

[CANCELLATION] Серия hole punch привязана к жизни кандидата: если
кандидат удалён до окончания серии, задача отменяется.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Sequence, Tuple

from .errors import AddressResolutionError, SignalingClosed, SignalingError
from .identity import PeerIdentity
from .nat.hole_punch import HolePuncher
from .nat.selector import format_address, resolve_candidate, select_address
from .registry import PeerRegistry

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Итог одного цикла сверки."""

    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    skipped: int = 0


class Reconciler:
    """
    Обработчик обновлений списка участников.

    [USAGE]
    ```python
    reconciler = Reconciler(my_identity, registry, puncher)
    await reconciler.run(signaling.updates())
    ```
    """

    def __init__(
        self,
        local_identity: PeerIdentity,
        registry: PeerRegistry,
        puncher: HolePuncher,
    ):
        self.local_identity = local_identity
        self.registry = registry
        self.puncher = puncher
        self._punch_tasks: Dict[str, asyncio.Task] = {}
        self.updates_processed = 0

    def active_candidates(self, identities: Sequence[PeerIdentity]) -> Tuple[Dict[str, Tuple[str, int]], int]:
        """
        Кандидаты текущего цикла: канонический ключ -> сокет-адрес.

        Returns:
            (кандидаты, количество пропущенных участников)
        """
        active: Dict[str, Tuple[str, int]] = {}
        skipped = 0
        for identity in identities:
            candidate = select_address(self.local_identity, identity)
            if candidate is None:
                logger.warning(f"[RECONCILE] No usable address for peer ({identity}), skipped")
                skipped += 1
                continue
            try:
                address = resolve_candidate(candidate)
            except AddressResolutionError as e:
                logger.warning(f"[RECONCILE] Address resolution failed ({candidate}): {e}")
                skipped += 1
                continue
            active[format_address(address)] = address
        return active, skipped

    async def on_update(self, identities: Sequence[PeerIdentity]) -> ReconcileResult:
        """Применить одно обновление списка участников."""
        self.updates_processed += 1

        if not identities:
            removed = await self.registry.clear()
            self._cancel_all()
            if removed:
                logger.info(f"[RECONCILE] Room is empty, dropped {len(removed)} peer(s)")
            return ReconcileResult(removed=removed)

        active, skipped = self.active_candidates(identities)
        added, removed = await self.registry.apply_candidates(active)

        for key in removed:
            self._cancel_punch(key)
        for key in added:
            self._start_punch(key, active[key])

        logger.debug(
            f"[RECONCILE] Update #{self.updates_processed}: "
            f"{len(active)} active, +{len(added)} -{len(removed)}, {skipped} skipped"
        )
        return ReconcileResult(added=added, removed=removed, skipped=skipped)

    async def run(self, updates: AsyncIterator[List[PeerIdentity]]) -> None:
        """
        Обрабатывать обновления, пока канал жив.

        Ошибка чтения/разбора сообщения завершает цикл навсегда; реестр
        остаётся в последнем состоянии.
        """
        try:
            async for identities in updates:
                await self.on_update(identities)
        except SignalingClosed as e:
            logger.warning(f"[SIGNAL] Connection closed: {e}")
        except SignalingError as e:
            logger.error(f"[SIGNAL] Signaling channel failed: {e}")
        else:
            logger.info("[SIGNAL] Update stream ended")

    @property
    def pending_punches(self) -> List[str]:
        """Ключи кандидатов с незавершённой серией."""
        return [key for key, task in self._punch_tasks.items() if not task.done()]

    def _start_punch(self, key: str, address: Tuple[str, int]) -> None:
        logger.info(f"[PUNCH] New peer {key}, punching")
        task = asyncio.create_task(self.puncher.punch(address))
        self._punch_tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._on_punch_done(k, t))

    def _on_punch_done(self, key: str, task: asyncio.Task) -> None:
        if self._punch_tasks.get(key) is task:
            del self._punch_tasks[key]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[PUNCH] Burst to {key} crashed: {exc!r}")

    def _cancel_punch(self, key: str) -> None:
        task = self._punch_tasks.pop(key, None)
        if task and not task.done():
            logger.debug(f"[PUNCH] Cancelling burst to departed peer {key}")
            task.cancel()

    def _cancel_all(self) -> None:
        for key in list(self._punch_tasks):
            self._cancel_punch(key)

    async def stop(self) -> None:
        """Отменить все серии и дождаться их завершения."""
        tasks = list(self._punch_tasks.values())
        self._cancel_all()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
