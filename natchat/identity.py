"""
Peer Identity - Адресная запись пира
====================================

[SIGNALING] Каждый пир при входе в комнату сообщает о себе:
- public_ip: публичный IP (как его видит внешний мир)
- private_ip: IP в локальной сети
- port: локальный UDP порт

Запись не проверяется другими пирами и не меняется в течение сессии.
"""

from dataclasses import dataclass
from typing import Any, Dict

from .errors import SignalingError


IDENTITY_FIELDS = ("public_ip", "private_ip", "port")


@dataclass(frozen=True)
class PeerIdentity:
    """Самоотчёт пира о своих адресах. Все поля - строки."""

    public_ip: str = ""
    private_ip: str = ""
    port: str = ""

    def to_dict(self) -> Dict[str, str]:
        """Сериализация в словарь (формат сигналинга)."""
        return {
            "public_ip": self.public_ip,
            "private_ip": self.private_ip,
            "port": self.port,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PeerIdentity":
        """
        Десериализация из словаря.

        Отсутствующие поля становятся пустыми строками, лишние игнорируются.

        Raises:
            SignalingError: если запись не объект или поле не строка
        """
        if not isinstance(data, dict):
            raise SignalingError(f"Peer record must be an object, got {type(data).__name__}")

        values = {}
        for name in IDENTITY_FIELDS:
            value = data.get(name)
            if value is None:
                value = ""
            if not isinstance(value, str):
                raise SignalingError(
                    f"Peer record field '{name}' must be a string, got {type(value).__name__}"
                )
            values[name] = value
        return cls(**values)

    def __str__(self) -> str:
        return f"public={self.public_ip or '-'} private={self.private_ip or '-'} port={self.port or '-'}"
