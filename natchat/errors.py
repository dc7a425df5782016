"""
Ошибки natchat
==============

[ERRORS] Классификация:
- Startup-fatal: ConfigError, TransportError (bind), SignalingError (connect)
- Channel-fatal: SignalingError / SignalingClosed в цикле сигналинга
- Per-item: AddressResolutionError - пир пропускается в текущем цикле
"""


class NatChatError(Exception):
    """Базовая ошибка natchat."""
    pass


class ConfigError(NatChatError):
    """Недопустимое значение настройки."""
    pass


class AddressResolutionError(NatChatError):
    """Кандидат не превращается в сокет-адрес (плохой IP или порт)."""
    pass


class TransportError(NatChatError):
    """Не удалось открыть UDP сокет."""
    pass


class SignalingError(NatChatError):
    """Ошибка канала сигналинга (подключение или формат сообщения)."""
    pass


class SignalingClosed(SignalingError):
    """Соединение с сервером сигналинга закрыто."""
    pass
