#!/usr/bin/env python3
"""
natchat - P2P UDP chat through NAT
==================================

[SIGNALING] Сервер сигналинга только пересылает адресные записи
участников комнаты. Сообщения чата идут напрямую между пирами по UDP.

[NAT] Для каждого нового участника узел выбирает адрес (приватный, если
публичные IP совпадают, иначе публичный) и отправляет серию пробных
пакетов, чтобы NAT открыл mapping в обе стороны.

Использование:
    python main.py ROOM [--server URL] [--verbose]

Примеры:
    # Два терминала, одна комната
    python main.py lobby
    python main.py lobby

    # Свой сервер сигналинга
    python main.py lobby --server ws://127.0.0.1:8080/ws
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

# Загрузка переменных окружения из .env файла (до импорта config)
from dotenv import load_dotenv
load_dotenv()

from config import config
from natchat.errors import NatChatError
from natchat.node import ChatNode


# Настройка логирования
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("natchat")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Serverless P2P UDP chat through NAT",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Terminal 1 and Terminal 2 (same room)
  python main.py lobby

  # Custom signaling server
  python main.py lobby --server ws://127.0.0.1:8080/ws
""",
    )
    parser.add_argument(
        "room",
        type=str,
        help="Room name shared by the peers",
    )
    parser.add_argument(
        "--server", "-s",
        type=str,
        default=config.signaling.url,
        help=f"Signaling server WebSocket URL (default: {config.signaling.url})",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    """
    Главная функция - точка входа.

    Returns:
        Код завершения процесса
    """
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config.signaling.url = args.server

    try:
        node = ChatNode(args.room, config)
        await node.run()
    except NatChatError as e:
        logger.error(f"[MAIN] Startup failed: {e}")
        return 1
    return 0


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
