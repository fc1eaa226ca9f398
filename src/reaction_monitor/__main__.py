"""Command line entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from pathlib import Path

from .app import ReactionMonitorApp


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Forward emoji reactions from monitored channels to a webhook"
    )
    parser.add_argument("--db-path", default="reactions.db", help="Путь к файлу настроек")
    parser.add_argument(
        "--server-url",
        help="Адрес сервера чата. Можно передать через REACTION_MONITOR_SERVER_URL",
    )
    parser.add_argument(
        "--token",
        help="Токен доступа бота. Можно передать через REACTION_MONITOR_TOKEN",
    )
    parser.add_argument(
        "--webhook-url",
        help="Сохранить URL исходящего вебхука в настройках перед запуском",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Адрес HTTP сервера")
    parser.add_argument("--port", type=int, default=8075, help="Порт HTTP сервера")
    parser.add_argument("--log-level", default="INFO", help="Уровень логирования")
    args = parser.parse_args()

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    server_url = args.server_url or os.getenv("REACTION_MONITOR_SERVER_URL")
    token = args.token or os.getenv("REACTION_MONITOR_TOKEN")
    if not server_url or not token:
        parser.error(
            "Нужно передать --server-url и --token или переменные окружения "
            "REACTION_MONITOR_SERVER_URL и REACTION_MONITOR_TOKEN"
        )

    app = ReactionMonitorApp(
        db_path=Path(args.db_path),
        server_url=server_url,
        token=token,
        host=args.host,
        port=args.port,
    )
    if args.webhook_url is not None:
        app.settings.set_webhook_url(args.webhook_url)
    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Остановка по запросу пользователя")


if __name__ == "__main__":
    main()
