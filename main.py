"""
LifeONE — Entry Point.

`python main.py` starts the Telegram bot in polling mode. Settings are read
from `.env` at import time of lifeone.config.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
# python-telegram-bot logs every getUpdates poll through httpx at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)

from lifeone.bot.telegram_bot import main

if __name__ == "__main__":
    main()
