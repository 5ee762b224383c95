"""Telegram bot credentials loaded from the environment."""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from common.constants import MAX_TELEGRAM_BOTS
from common.logging_config import get_logger

logger = get_logger(__name__)

BOT_TOKEN_ENV_TEMPLATE = "TELEGRAM_BOT_{index}_TOKEN"
STORAGE_CHAT_ID_ENV = "TELEGRAM_STORAGE_CHAT_ID"


@dataclass(frozen=True)
class BotCredential:
    """
    One configured bot: its token and the chat that receives stored chunks.
    """
    bot_id: str
    name: str
    token: str = field(repr=False)
    chat_id: str


def load_bot_credentials(env: Optional[Mapping[str, str]] = None) -> List[BotCredential]:
    """
    Build the bot list from TELEGRAM_BOT_1_TOKEN .. TELEGRAM_BOT_10_TOKEN.

    Every bot posts to the shared TELEGRAM_STORAGE_CHAT_ID. Gaps in the
    numbering are allowed; the bot id keeps the slot number.

    Args:
        env: Mapping to read from (defaults to os.environ)

    Returns:
        Configured credentials, empty when the chat id or all tokens are missing
    """
    if env is None:
        env = os.environ

    chat_id = (env.get(STORAGE_CHAT_ID_ENV) or "").strip()
    if not chat_id:
        logger.warning(f"{STORAGE_CHAT_ID_ENV} is not set, Telegram storage disabled")
        return []

    credentials = []
    for index in range(1, MAX_TELEGRAM_BOTS + 1):
        token = (env.get(BOT_TOKEN_ENV_TEMPLATE.format(index=index)) or "").strip()
        if not token:
            continue
        credentials.append(
            BotCredential(
                bot_id=f"bot-{index}",
                name=f"Bot {index}",
                token=token,
                chat_id=chat_id,
            )
        )

    logger.info(f"Loaded {len(credentials)} Telegram bot credential(s)")
    return credentials
