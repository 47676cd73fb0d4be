"""aiogram message handlers.

Every incoming message gets exactly one reply. Text is run through the command pipeline and
answered with the result message; anything else gets the help text. Internal errors are logged and
answered with a generic apology, never with details.
"""

from __future__ import annotations

import logging

from aiogram.types import Message

from src.app import App
from src.commands.executor import HELP_TEXT
from src.commands.formatter import format_result
from src.intent.schema import ErrorKind, Intent, failure

logger = logging.getLogger(__name__)

START_TEXT = "Hola. Dime qué quieres hacer con tus proyectos y tareas.\n\n" + HELP_TEXT


def _fallback_reply() -> str:
    return format_result(failure(Intent.assistance, ErrorKind.external_service_failure))


async def handle_start(message: Message) -> None:
    """Reply to `/start` and `/help` with the usage text."""

    await message.answer(START_TEXT)


async def handle_message(message: Message, app: App) -> None:
    """Run any other incoming message through the pipeline and reply with its message."""

    text = message.text or message.caption or ""
    if not text.strip() or text.lstrip().startswith("/"):
        await message.answer(HELP_TEXT)
        return

    # noinspection PyBroadException
    try:
        result = await app.pipeline.process_transcript(text)
        reply = result.message or _fallback_reply()
    except Exception:
        # Handler boundary: the pipeline never raises, but the chat must always get an answer.
        logger.exception("handler failed")
        reply = _fallback_reply()

    await message.answer(reply)
