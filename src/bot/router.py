"""Bot router composition."""

from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command, CommandStart

from src.bot.handlers import handle_message, handle_start

router = Router(name="root")
router.message.register(handle_start, CommandStart())
router.message.register(handle_start, Command("help", "ayuda"))
router.message.register(handle_message)
