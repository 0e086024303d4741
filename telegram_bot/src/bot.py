"""
Telegram Bot handlers

Every update is turned into an IncomingTurn and handed to the conversation
engine; replies come back through a MessageResponder.
"""

import base64
from typing import Optional
import structlog
from aiogram import Bot, Dispatcher, F, types
from aiogram.types import Message

from conversation_engine.src import Dispatcher as ConversationDispatcher
from shared.models.message import IncomingTurn, TurnKind

from .config import settings

logger = structlog.get_logger(__name__)

BOT_COMMANDS = [
    types.BotCommand(command="start", description="Show available commands"),
    types.BotCommand(command="login", description="Login to your account"),
    types.BotCommand(command="fact", description="Pay your PSTN (landline) invoice"),
    types.BotCommand(command="4g", description="Pay your 4G LTE"),
    types.BotCommand(command="adsl", description="Pay your ADSL or FTTH"),
    types.BotCommand(command="voucher", description="Apply ADSL/FTTH voucher"),
    types.BotCommand(command="scanvoucher", description="Scan voucher"),
    types.BotCommand(command="cancel", description="Stop current operation"),
]

ERROR_REPLY = "❌ An error occurred. Please try again later."


class MessageResponder:
    """Replies in the chat the message came from"""

    def __init__(self, message: Message):
        self.message = message

    async def send(self, text: str) -> None:
        await self.message.answer(text)


async def _dispatch(message: Message, engine: ConversationDispatcher, turn: IncomingTurn):
    try:
        await engine.handle(turn, MessageResponder(message))
    except Exception as e:
        logger.error(
            "update_handling_failed",
            user_id=turn.user_id,
            kind=turn.kind.value,
            error=str(e),
            exc_info=True
        )
        await message.answer(ERROR_REPLY)


async def handle_text_message(message: Message, engine: ConversationDispatcher):
    """Commands and free text (commands are parsed by the engine)"""
    turn = IncomingTurn(user_id=str(message.chat.id), kind=TurnKind.TEXT, text=message.text)
    await _dispatch(message, engine, turn)


async def handle_photo_message(message: Message, engine: ConversationDispatcher):
    """
    Photo messages

    The largest photo size is downloaded, base64-encoded, only when the
    engine asks for it (i.e. a voucher scan is waiting for an image).
    """
    user_id = str(message.chat.id)

    async def load_photo() -> Optional[str]:
        try:
            buffer = await message.bot.download(message.photo[-1])
            return base64.b64encode(buffer.getvalue()).decode("ascii")
        except Exception as e:
            logger.error("photo_download_failed", user_id=user_id, error=str(e), exc_info=True)
            return None

    turn = IncomingTurn(user_id=user_id, kind=TurnKind.IMAGE, image_loader=load_photo)
    await _dispatch(message, engine, turn)


async def handle_other_message(message: Message, engine: ConversationDispatcher):
    """Stickers, documents, voice notes..."""
    turn = IncomingTurn(user_id=str(message.chat.id), kind=TurnKind.OTHER)
    await _dispatch(message, engine, turn)


def setup_handlers(dp: Dispatcher):
    """Registers all bot handlers"""

    dp.message.register(handle_text_message, F.text)
    dp.message.register(handle_photo_message, F.photo)
    dp.message.register(handle_other_message)


async def on_startup(bot: Bot):
    """Called when polling starts"""
    logger.info("bot_started")
    await bot.set_my_commands(BOT_COMMANDS)


async def on_shutdown(bot: Bot):
    """Called when polling stops"""
    logger.info("bot_stopped")


def create_bot_and_dispatcher(engine: ConversationDispatcher) -> tuple[Bot, Dispatcher]:
    """Creates the bot and the aiogram dispatcher wired to the engine"""

    bot = Bot(token=settings.telegram_bot_token)

    # Handlers receive the engine as the `engine` argument
    dp = Dispatcher(engine=engine)

    setup_handlers(dp)

    dp.startup.register(on_startup)
    dp.shutdown.register(on_shutdown)

    return bot, dp
