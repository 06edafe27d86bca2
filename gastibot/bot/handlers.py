"""
Telegram bot handlers for the Gasti.pro expense bot.
"""

import logging
from dataclasses import dataclass
from html import escape
from typing import Awaitable, Callable, Optional

from telegram import Message, Update
from telegram.constants import MessageLimit, ParseMode
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from gastibot.bot.dispatcher import Route, command_argument, resolve_route
from gastibot.bot.formatters import format_amount, truncate_message
from gastibot.config import Config
from gastibot.errors import AuthError, NotAnExpenseError, ParseError, UpstreamError
from gastibot.models import ParsedExpense
from gastibot.services.auth import AuthSession
from gastibot.services.expense_parser import ExpenseParser
from gastibot.services.gasti_client import GastiClient
from gastibot.services.llm import LLMClient
from gastibot.services.query_parser import QUERY_APOLOGY, QueryParser
from gastibot.services.recorder import ExpenseRecorder
from gastibot.services.reporter import ExpenseReporter
from gastibot.services.token_store import TokenStore

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = """👋 ¡Hola! Soy tu asistente de gastos con IA.

💡 <b>¿Cómo usarme?</b>
Descríbeme tus gastos de forma natural y yo los registro en Gasti.pro:
  • "Compré zapatillas nuevas por 50000 pesos"
  • "Cena con amigos 45.50 usd"

<b>📊 Ver mis gastos:</b>
/gastos - Totales y últimos gastos
/resumen - Análisis de tus gastos con IA
/info &lt;pregunta&gt; - Ej: "/info cuánto gasté en comida este mes"
"""

NOT_AN_EXPENSE = "🤷 Eso no parece un gasto. Contame qué compraste y cuánto pagaste."
PARSE_FAILED = "😕 No pude entender los detalles de ese gasto. ¿Podrías intentarlo de nuevo con otro formato?"
LLM_FAILED = "🔥 No pude contactar a la IA para analizar tu mensaje. Intentá de nuevo en un rato."
AUTH_FAILED = "🔑 No pude iniciar sesión en Gasti.pro, así que no registré nada. Revisa los logs del servidor."
RECORD_FAILED = "🔥 ¡Ups! Hubo un error en mi sistema y no pude registrar el gasto."
RECORD_OK = "🎉 ¡Gasto registrado con éxito!"
LISTING_FAILED = "🔥 ¡Ups! Hubo un error y no pude obtener tus gastos. Revisa los logs del servidor."
NARRATIVE_FAILED = "🔥 ¡Ups! Hubo un error al generar el resumen. Revisa los logs del servidor."
QUERY_FAILED = "🔥 ¡Ups! Hubo un error al procesar tu solicitud. Revisa los logs del servidor."


@dataclass
class BotServices:
    """Everything the handlers need, built once per process."""
    config: Config
    gasti: GastiClient
    recorder: ExpenseRecorder
    reporter: ExpenseReporter


def build_services(config: Config) -> BotServices:
    """Wire the services from configuration."""
    llm = LLMClient(config)
    gasti = GastiClient(config)
    store = TokenStore(config.token_store_path, seed=config.gasti_refresh_token)
    auth = AuthSession(store, gasti)

    return BotServices(
        config=config,
        gasti=gasti,
        recorder=ExpenseRecorder(ExpenseParser(llm), auth, gasti),
        reporter=ExpenseReporter(
            auth,
            gasti,
            llm,
            QueryParser(llm, model=config.query_model),
            timezone=config.timezone,
            history_floor=config.history_floor,
            listing_rpc=config.listing_rpc,
        ),
    )


def _fit(text: str) -> str:
    """Keep a message within Telegram's length limit."""
    return truncate_message(text, MessageLimit.MAX_TEXT_LENGTH)


async def _edit(message: Message, text: str, parse_mode: Optional[str] = None) -> None:
    await message.edit_text(_fit(text), parse_mode=parse_mode)


def format_parsed_expense(expense: ParsedExpense) -> str:
    return (
        "✅ <b>¡Entendido! Registrando en Gasti.pro:</b>\n\n"
        f"📝 <b>Descripción:</b> {escape(expense.description)}\n"
        f"💰 <b>Monto:</b> {format_amount(expense.amount)} {escape(expense.currency)}\n"
        f"🏷️ <b>Categoría:</b> {escape(expense.category)}"
    )


async def greeting_flow(message: Message, services: BotServices) -> None:
    """Static help text."""
    await message.reply_text(WELCOME_MESSAGE, parse_mode=ParseMode.HTML)


async def record_flow(message: Message, services: BotServices) -> None:
    """Parse the text as an expense and submit it to Gasti.pro."""
    thinking = await message.reply_text("🤔 Analizando tu gasto...")

    try:
        expense = await services.recorder.parse(message.text)
        await _edit(thinking, format_parsed_expense(expense), ParseMode.HTML)
    except NotAnExpenseError as e:
        logger.info(f"Text was not an expense: {e}")
        await _edit(thinking, NOT_AN_EXPENSE)
        return
    except ParseError as e:
        logger.info(f"Could not understand expense: {e}")
        await _edit(thinking, PARSE_FAILED)
        return
    except UpstreamError as e:
        logger.error(f"Error en el flujo de registro: {e}")
        await _edit(thinking, LLM_FAILED)
        return
    except Exception as e:
        logger.error(f"Error en el flujo de registro: {e}", exc_info=True)
        await _edit(thinking, RECORD_FAILED)
        return

    try:
        await services.recorder.submit(expense)
    except AuthError as e:
        logger.error(f"Error en el flujo de registro: {e}")
        await message.reply_text(AUTH_FAILED)
        return
    except UpstreamError as e:
        logger.error(f"Error en el flujo de registro: {e}")
        await message.reply_text(RECORD_FAILED)
        return
    except Exception as e:
        logger.error(f"Error en el flujo de registro: {e}", exc_info=True)
        await message.reply_text(RECORD_FAILED)
        return

    await message.reply_text(RECORD_OK)


async def listing_flow(message: Message, services: BotServices) -> None:
    """Handle /gastos."""
    thinking = await message.reply_text("Buscando tus gastos en Gasti.pro...")
    try:
        text = await services.reporter.listing()
        await _edit(thinking, text, ParseMode.HTML)
    except (AuthError, UpstreamError) as e:
        logger.error(f"Error procesando el comando /gastos: {e}")
        await _edit(thinking, LISTING_FAILED)
    except Exception as e:
        logger.error(f"Error procesando el comando /gastos: {e}", exc_info=True)
        await _edit(thinking, LISTING_FAILED)


async def narrative_flow(message: Message, services: BotServices) -> None:
    """Handle /resumen."""
    thinking = await message.reply_text("🧠 Analizando tus gastos con IA... Esto puede tardar un momento.")
    try:
        text = await services.reporter.narrative()
        # LLM prose is sent as plain text; its markdown is not guaranteed to parse
        await _edit(thinking, text)
    except (AuthError, UpstreamError) as e:
        logger.error(f"Error procesando el comando /resumen: {e}")
        await _edit(thinking, NARRATIVE_FAILED)
    except Exception as e:
        logger.error(f"Error procesando el comando /resumen: {e}", exc_info=True)
        await _edit(thinking, NARRATIVE_FAILED)


async def query_flow(message: Message, services: BotServices) -> None:
    """Handle /info <question>."""
    thinking = await message.reply_text("🤔 Entendido. Analizando tu pregunta con IA...")
    try:
        report = await services.reporter.query(command_argument(message.text))
        await _edit(thinking, report.message, ParseMode.HTML)
    except ParseError as e:
        logger.info(f"Could not understand query: {e}")
        await _edit(thinking, QUERY_APOLOGY)
    except (AuthError, UpstreamError) as e:
        logger.error(f"Error procesando la consulta de info: {e}")
        await _edit(thinking, QUERY_FAILED)
    except Exception as e:
        logger.error(f"Error procesando la consulta de info: {e}", exc_info=True)
        await _edit(thinking, QUERY_FAILED)


FLOWS: dict[Route, Callable[[Message, BotServices], Awaitable[None]]] = {
    Route.GREETING: greeting_flow,
    Route.LISTING: listing_flow,
    Route.NARRATIVE: narrative_flow,
    Route.QUERY: query_flow,
    Route.RECORD: record_flow,
}


async def handle_text_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Route every text message (commands included) to exactly one flow."""
    message = update.effective_message
    if message is None or message.text is None:
        return

    services: BotServices = context.bot_data["services"]
    user = update.effective_user
    if user is None or not services.config.is_user_allowed(user.id):
        return

    route = resolve_route(message.text)
    if route is None:
        return

    logger.info(f"Handling {route.value} message from user {user.id}")
    await FLOWS[route](message, services)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log anything a handler did not catch; the bot keeps running."""
    logger.error("Unhandled error while processing an update", exc_info=context.error)


def create_application(config: Config) -> Application:
    """Create and configure the Telegram bot application."""
    application = Application.builder().token(config.telegram_bot_token).build()
    application.bot_data["services"] = build_services(config)

    # Commands are text too; edited messages are ignored so nothing is recorded twice
    application.add_handler(MessageHandler(filters.UpdateType.MESSAGE & filters.TEXT, handle_text_message))
    application.add_error_handler(error_handler)

    return application
