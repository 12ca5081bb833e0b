#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import asyncio
import contextlib
import logging
import os
import re
import time
from typing import Optional, Tuple

from telegram import Update
from telegram.error import NetworkError
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from .config import Settings, load_settings, setup_logging
from .errors import Busy, PipelineError
from .pipeline import EpisodeCoordinator, EpisodeRequest

LOG = logging.getLogger("webtoon_dl.telegram_bot")

EPISODE_TEXT_RE = re.compile(
    r"^(?P<title>.+?)\s*(?:\||,|#|\b(?:ep|episode)\.?)?\s*(?P<episode>\d+)\s*$", re.I
)


def parse_episode_text(text: str) -> Tuple[Optional[str], Optional[int]]:
    """Split messages such as "Tower of God 12", "Tower of God | 12" or "Lore Olympus ep 3"."""
    if not text:
        return None, None
    m = EPISODE_TEXT_RE.match(text.strip())
    if not m:
        return None, None
    title = m.group("title").strip(" |,#")
    if not title or title.isdigit():
        return None, None
    return title, int(m.group("episode"))


def _coordinator(context: ContextTypes.DEFAULT_TYPE) -> EpisodeCoordinator:
    return context.application.bot_data["coordinator"]


async def start_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(
        "Send a webtoon title followed by the episode number.\n"
        "Examples:\n"
        "- Tower of God 12\n"
        "- Lore Olympus | 3\n"
        "- True Beauty ep 150"
    )


async def help_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await start_cmd(update, context)


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not update.message or not update.message.text:
        return
    title, episode = parse_episode_text(update.message.text)
    if not title or not episode:
        await update.message.reply_text("Send the title and the episode number, e.g. 'Tower of God 12'.")
        return

    coordinator = _coordinator(context)
    try:
        request = EpisodeRequest.build(title, episode, format="pdf")
    except PipelineError as exc:
        await update.message.reply_text(exc.message)
        return

    status = await update.message.reply_text("Processing... This may take a few minutes.")
    try:
        result = await coordinator.run(request)
    except Busy as exc:
        await status.edit_text(exc.message)
        return
    except PipelineError as exc:
        await status.edit_text(f"Episode {episode}: {exc.message}")
        return

    try:
        await update.message.reply_document(document=result.pdf_path, filename=result.filename)
        await status.delete()
    finally:
        coordinator.cleanup(result)


def _build_application(token: str, coordinator: EpisodeCoordinator) -> Application:
    app = Application.builder().token(token).build()
    app.bot_data["coordinator"] = coordinator
    app.add_handler(CommandHandler("start", start_cmd))
    app.add_handler(CommandHandler("help", help_cmd))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))
    return app


def _run_bot_loop(token: str, settings: Settings) -> None:
    retry_delay = max(1, int(os.getenv("TELEGRAM_RETRY_DELAY", "5") or "5"))
    coordinator = EpisodeCoordinator(settings)

    while True:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        app = _build_application(token, coordinator)
        try:
            app.run_polling(drop_pending_updates=True, close_loop=False, stop_signals=None)
            break
        except KeyboardInterrupt:
            LOG.info("Received Ctrl+C, shutting down gracefully.")
            break
        except NetworkError as err:
            LOG.warning("Telegram network error: %s. Retrying in %ss.", err, retry_delay)
            time.sleep(retry_delay)
        finally:
            with contextlib.suppress(RuntimeError):
                loop.run_until_complete(app.shutdown())
            asyncio.set_event_loop(None)
            loop.close()


def main() -> None:
    settings = load_settings()
    setup_logging(settings)

    token = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
    if not token:
        raise RuntimeError("Missing TELEGRAM_BOT_TOKEN in the environment or .env file.")

    print("Bot started. Send a title and episode via Telegram.")
    _run_bot_loop(token, settings)


if __name__ == "__main__":
    main()
