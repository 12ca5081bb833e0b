"""Tests for the Telegram front end."""

import pathlib
from unittest.mock import AsyncMock, MagicMock

import pytest

from webtoon_dl.pipeline import EpisodeCoordinator
from webtoon_dl.telegram_bot import handle_text, parse_episode_text


def _update(text: str):
    status = MagicMock()
    status.edit_text = AsyncMock()
    status.delete = AsyncMock()
    message = MagicMock()
    message.text = text
    message.reply_text = AsyncMock(return_value=status)
    message.reply_document = AsyncMock()
    update = MagicMock()
    update.message = message
    return update, message, status


def _context(coordinator: EpisodeCoordinator):
    context = MagicMock()
    context.application.bot_data = {"coordinator": coordinator}
    return context


class TestParseEpisodeText:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("Tower of God 12", ("Tower of God", 12)),
            ("Tower of God | 12", ("Tower of God", 12)),
            ("Lore Olympus ep 3", ("Lore Olympus", 3)),
            ("True Beauty episode 150", ("True Beauty", 150)),
            ("unOrdinary #7", ("unOrdinary", 7)),
            ("  Example , 2  ", ("Example", 2)),
        ],
    )
    def test_valid_messages(self, text, expected) -> None:
        assert parse_episode_text(text) == expected

    @pytest.mark.parametrize("text", ["", "Tower of God", "12", "| 12"])
    def test_invalid_messages(self, text) -> None:
        assert parse_episode_text(text) == (None, None)


class TestHandleText:
    @pytest.mark.asyncio
    async def test_sends_pdf_then_deletes_it(self, settings, site) -> None:
        coordinator = EpisodeCoordinator(settings, session_factory=site.factory)
        update, message, status = _update("Example 1")
        sent = {}

        async def reply_document(document, filename):
            sent["path"] = pathlib.Path(document)
            sent["existed"] = sent["path"].exists()
            sent["filename"] = filename

        message.reply_document.side_effect = reply_document
        await handle_text(update, _context(coordinator))

        assert sent["existed"]
        assert sent["filename"] == "Example_Ep1.pdf"
        assert not sent["path"].exists()
        status.delete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_busy_edits_status_message(self, settings, site) -> None:
        coordinator = EpisodeCoordinator(settings, session_factory=site.factory)
        coordinator.gate.acquire()
        update, message, status = _update("Example 1")

        await handle_text(update, _context(coordinator))

        status.edit_text.assert_awaited_once_with("Server is busy, please try again later")
        message.reply_document.assert_not_awaited()
        assert site.sessions == []

    @pytest.mark.asyncio
    async def test_pipeline_error_is_reported(self, settings, site) -> None:
        site.image_attrs = []
        coordinator = EpisodeCoordinator(settings, session_factory=site.factory)
        update, message, status = _update("Example 4")

        await handle_text(update, _context(coordinator))

        status.edit_text.assert_awaited_once_with("Episode 4: No images found in the episode")
        message.reply_document.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unparseable_text_gets_usage_hint(self, settings, site) -> None:
        coordinator = EpisodeCoordinator(settings, session_factory=site.factory)
        update, message, _ = _update("hello")

        await handle_text(update, _context(coordinator))

        message.reply_text.assert_awaited_once()
        assert "episode number" in message.reply_text.await_args.args[0]
        assert site.sessions == []
