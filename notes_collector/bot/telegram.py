"""
Telegram Bot API transport.

Long-polls getUpdates, turns each update into a ChatEvent, and handles every
event in its own task so a slow user never holds up the others. Replies go
out through sendMessage with an inline keyboard when the reply has buttons.
"""

import asyncio
import logging
from typing import Any

import httpx

from notes_collector.bot.dispatcher import Dispatcher
from notes_collector.bot.schemas import ChatEvent, ForwardOrigin, Reply
from notes_collector.config.settings import get_settings

logger = logging.getLogger(__name__)

ERROR_BACKOFF_SECONDS = 2.0


class TelegramAPIError(Exception):
    """Raised when the Bot API answers ok=false or a non-2xx status."""


def _parse_forward(message: dict[str, Any]) -> ForwardOrigin | None:
    """Read the origin of a forwarded message, current or legacy fields."""
    origin = message.get("forward_origin")
    if origin is not None:
        chat = origin.get("chat") or origin.get("sender_chat") or {}
        user = origin.get("sender_user") or {}
        return ForwardOrigin(
            chat_username=chat.get("username"),
            chat_title=chat.get("title"),
            message_id=origin.get("message_id"),
            sender_name=(
                user.get("username")
                or user.get("first_name")
                or origin.get("sender_user_name")
                or origin.get("author_signature")
            ),
        )

    chat = message.get("forward_from_chat")
    user = message.get("forward_from")
    if chat is None and user is None and "forward_sender_name" not in message:
        return None
    chat = chat or {}
    user = user or {}
    return ForwardOrigin(
        chat_username=chat.get("username"),
        chat_title=chat.get("title"),
        message_id=message.get("forward_from_message_id"),
        sender_name=user.get("username") or user.get("first_name") or message.get("forward_sender_name"),
    )


def parse_update(update: dict[str, Any]) -> ChatEvent | None:
    """Convert a raw Bot API update into a ChatEvent, or None if irrelevant."""
    message = update.get("message")
    if message is not None:
        # Forwarded channel posts with media carry their text as a caption
        text = message.get("text") or message.get("caption")
        chat = message.get("chat", {})
        sender = message.get("from", {})
        if text is None or "id" not in chat:
            return None
        return ChatEvent(
            user_id=sender.get("id", chat["id"]),
            chat_id=chat["id"],
            text=text,
            forward=_parse_forward(message),
        )

    callback = update.get("callback_query")
    if callback is not None:
        chat = callback.get("message", {}).get("chat", {})
        sender = callback.get("from", {})
        if "id" not in sender:
            return None
        return ChatEvent(
            user_id=sender["id"],
            chat_id=chat.get("id", sender["id"]),
            callback_data=callback.get("data", ""),
            callback_id=callback.get("id"),
        )

    return None


def reply_payload(chat_id: int, reply: Reply) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "chat_id": chat_id,
        "text": reply.text,
        "disable_web_page_preview": reply.disable_preview,
    }
    if reply.markdown:
        payload["parse_mode"] = "Markdown"
    if reply.buttons:
        payload["reply_markup"] = {
            "inline_keyboard": [
                [{"text": b.text, "callback_data": b.callback_data} for b in row]
                for row in reply.buttons
            ]
        }
    return payload


class TelegramTransport:
    """
    Long-polling Telegram client bound to a Dispatcher.

    Usage:
        transport = TelegramTransport(dispatcher)
        await transport.run()     # until stop()
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        token: str | None = None,
        api_base: str | None = None,
        poll_timeout: int | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()
        self._dispatcher = dispatcher
        self._token = token or settings.telegram_bot_token
        if not self._token:
            raise ValueError("TELEGRAM_BOT_TOKEN is not configured")
        self._api_base = (api_base or settings.telegram_api_base).rstrip("/")
        self._poll_timeout = settings.telegram_poll_timeout if poll_timeout is None else poll_timeout
        self._client = client
        self._owns_client = client is None
        self._offset = 0
        self._running = False
        self._tasks: set[asyncio.Task] = set()

    def _url(self, method: str) -> str:
        return f"{self._api_base}/bot{self._token}/{method}"

    async def _call(self, method: str, payload: dict[str, Any]) -> Any:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._poll_timeout + 10)
        response = await self._client.post(self._url(method), json=payload)
        try:
            data = response.json()
        except ValueError as e:
            raise TelegramAPIError(f"{method}: HTTP {response.status_code}") from e
        if response.status_code >= 400 or not data.get("ok"):
            raise TelegramAPIError(f"{method}: {data.get('description', response.status_code)}")
        return data.get("result")

    async def get_updates(self) -> list[dict[str, Any]]:
        updates = await self._call(
            "getUpdates",
            {
                "offset": self._offset,
                "timeout": self._poll_timeout,
                "allowed_updates": ["message", "callback_query"],
            },
        )
        for update in updates or []:
            self._offset = max(self._offset, update.get("update_id", 0) + 1)
        return updates or []

    async def send_reply(self, chat_id: int, reply: Reply) -> None:
        await self._call("sendMessage", reply_payload(chat_id, reply))

    async def answer_callback(self, callback_id: str) -> None:
        await self._call("answerCallbackQuery", {"callback_query_id": callback_id})

    async def process_event(self, event: ChatEvent) -> None:
        """Dispatch one event and deliver its reply."""
        reply = await self._dispatcher.handle(event)
        try:
            if event.callback_id:
                await self.answer_callback(event.callback_id)
            if reply is not None:
                await self.send_reply(event.chat_id, reply)
        except (TelegramAPIError, httpx.HTTPError) as e:
            logger.warning(f"Failed to deliver reply to chat {event.chat_id}: {e}")

    def _spawn(self, event: ChatEvent) -> None:
        task = asyncio.create_task(self.process_event(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def run(self) -> None:
        """Poll for updates until stop() is called."""
        self._running = True
        logger.info("Telegram transport started")

        try:
            while self._running:
                try:
                    updates = await self.get_updates()
                except (TelegramAPIError, httpx.HTTPError) as e:
                    logger.warning(f"Telegram poll error: {e}")
                    await asyncio.sleep(ERROR_BACKOFF_SECONDS)
                    continue

                for update in updates:
                    event = parse_update(update)
                    if event is not None:
                        self._spawn(event)
        finally:
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)
            await self.close()
            logger.info("Telegram transport stopped")

    def stop(self) -> None:
        self._running = False

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
