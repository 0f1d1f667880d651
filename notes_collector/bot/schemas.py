"""Transport-neutral chat events and replies."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ForwardOrigin:
    """Where a forwarded message originally came from."""

    chat_username: str | None = None
    chat_title: str | None = None
    message_id: int | None = None
    sender_name: str | None = None

    @property
    def author(self) -> str | None:
        if self.chat_username:
            return f"@{self.chat_username}"
        return self.chat_title or self.sender_name

    @property
    def url(self) -> str | None:
        """Public t.me link, only for posts of channels with a username."""
        if self.chat_username and self.message_id is not None:
            return f"https://t.me/{self.chat_username}/{self.message_id}"
        return None


@dataclass(frozen=True)
class ChatEvent:
    """An inbound message or button press from one user."""

    user_id: int
    chat_id: int
    text: str | None = None
    callback_data: str | None = None
    callback_id: str | None = None
    forward: ForwardOrigin | None = None

    @property
    def is_callback(self) -> bool:
        return self.callback_data is not None

    @property
    def is_forward(self) -> bool:
        return self.forward is not None


@dataclass(frozen=True)
class Button:
    text: str
    callback_data: str


@dataclass
class Reply:
    """An outbound message; `buttons` are rows of inline buttons."""

    text: str
    buttons: list[list[Button]] = field(default_factory=list)
    markdown: bool = False
    disable_preview: bool = True
