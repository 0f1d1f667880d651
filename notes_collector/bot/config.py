"""Configuration for the chat bot conversation layer."""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class InterruptPolicy(str, Enum):
    """What a command does while a prompt is pending."""

    # The pending prompt takes the message as its answer; only /cancel escapes
    CONSUME = "consume"
    # Any known command clears the pending prompt and runs as a command
    ESCAPE = "escape"


class BotConfig(BaseSettings):
    """Settings for conversation handling and reply limits."""

    model_config = SettingsConfigDict(
        env_prefix="BOT_",
        case_sensitive=False,
        extra="ignore",
    )

    interrupt_policy: InterruptPolicy = Field(
        default=InterruptPolicy.CONSUME,
        description="How commands behave while a prompt is pending",
    )
    min_manual_note_length: int = Field(
        default=10,
        ge=0,
        description="Plain text longer than this outside a flow is saved as a note",
    )
    search_result_limit: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum notes returned by /search",
    )
    preview_length: int = Field(
        default=100,
        ge=20,
        description="Characters of note content shown in lists",
    )
