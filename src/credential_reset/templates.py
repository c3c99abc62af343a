"""Per-channel text for the verification code message."""

from __future__ import annotations

from dataclasses import dataclass

from .delivery.channel import ChannelType

_PLACEHOLDERS = {"code": "000000", "minutes": 10}


@dataclass(frozen=True)
class MessageTemplates:
    """``str.format`` templates with ``{code}`` and ``{minutes}`` placeholders."""

    sms: str = "Your verification code is {code}. It expires in {minutes} minutes."
    email: str = (
        "Your verification code is {code}.\n\n"
        "It expires in {minutes} minutes. If you did not ask to reset your "
        "password, you can ignore this message."
    )
    app: str = "Verification code: {code} (valid for {minutes} min)"

    def __post_init__(self) -> None:
        for channel in ChannelType:
            template = self.for_channel(channel)
            if "{code}" not in template:
                raise ValueError(f"{channel.value} template must contain {{code}}")
            try:
                template.format(**_PLACEHOLDERS)
            except (KeyError, IndexError, ValueError) as e:
                raise ValueError(f"Invalid {channel.value} template: {e}") from e

    def for_channel(self, channel: ChannelType) -> str:
        return {
            ChannelType.SMS: self.sms,
            ChannelType.EMAIL: self.email,
            ChannelType.APP: self.app,
        }[channel]

    def render(self, channel: ChannelType, *, code: str, ttl_seconds: int) -> str:
        minutes = max(1, ttl_seconds // 60)
        return self.for_channel(channel).format(code=code, minutes=minutes)


__all__: list[str] = ["MessageTemplates"]
