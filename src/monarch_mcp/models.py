from dataclasses import dataclass


@dataclass(frozen=True)
class Session:
    """Identity bound to one client connection."""

    user_id: str


@dataclass(frozen=True)
class Envelope:
    """Uniform response for a tool invocation: one text block, success or error."""

    text: str
    is_error: bool = False

    @classmethod
    def success(cls, text: str) -> "Envelope":
        return cls(text=text)

    @classmethod
    def error(cls, text: str) -> "Envelope":
        return cls(text=text, is_error=True)
