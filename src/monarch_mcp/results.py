"""Tagged results returned by the store, client and upstream layers.

Each layer hands back ``Ok(value)`` or ``Err(kind, message)`` instead of
raising, and the dispatcher collapses them into an envelope.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    STORE = "store"
    CLIENT = "client"
    UPSTREAM = "upstream"
    SERIALIZATION = "serialization"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str


Result = Union[Ok[T], Err]


def error_message(exc: BaseException) -> str:
    """Human-readable message for an exception, falling back to its type name."""
    text = str(exc).strip()
    return text or type(exc).__name__
