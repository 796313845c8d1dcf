from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Union

__all__ = [
    "Token",
    "Callback",
    "CATCH_ALL",
    "Subscriber",
    "TargetKind",
    "UnsubscribeTarget",
]


# --------- Primitive / aliases ---------
Token = str
Callback = Callable[[str, Any], None]


class _CatchAll:
    """Key of the catch-all bucket; never equal to any topic string."""
    __slots__ = ()

    def __repr__(self) -> str:
        return "CATCH_ALL"


CATCH_ALL = _CatchAll()

BucketKey = Union[str, _CatchAll]


@dataclass(frozen=True, slots=True)
class Subscriber:
    """One (token, callback) entry of a bucket."""
    token: Token
    callback: Callback
    bucket: BucketKey

    @property
    def name(self) -> str:
        return getattr(self.callback, "__name__", repr(self.callback))


# --------- Removal targets ---------
class TargetKind(str, Enum):
    TOPIC = "topic"
    TOKEN = "token"
    CALLBACK = "callback"


@dataclass(frozen=True, slots=True)
class UnsubscribeTarget:
    """Explicit form of an unsubscribe argument (no type sniffing)."""
    kind: TargetKind
    value: Any

    @classmethod
    def topic(cls, topic: str) -> "UnsubscribeTarget":
        return cls(TargetKind.TOPIC, topic)

    @classmethod
    def token(cls, token: Token) -> "UnsubscribeTarget":
        return cls(TargetKind.TOKEN, token)

    @classmethod
    def callback(cls, fn: Callback) -> "UnsubscribeTarget":
        return cls(TargetKind.CALLBACK, fn)
