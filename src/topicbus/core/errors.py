from __future__ import annotations

from typing import Any, Optional

from topicbus.core.contracts import BucketKey, Callback, Token


class PubSubError(Exception):
    """Base class for topicbus errors."""


class ConfigError(PubSubError):
    """Invalid configuration value."""


class SubscriberError(PubSubError):
    """A subscriber raised while a message was delivered in delayed mode.

    The original exception is chained as ``__cause__`` and kept in ``error``.
    """

    def __init__(
        self,
        topic: str,
        bucket: BucketKey,
        token: Token,
        callback: Callback,
        error: BaseException,
        data: Optional[Any] = None,
    ):
        name = getattr(callback, "__name__", repr(callback))
        super().__init__(
            f"subscriber {name} ({token}) failed on topic={topic!r} bucket={bucket!r}: {error!r}"
        )
        self.topic = topic
        self.bucket = bucket
        self.token = token
        self.callback = callback
        self.error = error
        self.data = data
        self.__cause__ = error
