from __future__ import annotations

from typing import Any, Callable, Optional

from topicbus.core import log
from topicbus.core.contracts import CATCH_ALL, BucketKey, Callback, Token
from topicbus.core.errors import SubscriberError
from topicbus.core.metrics import Timer, inc
from topicbus.core.registry import SubscriptionRegistry, topic_hierarchy
from topicbus.core.scheduler import Scheduler

l = log.get("dispatcher")

ErrorSink = Callable[[SubscriberError], None]


def log_subscriber_error(err: SubscriberError) -> None:
    """Default error sink."""
    l.error("%s", err, exc_info=(type(err.error), err.error, err.error.__traceback__))


class Dispatcher:
    """
    Walks a published topic from most to least specific bucket, then the
    catch-all, and calls each subscriber with the original topic and data.

    Immediate mode lets a subscriber exception escape and abort the rest of
    the delivery. Delayed mode catches it and hands a ``SubscriberError`` to
    ``error_sink`` on the scheduler's next tick.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        scheduler: Scheduler,
        error_sink: Optional[ErrorSink] = None,
    ):
        self.registry = registry
        self.scheduler = scheduler
        self.error_sink: ErrorSink = error_sink or log_subscriber_error

    def _call_delayed(self, topic: str, key: BucketKey, token: Token, fn: Callback, data: Any) -> None:
        try:
            fn(topic, data)
        except Exception as e:
            inc("pubsub_subscriber_errors_total", 1)
            err = SubscriberError(topic, key, token, fn, e, data)
            self.scheduler.call_soon(self.error_sink, err)

    def deliver_message(self, topic: str, key: BucketKey, data: Any, immediate_exceptions: bool) -> int:
        """Deliver to one bucket. Returns the number of subscribers called."""
        tokens = self.registry.tokens(key)
        if tokens is None:
            return 0
        called = 0
        for token in tokens:
            # removed while we were iterating
            fn = self.registry.get(key, token)
            if fn is None:
                continue
            called += 1
            if immediate_exceptions:
                fn(topic, data)
            else:
                self._call_delayed(topic, key, token, fn, data)
        if called:
            inc("pubsub_deliver_total", called)
        return called

    def deliver(self, topic: str, data: Any, immediate_exceptions: bool) -> int:
        """Deliver through the whole hierarchy, catch-all last."""
        called = 0
        with Timer("pubsub_dispatch_ms"):
            for key in topic_hierarchy(topic):
                called += self.deliver_message(topic, key, data, immediate_exceptions)
            called += self.deliver_message(topic, CATCH_ALL, data, immediate_exceptions)
        return called

    def deliver_later(self, topic: str, data: Any, immediate_exceptions: bool) -> None:
        """Schedule the whole hierarchy delivery as a single task."""
        self.scheduler.call_soon(self.deliver, topic, data, immediate_exceptions)
