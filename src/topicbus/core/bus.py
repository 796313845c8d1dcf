from __future__ import annotations

from typing import Any, List, Optional, Union

from topicbus.core import log
from topicbus.core.contracts import CATCH_ALL, Callback, Subscriber, Token
from topicbus.core.dispatcher import Dispatcher, ErrorSink
from topicbus.core.manager import SubscriptionManager
from topicbus.core.metrics import inc
from topicbus.core.registry import SubscriptionRegistry
from topicbus.core.scheduler import Scheduler, ThreadScheduler


class PubSub:
    """
    Hierarchical in-process publish/subscribe.

    Publishing ``"a.b.c"`` reaches subscribers of ``"a.b.c"``, ``"a.b"``,
    ``"a"`` and then the catch-all, each called with the original topic.

    ``immediate_exceptions`` picks the delivery mode per call; ``None`` means
    the instance default (delayed, i.e. subscriber errors are isolated and
    reported to the error sink).
    """

    def __init__(
        self,
        *,
        scheduler: Optional[Scheduler] = None,
        error_sink: Optional[ErrorSink] = None,
        immediate_exceptions: bool = False,
        segment_prefix_match: bool = False,
        name: str = "topicbus.bus",
    ):
        self.name = name
        self.l = log.get(name)
        self.immediate_exceptions = bool(immediate_exceptions)
        self.scheduler: Scheduler = scheduler if scheduler is not None else ThreadScheduler()
        self.registry = SubscriptionRegistry()
        self.manager = SubscriptionManager(self.registry, segment_prefix_match=segment_prefix_match)
        self.dispatcher = Dispatcher(self.registry, self.scheduler, error_sink)

    def _mode(self, immediate_exceptions: Optional[bool]) -> bool:
        return self.immediate_exceptions if immediate_exceptions is None else bool(immediate_exceptions)

    # ------------------------------------------------------------ subscribe --
    def subscribe(self, topic: str, callback: Callback) -> Union[Token, bool]:
        return self.registry.subscribe(topic, callback)

    def subscribe_all(self, callback: Callback) -> Union[Token, bool]:
        return self.registry.subscribe_all(callback)

    def message_has_subscribers(self, topic: str) -> bool:
        return self.registry.message_has_subscribers(topic)

    # -------------------------------------------------------------- publish --
    def publish(self, topic: str, data: Any = None, immediate_exceptions: Optional[bool] = None) -> bool:
        """Deliver now, on this call stack. False if nobody would receive it."""
        if not self.message_has_subscribers(topic):
            inc("pubsub_unrouted_total", 1)
            self.l.debug("publish topic=%r: no subscribers", topic)
            return False
        inc("pubsub_publish_total", 1, mode="sync")
        self.dispatcher.deliver(topic, data, self._mode(immediate_exceptions))
        return True

    def publish_async(self, topic: str, data: Any = None, immediate_exceptions: Optional[bool] = None) -> bool:
        """Schedule delivery on the next scheduler tick and return at once."""
        if not self.message_has_subscribers(topic):
            inc("pubsub_unrouted_total", 1)
            self.l.debug("publish_async topic=%r: no subscribers", topic)
            return False
        inc("pubsub_publish_total", 1, mode="async")
        self.dispatcher.deliver_later(topic, data, self._mode(immediate_exceptions))
        return True

    # ------------------------------------------------------------- removal --
    def unsubscribe(self, value: Any) -> Union[Token, bool]:
        return self.manager.unsubscribe(value)

    def unsubscribe_topic(self, topic: str) -> bool:
        return self.manager.unsubscribe_topic(topic)

    def unsubscribe_token(self, token: Token) -> Union[Token, bool]:
        return self.manager.unsubscribe_token(token)

    def unsubscribe_callback(self, callback: Callback) -> bool:
        return self.manager.unsubscribe_callback(callback)

    def clear_subscriptions(self, topic_prefix: str) -> None:
        self.manager.clear_subscriptions(topic_prefix)

    def clear_all_subscriptions(self) -> None:
        self.manager.clear_all_subscriptions()

    # ------------------------------------------------------------ introspect --
    def subscribers(self, topic: Optional[str] = None) -> List[Subscriber]:
        """Entries of one topic bucket, or of the catch-all when topic is None."""
        return self.registry.subscribers(CATCH_ALL if topic is None else topic)

    def topics(self) -> List[str]:
        return self.registry.topics()

    def __len__(self) -> int:
        return self.registry.count()

    def close(self) -> None:
        stop = getattr(self.scheduler, "stop", None)
        if stop is not None:
            stop()


def create_pubsub(**kwargs: Any) -> PubSub:
    """Independent PubSub instance (own registry, token counter, scheduler)."""
    return PubSub(**kwargs)


# process-wide shared instance
PUBSUB = create_pubsub()
