from __future__ import annotations

from typing import Any, List, Union

from topicbus.core import log
from topicbus.core.contracts import Callback, TargetKind, Token, UnsubscribeTarget
from topicbus.core.registry import SubscriptionRegistry

l = log.get("manager")


class SubscriptionManager:
    """Removal and bulk clearing on top of a SubscriptionRegistry.

    ``segment_prefix_match=False`` clears by plain string prefix (``"a"``
    also clears ``"ab"``); ``True`` only clears ``prefix`` and topics below
    ``prefix + "."``.
    """

    def __init__(self, registry: SubscriptionRegistry, *, segment_prefix_match: bool = False):
        self.registry = registry
        self.segment_prefix_match = bool(segment_prefix_match)

    def _matches(self, key: str, prefix: str) -> bool:
        if self.segment_prefix_match:
            return key == prefix or key.startswith(prefix + ".")
        return key.startswith(prefix)

    def matching_topics(self, prefix: str) -> List[str]:
        return [k for k in self.registry.topics() if self._matches(k, prefix)]

    def is_topic(self, value: str) -> bool:
        """An existing bucket, or a prefix of one."""
        return value in self.registry or bool(self.matching_topics(value))

    # -------------------------------------------------------------- clearing --
    def clear_subscriptions(self, topic_prefix: str) -> None:
        dropped = self.registry.drop_buckets(self.matching_topics(topic_prefix))
        l.debug("cleared %d bucket(s) under prefix=%r", dropped, topic_prefix)

    def clear_all_subscriptions(self) -> None:
        self.registry.reset()
        l.debug("cleared all subscriptions")

    # ------------------------------------------------------------ unsubscribe --
    def unsubscribe_topic(self, topic: str) -> bool:
        if not self.is_topic(topic):
            return False
        self.clear_subscriptions(topic)
        return True

    def unsubscribe_token(self, token: Token) -> Union[Token, bool]:
        if self.registry.remove_token(token):
            l.debug("unsubscribed %s", token)
            return token
        return False

    def unsubscribe_callback(self, callback: Callback) -> bool:
        removed = self.registry.remove_callback(callback)
        if removed:
            l.debug("unsubscribed %d entr(y/ies) for fn=%s", removed, getattr(callback, "__name__", callback))
        return removed > 0

    def unsubscribe(self, value: Any) -> Union[Token, bool]:
        """
        Remove by topic, token or callback.

        Strings are a topic when a bucket with that key or prefix exists,
        otherwise a token. A token string that collides with a topic prefix is
        therefore only reachable through ``unsubscribe_token``.
        """
        if isinstance(value, UnsubscribeTarget):
            if value.kind is TargetKind.TOPIC:
                return self.unsubscribe_topic(value.value)
            if value.kind is TargetKind.TOKEN:
                return self.unsubscribe_token(value.value)
            return self.unsubscribe_callback(value.value)

        if isinstance(value, str):
            if self.is_topic(value):
                return self.unsubscribe_topic(value)
            return self.unsubscribe_token(value)
        if callable(value):
            return self.unsubscribe_callback(value)
        return False
