from __future__ import annotations

import itertools
import threading
from typing import Dict, Iterable, Iterator, List, Optional, Union

from topicbus.core import log
from topicbus.core.contracts import CATCH_ALL, BucketKey, Callback, Subscriber, Token
from topicbus.core.metrics import gauge_set

l = log.get("registry")

TOKEN_PREFIX = "uid-"


def topic_hierarchy(topic: str) -> Iterator[str]:
    """Yield ``topic`` then each ancestor, trimming at the last ``.``.

    ``"a.b.c"`` -> ``"a.b.c"``, ``"a.b"``, ``"a"``. The catch-all bucket is not
    part of the walk; callers visit it last.
    """
    yield topic
    while "." in topic:
        topic = topic.rpartition(".")[0]
        yield topic


def _label(key: BucketKey) -> str:
    return repr(key) if key is CATCH_ALL else key


class SubscriptionRegistry:
    """
    Topic -> {token -> callback} store plus the catch-all bucket.

    A bucket, once created, stays (possibly empty) until cleared; an empty
    bucket counts as "no subscribers" everywhere. Buckets keep insertion
    order, so delivery follows registration order.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._buckets: Dict[BucketKey, Dict[Token, Callback]] = {}
        self._uid = itertools.count()

    # ------------------------------------------------------------ subscribe --
    def _next_token(self) -> Token:
        return f"{TOKEN_PREFIX}{next(self._uid)}"

    def _add(self, key: BucketKey, callback: Callback) -> Union[Token, bool]:
        if not callable(callback):
            l.warning("subscribe rejected: callback %r for %r is not callable", callback, key)
            return False
        with self._lock:
            bucket = self._buckets.setdefault(key, {})
            token = self._next_token()
            bucket[token] = callback
            size = len(bucket)
        l.debug("subscribed %s topic=%r fn=%s", token, key, getattr(callback, "__name__", callback))
        gauge_set("pubsub_subscribers", float(size), topic=_label(key))
        return token

    def subscribe(self, topic: str, callback: Callback) -> Union[Token, bool]:
        return self._add(topic, callback)

    def subscribe_all(self, callback: Callback) -> Union[Token, bool]:
        return self._add(CATCH_ALL, callback)

    # --------------------------------------------------------------- lookup --
    def has_subscribers(self, key: BucketKey) -> bool:
        with self._lock:
            return bool(self._buckets.get(key))

    def message_has_subscribers(self, topic: str) -> bool:
        """True if delivering ``topic`` would reach at least one subscriber."""
        return any(self.has_subscribers(t) for t in topic_hierarchy(topic)) or self.has_subscribers(CATCH_ALL)

    def tokens(self, key: BucketKey) -> Optional[List[Token]]:
        """Snapshot of a bucket's tokens in registration order; None if absent."""
        with self._lock:
            bucket = self._buckets.get(key)
            return None if bucket is None else list(bucket)

    def get(self, key: BucketKey, token: Token) -> Optional[Callback]:
        with self._lock:
            bucket = self._buckets.get(key)
            return None if bucket is None else bucket.get(token)

    def subscribers(self, key: BucketKey) -> List[Subscriber]:
        with self._lock:
            items = list(self._buckets.get(key, {}).items())
        return [Subscriber(token=t, callback=fn, bucket=key) for t, fn in items]

    def topics(self) -> List[str]:
        """Topic bucket keys (catch-all excluded), including empty buckets."""
        with self._lock:
            return [k for k in self._buckets if k is not CATCH_ALL]

    def count(self) -> int:
        with self._lock:
            return sum(len(b) for b in self._buckets.values())

    def __contains__(self, key: BucketKey) -> bool:
        with self._lock:
            return key in self._buckets

    # ------------------------------------------------------------- mutation --
    def drop_buckets(self, keys: Iterable[BucketKey]) -> int:
        """Remove whole buckets; entries are cleared first so in-flight
        deliveries over them skip what is gone."""
        dropped = 0
        with self._lock:
            for key in list(keys):
                bucket = self._buckets.pop(key, None)
                if bucket is None:
                    continue
                bucket.clear()
                dropped += 1
                gauge_set("pubsub_subscribers", 0.0, topic=_label(key))
        return dropped

    def remove_token(self, token: Token) -> bool:
        with self._lock:
            for key, bucket in self._buckets.items():
                if token in bucket:
                    del bucket[token]
                    gauge_set("pubsub_subscribers", float(len(bucket)), topic=_label(key))
                    return True
        return False

    def remove_callback(self, callback: Callback) -> int:
        removed = 0
        with self._lock:
            for key, bucket in self._buckets.items():
                # bound methods are recreated on access, so compare by equality
                hits = [t for t, fn in bucket.items() if fn == callback]
                for t in hits:
                    del bucket[t]
                if hits:
                    removed += len(hits)
                    gauge_set("pubsub_subscribers", float(len(bucket)), topic=_label(key))
        return removed

    def reset(self) -> None:
        """Drop every bucket, catch-all included. The token counter keeps going."""
        with self._lock:
            keys = list(self._buckets)
        self.drop_buckets(keys)
