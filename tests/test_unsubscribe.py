from topicbus.core.bus import create_pubsub
from topicbus.core.contracts import UnsubscribeTarget


def test_unsubscribe_by_token_returns_token_then_false(bus, recorder):
    cb = recorder()
    token = bus.subscribe("t", cb)

    assert bus.unsubscribe(token) == token
    assert bus.unsubscribe(token) is False
    assert bus.publish("t") is False
    assert cb.calls == []


def test_unsubscribe_by_token_reaches_catch_all(bus, recorder):
    token = bus.subscribe_all(recorder())
    assert bus.unsubscribe(token) == token
    assert bus.publish("anything") is False


def test_unsubscribe_by_callback_removes_every_entry(bus, recorder):
    cb = recorder()
    keep = recorder("keep")
    bus.subscribe("a", cb)
    bus.subscribe("b.c", cb)
    bus.subscribe_all(cb)
    bus.subscribe("a", keep)

    assert bus.unsubscribe(cb) is True
    assert bus.unsubscribe(cb) is False

    bus.publish("a", 1)
    bus.publish("b.c", 2)
    assert cb.calls == []
    assert keep.calls == [("a", 1)]


def test_unsubscribe_topic_clears_descendants(bus, recorder):
    for topic in ("x", "x.y", "x.y.z", "y"):
        bus.subscribe(topic, recorder(topic))

    assert bus.unsubscribe("x") is True
    assert bus.topics() == ["y"]


def test_unsubscribe_prefix_without_exact_bucket_is_a_topic(bus, recorder):
    bus.subscribe("shop.order", recorder())
    # "shop" has no bucket of its own but prefixes one
    assert bus.unsubscribe("shop") is True
    assert bus.topics() == []


def test_unsubscribe_unknown_values_return_false(bus, recorder):
    bus.subscribe("t", recorder())

    def never_subscribed(topic, data):
        pass

    assert bus.unsubscribe("uid-999") is False
    assert bus.unsubscribe(never_subscribed) is False
    assert bus.unsubscribe(42) is False
    assert bus.unsubscribe(None) is False
    assert len(bus) == 1


def test_topic_interpretation_wins_over_token(bus, recorder):
    # first token is "uid-0", and "uid-0.events" makes it a topic prefix too
    token = bus.subscribe("uid-0.events", recorder())
    assert token == "uid-0"

    assert bus.unsubscribe(token) is True
    assert bus.topics() == []


def test_explicit_token_removal_bypasses_topic_lookup(bus, recorder):
    token = bus.subscribe("uid-0.events", recorder())
    assert bus.unsubscribe_token(token) == token
    # bucket stays, now empty
    assert bus.topics() == ["uid-0.events"]
    assert bus.publish("uid-0.events") is False


def test_tagged_targets(bus, recorder):
    cb = recorder()
    token = bus.subscribe("a.b", cb)
    bus.subscribe("c", cb)
    bus.subscribe("d", recorder("d"))

    assert bus.unsubscribe(UnsubscribeTarget.token(token)) == token
    assert bus.unsubscribe(UnsubscribeTarget.callback(cb)) is True
    assert bus.unsubscribe(UnsubscribeTarget.topic("d")) is True
    assert bus.unsubscribe(UnsubscribeTarget.topic("missing")) is False
    assert len(bus) == 0


def test_clear_subscriptions_is_plain_string_prefix(bus, recorder):
    for topic in ("a.b", "a.bc", "a.b.c", "ab"):
        bus.subscribe(topic, recorder(topic))

    bus.clear_subscriptions("a.b")
    assert bus.topics() == ["ab"]


def test_clear_subscriptions_segment_aware(scheduler, recorder):
    ps = create_pubsub(scheduler=scheduler, segment_prefix_match=True)
    for topic in ("a.b", "a.bc", "a.b.c", "ab"):
        ps.subscribe(topic, recorder(topic))

    ps.clear_subscriptions("a.b")
    assert sorted(ps.topics()) == ["a.bc", "ab"]


def test_prefix_clear_keeps_catch_all(bus, recorder):
    catch_all = recorder()
    bus.subscribe("t", recorder("t"))
    bus.subscribe_all(catch_all)

    bus.clear_subscriptions("")
    assert bus.topics() == []
    assert bus.publish("t", 1) is True
    assert catch_all.calls == [("t", 1)]


def test_clear_all_subscriptions(bus, recorder):
    bus.subscribe("a", recorder())
    bus.subscribe("a.b", recorder())
    bus.subscribe_all(recorder())

    bus.clear_all_subscriptions()
    assert bus.publish("a.b") is False
    assert bus.publish("zzz") is False
    assert len(bus) == 0
    # counter is not reset
    assert bus.subscribe("a", recorder()) == "uid-3"


def test_independent_instances_do_not_share_state(scheduler, recorder):
    one = create_pubsub(scheduler=scheduler)
    two = create_pubsub(scheduler=scheduler)
    cb = recorder()
    one.subscribe("t", cb)

    assert two.publish("t") is False
    assert one.publish("t") is True
    assert two.subscribe("t", cb) == "uid-0"
