import asyncio

import pytest

from topicbus.config import PubSubConfig, build_pubsub, load_config
from topicbus.core.errors import ConfigError
from topicbus.core.scheduler import AsyncioScheduler, ThreadScheduler


def test_defaults_without_file_or_env():
    cfg = load_config(env={})
    assert cfg == PubSubConfig()
    assert cfg.immediate_exceptions is False
    assert cfg.scheduler == "thread"


def test_yaml_section_then_env_override(tmp_path):
    path = tmp_path / "topicbus.yaml"
    path.write_text(
        "pubsub:\n"
        "  immediate_exceptions: true\n"
        "  segment_prefix_match: yes\n"
        "  log_level: DEBUG\n",
        encoding="utf-8",
    )

    cfg = load_config(path, env={"TOPICBUS_SCHEDULER": "asyncio", "LOG_LEVEL": "WARNING"})
    assert cfg.immediate_exceptions is True
    assert cfg.segment_prefix_match is True
    assert cfg.scheduler == "asyncio"
    assert cfg.log_level == "WARNING"


def test_yaml_without_section(tmp_path):
    path = tmp_path / "flat.yaml"
    path.write_text("log_json: 1\n", encoding="utf-8")
    assert load_config(path, env={}).log_json is True


def test_empty_yaml_file(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path, env={}) == PubSubConfig()


@pytest.mark.parametrize(
    "env",
    [
        {"TOPICBUS_SCHEDULER": "gevent"},
        {"TOPICBUS_IMMEDIATE_EXCEPTIONS": "maybe"},
    ],
)
def test_invalid_values_raise(env):
    with pytest.raises(ConfigError):
        load_config(env=env)


def test_unknown_yaml_key_raises(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("pubsub:\n  retries: 3\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="retries"):
        load_config(path, env={})


def test_build_pubsub_applies_config(recorder):
    ps = build_pubsub(PubSubConfig(immediate_exceptions=True, scheduler="asyncio", segment_prefix_match=True))
    assert isinstance(ps.scheduler, AsyncioScheduler)
    assert ps.immediate_exceptions is True
    assert ps.manager.segment_prefix_match is True

    ps = build_pubsub(PubSubConfig())
    assert isinstance(ps.scheduler, ThreadScheduler)
    cb = recorder()
    ps.subscribe("t", cb)
    assert ps.publish("t", 1) is True
    assert cb.calls == [("t", 1)]
    ps.close()


def test_non_mapping_pubsub_section_raises(tmp_path):
    path = tmp_path / "scalar.yaml"
    path.write_text("pubsub: 3\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(path, env={})


def test_asyncio_config_sync_publish_outside_loop_isolates_errors(recorder):
    errors = []
    ps = build_pubsub(PubSubConfig(scheduler="asyncio"), error_sink=errors.append)
    after = recorder()

    def boom(topic, data):
        raise ValueError("nope")

    ps.subscribe("t", boom)
    ps.subscribe("t", after)

    assert ps.publish("t", 1) is True
    assert after.calls == [("t", 1)]
    assert errors == []

    # the scheduler bound its own loop; running it reports the failure
    loop = ps.scheduler.loop
    try:
        loop.run_until_complete(asyncio.sleep(0))
    finally:
        loop.close()
    assert len(errors) == 1
    assert isinstance(errors[0].error, ValueError)


def test_build_pubsub_binds_given_loop():
    loop = asyncio.new_event_loop()
    try:
        ps = build_pubsub(PubSubConfig(scheduler="asyncio"), loop=loop)
        assert ps.scheduler.loop is loop
    finally:
        loop.close()
