import argparse
import time

from topicbus.config import build_pubsub, load_config
from topicbus.core import log
from topicbus.core import metrics


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", type=str, default=None, help="YAML config file")
    ap.add_argument("--topic", type=str, default="order.created.v2", help="topic to publish")
    args = ap.parse_args()

    cfg = load_config(args.config)
    bus = build_pubsub(cfg, setup_logging=True)
    lg = log.get("demo")

    def on_order(topic, data):
        lg.info("order subscriber got %s %s", topic, data)

    def on_any(topic, data):
        lg.info("catch-all got %s", topic)

    def broken(topic, data):
        raise RuntimeError("demo failure")

    bus.subscribe("order", on_order)
    bus.subscribe("order.created", broken)
    bus.subscribe_all(on_any)

    lg.info("publish -> %s", bus.publish(args.topic, {"id": 1}))
    lg.info("publish_async -> %s", bus.publish_async(args.topic, {"id": 2}))
    lg.info("publish unknown (catch-all only) -> %s", bus.publish("invoice.paid", {"id": 3}))

    # let the scheduler run deferred deliveries and error reports
    time.sleep(0.2)
    bus.close()
    metrics.emit(log.get("metrics"))


if __name__ == "__main__":
    main()
