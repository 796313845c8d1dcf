# tests/conftest.py
import pytest

from topicbus.core import log
from topicbus.core import metrics
from topicbus.core.bus import create_pubsub
from topicbus.core.scheduler import ThreadScheduler


@pytest.fixture(scope="session", autouse=True)
def _bootstrap_logging():
    # reads LOG_LEVEL / LOG_JSON / .env if available
    log.setup()
    yield


@pytest.fixture(autouse=True)
def _fresh_metrics():
    metrics.reset()
    yield


@pytest.fixture
def scheduler():
    sch = ThreadScheduler(name="topicbus.test.scheduler")
    yield sch
    sch.stop()


@pytest.fixture
def errors():
    return []


@pytest.fixture
def bus(scheduler, errors):
    ps = create_pubsub(scheduler=scheduler, error_sink=errors.append)
    yield ps
    ps.close()


class Recorder:
    """Callable subscriber that remembers (topic, data) calls."""
    def __init__(self, name="rec", log=None):
        self.__name__ = name
        self.calls = []
        self.log = log

    def __call__(self, topic, data):
        self.calls.append((topic, data))
        if self.log is not None:
            self.log.append(self.__name__)


@pytest.fixture
def recorder():
    return Recorder
