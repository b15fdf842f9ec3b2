import sys

import pytest
from loguru import logger as trace_logger

from devbrain.core.logging_setup import configure_logging
from devbrain.core.trace import LoguruTraceSink


@pytest.fixture
def restore_loguru():
    yield
    trace_logger.remove()
    trace_logger.add(sys.__stderr__)


def test_trace_sink_writes_bound_trace_id(capsys, restore_loguru):
    configure_logging("INFO")
    LoguruTraceSink(service="devbrain-test").emit("t-1", "stage.end", stage="draft", status="ok")

    err = capsys.readouterr().err
    assert "trace=t-1" in err
    assert "[t-1] stage.end" in err


def test_trace_level_filters_independently(capsys, restore_loguru):
    configure_logging("INFO", trace_level="WARNING")
    LoguruTraceSink().emit("t-2", "chain.start")

    assert "t-2" not in capsys.readouterr().err
