"""
Tests for observability — metrics and logging setup.
"""

import logging
import threading

import pytest

from plugboot.core.observability.logging_config import resolve_level, setup_logging
from plugboot.core.observability.metrics import Counter, Histogram, MetricsRegistry

# ── Metrics Tests ────────────────────────────────────────────────────


class TestCounter:
    def test_increment(self):
        c = Counter(name="loads")
        c.inc()
        c.inc(4)
        assert c.value == 5

    def test_thread_safe(self):
        c = Counter(name="loads")

        def work():
            for _ in range(1000):
                c.inc()

        threads = [threading.Thread(target=work) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert c.value == 8000

    def test_to_dict(self):
        d = Counter(name="x", value=3).to_dict()
        assert d == {"name": "x", "type": "counter", "value": 3}


class TestHistogram:
    def test_stats(self):
        h = Histogram(name="t")
        for v in (5.0, 1.0, 3.0):
            h.observe(v)
        assert h.count == 3
        assert h.total == 9.0
        assert h.min == 1.0
        assert h.max == 5.0

    def test_empty(self):
        h = Histogram(name="t")
        assert h.min == 0.0
        assert h.max == 0.0


class TestMetricsRegistry:
    def test_get_or_create(self):
        registry = MetricsRegistry()
        assert registry.counter("a") is registry.counter("a")
        assert registry.histogram("h") is registry.histogram("h")

    def test_value_of_untouched_counter(self):
        assert MetricsRegistry().value("never") == 0

    def test_timer_records(self):
        registry = MetricsRegistry()
        with registry.timer("boot.phase") as timer:
            pass
        assert registry.histogram("boot.phase").count == 1
        assert timer.elapsed_ms >= 0

    def test_to_dict_and_reset(self):
        registry = MetricsRegistry()
        registry.counter("walk.loads").inc(2)
        with registry.timer("boot.native"):
            pass

        d = registry.to_dict()
        assert d["counters"][0]["value"] == 2
        assert d["histograms"][0]["name"] == "boot.native"

        registry.reset()
        assert registry.to_dict() == {"counters": [], "histograms": []}


# ── Logging Tests ────────────────────────────────────────────────────


@pytest.fixture
def restore_logging():
    """Put the root logger back the way pytest configured it."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    noisy = {name: logging.getLogger(name).level for name in ("urllib3", "asyncio")}
    raise_exceptions = logging.raiseExceptions
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    for name, lvl in noisy.items():
        logging.getLogger(name).setLevel(lvl)
    logging.raiseExceptions = raise_exceptions


class TestResolveLevel:
    def test_default(self):
        assert resolve_level(environ={}) == "WARNING"

    def test_flag_precedence(self):
        assert resolve_level(debug=True, verbose=True, quiet=True, environ={}) == "DEBUG"
        assert resolve_level(verbose=True, quiet=True, environ={}) == "INFO"
        assert resolve_level(quiet=True, environ={"PLUGBOOT_LOG_LEVEL": "DEBUG"}) == "ERROR"

    def test_environment(self):
        assert resolve_level(environ={"PLUGBOOT_LOG_LEVEL": "INFO"}) == "INFO"


class TestSetupLogging:
    def test_console_level(self, restore_logging):
        setup_logging("INFO")
        root = restore_logging
        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        assert root.handlers[0].level == logging.INFO

    def test_unknown_level_means_warning(self, restore_logging):
        setup_logging("CHATTY")
        assert restore_logging.level == logging.WARNING

    def test_file_handler(self, restore_logging, tmp_path):
        log_file = tmp_path / "boot.log"
        setup_logging("WARNING", log_file=str(log_file), log_file_level="DEBUG")

        root = restore_logging
        assert root.level == logging.DEBUG
        logging.getLogger("plugboot.test").debug("to the file only")
        for handler in root.handlers:
            handler.flush()
        assert "to the file only" in log_file.read_text()

    def test_third_party_quieted(self, restore_logging):
        setup_logging("INFO")
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_third_party_left_alone_at_debug(self, restore_logging):
        logging.getLogger("asyncio").setLevel(logging.NOTSET)
        setup_logging("DEBUG")
        assert logging.getLogger("asyncio").level == logging.NOTSET
