"""Tests for the iteration_logger module."""

import io

import pytest

from spgmr.iteration_logger import IterationEvent, IterationLogger


class TestIterationEvent:
    """Test IterationEvent record."""

    def test_event_creation(self):
        event = IterationEvent(name="linear-iterate", event_type="progress",
                               timestamp=1.5)
        assert event.name == "linear-iterate"
        assert event.metadata == {}

    def test_event_rejects_unknown_type(self):
        with pytest.raises(ValueError):
            IterationEvent(name="x", event_type="build", timestamp=0.0)

    def test_event_is_frozen(self):
        event = IterationEvent(name="x", event_type="start", timestamp=0.0)
        with pytest.raises(AttributeError):
            event.name = "y"


class TestIterationLogger:
    """Test IterationLogger class."""

    def test_initialization_default(self):
        logger = IterationLogger()
        assert logger.verbosity == "default"
        assert logger.events == []
        assert logger.enabled

    def test_initialization_string_none(self):
        logger = IterationLogger(verbosity="None")
        assert logger.verbosity is None
        assert not logger.enabled

    def test_initialization_invalid_verbosity(self):
        with pytest.raises(ValueError, match="verbosity must be"):
            IterationLogger(verbosity="loud")

    def test_none_verbosity_no_op(self):
        logger = IterationLogger(verbosity=None)
        logger.start_event("linear-solver")
        logger.progress("linear-iterate", res_norm=1.0)
        logger.stop_event("linear-solver")
        assert logger.events == []
        assert logger.residual_history() == []

    def test_empty_name_rejected(self):
        logger = IterationLogger()
        with pytest.raises(ValueError):
            logger.progress("")

    def test_event_duration(self):
        logger = IterationLogger()
        logger.start_event("linear-solver")
        logger.stop_event("linear-solver")
        duration = logger.get_event_duration("linear-solver")
        assert duration is not None
        assert duration >= 0.0
        assert logger.get_event_duration("missing") is None

    def test_residual_history_selects_solve(self):
        logger = IterationLogger()
        for norms in ([1.0, 0.5], [0.25, 0.125, 0.0625]):
            logger.start_event("linear-solver")
            for norm in norms:
                logger.progress("begin-linear-iterate")
                logger.progress("linear-iterate", res_norm=norm)
            logger.stop_event("linear-solver")
        assert logger.residual_history() == [0.25, 0.125, 0.0625]
        assert logger.residual_history(0) == [1.0, 0.5]
        assert logger.residual_history(-2) == [1.0, 0.5]

    def test_default_prints_only_summary(self):
        stream = io.StringIO()
        logger = IterationLogger("default", stream=stream)
        logger.start_event("linear-solver")
        logger.progress("linear-iterate", res_norm=0.5)
        logger.stop_event("linear-solver", status="SUCCESS")
        assert stream.getvalue() == ""
        logger.print_summary()
        assert "solve 0: status = SUCCESS" in stream.getvalue()

    def test_verbose_echoes_iterations(self):
        stream = io.StringIO()
        logger = IterationLogger("verbose", stream=stream)
        logger.progress("begin-linear-iterate")
        logger.progress("linear-iterate", cur_iter=1, res_norm=0.5)
        output = stream.getvalue()
        assert "begin-linear-iterate" not in output
        assert "linear-iterate: cur_iter = 1, res_norm = 0.5" in output
        logger.print_summary()
        assert stream.getvalue() == output

    def test_debug_echoes_everything(self):
        stream = io.StringIO()
        logger = IterationLogger("debug", stream=stream)
        logger.start_event("linear-solver")
        logger.progress("begin-linear-iterate")
        logger.stop_event("linear-solver")
        logger.stop_event("unmatched")
        output = stream.getvalue()
        assert "[DEBUG] Started: linear-solver" in output
        assert "[DEBUG] begin-linear-iterate" in output
        assert "[DEBUG] Stopped: linear-solver" in output
        assert "without matching start" in output

    def test_clear(self):
        logger = IterationLogger()
        logger.start_event("linear-solver")
        logger.clear()
        assert logger.events == []
