"""
Tests for the structlog configuration.
"""
import json

from dojo.logging_config import SweepContext, configure_logging, get_logger


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_file_lines_are_json(self, tmp_path):
        log_file = tmp_path / "logs" / "dojo.log"
        configure_logging("INFO", str(log_file))

        get_logger("dojo.outbox.processor").info("outbox_sweep_complete", fetched=2)

        lines = [json.loads(line) for line in log_file.read_text().splitlines()]
        sweep = [line for line in lines if line["event"] == "outbox_sweep_complete"]
        assert sweep[0]["fetched"] == 2
        assert sweep[0]["level"] == "info"
        assert sweep[0]["logger"] == "dojo.outbox.processor"

    def test_console_lines_are_key_value(self, capsys):
        configure_logging("INFO")

        get_logger("dojo.outbox.scheduler").warning("outbox_entry_exhausted", attempts=5)

        out = capsys.readouterr().out
        assert "event='outbox_entry_exhausted'" in out
        assert "attempts=5" in out

    def test_console_json_lines(self, capsys):
        configure_logging("INFO", json_console=True)

        get_logger("dojo.outbox.service").info("outbox_entry_enqueued", action_type="email")

        lines = [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.startswith("{")]
        assert any(line["event"] == "outbox_entry_enqueued" and line["action_type"] == "email" for line in lines)

    def test_stdlib_records_use_same_format(self, capsys):
        import logging

        configure_logging("INFO", json_console=True)
        logging.getLogger("apscheduler.scheduler").info("Scheduler started")

        lines = [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.startswith("{")]
        assert any(line["event"] == "Scheduler started" and line["logger"] == "apscheduler.scheduler"
                   for line in lines)


class TestSweepContext:
    """Tests for SweepContext."""

    def test_does_not_suppress_errors(self):
        try:
            with SweepContext("outbox_sweep", operation_id="abc12345") as sweep:
                assert sweep.operation_id == "abc12345"
                raise RuntimeError("boom")
        except RuntimeError as e:
            assert str(e) == "boom"
        else:
            raise AssertionError("exception was swallowed")
