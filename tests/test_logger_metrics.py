"""
Tests for the link logger and the statistics helpers.
"""

import pytest

from pocketlink.utils.logger import LinkLogger, LogLevel
from pocketlink.utils.metrics import LinkStatistics, TransferMetrics


class TestLinkLogger:
    """Tests for level filtering and output."""

    def test_level_filtering(self, capsys):
        logger = LinkLogger(name="T", level=LogLevel.WARNING, use_colors=False)

        logger.debug("hidden")
        logger.info("hidden")
        logger.warning("shown", "DEAD")

        out = capsys.readouterr().out
        assert "hidden" not in out
        assert "[T] [DEAD] shown" in out
        assert logger.get_summary()['total_messages'] == 1

    def test_link_time_prefix(self, capsys):
        logger = LinkLogger(name="T", level=LogLevel.DEBUG, use_colors=False)
        logger.set_time(1.5)

        logger.frame_sent("RELIABLE", 3, 10)

        assert "[    1.5000s]" in capsys.readouterr().out

    def test_log_file_strips_colors(self, tmp_path):
        path = tmp_path / "logs" / "link.log"
        logger = LinkLogger(name="T", level=LogLevel.INFO, log_file=str(path))

        logger.crc_failure(3, 16, 0x1234, 0xABCD)
        logger.close()

        text = path.read_text()
        assert "got=0x1234 want=0xABCD" in text
        assert "\033[" not in text

    def test_is_enabled(self):
        logger = LinkLogger(level=LogLevel.INFO)

        assert logger.is_enabled(LogLevel.ERROR)
        assert not logger.is_enabled(LogLevel.DEBUG)

        logger.set_level(LogLevel.DEBUG)
        assert logger.is_enabled(LogLevel.DEBUG)


class TestMetrics:
    """Tests for counters and goodput."""

    def test_link_statistics(self):
        stats = LinkStatistics()
        stats.record_transmit(5)
        stats.record_transmit(3)

        assert stats.get_statistics()['words_transmitted'] == 8
        assert stats.frames_transmitted == 2

        stats.reset()
        assert all(value == 0 for value in stats.get_statistics().values())

    def test_goodput_and_efficiency(self):
        metrics = TransferMetrics()
        metrics.start(1.0)
        metrics.record_message_sent(400)
        metrics.record_message_delivered(400, latency=0.01)
        metrics.words_transmitted = 200
        metrics.finish(3.0)

        assert metrics.calculate_goodput() == pytest.approx(200.0)
        assert metrics.calculate_efficiency() == pytest.approx(0.5)
        assert metrics.get_latency_statistics()['samples'] == 1

    def test_unfinished_transfer(self):
        metrics = TransferMetrics()

        assert metrics.total_time == 0.0
        assert metrics.calculate_goodput() == 0.0
        assert metrics.get_summary()['latency']['samples'] == 0
