"""Unit tests for the error sink."""

from loguru import logger

from geocoding_jobs.core.notifier import LoguruErrorSink


class TestLoguruErrorSink:
    """Tests for LoguruErrorSink."""

    def test_notify_logs_exception_with_context(self) -> None:
        records: list = []
        handler_id = logger.add(lambda message: records.append(message.record), level="ERROR")
        try:
            LoguruErrorSink().notify(ValueError("boom"), {"geocoding_id": "g-1", "failure": "backend"})
        finally:
            logger.remove(handler_id)

        assert len(records) == 1
        record = records[0]
        assert "ValueError: boom" in record["message"]
        assert record["extra"]["geocoding_id"] == "g-1"
        assert record["extra"]["failure"] == "backend"
        assert record["exception"] is not None

    def test_notify_never_raises(self) -> None:
        def broken_sink(message: object) -> None:
            msg = "sink down"
            raise OSError(msg)

        handler_id = logger.add(broken_sink, level="ERROR", catch=False)
        try:
            LoguruErrorSink().notify(RuntimeError("boom"), {})
        finally:
            logger.remove(handler_id)
