import logging

from doc_scanner.logging_utils import ScannerNameFilter, setup_logger


def test_log_lines_carry_scanner_and_thread(tmp_path):
    log_path = tmp_path / "scan.log"
    logger = setup_logger("logtest", log_path=str(log_path))
    setup_logger("logtest", log_path=str(log_path))
    try:
        file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
        assert len(file_handlers) == 1

        logger.info("hello")
        for h in logger.handlers:
            h.flush()
        assert "INFO [logtest/MainThread] hello" in log_path.read_text()
    finally:
        for h in list(logger.handlers):
            logger.removeHandler(h)
            h.close()


def test_filter_sets_scanner_attribute():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    assert ScannerNameFilter("desk").filter(record)
    assert record.scanner == "desk"
