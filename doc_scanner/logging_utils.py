import logging
import os
from typing import Optional

# Reader, detector and capture run on their own threads; keep the thread visible.
_FORMAT = "%(asctime)s %(levelname)s [%(scanner)s/%(threadName)s] %(message)s"


class ScannerNameFilter(logging.Filter):
    def __init__(self, scanner_name: str):
        super().__init__()
        self.scanner_name = scanner_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.scanner = self.scanner_name
        return True


def setup_logger(
    scanner_name: str, level: int = logging.INFO, log_path: Optional[str] = None
) -> logging.Logger:
    logger = logging.getLogger(f"doc_scanner.{scanner_name}")
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler.addFilter(ScannerNameFilter(scanner_name))
        logger.addHandler(handler)

    if log_path:
        add_file_handler(logger, scanner_name, log_path)

    return logger


def add_file_handler(logger: logging.Logger, scanner_name: str, log_path: str) -> None:
    for h in logger.handlers:
        if isinstance(h, logging.FileHandler) and h.baseFilename == os.path.abspath(log_path):
            return
    handler = logging.FileHandler(log_path)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler.addFilter(ScannerNameFilter(scanner_name))
    logger.addHandler(handler)
