import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(viewer)s %(stream)s] %(message)s"
NO_STREAM = "-"


class ViewerContextFilter(logging.Filter):
    """Stamps the viewer name and its current stream id onto every record."""

    def __init__(self, viewer_name: str, stream: str = NO_STREAM):
        super().__init__()
        self.viewer_name = viewer_name
        self.stream = stream

    def filter(self, record: logging.LogRecord) -> bool:
        record.viewer = self.viewer_name
        record.stream = self.stream
        return True


def _context_filters(logger: logging.Logger) -> list[ViewerContextFilter]:
    return [f for h in logger.handlers for f in h.filters if isinstance(f, ViewerContextFilter)]


def _attach(logger: logging.Logger, handler: logging.Handler, viewer_name: str) -> None:
    # new handlers pick up the stream the logger is already tagged with
    current = _context_filters(logger)
    stream = current[0].stream if current else NO_STREAM
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(ViewerContextFilter(viewer_name, stream))
    logger.addHandler(handler)


def setup_logger(viewer_name: str, level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(f"stream_overlay.{viewer_name}")
    logger.setLevel(level)

    if not logger.handlers:
        _attach(logger, logging.StreamHandler(), viewer_name)

    return logger


def add_file_handler(
    logger: logging.Logger,
    viewer_name: str,
    log_path: str,
    level: Optional[int] = None,
) -> logging.FileHandler:
    handler = logging.FileHandler(log_path)
    if level is not None:
        handler.setLevel(level)
    _attach(logger, handler, viewer_name)
    return handler


def set_stream(logger: logging.Logger, stream_id: Optional[str]) -> None:
    """Tag subsequent records of ``logger`` with ``stream_id``."""
    for f in _context_filters(logger):
        f.stream = stream_id or NO_STREAM
