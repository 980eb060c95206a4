import logging
import os
import sys

from tqdm import tqdm

# Libraries that log every request or decoded chunk; kept at WARNING unless debugging.
NOISY_LOGGERS = ("httpx", "httpcore", "PIL")


class TqdmLoggingHandler(logging.StreamHandler):
    """Logging handler that writes through ``tqdm.write`` so preset export progress bars stay intact."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
            self.flush()
        except Exception:
            self.handleError(record)


def setup_logging(
    level: str | int = "INFO",
    use_tqdm_handler: bool = False,
    format: str = "%(asctime)s %(name)s %(funcName)s %(levelname)s: %(message)s",
    datefmt: str = "%Y-%m-%d %H:%M:%S",
) -> None:
    """Setup logging configuration for the application.

    This function should be called once at the application's entry point.

    Args:
        level: Logging level (can be string like 'INFO' or int like logging.INFO).
               The LOG_LEVEL environment variable takes precedence.
        use_tqdm_handler: Whether to use TqdmLoggingHandler for tqdm compatibility.
        format: Log message format.
        datefmt: Date format for timestamps.
    """
    env_level = os.environ.get("LOG_LEVEL")
    if env_level:
        level = env_level

    if isinstance(level, str):
        numeric_level = getattr(logging, level.upper(), None)
        if not isinstance(numeric_level, int):
            raise ValueError(f"Invalid log level: {level}")
        level = numeric_level

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
    root_logger.setLevel(level)

    handler = TqdmLoggingHandler(sys.stdout) if use_tqdm_handler else logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=format, datefmt=datefmt))
    root_logger.addHandler(handler)

    if level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))
