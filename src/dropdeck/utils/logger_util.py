import logging
import os
from pathlib import Path


def get_logger(name: str, level=logging.INFO) -> logging.Logger:
    """Get a named logger with standard formatting.

    Example:
        logger = get_logger(__name__)
        logger.info("This is an info message.")

    The log directory defaults to ``log`` and can be moved with
    ``DROPDECK_LOG_DIR``. Setting it to an empty string disables file output.

    Returns:
        logging.Logger: Configured logger instance.
    """
    logger = logging.getLogger(name)

    # avoid adding duplicate handlers if called repeatedly (common in tests)
    if logger.handlers:
        logger.setLevel(level)
        return logger

    logs_dir = None
    raw_dir = os.environ.get("DROPDECK_LOG_DIR", "log")
    if raw_dir:
        logs_dir = Path(raw_dir)
        try:
            logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            # fall back to streaming only
            logs_dir = None

    handler = logging.StreamHandler()
    formatter = logging.Formatter(
        '%(asctime)s     || %(name)s \n%(levelname)s   || %(message)s \n',
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    if logs_dir is not None:
        filehandler = logging.FileHandler(str(logs_dir / f"{name}.log"), encoding="utf-8")
        filehandler.setFormatter(formatter)
        logger.addHandler(filehandler)

    logger.setLevel(level)
    # stop passing records to the root logger (avoid duplicated messages)
    logger.propagate = False

    logger.debug("'%s' initialized with level %s", name, logging.getLevelName(level))
    return logger
