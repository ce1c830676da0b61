import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import config

_LOGGER_NAME = "breakfast_grid"
_LOG_FILE = Path(config.LOG_FILE)


def _configure_logger() -> logging.Logger:
    logger = logging.getLogger(_LOGGER_NAME)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    logger.propagate = False

    try:
        handler = RotatingFileHandler(_LOG_FILE, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
    except OSError:
        handler = logging.StreamHandler()

    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger


_logger = _configure_logger()


def _format(area: str, usuario: str, accion: str, detalle: str) -> str:
    message = f"{area.upper()} | Usuario: {usuario} | Accion: {accion}"
    if detalle:
        message += f" | Detalle: {detalle}"
    return message


def log_event(area: str, usuario: str, accion: str, detalle: str = "") -> None:
    _logger.info(_format(area, usuario, accion, detalle))


def log_warning(area: str, usuario: str, accion: str, detalle: str = "") -> None:
    _logger.warning(_format(area, usuario, accion, detalle))
