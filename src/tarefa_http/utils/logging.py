"""Configuração centralizada de logging."""

import logging
import logging.config
import sys
from pathlib import Path

LIBRARY_LOGGER = "tarefa_http"

# Sem setup_logging, importar a biblioteca não emite nada
logging.getLogger(LIBRARY_LOGGER).addHandler(logging.NullHandler())


def setup_logging(
    level: str = "INFO",
    log_file: str | Path | None = None,
    format: str | None = None,
) -> None:
    """
    Configura o logging da biblioteca.

    A biblioteca em si nunca chama esta função; ela existe para aplicações
    que queiram ver os eventos das tarefas sem montar a configuração à mão.

    Args:
        level: Nível de log (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Arquivo para salvar logs (None para apenas console)
        format: Formato personalizado dos logs
    """
    if format is None:
        format = (
            "%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(message)s "
            "[%(filename)s:%(lineno)d]"
        )

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": format,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "standard",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            LIBRARY_LOGGER: {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
        },
    }

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "standard",
            "filename": str(log_path),
            "maxBytes": 10_485_760,  # 10MB
            "backupCount": 5,
            "encoding": "utf-8",
        }

        config["loggers"][LIBRARY_LOGGER]["handlers"].append("file")

    logging.config.dictConfig(config)

    logger = logging.getLogger(LIBRARY_LOGGER)
    logger.info(f"Logging configurado (level: {level})")


def get_logger(name: str) -> logging.Logger:
    """
    Retorna logger com nome qualificado.

    Args:
        name: Nome do logger (geralmente __name__)

    Returns:
        Instância de Logger configurada
    """
    return logging.getLogger(name)
