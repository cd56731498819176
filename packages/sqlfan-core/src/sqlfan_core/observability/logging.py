"""
Структурированное логирование для sqlfan

Обеспечивает:
- Структурированные логи в JSON, console или logfmt формате
- Очистку учетных данных (пароли, context удаленных запросов)
- Обрезание длинных значений (SQL текст, аргументы задач)
"""

import logging
import os
import sys
from typing import Any, TextIO

import structlog


class LoggerConfig:
    """Конфигурация логгера"""

    def __init__(
        self,
        level: str = "INFO",
        format: str = "json",  # json, console, text
        output: TextIO = sys.stdout,
        include_caller: bool = False,
        include_timestamp: bool = True,
        max_string_length: int = 2000,
        sanitize_keys: bool = True,
    ):
        self.level = level.upper()
        self.format = format.lower()
        self.output = output
        self.include_caller = include_caller
        self.include_timestamp = include_timestamp
        self.max_string_length = max_string_length
        self.sanitize_keys = sanitize_keys


SENSITIVE_KEYS = frozenset(
    {
        "password",
        "passwd",
        "secret",
        "token",
        "authorization",
        "credentials",
        "connection_string",
        "context",
        "password_hash",
        "password_salt",
    }
)


def sanitize_sensitive_data(logger, method_name, event_dict):
    """Процессор для очистки чувствительных данных"""

    def sanitize(key: Any, value: Any) -> Any:
        if isinstance(key, str) and key.lower() in SENSITIVE_KEYS:
            return "***REDACTED***" if value else value
        if isinstance(value, dict):
            return {k: sanitize(k, v) for k, v in value.items()}
        if isinstance(value, list):
            return [sanitize(key, item) for item in value]
        return value

    return {k: sanitize(k, v) for k, v in event_dict.items()}


def make_truncate_processor(max_length: int):
    """Процессор для обрезания длинных значений"""

    def truncate_value(value: Any) -> Any:
        if isinstance(value, str) and len(value) > max_length:
            return value[:max_length] + "... [TRUNCATED]"
        elif isinstance(value, dict):
            return {k: truncate_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [truncate_value(item) for item in value]
        return value

    def truncate_long_values(logger, method_name, event_dict):
        return {k: truncate_value(v) for k, v in event_dict.items()}

    return truncate_long_values


def setup_logging(config: LoggerConfig | None = None) -> None:
    """
    Настройка системы логирования

    Args:
        config: Конфигурация логгера, если None - значения из переменных окружения
    """
    if config is None:
        config = LoggerConfig(
            level=os.getenv("SQLFAN_LOG_LEVEL", "INFO"),
            format=os.getenv("SQLFAN_LOG_FORMAT", "json"),
        )

    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
    ]

    if config.include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))

    if config.include_caller:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            )
        )

    processors.append(structlog.processors.format_exc_info)

    if config.sanitize_keys:
        processors.append(sanitize_sensitive_data)

    processors.append(make_truncate_processor(config.max_string_length))

    if config.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    elif config.format == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.append(structlog.processors.LogfmtRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        level=getattr(logging, config.level, logging.INFO),
        stream=config.output,
        format="%(message)s",
        force=True,
    )
