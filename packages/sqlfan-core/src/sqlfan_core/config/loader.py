"""
Загрузка настроек подключения из YAML/JSON файлов
"""

import json
from pathlib import Path
from typing import Any

import yaml

from sqlfan_core.config.settings import ConnectionSettings
from sqlfan_core.exceptions import ConfigurationError


def load_config_file(config_path: Path | str) -> dict[str, Any]:
    """Чтение словаря конфигурации из файла"""
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationError(
            f"Config file not found: {config_path}", config_field="path"
        )

    suffix = config_path.suffix.lower()
    try:
        with open(config_path, encoding="utf-8") as f:
            if suffix == ".json":
                data = json.load(f)
            elif suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                raise ConfigurationError(
                    f"Unsupported config format: {suffix}",
                    config_field="path",
                    config_value=str(config_path),
                )
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Error loading config: {config_path}", original_error=e
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root must be a mapping: {config_path}")

    return data


def load_settings(config_path: Path | str, section: str | None = None) -> ConnectionSettings:
    """
    Загрузка ConnectionSettings из файла

    Args:
        config_path: Путь к YAML или JSON файлу
        section: Необязательный ключ верхнего уровня с настройками подключения

    Returns:
        Провалидированные настройки подключения
    """
    data = load_config_file(config_path)
    if section is not None:
        if section not in data:
            raise ConfigurationError(
                f"Section '{section}' not found in {config_path}", config_field=section
            )
        data = data[section]

    return ConnectionSettings.parse(data)
