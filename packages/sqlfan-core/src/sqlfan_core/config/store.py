"""
Хранилище настроек удаленного выполнения

Key-value хранилище в JSON файле: URL удаленного endpoint, хэш пароля
доступа и флаг блокировки (kill-switch). Изменение URL требует текущий пароль.
"""

import hashlib
import hmac
import json
import secrets
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

from sqlfan_core.exceptions import AuthenticationError, ConfigurationError

logger = structlog.get_logger(__name__)

_PBKDF2_ITERATIONS = 200_000


class RemoteSettings(BaseModel):
    """Сохраняемые настройки удаленного выполнения"""

    endpoint_url: str | None = Field(default=None, description="URL dispatch endpoint")
    password_hash: str | None = Field(default=None)
    password_salt: str | None = Field(default=None)
    locked: bool = Field(default=False, description="Kill-switch: отклонять все запросы")


def _hash_password(password: str, salt: str) -> str:
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), bytes.fromhex(salt), _PBKDF2_ITERATIONS
    )
    return digest.hex()


class SettingsStore:
    """Хранилище RemoteSettings в JSON файле"""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._logger = structlog.get_logger(component="settings_store", path=str(self.path))

    def load(self) -> RemoteSettings:
        """Чтение настроек; отсутствующий файл дает значения по умолчанию"""
        if not self.path.exists():
            return RemoteSettings()

        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Settings store is corrupted: {self.path}", original_error=e
            ) from e

        return RemoteSettings.model_validate(data)

    def save(self, settings: RemoteSettings) -> None:
        """Запись настроек"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(settings.model_dump_json(indent=2), encoding="utf-8")

    @property
    def endpoint_url(self) -> str | None:
        return self.load().endpoint_url

    @property
    def locked(self) -> bool:
        return self.load().locked

    def verify_password(self, password: str | None) -> bool:
        """Проверка пароля; без сохраненного пароля проверка проходит"""
        settings = self.load()
        if settings.password_hash is None:
            return True
        if password is None or settings.password_salt is None:
            return False

        candidate = _hash_password(password, settings.password_salt)
        return hmac.compare_digest(candidate, settings.password_hash)

    def set_password(self, new_password: str, current_password: str | None = None) -> None:
        """Установка пароля доступа (требует текущий, если он уже задан)"""
        if not new_password:
            raise ConfigurationError("Password cannot be empty", config_field="password")
        if not self.verify_password(current_password):
            raise AuthenticationError("Current password does not match")

        settings = self.load()
        salt = secrets.token_hex(16)
        settings.password_salt = salt
        settings.password_hash = _hash_password(new_password, salt)
        self.save(settings)
        self._logger.info("Access password updated")

    def set_endpoint_url(self, url: str, password: str | None) -> None:
        """Изменение URL endpoint (требует текущий пароль)"""
        if not url or not url.startswith(("http://", "https://")):
            raise ConfigurationError(
                "Endpoint URL must be an http(s) URL",
                config_field="endpoint_url",
                config_value=url,
            )
        if not self.verify_password(password):
            raise AuthenticationError("Password does not match, endpoint URL unchanged")

        settings = self.load()
        settings.endpoint_url = url
        self.save(settings)
        self._logger.info("Endpoint URL updated", endpoint_url=url)

    def lock(self) -> None:
        """Включение kill-switch"""
        settings = self.load()
        settings.locked = True
        self.save(settings)
        self._logger.warning("Remote dispatch locked")

    def unlock(self) -> None:
        """Выключение kill-switch"""
        settings = self.load()
        settings.locked = False
        self.save(settings)
        self._logger.info("Remote dispatch unlocked")
