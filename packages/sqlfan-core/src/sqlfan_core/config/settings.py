"""
Настройки подключения к базе данных

ConnectionSettings - неизменяемый контекст подключения. Он сериализуется
в поле ``context`` удаленного запроса и восстанавливается на стороне endpoint,
поэтому каждая удаленная задача получает собственную копию.
"""

from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from sqlfan_core.exceptions import ConfigurationError, UnsupportedDialectError

SUPPORTED_DIALECTS = ("mysql", "cloud-mysql", "postgres", "sqlserver")

DialectFamily = Literal["mysql", "postgres", "sqlserver"]

_DIALECT_FAMILIES: dict[str, DialectFamily] = {
    "mysql": "mysql",
    "cloud-mysql": "mysql",
    "postgres": "postgres",
    "sqlserver": "sqlserver",
}


def dialect_family(dialect: str) -> DialectFamily:
    """Семейство SQL синтаксиса для префикса диалекта"""
    try:
        return _DIALECT_FAMILIES[dialect.lower()]
    except (KeyError, AttributeError):
        raise UnsupportedDialectError(
            str(dialect), supported_dialects=list(SUPPORTED_DIALECTS)
        ) from None


class ConnectionSettings(BaseModel):
    """Контекст подключения: сервер, учетные данные и флаги поведения"""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    # Подключение
    server: str | None = Field(default=None, description="Хост сервера БД")
    port: int | None = Field(default=None, ge=1, le=65535, description="Порт")
    database: str | None = Field(default=None, description="База данных по умолчанию")
    dialect: str = Field(default="mysql", description="Префикс диалекта")

    # Учетные данные
    user: str | None = Field(default=None, description="Имя пользователя")
    password: SecretStr | None = Field(default=None, description="Пароль")

    # Managed cloud (только для cloud-mysql)
    cloud_project: str | None = Field(default=None)
    cloud_region: str | None = Field(default=None)
    cloud_instance: str | None = Field(default=None)

    # Поведение
    show_timing: bool = Field(default=True, description="Логировать время операций")
    show_logs: bool = Field(default=False, description="Логировать текст SQL")
    mute_exceptions: bool = Field(
        default=False, description="Понижать исключения до предупреждений"
    )

    # Явный SQLAlchemy URL (тесты, нестандартные драйверы)
    url: str | None = Field(default=None)
    connect_args: dict[str, Any] = Field(default_factory=dict)

    @field_validator("dialect")
    @classmethod
    def validate_dialect(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in SUPPORTED_DIALECTS:
            raise ValueError(
                f"Unsupported dialect prefix: {v}. Supported: {', '.join(SUPPORTED_DIALECTS)}"
            )
        return v

    @model_validator(mode="after")
    def validate_required_fields(self) -> "ConnectionSettings":
        if self.url:
            return self

        if self.dialect == "cloud-mysql":
            missing = [
                name
                for name in ("cloud_project", "cloud_region", "cloud_instance")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(
                    f"cloud-mysql requires {', '.join(missing)}"
                )
        elif not self.server:
            raise ValueError(f"server is required for dialect {self.dialect}")

        return self

    @property
    def family(self) -> DialectFamily:
        """Семейство SQL синтаксиса"""
        return dialect_family(self.dialect)

    @property
    def instance_connection_name(self) -> str | None:
        """Имя инстанса managed cloud в формате project:region:instance"""
        if self.dialect != "cloud-mysql" or not self.cloud_instance:
            return None
        return f"{self.cloud_project}:{self.cloud_region}:{self.cloud_instance}"

    @classmethod
    def parse(cls, data: dict[str, Any]) -> "ConnectionSettings":
        """Создание настроек из словаря с ошибкой конфигурации вместо pydantic"""
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Invalid connection settings: {e.errors(include_url=False)}",
                original_error=e,
            ) from e

    def to_context(self) -> dict[str, Any]:
        """Сериализация в поле context удаленного запроса"""
        context = self.model_dump(mode="json", by_alias=True)
        context["password"] = (
            self.password.get_secret_value() if self.password else None
        )
        return context

    @classmethod
    def from_context(cls, context: dict[str, Any]) -> "ConnectionSettings":
        """Восстановление настроек из поля context удаленного запроса"""
        if not isinstance(context, dict):
            raise ConfigurationError(
                "Request context must be an object", config_field="context"
            )
        return cls.parse(context)

    def with_overrides(self, **changes: Any) -> "ConnectionSettings":
        """Копия настроек с измененными полями"""
        return self.model_copy(update=changes)
