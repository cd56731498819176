"""
CLI интерфейс sqlfan

Команды для запуска dispatch endpoint, компиляции фильтров в SQL,
выполнения запросов и управления настройками удаленного выполнения.
"""

import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from query_sql import compile_select
from sqlfan_core.config import SUPPORTED_DIALECTS, SettingsStore, load_settings
from sqlfan_core.exceptions import SqlFanError
from sqlfan_core.observability import LoggerConfig, setup_logging

from sqlfan_dispatch.database import Database

app = typer.Typer(help="sqlfan CLI: SQL слой и удаленный fan-out")
endpoint_app = typer.Typer(help="Настройки удаленного endpoint")
app.add_typer(endpoint_app, name="endpoint")
console = Console()

DEFAULT_STORE = Path.home() / ".sqlfan" / "settings.json"

StoreOption = typer.Option(
    DEFAULT_STORE, "--store", envvar="SQLFAN_SETTINGS", help="Файл настроек endpoint"
)


# ================================
# Helper Functions
# ================================


def parse_filters(filters: str | None) -> Any:
    """Фильтры из JSON строки или пути к JSON файлу"""
    if not filters:
        return None

    candidate = Path(filters)
    try:
        if candidate.suffix.lower() == ".json" and candidate.exists():
            return json.loads(candidate.read_text(encoding="utf-8"))
        return json.loads(filters)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid filters JSON: {e}[/red]")
        raise typer.Exit(1)


def display_rows(result: Any, max_rows: int = 20) -> None:
    """Вывод результата запроса таблицей"""
    if isinstance(result, dict) and "columns" in result:
        columns, rows = result["columns"], result["rows"]
    elif isinstance(result, list) and result and isinstance(result[0], dict):
        columns = list(result[0].keys())
        rows = [[record.get(column) for column in columns] for record in result]
    else:
        console.print(f"Result: {result}")
        return

    if not rows:
        console.print("[yellow]No rows returned[/yellow]")
        return

    table = Table(show_header=True, header_style="bold blue")
    for column in columns:
        table.add_column(str(column))
    for row in rows[:max_rows]:
        table.add_row(*("NULL" if value is None else str(value) for value in row))

    console.print(table)
    if len(rows) > max_rows:
        console.print(f"... {len(rows) - max_rows} more rows")


def fail(error: SqlFanError, verbose: bool = False) -> None:
    console.print(f"[red]✗ {error.message}[/red]")
    if verbose:
        console.print(f"Error details: {error.to_dict()}")
    raise typer.Exit(1)


# ================================
# Commands
# ================================


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host to bind to"),
    port: int = typer.Option(8080, help="Port to bind to"),
    store: Path = StoreOption,
    log_format: str = typer.Option("json", help="Log format: json, console, logfmt"),
    log_level: str = typer.Option("INFO", help="Log level"),
    allow_url_override: bool = typer.Option(
        False, "--allow-url-override", help="Принимать url и connectArgs из запроса"
    ),
):
    """Запуск dispatch endpoint"""
    import uvicorn

    from sqlfan_dispatch.endpoint import create_app

    setup_logging(LoggerConfig(level=log_level, format=log_format))
    console.print(
        Panel.fit(
            f"Dispatch endpoint on [bold]http://{host}:{port}[/bold]\nSettings store: {store}",
            title="sqlfan",
        )
    )
    uvicorn.run(
        create_app(store=SettingsStore(store), allow_url_override=allow_url_override),
        host=host,
        port=port,
    )


@app.command("compile")
def compile_command(
    table: str = typer.Argument(..., help="Имя таблицы"),
    dialect: str = typer.Option("mysql", help=f"Диалект: {', '.join(SUPPORTED_DIALECTS)}"),
    columns: str | None = typer.Option(None, help="Колонки через запятую"),
    filters: str | None = typer.Option(None, help="Фильтры: JSON или путь к JSON файлу"),
    count_only: bool = typer.Option(False, "--count-only", help="SELECT COUNT(*)"),
):
    """Компиляция фильтров в SQL без выполнения"""
    try:
        sql = compile_select(
            dialect, table, columns=columns, filters=parse_filters(filters), count_only=count_only
        )
    except SqlFanError as e:
        fail(e)

    console.print(Syntax(sql, "sql", word_wrap=True))


@app.command()
def query(
    config: Path = typer.Argument(..., help="YAML/JSON файл с настройками подключения"),
    sql: str | None = typer.Option(None, help="SQL запрос"),
    table: str | None = typer.Option(None, help="Таблица (вместо SQL)"),
    columns: str | None = typer.Option(None, help="Колонки через запятую"),
    filters: str | None = typer.Option(None, help="Фильтры: JSON или путь к JSON файлу"),
    database: str | None = typer.Option(None, help="База данных"),
    section: str | None = typer.Option(None, help="Секция файла с настройками"),
    max_rows: int = typer.Option(20, help="Maximum rows to show"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Выполнение запроса на локальном подключении"""
    if not sql and not table:
        console.print("[red]Either --sql or --table is required[/red]")
        raise typer.Exit(1)

    try:
        settings = load_settings(config, section=section)
        with Database(settings) as db:
            if sql:
                result = db.query_database(sql, database)
            else:
                result = db.get_table_as_array(table, columns, parse_filters(filters), database)
    except SqlFanError as e:
        fail(e, verbose)

    display_rows(result, max_rows=max_rows)


# ================================
# Endpoint settings
# ================================


@endpoint_app.command("set-url")
def set_url(
    url: str = typer.Argument(..., help="URL dispatch endpoint"),
    store: Path = StoreOption,
    password: str | None = typer.Option(None, help="Текущий пароль"),
):
    """Изменение URL endpoint (требует текущий пароль)"""
    try:
        SettingsStore(store).set_endpoint_url(url, password)
    except SqlFanError as e:
        fail(e)
    console.print(f"[green]✓ Endpoint URL set to {url}[/green]")


@endpoint_app.command("set-password")
def set_password(
    new_password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
    current_password: str | None = typer.Option(None, help="Текущий пароль"),
    store: Path = StoreOption,
):
    """Установка пароля доступа"""
    try:
        SettingsStore(store).set_password(new_password, current_password)
    except SqlFanError as e:
        fail(e)
    console.print("[green]✓ Password updated[/green]")


@endpoint_app.command()
def lock(store: Path = StoreOption):
    """Включение kill-switch: endpoint отклоняет все запросы"""
    SettingsStore(store).lock()
    console.print("[yellow]Remote dispatch locked[/yellow]")


@endpoint_app.command()
def unlock(store: Path = StoreOption):
    """Выключение kill-switch"""
    SettingsStore(store).unlock()
    console.print("[green]Remote dispatch unlocked[/green]")


@endpoint_app.command()
def show(store: Path = StoreOption):
    """Текущие настройки endpoint"""
    try:
        settings = SettingsStore(store).load()
    except SqlFanError as e:
        fail(e)

    table = Table(show_header=False)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("Endpoint URL", settings.endpoint_url or "-")
    table.add_row("Password", "set" if settings.password_hash else "not set")
    table.add_row("Locked", "yes" if settings.locked else "no")
    console.print(table)


if __name__ == "__main__":
    app()
