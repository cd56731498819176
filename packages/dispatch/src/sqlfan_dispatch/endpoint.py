# packages/dispatch/src/sqlfan_dispatch/endpoint.py

"""
Dispatch endpoint - принимающая сторона удаленных вызовов

Dispatcher обрабатывает один запрос {function, arguments, tag, context}:
сначала проверяется kill-switch, затем операция ищется в allow-list,
настройки подключения восстанавливаются из context, операция выполняется
на новом экземпляре Database. Ошибки возвращаются в поле Error и никогда
не выбрасываются наружу. Поля url и connectArgs из context принимаются
только при allow_url_override.
"""

import base64
import time
from decimal import Decimal
from typing import Any, Callable

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from sqlfan_core import __version__
from sqlfan_core.config import ConnectionSettings, SettingsStore
from sqlfan_core.exceptions import SqlFanError
from sqlfan_core.observability.metrics import DISPATCH_REQUESTS_TOTAL, render_latest

from sqlfan_dispatch.database import Database
from sqlfan_dispatch.models import TaskResult
from sqlfan_dispatch.operations import DEFAULT_ALLOW_LIST, AllowList, invoke, resolve

LOCKED_MESSAGE = "Remote dispatch is locked by the administrator; all requests are refused"

# Поля context, которые задают движок напрямую; принимаются только с allow_url_override
ENGINE_OVERRIDE_FIELDS = ("url", "connectArgs", "connect_args")

RESULT_ENCODERS: dict[Any, Callable[[Any], Any]] = {
    bytes: lambda value: base64.b64encode(value).decode("ascii"),
    bytearray: lambda value: base64.b64encode(bytes(value)).decode("ascii"),
    memoryview: lambda value: base64.b64encode(value.tobytes()).decode("ascii"),
    Decimal: float,
}


def encode_result(value: Any) -> Any:
    """JSON-совместимый результат (даты ISO, Decimal числом, bytes base64)"""
    return jsonable_encoder(value, custom_encoder=RESULT_ENCODERS)


class Dispatcher:
    """Обработчик одного запроса удаленного вызова"""

    def __init__(
        self,
        store: SettingsStore | None = None,
        allow_list: AllowList = DEFAULT_ALLOW_LIST,
        database_factory: Callable[[ConnectionSettings], Database] = Database,
        allow_url_override: bool = False,
    ):
        self.store = store
        self.allow_url_override = allow_url_override
        self.allow_list = allow_list
        self.database_factory = database_factory
        self.logger = structlog.get_logger(component=self.__class__.__name__)

    def handle(self, request: Any) -> dict[str, Any]:
        """
        Обработка запроса

        Returns:
            {FunctionName, Arguments, Tag, Result | Error}
        """
        if not isinstance(request, dict):
            request = {}

        name = request.get("function")
        arguments = request.get("arguments")
        tag = request.get("tag")
        response = TaskResult(
            operation=str(name) if name is not None else None,
            arguments=arguments if isinstance(arguments, list) else [],
            tag=tag,
        )

        # Kill-switch проверяется до поиска операции
        if self.store is not None and self.store.locked:
            self.logger.warning("Request refused, dispatch is locked", function=name)
            DISPATCH_REQUESTS_TOTAL.labels(operation="locked", status="refused").inc()
            response.error = LOCKED_MESSAGE
            return response.to_wire()

        operation = resolve(name, self.allow_list)
        if operation is None:
            self.logger.warning("Unknown or disallowed operation", function=name)
            DISPATCH_REQUESTS_TOTAL.labels(operation="unknown", status="rejected").inc()
            response.error = f"Operation '{name}' is not available"
            return response.to_wire()

        if not isinstance(arguments, list):
            DISPATCH_REQUESTS_TOTAL.labels(operation=operation.value, status="error").inc()
            response.error = "Arguments must be a list"
            return response.to_wire()

        log = self.logger.bind(function=operation.value, tag=tag)
        start_time = time.time()
        database = None
        try:
            settings = ConnectionSettings.from_context(self._context(request.get("context")))
            # mute_exceptions применяется только на вызывающей стороне
            settings = settings.with_overrides(mute_exceptions=False)
            database = self.database_factory(settings)
            response.result = encode_result(invoke(database, operation, arguments))
        except SqlFanError as e:
            log.error("Operation failed", error=str(e), error_code=e.error_code)
            response.error = str(e)
        except Exception as e:
            log.error("Operation failed", error=str(e), error_type=type(e).__name__)
            response.error = f"{type(e).__name__}: {e}"
        finally:
            if database is not None:
                database.close()

        status = "success" if response.ok else "error"
        DISPATCH_REQUESTS_TOTAL.labels(operation=operation.value, status=status).inc()
        log.info(
            "Request handled",
            status=status,
            duration_ms=round((time.time() - start_time) * 1000, 3),
        )
        return response.to_wire()

    def _context(self, context: Any) -> Any:
        """Context запроса без полей движка, если они не разрешены"""
        if not context:
            return {}
        if self.allow_url_override or not isinstance(context, dict):
            return context

        ignored = [field for field in ENGINE_OVERRIDE_FIELDS if field in context]
        if ignored:
            self.logger.warning("Engine override fields ignored", fields=ignored)
        return {key: value for key, value in context.items() if key not in ENGINE_OVERRIDE_FIELDS}


def create_app(
    store: SettingsStore | None = None,
    allow_list: AllowList = DEFAULT_ALLOW_LIST,
    dispatcher: Dispatcher | None = None,
    allow_url_override: bool = False,
) -> FastAPI:
    """FastAPI приложение dispatch endpoint"""
    dispatcher = dispatcher or Dispatcher(
        store=store, allow_list=allow_list, allow_url_override=allow_url_override
    )

    app = FastAPI(title="sqlfan dispatch", version=__version__)
    app.state.dispatcher = dispatcher

    async def dispatch(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except ValueError:
            body = None
        payload = await run_in_threadpool(dispatcher.handle, body)
        return JSONResponse(content=payload)

    app.add_api_route("/", dispatch, methods=["POST"])
    app.add_api_route("/dispatch", dispatch, methods=["POST"])

    @app.get("/health")
    async def health() -> dict[str, Any]:
        locked = dispatcher.store.locked if dispatcher.store is not None else False
        return {"status": "ok", "locked": locked, "version": __version__}

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(content=render_latest(), media_type="text/plain; version=0.0.4")

    return app
