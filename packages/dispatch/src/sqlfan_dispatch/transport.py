# packages/dispatch/src/sqlfan_dispatch/transport.py

"""
Пакетный HTTP транспорт

Отправляет N запросов одновременно и возвращает тела ответов только после
прихода всех ответов, выровненные по позиции запросов. Любой сбой
транспорта (соединение, таймаут, статус не 2xx) фатален для всего пакета.
"""

import asyncio
import json
from typing import Any, Sequence

import httpx
import structlog

from sqlfan_core.exceptions import RemoteTransportError

DEFAULT_TIMEOUT = 300.0

MALFORMED = object()


class BatchTransport:
    """Одновременная отправка JSON запросов на один endpoint"""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.timeout = timeout
        self._transport = transport
        self._headers = headers or {}
        self.logger = structlog.get_logger(component=self.__class__.__name__)

    async def post_all(self, url: str, payloads: Sequence[dict[str, Any]]) -> list[Any]:
        """
        POST всех payloads на url

        Returns:
            Тела ответов в порядке запросов; тело, которое не является
            JSON, заменяется маркером MALFORMED

        Raises:
            RemoteTransportError: Сбой хотя бы одного запроса
        """
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport, headers=self._headers
        ) as client:
            # Все запросы завершаются до закрытия клиента
            outcomes = await asyncio.gather(
                *(client.post(url, json=payload) for payload in payloads),
                return_exceptions=True,
            )

        failures = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
        if failures:
            self.logger.error(
                "Batch delivery failed",
                url=url,
                requests=len(payloads),
                failed=len(failures),
            )
            self._raise_transport_error(url, failures[0])

        responses: list[httpx.Response] = list(outcomes)
        bodies = []
        for response in responses:
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise RemoteTransportError(
                    f"Remote endpoint returned HTTP {response.status_code}",
                    endpoint=url,
                    status_code=response.status_code,
                    original_error=e,
                ) from e
            bodies.append(self._decode(response))

        self.logger.debug("Batch delivered", url=url, requests=len(payloads))
        return bodies

    @staticmethod
    def _raise_transport_error(url: str, error: BaseException) -> None:
        if isinstance(error, httpx.TimeoutException):
            raise RemoteTransportError(
                f"Remote dispatch timed out: {error}", endpoint=url, original_error=error
            ) from error
        if isinstance(error, httpx.HTTPError):
            raise RemoteTransportError(
                f"Remote dispatch failed: {error}", endpoint=url, original_error=error
            ) from error
        raise error

    def _decode(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            self.logger.warning(
                "Malformed response body", status_code=response.status_code
            )
            return MALFORMED
