# packages/dispatch/tests/test_fanout.py

import asyncio
import json

import httpx
import pytest
from structlog.testing import capture_logs

from sqlfan_core.exceptions import (
    ConfigurationError,
    PolicyError,
    RemoteTransportError,
    ValidationError,
)
from sqlfan_core.observability.metrics import sample
from sqlfan_dispatch import (
    MAX_TASKS,
    BatchTransport,
    FanOutEngine,
    TaskDescriptor,
    TaskResult,
    TaskResultCursor,
    build_allow_list,
)

ENDPOINT = "http://testserver/dispatch"


class EchoTransport:
    """Транспорт, который записывает payloads и отвечает эхом"""

    def __init__(self):
        self.calls: list[list[dict]] = []

    async def post_all(self, url, payloads):
        self.calls.append(list(payloads))
        return [
            {
                "FunctionName": payload["function"],
                "Arguments": payload["arguments"],
                "Tag": payload["tag"],
                "Result": len(payload["arguments"]),
            }
            for payload in payloads
        ]


class TestTaskDescriptor:
    """Разбор задач"""

    def test_from_tuple(self):
        task = TaskDescriptor.coerce(("executeQuery", ["SELECT 1"], "t1"))

        assert task.operation == "executeQuery"
        assert task.arguments == ["SELECT 1"]
        assert task.tag == "t1"

    def test_from_dict_with_function_key(self):
        task = TaskDescriptor.coerce({"function": "execute", "arguments": "SELECT 1"})

        assert task.operation == "execute"
        assert task.arguments == ["SELECT 1"]
        assert task.tag is None

    @pytest.mark.parametrize("task", ["execute", (), {"arguments": []}])
    def test_invalid(self, task):
        with pytest.raises(ValidationError):
            TaskDescriptor.coerce(task)


class TestPrepare:
    """Ограничение и фильтрация задач"""

    def test_requires_endpoint(self, settings):
        with pytest.raises(ConfigurationError):
            FanOutEngine(settings, None)

    def test_extra_tasks_dropped_with_warning(self, settings):
        transport = EchoTransport()
        tasks = [("executeQuery", [f"SELECT {i}"], i) for i in range(25)]
        before = sample("sqlfan_fanout_tasks_total", {"status": "dropped"})

        with capture_logs() as logs:
            engine = FanOutEngine(settings, ENDPOINT, transport=transport)
            cursor = engine.dispatch(tasks)

        assert len(transport.calls[0]) == MAX_TASKS == 20
        assert len(cursor) == 20
        assert [step.tag for step in cursor] == list(range(20))
        assert any(log["event"] == "Too many tasks, extra tasks dropped" for log in logs)
        assert sample("sqlfan_fanout_tasks_total", {"status": "dropped"}) == before + 5

    def test_disallowed_tasks_are_dropped(self, settings):
        transport = EchoTransport()
        engine = FanOutEngine(
            settings,
            ENDPOINT,
            transport=transport,
            allow_list=build_allow_list(["executeQuery"]),
        )

        with capture_logs() as logs:
            cursor = engine.dispatch(
                [("execute", ["DROP TABLE users"], "bad"), ("executeQuery", ["SELECT 1"], "good")]
            )

        assert [payload["function"] for payload in transport.calls[0]] == ["executeQuery"]
        assert [step.tag for step in cursor] == ["good"]
        rejected = [log for log in logs if log["event"] == "Operation not allowed, task dropped"]
        assert rejected[0]["operation"] == "execute"

    def test_nothing_allowed(self, settings):
        transport = EchoTransport()
        engine = FanOutEngine(
            settings,
            ENDPOINT,
            transport=transport,
            allow_list=build_allow_list(["executeQuery"]),
        )

        with pytest.raises(PolicyError, match="no available methods"):
            engine.dispatch([("execute", ["DELETE FROM users"])])
        assert transport.calls == []

    def test_unknown_operation_never_sent(self, settings):
        transport = EchoTransport()
        engine = FanOutEngine(settings, ENDPOINT, transport=transport)

        with pytest.raises(PolicyError):
            engine.dispatch([("__class__", [])])

    def test_bad_arguments_stay_in_their_task(self, settings):
        transport = EchoTransport()
        engine = FanOutEngine(settings, ENDPOINT, transport=transport)

        with capture_logs() as logs:
            steps = list(
                engine.dispatch(
                    [
                        ("insertArrayToDBTable", ["users", ["id"], None], "bad"),
                        ("executeQuery", ["SELECT 1"], "good"),
                    ]
                )
            )

        assert [payload["tag"] for payload in transport.calls[0]] == ["good"]
        assert steps[0].tag == "bad"
        assert steps[0].error.startswith("Invalid arguments: TypeError")
        assert (steps[1].tag, steps[1].value, steps[1].error) == ("good", 1, None)
        assert any(log["event"] == "Task arguments could not be encoded" for log in logs)

    def test_all_arguments_bad(self, settings):
        transport = EchoTransport()
        engine = FanOutEngine(settings, ENDPOINT, transport=transport)

        cursor = engine.dispatch([("insertInto", ["users", ["not a record"]], "only")])

        assert transport.calls == []
        step = cursor.advance()
        assert step.tag == "only"
        assert "AttributeError" in step.error
        assert cursor.advance().done is True

    def test_payload_carries_context(self, settings):
        transport = EchoTransport()
        FanOutEngine(settings, ENDPOINT, transport=transport).dispatch(
            [("insertArrayToDBTable", ["users", ["id"], [[b"\x01"]], None])]
        )

        payload = transport.calls[0][0]
        assert payload["context"]["url"] == settings.url
        assert payload["arguments"][2] == [[{"$kind": "blob", "$value": "AQ=="}]]


class TestTaskResultCursor:
    """Курсор по результатам"""

    @pytest.fixture
    def cursor(self):
        return TaskResultCursor(
            [
                TaskResult(operation="executeQuery", tag="a", result=[{"x": 1}]),
                TaskResult(operation="execute", tag=None, error="boom"),
            ]
        )

    def test_steps(self, cursor):
        first = cursor.advance()
        second = cursor.advance()

        assert (first.index, first.value, first.error, first.tag) == (0, [{"x": 1}], None, "a")
        assert (second.index, second.error, second.operation) == (1, "boom", "execute")

    def test_done_is_terminal(self, cursor):
        list(cursor)

        assert cursor.advance().to_dict() == {"done": True}
        assert cursor.advance().to_dict() == {"done": True}

    def test_reset_replays_without_reexecution(self, cursor):
        first_pass = [step.to_dict() for step in cursor]
        cursor.reset()
        second_pass = [step.to_dict() for step in cursor]

        assert first_pass == second_pass
        assert len(first_pass) == 2


class TestTransportFailures:
    """Сбой транспорта фатален для всего вызова"""

    def test_http_error_status(self, settings):
        transport = BatchTransport(
            transport=httpx.MockTransport(lambda request: httpx.Response(502, text="bad gateway"))
        )
        engine = FanOutEngine(settings, ENDPOINT, transport=transport)

        with pytest.raises(RemoteTransportError) as exc_info:
            engine.dispatch([("executeQuery", ["SELECT 1"])])

        assert exc_info.value.status_code == 502

    def test_connection_refused(self, settings):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        engine = FanOutEngine(
            settings, ENDPOINT, transport=BatchTransport(transport=httpx.MockTransport(refuse))
        )

        with pytest.raises(RemoteTransportError, match="connection refused"):
            engine.dispatch([("executeQuery", ["SELECT 1"])])

    def test_pending_requests_finish_before_error(self, settings):
        finished = []

        async def handler(request):
            payload = json.loads(request.content)
            if payload["tag"] == "broken":
                raise httpx.ConnectError("connection reset", request=request)
            await asyncio.sleep(0.01)
            finished.append(payload["tag"])
            return httpx.Response(200, json={"FunctionName": payload["function"], "Result": 1})

        engine = FanOutEngine(
            settings, ENDPOINT, transport=BatchTransport(transport=httpx.MockTransport(handler))
        )

        with pytest.raises(RemoteTransportError, match="connection reset"):
            engine.dispatch(
                [
                    ("executeQuery", ["SELECT 1"], "broken"),
                    ("executeQuery", ["SELECT 2"], "a"),
                    ("executeQuery", ["SELECT 3"], "b"),
                ]
            )

        assert sorted(finished) == ["a", "b"]

    def test_malformed_body_is_task_error(self, settings):
        transport = BatchTransport(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"<html>"))
        )
        engine = FanOutEngine(settings, ENDPOINT, transport=transport)

        step = engine.dispatch([("executeQuery", ["SELECT 1"], "t")]).advance()

        assert step.error.startswith("Malformed response body")
        assert step.tag == "t"


class TestAgainstEndpoint:
    """Fan-out на dispatch endpoint через ASGI транспорт"""

    @pytest.fixture
    def engine(self, settings, app):
        return FanOutEngine(
            settings, ENDPOINT, transport=BatchTransport(transport=httpx.ASGITransport(app=app))
        )

    def test_results_in_submission_order(self, engine):
        cursor = engine.dispatch(
            [
                ("executeQuery", ["SELECT name FROM users WHERE id = 3"], "first"),
                ("executeQuery", ["SELECT name FROM users WHERE id = 1"], 42),
                ("getTableAsArray", ["users", ["id"], {"column": "age", "valueTo": 30}], None),
            ]
        )
        steps = list(cursor)

        assert [step.tag for step in steps] == ["first", 42, None]
        assert steps[0].value == [{"name": "Carol"}]
        assert steps[1].value == [{"name": "Alice"}]
        assert steps[2].value == {"columns": ["id"], "rows": [[2]]}
        assert all(step.error is None for step in steps)

    def test_one_failure_does_not_affect_neighbours(self, engine):
        steps = list(
            engine.dispatch(
                [
                    ("executeQuery", ["SELECT COUNT(*) AS n FROM users"], "count"),
                    ("execute", ["INSERT INTO missing VALUES (1)"], "broken"),
                    ("executeUpdate", ["UPDATE users SET age = 0 WHERE id = 2"], "update"),
                ]
            )
        )

        assert steps[0].value == [{"n": 3}]
        assert "missing" in steps[1].error
        assert steps[1].tag == "broken"
        assert steps[2].value == 1
        assert steps[2].error is None
