# packages/dispatch/tests/test_database.py

import pytest
from structlog.testing import capture_logs

from sqlfan_core.exceptions import QueryExecutionError, ValidationError
from sqlfan_dispatch import Database


class TestRawSql:
    """Произвольный SQL"""

    def test_execute_reports_returned_rows(self, database):
        assert database.execute("CREATE TABLE audit (id INTEGER)") is False
        assert database.execute("SELECT id FROM users") is True

    def test_execute_update_rowcount(self, database):
        assert database.execute_update("UPDATE users SET age = age + 1 WHERE age > 30") == 2
        assert database.execute_query("SELECT age FROM users WHERE id = 1") == [{"age": 32}]

    def test_execute_query_objects(self, database):
        rows = database.execute_query("SELECT id, name FROM users ORDER BY id")
        assert rows[0] == {"id": 1, "name": "Alice"}
        assert len(rows) == 3

    def test_query_database_array(self, database):
        result = database.query_database("SELECT name FROM users WHERE id < 3 ORDER BY id")
        assert result == {"columns": ["name"], "rows": [["Alice"], ["Bob"]]}

    def test_execute_error_is_raised(self, database):
        with pytest.raises(QueryExecutionError):
            database.execute("INSERT INTO nowhere VALUES (1)")

    def test_sql_required(self, database):
        with pytest.raises(ValidationError):
            database.execute_query("   ")

    def test_colon_in_raw_literal(self, database):
        assert database.execute_update("UPDATE users SET name = 'x :y' WHERE id = 1") == 1
        assert database.execute("INSERT INTO users (id, name) VALUES (9, 'at 10:30')") is False
        assert database.query_database("SELECT name FROM users WHERE id IN (1, 9) ORDER BY id") == {
            "columns": ["name"],
            "rows": [["x :y"], ["at 10:30"]],
        }


class TestRetrieve:
    """Чтение таблиц по фильтрам"""

    def test_filters_and_sort(self, database):
        rows = database.retrieve_data_from_db(
            "users", ["id", "name"], {"column": "age", "valueFrom": 30, "sort": "id"}
        )
        assert rows == [{"id": 1, "name": "Alice"}, {"id": 3, "name": "Carol"}]

    def test_count_only(self, database):
        assert database.retrieve_data_from_db(
            "users", filters={"column": "age", "value_to": 30}, count_only=True
        ) == 1

    def test_array_with_pagination(self, database):
        result = database.get_table_as_array(
            "users", "name", [{"sort": "age", "direction": "desc"}, {"limit": 2}]
        )
        assert result == {"columns": ["name"], "rows": [["Carol"], ["Alice"]]}

    def test_object_shape(self, database):
        rows = database.get_table_as_object("users", filters={"column": "name", "like": "B%"})
        assert rows == [{"id": 2, "name": "Bob", "age": 25}]

    def test_filter_value_with_colon(self, database):
        database.execute_update("UPDATE users SET name = '{\"a\":1}' WHERE id = 1")

        rows = database.get_table_as_object("users", ["id"], {"column": "name", "value": '{"a":1}'})
        assert rows == [{"id": 1}]

    def test_like_pattern_with_colon(self, database):
        database.execute_update("UPDATE users SET name = ':x-ray' WHERE id = 3")

        rows = database.get_table_as_object("users", ["id"], {"column": "name", "like": ":x%"})
        assert rows == [{"id": 3}]

    def test_stale_column_is_skipped(self, database):
        rows = database.get_table_as_object("users", ["id", "legacy_flag"], {"column": "id", "value": 2})
        assert rows == [{"id": 2}]

    def test_unknown_shape(self, database):
        with pytest.raises(ValidationError):
            database.retrieve_data_from_db("users", shape="table")

    def test_malformed_filter(self, database):
        with pytest.raises(ValidationError):
            database.get_table_as_object("users", filters={"column": "id", "value": 1, "like": "x"})


class TestWrite:
    """Вставка записей и строк"""

    def test_insert_into(self, database):
        assert database.insert_into("users", [{"id": 4, "name": "Dan"}, {"id": 5, "age": 19}]) is True

        rows = database.execute_query("SELECT id, name, age FROM users WHERE id > 3 ORDER BY id")
        assert rows == [{"id": 4, "name": "Dan", "age": None}, {"id": 5, "name": None, "age": 19}]

    def test_insert_into_empty(self, database):
        assert database.insert_into("users", []) is True

    def test_insert_array_with_wire_cells(self, database):
        rows = [[{"$kind": "integer", "$value": 7}, {"$kind": "string", "$value": "Eve"}]]

        assert database.insert_array_to_db_table("users", ["id", "name"], rows, {"batchSize": 1})
        assert database.execute_query("SELECT name FROM users WHERE id = 7") == [{"name": "Eve"}]

    def test_rows_must_be_list(self, database):
        with pytest.raises(ValidationError):
            database.insert_array_to_db_table("users", ["id"], "1,2,3")


class TestBehaviourFlags:
    """show_timing, show_logs и mute_exceptions"""

    def test_muted_error_returns_none(self, settings):
        with capture_logs() as logs:
            with Database(settings.with_overrides(mute_exceptions=True)) as db:
                assert db.execute("INSERT INTO nowhere VALUES (1)") is None

        muted = [log for log in logs if log["event"] == "Operation failed, exception muted"]
        assert muted[0]["operation"] == "execute"
        assert muted[0]["error_code"] == "QUERY_ERROR"

    def test_unexpected_error_is_muted(self, settings):
        with capture_logs() as logs:
            with Database(settings.with_overrides(mute_exceptions=True)) as db:
                assert db.execute_query("SELECT 1", None, "extra") is None

        muted = [log for log in logs if log["event"] == "Operation failed, exception muted"]
        assert muted[0]["operation"] == "executeQuery"
        assert muted[0]["error_code"] == "UNEXPECTED_ERROR"
        assert "TypeError" in muted[0]["error"]

    def test_unexpected_error_raised_when_not_muted(self, database):
        with pytest.raises(TypeError):
            database.execute_query("SELECT 1", None, "extra")

    def test_timing_log(self, settings):
        with capture_logs() as logs:
            with Database(settings.with_overrides(show_timing=True)) as db:
                db.execute_query("SELECT 1 AS one")

        timing = [log for log in logs if log["event"] == "Operation finished"]
        assert timing[0]["operation"] == "executeQuery"
        assert timing[0]["duration_ms"] >= 0

    def test_sql_log(self, settings):
        with capture_logs() as logs:
            with Database(settings.with_overrides(show_logs=True)) as db:
                db.query_database("SELECT 1 AS one")

        assert any(log.get("sql") == "SELECT 1 AS one" for log in logs)

    def test_no_logs_by_default(self, settings):
        with capture_logs() as logs:
            with Database(settings) as db:
                db.query_database("SELECT 1 AS one")

        assert [log for log in logs if log["log_level"] != "debug"] == []


def test_repr(database):
    assert repr(database) == "Database(dialect='mysql')"
