# packages/components/query_sql/tests/test_compiler.py

from datetime import date, datetime, timezone

import pytest

from query_sql import QueryFilter, build_insert, compile_select, to_epoch_seconds
from sqlfan_core.exceptions import ConfigurationError, ValidationError


class TestSelectWithoutFilters:
    """Запрос без фильтров для всех диалектов"""

    @pytest.mark.parametrize(
        "dialect,expected",
        [
            ("mysql", "SELECT `id`, `name` FROM `users`"),
            ("cloud-mysql", "SELECT `id`, `name` FROM `users`"),
            ("postgres", 'SELECT "id", "name" FROM "users"'),
            ("sqlserver", "SELECT [id], [name] FROM [users]"),
        ],
    )
    def test_columns(self, dialect, expected):
        assert compile_select(dialect, "users", ["id", "name"]) == expected

    @pytest.mark.parametrize("dialect", ["mysql", "postgres", "sqlserver"])
    def test_select_all(self, dialect):
        sql = compile_select(dialect, "users")

        assert sql.startswith("SELECT * FROM ")
        assert "WHERE" not in sql
        assert "ORDER BY" not in sql
        assert "LIMIT" not in sql and "OFFSET" not in sql

    def test_dotted_names_quoted_per_part(self):
        assert (
            compile_select("postgres", "sales.orders", ["o.id"])
            == 'SELECT "o"."id" FROM "sales"."orders"'
        )

    def test_columns_as_comma_string(self):
        assert compile_select("mysql", "t", "a, b") == "SELECT `a`, `b` FROM `t`"

    def test_unsupported_dialect(self):
        with pytest.raises(ConfigurationError):
            compile_select("oracle", "users")

    def test_table_required(self):
        with pytest.raises(ValidationError):
            compile_select("mysql", "")


class TestExactMatchWithPagination:
    """value + sort + limit"""

    filters = {"column": "col", "value": "x", "sort": "c", "direction": "asc", "limit": 3}

    def test_mysql(self):
        assert (
            compile_select("mysql", "t", filters=self.filters)
            == "SELECT * FROM `t` WHERE `col` = 'x' ORDER BY `c` ASC LIMIT 3 OFFSET 0"
        )

    def test_postgres(self):
        assert (
            compile_select("postgres", "t", filters=self.filters)
            == 'SELECT * FROM "t" WHERE "col" = \'x\' ORDER BY "c" ASC LIMIT 3 OFFSET 0'
        )

    def test_sqlserver(self):
        assert (
            compile_select("sqlserver", "t", filters=self.filters)
            == "SELECT * FROM [t] WHERE [col] = 'x' ORDER BY [c] ASC "
            "OFFSET 0 ROWS FETCH NEXT 3 ROWS ONLY"
        )


class TestConditions:
    """Построение условий"""

    def test_like_and_notlike(self):
        sql = compile_select(
            "mysql",
            "t",
            filters=[{"column": "name", "like": "A%"}, {"column": "email", "notlike": "%@spam.io"}],
        )
        assert sql == "SELECT * FROM `t` WHERE `name` LIKE 'A%' AND `email` NOT LIKE '%@spam.io'"

    @pytest.mark.parametrize(
        "dialect,condition",
        [
            ("mysql", "`code` REGEXP '^[A-Z]+$'"),
            ("postgres", "\"code\" ~ '^[A-Z]+$'"),
            ("sqlserver", "REGEXP_LIKE([code], '^[A-Z]+$')"),
        ],
    )
    def test_regex(self, dialect, condition):
        sql = compile_select(dialect, "t", filters={"column": "code", "regex": "^[A-Z]+$"})
        assert sql.endswith("WHERE " + condition)

    def test_between(self):
        sql = compile_select("postgres", "t", filters={"column": "n", "valueFrom": 1, "valueTo": 9})
        assert sql == 'SELECT * FROM "t" WHERE "n" BETWEEN 1 AND 9'

    def test_greater_than_only(self):
        sql = compile_select("mysql", "t", filters={"column": "n", "value_from": 5})
        assert sql.endswith("WHERE `n` > 5")

    def test_less_than_only(self):
        sql = compile_select("mysql", "t", filters={"column": "n", "value_to": 5})
        assert sql.endswith("WHERE `n` < 5")

    def test_literals_are_escaped(self):
        mysql = compile_select("mysql", "t", filters={"column": "s", "value": "O'Brien\\"})
        postgres = compile_select("postgres", "t", filters={"column": "s", "value": "O'Brien\\"})

        assert mysql.endswith("`s` = 'O''Brien\\\\'")
        assert postgres.endswith("\"s\" = 'O''Brien\\'")

    def test_boolean_literals(self):
        assert compile_select("mysql", "t", filters={"column": "a", "value": True}).endswith(
            "`a` = TRUE"
        )
        assert compile_select("sqlserver", "t", filters={"column": "a", "value": False}).endswith(
            "[a] = 0"
        )

    def test_datetime_literal(self):
        sql = compile_select(
            "mysql", "t", filters={"column": "ts", "value_from": datetime(2024, 3, 1, 8, 0, 5)}
        )
        assert sql.endswith("`ts` > '2024-03-01 08:00:05'")

    def test_to_unix_time(self):
        sql = compile_select(
            "mysql",
            "t",
            filters={
                "column": "created",
                "valueFrom": "2024-01-01T00:00:00Z",
                "valueTo": date(2024, 1, 2),
                "toUnixTime": True,
            },
        )
        assert sql.endswith("`created` BETWEEN 1704067200 AND 1704153600")


class TestSortAndPagination:
    """Сортировка и пагинация по правилу первого значения"""

    def test_first_value_wins(self):
        filters = [
            QueryFilter(column="a", value=1, limit=10),
            QueryFilter(column="b", value=2, sort="b", direction="desc", limit=99, offset=20),
            QueryFilter(sort="c", offset=50),
        ]
        sql = compile_select("mysql", "t", filters=filters)

        assert sql == (
            "SELECT * FROM `t` WHERE `a` = 1 AND `b` = 2 "
            "ORDER BY `b` DESC LIMIT 10 OFFSET 20"
        )

    def test_clause_order(self):
        sql = compile_select(
            "postgres", "t", ["x"], {"column": "x", "like": "%", "sort": "x", "limit": 1, "offset": 2}
        )

        assert sql.index("WHERE") < sql.index("ORDER BY") < sql.index("LIMIT")

    def test_sqlserver_pagination_without_sort(self):
        sql = compile_select("sqlserver", "t", filters={"limit": 5})
        assert sql == "SELECT * FROM [t] ORDER BY (SELECT NULL) OFFSET 0 ROWS FETCH NEXT 5 ROWS ONLY"

    @pytest.mark.parametrize(
        "dialect,suffix",
        [
            ("mysql", "LIMIT 18446744073709551615 OFFSET 7"),
            ("postgres", "OFFSET 7"),
            ("sqlserver", "ORDER BY (SELECT NULL) OFFSET 7 ROWS"),
        ],
    )
    def test_offset_without_limit(self, dialect, suffix):
        assert compile_select(dialect, "t", filters={"offset": 7}).endswith(suffix)

    def test_count_only_drops_sort_and_pagination(self):
        sql = compile_select(
            "sqlserver",
            "t",
            ["a", "b"],
            {"column": "a", "value": 1, "sort": "a", "limit": 10, "offset": 5},
            count_only=True,
        )
        assert sql == "SELECT COUNT(*) FROM [t] WHERE [a] = 1"


class TestBuildInsert:
    """Параметризованный INSERT"""

    def test_plain_insert(self):
        assert (
            build_insert("postgres", "users", ["id", "name"])
            == 'INSERT INTO "users" ("id", "name") VALUES (:p0, :p1)'
        )

    def test_mysql_upsert(self):
        assert build_insert("mysql", "users", ["id", "name"], upsert=True) == (
            "INSERT INTO `users` (`id`, `name`) VALUES (:p0, :p1) "
            "ON DUPLICATE KEY UPDATE `id`=VALUES(`id`), `name`=VALUES(`name`)"
        )

    def test_upsert_not_supported_outside_mysql(self):
        with pytest.raises(ConfigurationError, match="Upsert"):
            build_insert("sqlserver", "users", ["id"], upsert=True)

    def test_columns_required(self):
        with pytest.raises(ValidationError):
            build_insert("mysql", "users", [])


def test_epoch_seconds_treats_naive_as_utc():
    naive = datetime(2024, 1, 1)
    aware = datetime(2024, 1, 1, tzinfo=timezone.utc)

    assert to_epoch_seconds(naive) == to_epoch_seconds(aware) == 1704067200
    assert to_epoch_seconds("not a date") == "not a date"
