# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Tests for SQL qualification and identifier repair."""

from unittest.mock import patch

import pytest

from nlcube.catalog.sql_qualifier import (
    _Rewriter,
    edit_distance,
    qualify,
    qualify_statement,
    terminate_statement,
    tokenize,
    typo_threshold,
)


class TestTableQualification:
    """Bare and loosely qualified table references."""

    def test_bare_table_after_from(self, sales_snapshot):
        result = qualify("SELECT * FROM orders", "sales", sales_snapshot)
        assert result == 'SELECT * FROM "sales"."orders";'

    def test_join_with_aliases(self, sales_snapshot):
        sql = (
            "SELECT o.order_id, c.name FROM orders o "
            "JOIN customers c ON o.customer_id = c.customer_id"
        )
        result = qualify(sql, "sales", sales_snapshot)
        assert result == (
            'SELECT o.order_id, c.name FROM "sales"."orders" o '
            'JOIN "sales"."customers" c ON o.customer_id = c.customer_id;'
        )

    def test_table_name_inside_longer_identifier_untouched(self, sales_snapshot):
        result = qualify("SELECT * FROM orders_archive", "sales", sales_snapshot)
        assert result == "SELECT * FROM orders_archive;"
        assert '"sales"."orders"' not in result

    def test_case_insensitive_table_match_uses_catalog_casing(self, sales_snapshot):
        result = qualify("SELECT * FROM ORDERS", "sales", sales_snapshot)
        assert result == 'SELECT * FROM "sales"."orders";'

    def test_wrong_subject_prefix_is_rerouted(self, sales_snapshot):
        result = qualify("SELECT * FROM other.orders", "sales", sales_snapshot)
        assert result == 'SELECT * FROM "sales"."orders";'

    def test_unquoted_subject_prefix_is_normalized(self, sales_snapshot):
        result = qualify("SELECT * FROM sales.orders", "sales", sales_snapshot)
        assert result == 'SELECT * FROM "sales"."orders";'

    def test_three_part_name_left_alone(self, sales_snapshot):
        result = qualify("SELECT * FROM sales.main.orders", "sales", sales_snapshot)
        assert result == "SELECT * FROM sales.main.orders;"

    def test_comma_separated_from_list(self, sales_snapshot):
        result = qualify("SELECT * FROM orders, customers", "sales", sales_snapshot)
        assert result == 'SELECT * FROM "sales"."orders", "sales"."customers";'

    def test_insert_update_delete(self, sales_snapshot):
        assert qualify(
            "INSERT INTO orders (order_id, total_amount) VALUES (4, 1.0)", "sales", sales_snapshot
        ) == 'INSERT INTO "sales"."orders" (order_id, total_amount) VALUES (4, 1.0);'
        assert qualify(
            "UPDATE orders SET total_amount = 0 WHERE order_id = 1", "sales", sales_snapshot
        ) == 'UPDATE "sales"."orders" SET total_amount = 0 WHERE order_id = 1;'
        assert qualify(
            "DELETE FROM orders WHERE order_id = 1", "sales", sales_snapshot
        ) == 'DELETE FROM "sales"."orders" WHERE order_id = 1;'

    def test_cte_name_not_qualified(self, sales_snapshot):
        sql = "WITH recent AS (SELECT * FROM orders WHERE total_amount > 10) SELECT count(*) FROM recent"
        result = qualify(sql, "sales", sales_snapshot)
        assert result == (
            'WITH recent AS (SELECT * FROM "sales"."orders" WHERE total_amount > 10) '
            "SELECT count(*) FROM recent;"
        )

    def test_extract_from_is_not_a_table_reference(self, sales_snapshot):
        result = qualify("SELECT EXTRACT(YEAR FROM orderdate) FROM orders", "sales", sales_snapshot)
        assert result == 'SELECT EXTRACT(YEAR FROM OrderDate) FROM "sales"."orders";'

    def test_table_function_untouched(self, sales_snapshot):
        result = qualify("SELECT * FROM read_csv_auto('orders.csv')", "sales", sales_snapshot)
        assert result == "SELECT * FROM read_csv_auto('orders.csv');"

    def test_string_literals_and_comments_untouched(self, sales_snapshot):
        sql = "SELECT * FROM orders WHERE status = 'from orders custmer_id' /* orders */"
        result = qualify(sql, "sales", sales_snapshot)
        assert "'from orders custmer_id'" in result
        assert "/* orders */" in result
        assert result.startswith('SELECT * FROM "sales"."orders" WHERE')


class TestColumnRepair:
    """Column casing and typo correction."""

    def test_case_correction_exact(self, make_snapshot):
        snapshot = make_snapshot("x", {"t": [("OrderId", "INTEGER")]})
        result = qualify("SELECT orderid FROM t", "x", snapshot)
        assert "OrderId" in result
        assert "orderid" not in result

    def test_case_correction_in_where_clause(self, sales_snapshot):
        result = qualify("SELECT * FROM orders WHERE ORDERDATE > '2024-01-01'", "sales", sales_snapshot)
        assert "WHERE OrderDate >" in result

    def test_typo_corrected_within_threshold(self, sales_snapshot):
        result = qualify("SELECT custmer_id FROM orders", "sales", sales_snapshot)
        assert result == 'SELECT customer_id FROM "sales"."orders";'

    def test_short_token_not_corrected(self, sales_snapshot):
        result = qualify("SELECT id FROM orders", "sales", sales_snapshot)
        assert result == 'SELECT id FROM "sales"."orders";'

    def test_distant_token_not_corrected(self, sales_snapshot):
        result = qualify("SELECT amount FROM orders", "sales", sales_snapshot)
        assert result == 'SELECT amount FROM "sales"."orders";'

    def test_three_letter_typo_corrected(self, sales_snapshot):
        result = qualify("SELECT nme FROM customers", "sales", sales_snapshot)
        assert result == 'SELECT name FROM "sales"."customers";'

    def test_keywords_never_corrected(self, make_snapshot):
        # "order" is one edit away from a column called "orders"
        snapshot = make_snapshot("s", {"t": [("orders", "INTEGER"), ("ascs", "INTEGER")]})
        result = qualify("SELECT orders FROM t ORDER BY orders ASC", "s", snapshot)
        assert result == 'SELECT orders FROM "s"."t" ORDER BY orders ASC;'

    def test_aliases_not_corrected(self, sales_snapshot):
        result = qualify("SELECT total_amount AS totl FROM orders", "sales", sales_snapshot)
        assert result == 'SELECT total_amount AS totl FROM "sales"."orders";'

    def test_implicit_alias_not_corrected(self, sales_snapshot):
        result = qualify("SELECT customer_id customer FROM orders", "sales", sales_snapshot)
        assert result == 'SELECT customer_id customer FROM "sales"."orders";'

    def test_implicit_aliases_in_select_list(self, sales_snapshot):
        sql = "SELECT COUNT(*) cnt, SUM(total_amount) totl FROM orders ORDER BY totl DESC"
        result = qualify(sql, "sales", sales_snapshot)
        assert result == (
            'SELECT COUNT(*) cnt, SUM(total_amount) totl FROM "sales"."orders" ORDER BY totl DESC;'
        )

    def test_select_list_typo_still_corrected(self, sales_snapshot):
        result = qualify("SELECT DISTINCT custmer_id FROM orders", "sales", sales_snapshot)
        assert result == 'SELECT DISTINCT customer_id FROM "sales"."orders";'

    def test_union_kept(self, make_snapshot):
        snapshot = make_snapshot("s", {"t": [("unions", "INTEGER")]})
        result = qualify("SELECT unions FROM t UNION SELECT unions FROM t", "s", snapshot)
        assert result == 'SELECT unions FROM "s"."t" UNION SELECT unions FROM "s"."t";'

    def test_function_names_not_corrected(self, make_snapshot):
        snapshot = make_snapshot("s", {"t": [("sums", "INTEGER")]})
        result = qualify("SELECT summ(sums) FROM t", "s", snapshot)
        assert result == 'SELECT summ(sums) FROM "s"."t";'


class TestIdempotence:
    """qualify(qualify(x)) == qualify(x)."""

    @pytest.mark.parametrize("sql", [
        "SELECT * FROM orders",
        'SELECT * FROM "sales"."orders";',
        "select o.ORDER_ID, c.NAME from orders o join customers c on o.customer_id = c.customer_id",
        "SELECT custmer_id, totl_amount FROM orders WHERE orderdate > '2024-01-01'",
        "SELECT customer_id customer, total_amount totl FROM orders",
        "WITH recent AS (SELECT * FROM orders) SELECT count(*) FROM recent",
        "INSERT INTO orders (order_id, total_amount) VALUES (4, 1.0)",
        "SELECT * FROM orders -- every order",
        "SELECT 1;;",
        "",
        "not sql at all",
    ])
    def test_second_pass_is_noop(self, sales_snapshot, sql):
        once = qualify(sql, "sales", sales_snapshot)
        twice = qualify(once, "sales", sales_snapshot)
        assert twice == once


class TestUnknownSubject:
    """Unknown subjects are never rewritten."""

    @pytest.mark.parametrize("sql", [
        "SELECT * FROM orders",
        "SELECT custmer_id FROM orders;",
        "garbage ((( '",
    ])
    def test_unknown_subject_returns_input(self, sales_snapshot, sql):
        assert qualify(sql, "nonexistent", sales_snapshot) == sql

    def test_internal_failure_returns_best_effort(self, sales_snapshot):
        with patch.object(_Rewriter, "rewrite", side_effect=RuntimeError("boom")):
            assert qualify("SELECT * FROM orders", "sales", sales_snapshot) == "SELECT * FROM orders"


class TestTermination:
    """Trailing semicolon handling."""

    def test_adds_single_semicolon(self):
        assert terminate_statement("SELECT 1") == "SELECT 1;"

    def test_collapses_repeated_semicolons(self):
        assert terminate_statement("SELECT 1 ; ;\n") == "SELECT 1;"

    def test_trailing_line_comment(self):
        assert terminate_statement("SELECT 1 -- note") == "SELECT 1 -- note\n;"

    def test_empty_input_unchanged(self):
        assert terminate_statement("  ") == "  "


class TestHelpers:
    """Tokenizer and distance helpers."""

    def test_edit_distance(self):
        assert edit_distance("kitten", "sitting") == 3
        assert edit_distance("custmer_id", "customer_id") == 1
        assert edit_distance("", "abc") == 3

    def test_typo_threshold(self):
        assert typo_threshold("abcdef") == 2
        assert typo_threshold("abcdefg") == 3

    def test_tokenize_keeps_literals_whole(self):
        kinds = [(t.kind, t.text) for t in tokenize("""SELECT 'a b' , "x y" -- c""")
                 if t.kind != "space"]
        assert kinds == [
            ("word", "SELECT"),
            ("string", "'a b'"),
            ("punct", ","),
            ("quoted", '"x y"'),
            ("comment", "-- c"),
        ]

    def test_qualify_statement_reports_change(self, sales_snapshot):
        stmt = qualify_statement("SELECT * FROM orders", "sales", sales_snapshot)
        assert stmt.changed
        assert stmt.target_subject == "sales"
        assert stmt.rewritten_sql == 'SELECT * FROM "sales"."orders";'

        unchanged = qualify_statement(stmt.rewritten_sql, "sales", sales_snapshot)
        assert not unchanged.changed
