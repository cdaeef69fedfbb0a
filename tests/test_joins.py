"""Tests for join inference and statement rewriting."""

from __future__ import annotations

from dbnexus.core.joins import (
    FOREIGN_KEY_SCORE,
    HEURISTIC_SCORE,
    REVERSE_FOREIGN_KEY_SCORE,
    ConfirmedJoin,
    apply_joins,
    infer_joins,
    plan_table_drop,
    referenced_tables,
    score_join,
    standalone_select,
)
from dbnexus.core.models import ColumnDefinition, ColumnReference, DbSchema, TableDefinition

# ============================================================================
# Scoring
# ============================================================================


class TestScoreJoin:
    def test_forward_foreign_key(self, shop_schema: DbSchema) -> None:
        candidate = score_join(shop_schema.table("orders"), shop_schema.table("customers"), "customers")

        assert candidate.score == FOREIGN_KEY_SCORE
        assert candidate.condition == '"orders"."customer_id" = "customers"."id"'
        assert not candidate.is_heuristic

    def test_reverse_foreign_key(self, shop_schema: DbSchema) -> None:
        candidate = score_join(shop_schema.table("orders"), shop_schema.table("order_items"), "order_items")

        assert candidate.score == REVERSE_FOREIGN_KEY_SCORE
        assert candidate.condition == '"order_items"."order_id" = "orders"."order_id"'

    def test_shared_key_name_uses_actual_spelling(self, shop_schema: DbSchema) -> None:
        candidate = score_join(shop_schema.table("products"), shop_schema.table("orders"), "orders")

        assert candidate.score == HEURISTIC_SCORE
        assert candidate.is_heuristic
        assert candidate.condition == '"products"."product_key" = "orders"."Product_Key"'

    def test_shared_non_key_name_is_ignored(self) -> None:
        left = TableDefinition("left", [ColumnDefinition("label", "TEXT")])
        right = TableDefinition("right", [ColumnDefinition("label", "TEXT")])

        assert score_join(left, right, "right") is None

    def test_unknown_existing_table_only_checks_forward_keys(self, shop_schema: DbSchema) -> None:
        orders = shop_schema.table("orders")

        assert score_join(orders, None, "customers").score == FOREIGN_KEY_SCORE
        assert score_join(orders, None, "order_items") is None

    def test_to_dict(self, shop_schema: DbSchema) -> None:
        candidate = score_join(shop_schema.table("orders"), shop_schema.table("customers"), "customers")

        assert candidate.to_dict() == {
            "newTable": "orders",
            "existingTable": "customers",
            "joinCondition": '"orders"."customer_id" = "customers"."id"',
            "score": 10,
            "isHeuristic": False,
            "columns": ["order_id", "customer_id", "Product_Key"],
        }


class TestInferJoins:
    def test_highest_tier_wins_across_existing_tables(self, shop_schema: DbSchema) -> None:
        # products offers only a heuristic match; customers has a real key
        inference = infer_joins(shop_schema, ["products", "customers"], ["orders"])

        assert len(inference.joins) == 1
        assert inference.joins[0].existing_table == "customers"
        assert inference.standalone == []

    def test_first_existing_table_wins_ties(self) -> None:
        schema = DbSchema(
            tables=[
                TableDefinition("a", [ColumnDefinition("id", "int")]),
                TableDefinition("b", [ColumnDefinition("id", "int")]),
                TableDefinition("c", [ColumnDefinition("id", "int")]),
            ]
        )

        inference = infer_joins(schema, ["b", "a"], ["c"])

        assert inference.joins[0].existing_table == "b"

    def test_unmatched_tables_become_standalone(self, shop_schema: DbSchema) -> None:
        inference = infer_joins(shop_schema, ["customers"], ["audit", "orders"])

        assert [j.new_table.name for j in inference.joins] == ["orders"]
        assert inference.standalone == ['SELECT * FROM "audit" LIMIT 100;']

    def test_table_is_not_joined_to_itself(self, shop_schema: DbSchema) -> None:
        inference = infer_joins(shop_schema, ["orders"], ["orders"])

        assert inference.joins == []
        assert inference.standalone == ['SELECT * FROM "orders" LIMIT 100;']

    def test_declared_self_reference_still_joins(self) -> None:
        employees = TableDefinition(
            "employees",
            [
                ColumnDefinition("id", "int", is_primary_key=True),
                ColumnDefinition("manager_id", "int", references=ColumnReference("employees", "id")),
            ],
        )

        inference = infer_joins(DbSchema(tables=[employees]), ["employees"], ["employees"])

        assert inference.joins[0].condition == '"employees"."manager_id" = "employees"."id"'
        assert inference.joins[0].score == FOREIGN_KEY_SCORE

    def test_tables_outside_schema_are_ignored(self, shop_schema: DbSchema) -> None:
        inference = infer_joins(shop_schema, ["customers"], ["nonexistent"])

        assert inference.joins == []
        assert inference.standalone == []


def test_referenced_tables_in_first_seen_order(shop_schema: DbSchema) -> None:
    sql = 'SELECT * FROM "orders" o JOIN customers c ON o.customer_id = c.id WHERE orders.total > 0'

    assert referenced_tables(sql, shop_schema) == ["orders", "customers"]


def test_standalone_select() -> None:
    assert standalone_select("audit") == 'SELECT * FROM "audit" LIMIT 100;'


# ============================================================================
# Table drop workflow
# ============================================================================


class TestPlanTableDrop:
    def test_empty_statement_gets_standalone_selects(self, shop_schema: DbSchema) -> None:
        plan = plan_table_drop("   ", ["orders", "not_in_schema"], shop_schema)

        assert plan.sql == 'SELECT * FROM "orders" LIMIT 100;\n\nSELECT * FROM "not_in_schema" LIMIT 100;'
        assert plan.joins == []
        assert len(plan.standalone) == 2

    def test_joins_and_standalone_statements(self, shop_schema: DbSchema) -> None:
        plan = plan_table_drop('SELECT * FROM "orders";', ["customers", "audit"], shop_schema)

        assert plan.sql == 'SELECT * FROM "orders";\n\nSELECT * FROM "audit" LIMIT 100;'
        assert plan.standalone == ['SELECT * FROM "audit" LIMIT 100;']
        assert len(plan.joins) == 1
        assert plan.joins[0].condition == '"orders"."customer_id" = "customers"."id"'
        assert plan.joins[0].score == REVERSE_FOREIGN_KEY_SCORE


class TestApplyJoins:
    def test_join_and_columns_added(self) -> None:
        sql = apply_joins(
            'SELECT * FROM "orders";',
            [ConfirmedJoin("customers", '"orders"."customer_id" = "customers"."id"', ["id", "name"])],
        )

        assert sql == (
            'SELECT *,\n  "customers"."id",\n  "customers"."name" FROM "orders"\n'
            'INNER JOIN "customers" ON "orders"."customer_id" = "customers"."id";'
        )

    def test_colliding_columns_are_aliased(self) -> None:
        sql = apply_joins(
            'SELECT "order_id", name FROM "orders";',
            [ConfirmedJoin("customers", '"orders"."customer_id" = "customers"."id"', ["id", "name"])],
        )

        assert sql.startswith(
            'SELECT "order_id", name,\n  "customers"."id",\n  "customers"."name" AS "customers_name" FROM "orders"'
        )

    def test_multiple_joins_chain(self) -> None:
        sql = apply_joins(
            'SELECT * FROM "orders"',
            [
                ConfirmedJoin("customers", "c1"),
                ConfirmedJoin("order_items", "c2"),
            ],
        )

        assert sql == (
            'SELECT * FROM "orders"\nINNER JOIN "customers" ON c1\nINNER JOIN "order_items" ON c2;'
        )

    def test_statement_without_projection_only_gets_joins(self) -> None:
        sql = apply_joins('DELETE FROM "orders";', [ConfirmedJoin("customers", "c1", ["id"])])

        assert sql == 'DELETE FROM "orders"\nINNER JOIN "customers" ON c1;'

    def test_no_confirmed_joins(self) -> None:
        assert apply_joins('SELECT * FROM "orders";', []) == 'SELECT * FROM "orders";'
