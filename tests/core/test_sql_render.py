"""SQL Rendering — pure rendering of SelectState to (sql, params).

Tests:
    - Identifier escaping per dot segment; expressions stay verbatim
    - Placeholder numbering follows WHERE then HAVING, left to right
    - Predicate None renders IS NULL and binds nothing
    - Empty IN list renders IN ()
    - Group clauses are parenthesised
    - COUNT rendering drops ORDER/LIMIT/OFFSET and uses a derived table
      for grouped or DISTINCT selections
"""

from rowcraft.core.domain_types import (
    Connector, GroupClause, JoinClause, JoinKind, OrderClause, OrderDirection,
    PredicateClause, RawClause, SelectState, SimpleClause, WhereOperator,
)
from rowcraft.core.sql_render import SqlRenderer


def _renderer():
    return SqlRenderer(lambda name: f'"{name}"', lambda i: f"${i}")


def test_escape_column_quotes_each_segment():
    r = _renderer()
    assert r.escape_column("email") == '"email"'
    assert r.escape_column("users.email") == '"users"."email"'
    assert r.escape_column("users.*") == '"users".*'
    assert r.escape_column("*") == "*"


def test_escape_column_leaves_expressions_verbatim():
    r = _renderer()
    assert r.escape_column("COUNT(*) AS total") == "COUNT(*) AS total"
    assert r.escape_column("LOWER(name)") == "LOWER(name)"


def test_render_select_orders_sections_and_numbers_params():
    state = SelectState(table="users")
    state.select_columns = ["users.id", "COUNT(posts.id) AS post_count"]
    state.join_clauses = [
        JoinClause(JoinKind.LEFT, "posts", "posts.user_id", "=", "users.id"),
    ]
    state.where_clauses = [
        PredicateClause((("active", True),), Connector.AND),
        RawClause("age > ?", (18,), Connector.AND),
    ]
    state.group_by_columns = ["users.id"]
    state.having_clauses = [RawClause("COUNT(posts.id) > ?", (2,), Connector.AND)]
    state.order_clauses = [OrderClause("users.id", OrderDirection.DESC)]
    state.limit = 10
    state.offset = 20

    sql, params = _renderer().render_select(state)

    assert sql == (
        'SELECT "users"."id", COUNT(posts.id) AS post_count FROM "users"'
        ' LEFT JOIN "posts" ON "posts"."user_id" = "users"."id"'
        ' WHERE "active" = $1 AND age > $2'
        ' GROUP BY "users"."id"'
        " HAVING COUNT(posts.id) > $3"
        ' ORDER BY "users"."id" DESC'
        " LIMIT 10 OFFSET 20"
    )
    assert params == [True, 18, 2]


def test_render_predicate_none_is_null_without_param():
    state = SelectState(table="posts")
    state.where_clauses = [
        PredicateClause((("user_id", None), ("title", "x")), Connector.AND),
    ]
    sql, params = _renderer().render_select(state)
    assert sql == 'SELECT * FROM "posts" WHERE "user_id" IS NULL AND "title" = $1'
    assert params == ["x"]


def test_render_empty_in_list():
    state = SelectState(table="users")
    state.where_clauses = [SimpleClause("id", WhereOperator.IN, (), Connector.AND)]
    sql, params = _renderer().render_select(state)
    assert sql == 'SELECT * FROM "users" WHERE "id" IN ()'
    assert params == []


def test_render_in_list_binds_each_value():
    state = SelectState(table="users")
    state.where_clauses = [
        SimpleClause("id", WhereOperator.NOT_IN, (1, 2, 3), Connector.AND),
        SimpleClause("email", WhereOperator.IS_NOT_NULL, None, Connector.OR),
    ]
    sql, params = _renderer().render_select(state)
    assert sql.endswith('WHERE "id" NOT IN ($1, $2, $3) OR "email" IS NOT NULL')
    assert params == [1, 2, 3]


def test_render_group_clause_is_parenthesised():
    state = SelectState(table="posts")
    state.where_clauses = [
        PredicateClause((("published", True),), Connector.AND),
        GroupClause((
            SimpleClause("category", WhereOperator.EQ, "a", Connector.AND),
            SimpleClause("category", WhereOperator.EQ, "b", Connector.OR),
        ), Connector.AND),
    ]
    sql, params = _renderer().render_select(state)
    assert sql.endswith(
        'WHERE "published" = $1 AND ("category" = $2 OR "category" = $3)',
    )
    assert params == [True, "a", "b"]


def test_render_select_is_pure():
    state = SelectState(table="users")
    state.where_clauses = [RawClause("age > ?", (18,), Connector.AND)]
    r = _renderer()
    assert r.render_select(state) == r.render_select(state)
    assert state.select_columns == ["*"]


def test_render_count_drops_order_limit_offset():
    state = SelectState(table="users")
    state.where_clauses = [PredicateClause((("active", True),), Connector.AND)]
    state.order_clauses = [OrderClause("name", OrderDirection.ASC)]
    state.limit = 5
    state.offset = 10

    sql, params = _renderer().render_count(state)

    assert sql == 'SELECT COUNT(*) AS count FROM "users" WHERE "active" = $1'
    assert params == [True]
    assert state.limit == 5
    assert state.order_clauses


def test_render_count_grouped_uses_derived_table():
    state = SelectState(table="posts")
    state.select_columns = ["user_id"]
    state.group_by_columns = ["user_id"]
    sql, _ = _renderer().render_count(state)
    assert sql == (
        "SELECT COUNT(*) AS count FROM "
        '(SELECT "user_id" FROM "posts" GROUP BY "user_id") AS counted_rows'
    )
