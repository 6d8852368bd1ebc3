"""
Tests for schema DDL loading.
"""

from shopdata.setup_schema import SCHEMA_DIR, read_schema_sql, split_sql_statements


class TestSplitSqlStatements:
    def test_multiline_statements_and_comments(self):
        sql = """
-- sources
CREATE TABLE a (
    id int
);

CREATE INDEX a_id ON a (id);
"""
        statements = split_sql_statements(sql)

        assert len(statements) == 2
        assert statements[0].startswith("CREATE TABLE a (")
        assert statements[0].endswith(");")
        assert "-- sources" not in statements[0]

    def test_unterminated_tail_is_dropped(self):
        assert split_sql_statements("SELECT 1;\nSELECT 2") == ["SELECT 1;"]


def test_shipped_schema_creates_execution_table():
    statements = split_sql_statements(read_schema_sql(SCHEMA_DIR))

    assert any("dataset_executions" in s and "CREATE TABLE" in s for s in statements)
    assert any("source_schemas" in s for s in statements)
