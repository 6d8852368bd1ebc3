"""
Database Schema Setup Script

Creates the Postgres schema and seeds the query template catalog.
Executes the SQL DDL (rerunnable, idempotent) from sql/schema/*.sql in file
name order, then upserts config/query_templates/**/*.yaml.

Usage:
    python -m shopdata.setup_schema
    python -m shopdata.setup_schema --skip-seed
"""

import argparse
import asyncio
import sys
from pathlib import Path

from shopdata.config import settings
from shopdata.connectors.postgres_pool import PoolOptions, PostgresConnectionPool
from shopdata.core.template_catalog import seed_templates, template_catalog

SCHEMA_DIR = Path(__file__).resolve().parent.parent / "sql" / "schema"


def read_schema_sql(schema_dir: Path = SCHEMA_DIR) -> str:
    """
    Read every schema SQL file and concatenate them in name order.
    """
    schema_files = sorted(schema_dir.glob("*.sql"))
    if not schema_files:
        raise FileNotFoundError(f"No schema files found in {schema_dir}")

    contents: list[str] = []
    for schema_file in schema_files:
        with open(schema_file, "r") as f:
            contents.append(f.read())

    return "\n\n".join(contents)


def split_sql_statements(sql_content: str) -> list[str]:
    """Split DDL into statements; full-line comments are dropped."""
    statements = []
    current_statement = []

    for line in sql_content.split("\n"):
        stripped = line.strip()

        if not stripped or stripped.startswith("--"):
            continue

        current_statement.append(line)

        if stripped.endswith(";"):
            statement = "\n".join(current_statement)
            statements.append(statement)
            current_statement = []

    return statements


async def execute_sql_statements(pool: PostgresConnectionPool, sql_content: str) -> None:
    statements = split_sql_statements(sql_content)
    total = len(statements)
    print(f"\n📋 Found {total} SQL statements to execute\n")

    for idx, statement in enumerate(statements, 1):
        first_line = statement.strip().split("\n")[0][:80]
        print(f"[{idx}/{total}] Executing: {first_line}...")
        try:
            result = await pool.execute_query(statement)
            print(f"  ✓ Success: {result}")
        except Exception as e:
            print(f"  ✗ Error: {e}")
            if "already exists" not in str(e).lower():
                raise


async def setup_schema(seed: bool = True) -> None:
    """Main setup function."""
    print("=" * 80)
    print("🏗️  Shopdata - Database Schema Setup")
    print("=" * 80)

    print("\n🐘 Postgres Configuration:")
    print(f"  Host: {settings.POSTGRES_HOST}:{settings.POSTGRES_PORT}")
    print(f"  Database: {settings.POSTGRES_DATABASE}")
    print(f"  User: {settings.POSTGRES_USER}")

    pool = PostgresConnectionPool(
        PoolOptions.from_settings(min_size=1, max_size=2), pool_name="setup"
    )

    try:
        print("\n🔌 Connecting to Postgres...")
        await pool.initialize()
        print("  ✓ Connected successfully")

        print("\n📖 Reading schema SQL files...")
        sql_content = read_schema_sql()
        print(f"  ✓ Loaded {len(sql_content)} characters")

        print("\n🚀 Executing schema setup...")
        await execute_sql_statements(pool, sql_content)

        if seed:
            print(f"\n🌱 Seeding query templates from {template_catalog.templates_dir}...")
            counts = await seed_templates(pool, template_catalog)
            print(
                f"  ✓ {counts['predefined']} predefined, "
                f"{counts['dependent']} dependent templates"
            )

        print("\n📊 Verifying tables...")
        tables = await pool.fetch_all(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public' AND table_type = 'BASE TABLE'
            ORDER BY table_name
            """
        )
        print(f"\n✅ Found {len(tables)} tables:")
        for table in tables:
            print(f"  • {table['table_name']}")

        print("\n" + "=" * 80)
        print("✅ Database schema setup complete!")
        print("=" * 80)

    except Exception as e:
        print(f"\n❌ Schema setup failed: {e}")
        sys.exit(1)
    finally:
        await pool.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the shopdata Postgres schema.")
    parser.add_argument(
        "--skip-seed",
        action="store_true",
        help="Apply DDL only; do not upsert query templates.",
    )
    args = parser.parse_args()
    asyncio.run(setup_schema(seed=not args.skip_seed))


if __name__ == "__main__":
    main()
