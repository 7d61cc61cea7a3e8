"""
Database migration utilities.
"""
import os
from typing import List

from sqlalchemy.engine import Engine

from ..logging_config import logger


def _split_statements(sql: str) -> List[str]:
    lines = [line for line in sql.splitlines() if not line.strip().startswith("--")]
    return [stmt.strip() for stmt in "\n".join(lines).split(";") if stmt.strip()]


def run_sql_migrations(engine: Engine):
    """
    Run all SQL migration files in the scripts directory.

    Migration files should:
    - Be named with a sortable prefix (e.g., 001_initial.sql, 002_add_columns.sql)
    - End with .sql extension
    - Be idempotent (safe to run multiple times)

    Raises:
        Exception: If any migration fails
    """
    migrations_dir = os.path.join(os.path.dirname(__file__), "scripts")

    if not os.path.exists(migrations_dir):
        logger.warning("Migrations directory not found", path=migrations_dir)
        return

    migration_files = sorted(
        f for f in os.listdir(migrations_dir)
        if f.endswith(".sql")
    )

    if not migration_files:
        logger.info("No migration files found")
        return

    with engine.begin() as conn:
        for filename in migration_files:
            filepath = os.path.join(migrations_dir, filename)
            logger.info("Running migration", file=filename)

            with open(filepath, "r", encoding="utf-8") as f:
                sql = f.read()

            # One statement per execute; scripts must not use ';' inside statements
            for statement in _split_statements(sql):
                conn.exec_driver_sql(statement)

    logger.info("Migrations completed", count=len(migration_files))
