"""Table selector: every MyISAM base table outside the system schemas"""

from __future__ import annotations

import pymysql
import structlog
from pymysql.connections import Connection

from myisam_backup_lock.exceptions import QueryError
from myisam_backup_lock.models import TableName

logger = structlog.get_logger()

TARGET_ENGINE = "MyISAM"
SYSTEM_SCHEMAS = ("mysql", "performance_schema", "information_schema", "sys")

# To see the locks held on these tables: SHOW OPEN TABLES WHERE In_use > 0;
SELECT_TABLES_QUERY = """
SELECT
    TABLE_SCHEMA,
    TABLE_NAME
FROM information_schema.TABLES
WHERE TABLE_TYPE = 'BASE TABLE'
    AND ENGINE = %s
    AND TABLE_SCHEMA NOT IN ({placeholders})
ORDER BY TABLE_SCHEMA, TABLE_NAME
"""


def select_myisam_tables(
    connection: Connection,
    engine: str = TARGET_ENGINE,
    excluded_schemas: tuple[str, ...] = SYSTEM_SCHEMAS,
) -> tuple[TableName, ...]:
    """List the tables a backup lock has to cover

    Args:
        connection: Open MySQL session
        engine: Storage engine to select
        excluded_schemas: Schemas never locked

    Returns:
        Tables ordered by schema and name; empty if none qualify

    Raises:
        QueryError: The session is unusable or the query fails
    """
    query = SELECT_TABLES_QUERY.format(placeholders=", ".join(["%s"] * len(excluded_schemas)))
    log = logger.bind(engine=engine)
    log.debug("Selecting tables")

    try:
        with connection.cursor() as cursor:
            cursor.execute(query, (engine, *excluded_schemas))
            rows = cursor.fetchall()
    except (pymysql.MySQLError, OSError) as e:
        log.error("Table selection failed", error=str(e))
        raise QueryError("select_tables", str(e)) from e

    tables = tuple(TableName(table_schema=schema, table_name=name) for schema, name in rows)
    log.info("Tables selected", count=len(tables))
    return tables
