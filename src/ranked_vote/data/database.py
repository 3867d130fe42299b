import logging
from pathlib import Path
from typing import Any, List, Optional

import duckdb
import pandas as pd

logger = logging.getLogger(__name__)


class BallotDatabase:
    """
    Thin DuckDB wrapper used for snapshot I/O and SQL aggregations.

    Each instance owns one connection. DuckDB connections are not shared
    between threads, so every contest (and every analysis running in its own
    thread) opens its own BallotDatabase.
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize database connection settings.

        Args:
            db_path: Path to DuckDB file. If None, uses in-memory database.
        """
        self.db_path = db_path or ":memory:"
        self._conn = None  # Will be created on-demand

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get or create a database connection on-demand."""
        if self._conn is None:
            self._conn = duckdb.connect(self.db_path)
            logger.debug(f"Opened connection to {self.db_path}")
        return self._conn

    def query(self, sql: str, params: Optional[List[Any]] = None) -> pd.DataFrame:
        """
        Execute a SQL query and return results as DataFrame.

        Args:
            sql: SQL query to execute
            params: Positional parameters for ``?`` placeholders
        """
        if params:
            return self.conn.execute(sql, params).fetchdf()
        return self.conn.execute(sql).fetchdf()

    def register(self, name: str, df: pd.DataFrame):
        """Expose a DataFrame to SQL under ``name``."""
        self.conn.register(name, df)

    def write_parquet(self, relation: str, path: Path):
        """
        Write a registered table or view to a ZSTD-compressed Parquet file.

        Args:
            relation: Table or view name visible to this connection
            path: Destination file
        """
        # COPY does not accept a prepared parameter for the target path.
        target = str(path).replace("'", "''")
        self.conn.execute(f"COPY {relation} TO '{target}' (FORMAT PARQUET, COMPRESSION ZSTD)")
        logger.debug(f"Wrote {relation} to {path}")

    def read_parquet(self, path: Path, sql: str = "SELECT * FROM snapshot") -> pd.DataFrame:
        """
        Run ``sql`` against a Parquet file exposed as the view ``snapshot``.

        Args:
            path: Parquet file to read
            sql: Query over the ``snapshot`` view
        """
        source = str(path).replace("'", "''")
        self.conn.execute(
            f"CREATE OR REPLACE TEMP VIEW snapshot AS SELECT * FROM read_parquet('{source}')"
        )
        return self.query(sql)

    def close(self):
        """Close database connection."""
        if self._conn:
            try:
                self._conn.close()
                logger.debug(f"Closed database connection to {self.db_path}")
            except duckdb.Error as e:
                logger.warning(f"Error closing database connection: {e}")
            finally:
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
