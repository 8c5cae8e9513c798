"""
IbisBackend - executes normalization expressions and registers change views.

Features:
- Connection by URI (DuckDB by default)
- Arrow table output
- Record batch streaming for large changelogs
- Named registration of normalized changelogs
- Execution metrics
"""

from typing import Any, Dict, Iterator, List, Optional
import logging
import time
from urllib.parse import urlparse

import ibis
import pyarrow as pa
from ibis.expr.types import Table as IbisTable

logger = logging.getLogger(__name__)


def connect(connection_uri: str = ":memory:", **connection_kwargs) -> Any:
    """Open an Ibis connection for a URI"""
    if connection_uri.startswith("postgres://"):
        parsed = urlparse(connection_uri)
        return ibis.postgres.connect(
            host=parsed.hostname,
            port=parsed.port,
            user=parsed.username,
            password=parsed.password,
            database=parsed.path[1:],  # Remove leading slash
            **connection_kwargs
        )
    if connection_uri.startswith("sqlite://"):
        return ibis.sqlite.connect(connection_uri.replace("sqlite://", ""))
    if connection_uri.startswith("duckdb://"):
        connection_uri = connection_uri.replace("duckdb://", "")
    # Default to DuckDB
    return ibis.duckdb.connect(connection_uri or ":memory:", **connection_kwargs)


class IbisBackend:
    """
    Thin wrapper over an Ibis connection used as the changelog registration sink.
    """

    def __init__(
        self,
        connection: Optional[Any] = None,
        connection_uri: Optional[str] = None,
        **connection_kwargs
    ):
        """
        Initialize Ibis backend.

        Args:
            connection: An existing Ibis connection
            connection_uri: URI string for connecting to the database
            **connection_kwargs: Additional connection parameters
        """
        if connection is not None:
            self.con = connection
        else:
            self.con = connect(connection_uri or ":memory:", **connection_kwargs)

        # Track query stats
        self._query_count = 0
        self._total_time = 0.0

    def to_pyarrow(self, expr: IbisTable) -> pa.Table:
        """Execute an Ibis expression on this connection"""
        start_time = time.time()
        try:
            return self.con.to_pyarrow(expr)
        finally:
            self._query_count += 1
            self._total_time += (time.time() - start_time)

    def to_pyarrow_batches(self, expr: IbisTable, chunk_size: int = 10000) -> Iterator[pa.RecordBatch]:
        """
        Execute an expression and stream the result as record batches.
        """
        self._query_count += 1
        reader = self.con.to_pyarrow_batches(expr, chunk_size=chunk_size)
        for batch in reader:
            yield batch

    def register(self, name: str, data: Any) -> IbisTable:
        """
        Register a normalized changelog under a queryable name.

        Args:
            name: Name to register as; replaced if it exists
            data: Arrow table or Ibis expression
        """
        start_time = time.time()
        table = self.con.create_table(name, data, overwrite=True)
        self._total_time += (time.time() - start_time)
        logger.info("Registered change view %s", name)
        return table

    def table(self, name: str) -> IbisTable:
        return self.con.table(name)

    def list_tables(self) -> List[str]:
        return list(self.con.list_tables())

    def get_stats(self) -> Dict[str, Any]:
        """
        Get backend performance statistics.
        """
        avg_time = self._total_time / self._query_count if self._query_count > 0 else 0

        return {
            "query_count": self._query_count,
            "total_time": self._total_time,
            "avg_query_time": avg_time,
            "backend_type": getattr(self.con, 'name', 'unknown') if self.con else 'disconnected'
        }

    def reset_stats(self):
        """Reset performance counters"""
        self._query_count = 0
        self._total_time = 0.0

    def close(self):
        """Close database connection"""
        if self.con is not None and hasattr(self.con, 'disconnect'):
            self.con.disconnect()
        self.con = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
