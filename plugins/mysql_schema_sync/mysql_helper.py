"""
MySQL Connection Helper

This module provides a lightweight hook for MySQL connections that works with
just mysql-connector-python and BaseHook, without requiring
apache-airflow-providers-mysql.

Besides the usual hook methods (get_records, get_first, run), it exposes a
session() context manager for work that must stay on one server session:
LOCK TABLES, session variables, and LOAD DATA LOCAL INFILE.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple
from airflow.hooks.base import BaseHook
import mysql.connector
import logging

logger = logging.getLogger(__name__)

DEFAULT_MYSQL_PORT = 3306
DEFAULT_CHARSET = 'utf8mb4'


class MySqlConnectionHelper:
    """
    Helper class for MySQL connections that mimics the DbApiHook interface.

    Every get_records/get_first/run call opens and closes its own connection.
    Use session() when several statements must share one connection.
    """

    def __init__(self, mysql_conn_id: str):
        """
        Initialize the MySQL connection helper.

        Args:
            mysql_conn_id: Airflow connection ID for the database
        """
        self.conn_id = mysql_conn_id
        self._conn_config: Optional[Dict[str, Any]] = None

    def _get_connection_config(self) -> Dict[str, Any]:
        """
        Get connection configuration from Airflow connection.

        Returns:
            Keyword arguments for mysql.connector.connect()
        """
        if self._conn_config is None:
            conn = BaseHook.get_connection(self.conn_id)
            extras = conn.extra_dejson or {}

            self._conn_config = {
                'host': conn.host or 'localhost',
                'port': int(conn.port or DEFAULT_MYSQL_PORT),
                'user': conn.login,
                'password': conn.password or '',
                'charset': extras.get('charset', DEFAULT_CHARSET),
                'autocommit': True,
                'use_unicode': True,
            }

            # In Airflow, MySQL connections store the default database in 'schema'
            if conn.schema:
                self._conn_config['database'] = conn.schema

            if 'connection_timeout' in extras:
                self._conn_config['connection_timeout'] = int(extras['connection_timeout'])

            if extras.get('ssl_disabled') is not None:
                self._conn_config['ssl_disabled'] = bool(extras['ssl_disabled'])

        return self._conn_config

    @property
    def charset(self) -> str:
        return self._get_connection_config()['charset']

    def get_conn(self, allow_local_infile: bool = False):
        """
        Open a new mysql.connector connection.

        Args:
            allow_local_infile: Enable LOAD DATA LOCAL INFILE on this connection

        Returns:
            mysql.connector connection object
        """
        config = dict(self._get_connection_config())
        if allow_local_infile:
            config['allow_local_infile'] = True
        return mysql.connector.connect(**config)

    @contextmanager
    def session(self, allow_local_infile: bool = False) -> Iterator[Any]:
        """
        Context manager yielding one dedicated connection.

        The connection is closed on exit, which also releases any table
        locks the session still holds.
        """
        conn = self.get_conn(allow_local_infile=allow_local_infile)
        try:
            yield conn
        finally:
            try:
                conn.close()
            except mysql.connector.Error as e:
                logger.warning(f"Error closing MySQL connection {self.conn_id}: {e}")

    def get_records(
        self,
        sql: str,
        parameters: Optional[List[Any]] = None
    ) -> List[Tuple[Any, ...]]:
        """
        Execute a query and return all rows as a list of tuples.

        Args:
            sql: SQL query to execute
            parameters: Optional list of parameters for the query

        Returns:
            List of tuples, one per row
        """
        conn = None
        try:
            conn = self.get_conn()
            cursor = conn.cursor()

            if parameters:
                cursor.execute(sql, parameters)
            else:
                cursor.execute(sql)

            rows = cursor.fetchall()
            cursor.close()
            return rows
        except Exception as e:
            logger.error(f"Error executing query: {e}")
            logger.error(f"Query: {sql}")
            if parameters:
                logger.error(f"Parameters: {parameters}")
            raise
        finally:
            if conn:
                conn.close()

    def get_first(
        self,
        sql: str,
        parameters: Optional[List[Any]] = None
    ) -> Optional[Tuple[Any, ...]]:
        """
        Execute a query and return the first row as a tuple.

        Args:
            sql: SQL query to execute
            parameters: Optional list of parameters for the query

        Returns:
            First row as a tuple, or None if no rows
        """
        conn = None
        try:
            conn = self.get_conn()
            # Buffered so the remaining rows can be discarded on close
            cursor = conn.cursor(buffered=True)

            if parameters:
                cursor.execute(sql, parameters)
            else:
                cursor.execute(sql)

            row = cursor.fetchone()
            cursor.close()
            return row
        except Exception as e:
            logger.error(f"Error executing query: {e}")
            logger.error(f"Query: {sql}")
            if parameters:
                logger.error(f"Parameters: {parameters}")
            raise
        finally:
            if conn:
                conn.close()

    def run(
        self,
        sql: str,
        parameters: Optional[List[Any]] = None,
    ) -> None:
        """
        Execute a SQL statement (typically DDL).

        Args:
            sql: SQL statement to execute
            parameters: Optional list of parameters for the statement
        """
        conn = None
        try:
            conn = self.get_conn()
            cursor = conn.cursor()

            if parameters:
                cursor.execute(sql, parameters)
            else:
                cursor.execute(sql)
            cursor.close()
        except Exception as e:
            logger.error(f"Error executing statement: {e}")
            logger.error(f"SQL: {sql}")
            if parameters:
                logger.error(f"Parameters: {parameters}")
            raise
        finally:
            if conn:
                conn.close()

    def ping(self) -> bool:
        """Round-trip a trivial query; raises the driver error on failure."""
        row = self.get_first("SELECT 1")
        return bool(row) and row[0] == 1
