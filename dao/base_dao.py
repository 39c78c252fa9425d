#!/usr/bin/env python3
"""
Base Data Access Object for the Servicing Insights system
Provides common database functionality for all DAO classes.
"""

import os
import sqlite3
import logging
from typing import Optional, List, Dict, Any, Generator
from contextlib import contextmanager

from exceptions import DatabaseError
from utils.error.error_handler import exception_mapper

# Configure logging
logger = logging.getLogger(__name__)

# Seconds a writer waits on a locked database before failing
BUSY_TIMEOUT = 30


class BaseDAO:
    """Base class for all Data Access Objects"""

    def __init__(self, db_path: str):
        """
        Initialize the base DAO with database path

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._columns = {}

        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections

        Yields:
            A configured SQLite connection

        Raises:
            DatabaseError: If a database error occurs
        """
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, timeout=BUSY_TIMEOUT)
            # Enable foreign keys
            conn.execute("PRAGMA foreign_keys = ON")
            # Return dictionary-like rows
            conn.row_factory = sqlite3.Row
            yield conn
        except sqlite3.Error as e:
            logger.error(f"Database connection error: {str(e)}")
            if conn:
                conn.rollback()
            raise DatabaseError(f"Database connection error: {str(e)}") from e
        finally:
            if conn:
                conn.close()

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Run several statements atomically. The write lock is taken up front
        so a read-then-write sequence cannot interleave with another writer.

        Yields:
            Connection inside an open IMMEDIATE transaction
        """
        with self.get_connection() as conn:
            conn.isolation_level = None
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    @exception_mapper({sqlite3.Error: DatabaseError})
    def execute_query(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        """
        Execute a SELECT query and return the results

        Args:
            query: SQL query to execute
            params: Query parameters

        Returns:
            List of dictionaries representing the query results

        Raises:
            DatabaseError: If a database error occurs
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute(query, params)
                return [dict(row) for row in cursor.fetchall()]
        except Exception as e:
            logger.error(f"Query execution error: {str(e)}")
            logger.error(f"Query: {query}")
            raise

    @exception_mapper({sqlite3.Error: DatabaseError})
    def execute_update(self, query: str, params: tuple = ()) -> int:
        """
        Execute an INSERT, UPDATE, or DELETE query and return affected rows

        Args:
            query: SQL query to execute
            params: Query parameters

        Returns:
            Number of affected rows

        Raises:
            DatabaseError: If a database error occurs
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute(query, params)
                conn.commit()
                return cursor.rowcount
        except Exception as e:
            logger.error(f"Update execution error: {str(e)}")
            logger.error(f"Query: {query}")
            raise

    @exception_mapper({sqlite3.Error: DatabaseError})
    def get_by_id(self, table: str, id_field: str, id_value: Any) -> Optional[Dict[str, Any]]:
        """
        Get a single record by ID

        Args:
            table: Table name
            id_field: Name of the ID field
            id_value: Value of the ID

        Returns:
            Dictionary representing the record or None if not found
        """
        rows = self.execute_query(f"SELECT * FROM {table} WHERE {id_field} = ?", (id_value,))
        return rows[0] if rows else None

    def get_table_columns(self, table: str) -> List[str]:
        """
        Get the column names for a table (cached per DAO instance)

        Args:
            table: Table name

        Returns:
            List of column names
        """
        if table not in self._columns:
            rows = self.execute_query(f"PRAGMA table_info({table})")
            if not rows:
                return []
            self._columns[table] = [row['name'] for row in rows]
        return self._columns[table]

    @exception_mapper({sqlite3.Error: DatabaseError})
    def insert_or_update(self, table: str, data: Dict[str, Any], id_field: str) -> bool:
        """
        Insert or update a record in one statement, keyed by id_field

        Args:
            table: Table name
            data: Dictionary of column names and values
            id_field: Name of the ID field for conflict resolution

        Returns:
            True if a row was written, False if no field matched the table

        Raises:
            DatabaseError: If a database error occurs
        """
        columns = self.get_table_columns(table)

        fields = [name for name in data if name in columns]
        if id_field not in fields:
            logger.warning(f"No {id_field} given for upsert into {table}")
            return False

        values = [data[name] for name in fields]
        update_fields = [f"{name} = excluded.{name}" for name in fields if name != id_field]

        query = f"""
        INSERT INTO {table} ({', '.join(fields)})
        VALUES ({', '.join('?' for _ in fields)})
        """
        if update_fields:
            query += f"ON CONFLICT({id_field}) DO UPDATE SET {', '.join(update_fields)}"
        else:
            query += f"ON CONFLICT({id_field}) DO NOTHING"

        try:
            with self.get_connection() as conn:
                conn.execute(query, values)
                conn.commit()
                return True
        except Exception as e:
            logger.error(f"Error in insert_or_update: {str(e)}")
            logger.error(f"Table: {table}, ID field: {id_field}")
            raise
