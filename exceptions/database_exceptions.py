#!/usr/bin/env python3
"""
Custom exceptions for database operations.
Provides standardized error handling for storage-related issues.
"""


class DatabaseError(Exception):
    """Base exception for all database-related errors."""

    def __init__(self, message: str = "Database operation failed", query: str = None):
        self.message = message
        self.query = query
        super().__init__(message)

    def __str__(self) -> str:
        if self.query:
            # Truncate long queries for readability
            query_str = self.query[:100] + "..." if len(self.query) > 100 else self.query
            return f"Database Error in query '{query_str}': {self.message}"
        return f"Database Error: {self.message}"


class ConnectionError(DatabaseError):
    """Exception raised when connection to the database fails."""

    def __init__(self, message: str = "Failed to connect to the database", *args, **kwargs):
        super().__init__(message, *args, **kwargs)


class QueryError(DatabaseError):
    """Exception raised when a database query fails."""

    def __init__(self, message: str = "Database query failed", *args, **kwargs):
        super().__init__(message, *args, **kwargs)


class RecordNotFoundError(DatabaseError):
    """Exception raised when a requested record is not found."""

    def __init__(self, message: str = "Record not found", *args, **kwargs):
        super().__init__(message, *args, **kwargs)


class TransactionError(DatabaseError):
    """Exception raised when a database transaction fails."""

    def __init__(self, message: str = "Transaction failed", *args, **kwargs):
        super().__init__(message, *args, **kwargs)


class ValidationError(DatabaseError):
    """Exception raised when data validation fails before database operation."""

    def __init__(self, message: str = "Data validation failed", *args, **kwargs):
        super().__init__(message, *args, **kwargs)
