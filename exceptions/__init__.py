#!/usr/bin/env python3
"""
Exception types for the Servicing Insights system.
"""

from exceptions.database_exceptions import (
    DatabaseError, ConnectionError, QueryError, RecordNotFoundError,
    TransactionError, ValidationError
)
from exceptions.analysis_exceptions import (
    AnalysisError, InvalidInputError, ParseError, SchemaError, UpstreamError,
    LLMTimeoutError, SourceError, PipelineFault
)
