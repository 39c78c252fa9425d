#!/usr/bin/env python3
"""
Error Handling Utilities
Retry, exit and exception-mapping decorators.
"""

import asyncio
import logging
import sys
import traceback
from typing import Callable, Any, Optional, Dict, Type, Awaitable
from functools import wraps

# Configure logging
logger = logging.getLogger(__name__)


def async_retry(max_attempts: int = 3, delay: float = 2.0, backoff: float = 2.0,
                exceptions: tuple = (Exception,),
                should_retry: Optional[Callable[[Exception], bool]] = None,
                sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                logger_func: Optional[Callable] = None):
    """
    Retry decorator with exponential backoff for coroutines

    Args:
        max_attempts: Maximum number of attempts (including the first one)
        delay: Initial delay in seconds
        backoff: Backoff multiplier
        exceptions: Tuple of exceptions to catch
        should_retry: Optional predicate; an exception it rejects is re-raised immediately
        sleep: Coroutine used for waiting between attempts
        logger_func: Function to call for logging retries

    Returns:
        Decorated coroutine function
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            mdelay = delay

            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if should_retry is not None and not should_retry(e):
                        raise

                    # Last attempt failed, raise exception
                    if attempt == max_attempts:
                        raise

                    message = f"Retry attempt {attempt}/{max_attempts} for {func.__name__}: {str(e)}"
                    if logger_func:
                        logger_func(message)
                    else:
                        logger.warning(message)

                    await sleep(mdelay)
                    mdelay *= backoff
        return wrapper
    return decorator


def graceful_exit(error_code: int = 1, cleanup_func: Optional[Callable] = None):
    """
    Decorator for handling graceful exit on exceptions

    Args:
        error_code: Exit code to use if an error occurs
        cleanup_func: Optional function to call for cleanup before exit

    Returns:
        Decorated function
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except KeyboardInterrupt:
                logger.info("Process interrupted by user")
                if cleanup_func:
                    cleanup_func()
                sys.exit(130)
            except Exception as e:
                logger.error(f"Fatal error in {func.__name__}: {str(e)}")
                logger.error(traceback.format_exc())
                if cleanup_func:
                    cleanup_func()
                sys.exit(error_code)
        return wrapper
    return decorator


def exception_mapper(exception_map: Dict[Type[Exception], Type[Exception]]):
    """
    Decorator to map caught exceptions to custom exceptions

    Args:
        exception_map: Dictionary mapping source exceptions to target exceptions

    Returns:
        Decorated function
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                # Check if this exception type should be remapped
                for source_exception, target_exception in exception_map.items():
                    if isinstance(e, source_exception):
                        raise target_exception(str(e)) from e
                # If no mapping found, re-raise the original exception
                raise
        return wrapper
    return decorator
