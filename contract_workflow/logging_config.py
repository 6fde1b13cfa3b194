"""Logging configuration using Loguru for structured logging.

Provides run-aware logging with JSON formatting, rotation, and retention
policies. Records bound with ``stage_name`` also go to a per-stage log file.
"""

import asyncio
import sys
import time
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Optional
from loguru import logger


# Remove default handler
logger.remove()


def setup_logging(
    log_dir: str = "logs",
    level: str = "DEBUG",
    rotation: str = "100 MB",
    retention: str = "30 days",
    compression: str = "zip",
    write_files: bool = True
) -> None:
    """Configure Loguru logging with structured JSON format.

    Args:
        log_dir: Directory for log files
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        rotation: When to rotate log files
        retention: How long to keep old logs
        compression: Compression format for rotated logs
        write_files: Whether to add the file sinks (console only when False)
    """
    logger.remove()

    # Console handler with colored output
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>",
        level=level,
        colorize=True
    )

    if not write_files:
        logger.info("Logging system initialized (console only)", level=level)
        return

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    # Main application log
    logger.add(
        log_path / "contract_workflow_{time}.log",
        format="{time} | {level} | {name}:{function}:{line} | {message}",
        level=level,
        rotation=rotation,
        retention=retention,
        compression=compression,
        serialize=False
    )

    # JSON structured log for parsing and analysis
    logger.add(
        log_path / "contract_workflow_json_{time}.log",
        format="{time} | {level} | {name}:{function}:{line} | {message}",
        level=level,
        rotation=rotation,
        retention=retention,
        compression=compression,
        serialize=True
    )

    # Stage-specific log file
    def stage_format(record):
        run_id = record["extra"].get("run_id", "unknown")
        stage_name = record["extra"].get("stage_name", "unknown")
        return f"{record['time']} | {record['level'].name} | {run_id} | {stage_name} | {record['message']}\n"

    logger.add(
        log_path / "stages_{time}.log",
        format=stage_format,
        level="INFO",
        rotation=rotation,
        retention=retention,
        compression=compression,
        filter=lambda record: "stage_name" in record["extra"]
    )

    # Error-only log file
    logger.add(
        log_path / "errors_{time}.log",
        format="{time} | {level} | {name}:{function}:{line} | {message}",
        level="ERROR",
        rotation=rotation,
        retention=retention,
        compression=compression
    )

    logger.info("Logging system initialized", log_dir=log_dir, level=level)


def get_run_logger(run_id: str, stage_name: Optional[str] = None):
    """Get a logger bound to a workflow run and optionally a stage.

    Args:
        run_id: Unique run identifier
        stage_name: Optional stage id for stage-specific logging

    Returns:
        Logger instance with run context
    """
    context = {"run_id": run_id}
    if stage_name:
        context["stage_name"] = stage_name
    return logger.bind(**context)


def log_stage_execution(stage_name: str) -> Callable:
    """Decorator to log a capability call with timing.

    Works for plain functions and coroutine functions. The run id is taken
    from a ``run_id`` keyword argument when the caller passes one.

    Args:
        stage_name: Name reported in the log records

    Returns:
        Decorated function with logging
    """
    def decorator(func: Callable) -> Callable:
        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs) -> Any:
                stage_logger = get_run_logger(kwargs.get("run_id", "unknown"), stage_name)
                stage_logger.info(f"Starting {stage_name}", function=func.__name__)
                start_time = time.time()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    stage_logger.error(
                        f"{stage_name} failed with error",
                        function=func.__name__,
                        error=str(e),
                        error_type=type(e).__name__
                    )
                    raise
                stage_logger.info(
                    f"{stage_name} completed successfully",
                    function=func.__name__,
                    duration_seconds=round(time.time() - start_time, 3)
                )
                return result

            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            stage_logger = get_run_logger(kwargs.get("run_id", "unknown"), stage_name)
            stage_logger.info(f"Starting {stage_name}", function=func.__name__)
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                stage_logger.error(
                    f"{stage_name} failed with error",
                    function=func.__name__,
                    error=str(e),
                    error_type=type(e).__name__
                )
                raise
            stage_logger.info(
                f"{stage_name} completed successfully",
                function=func.__name__,
                duration_seconds=round(time.time() - start_time, 3)
            )
            return result

        return wrapper
    return decorator
