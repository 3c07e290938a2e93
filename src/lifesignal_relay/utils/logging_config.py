"""
Centralized logging configuration for the LifeSignal relay.
Provides component-specific loggers with separate log files.
"""

import logging
import logging.handlers
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

DETAILED_FORMAT = (
    '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s'
)
SIMPLE_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class ComponentLogger:
    """Manages component-specific logging with separate files."""

    _loggers: Dict[str, logging.Logger] = {}
    _initialized = False
    _log_dir: Optional[Path] = None
    _level = logging.INFO
    _log_to_file = True
    _unified_handler: Optional[logging.Handler] = None

    # Component definitions with their log files
    COMPONENTS = {
        'registry': 'registry.log',
        'automation': 'automation.log',
        'router': 'router.log',
        'reconciliation': 'reconciliation.log',
        'supervisor': 'supervisor.log',
        'cache': 'cache.log',
        'journal': 'journal.log',
        'api': 'api.log',
        'audit': 'audit.log',  # Every submitted transaction
        'main': 'main.log',
        'error': 'errors.log',  # Centralized error log
    }

    @classmethod
    def initialize(
        cls,
        log_dir: Optional[str] = None,
        level: Optional[str] = None,
        log_to_file: Optional[bool] = None,
    ) -> None:
        """
        Initialize the logging system with component-specific loggers.

        Args:
            log_dir: Directory for log files. Defaults to RELAY_LOG_DIR or ./logs
            level: Level name. Defaults to RELAY_LOG_LEVEL or INFO
            log_to_file: Write rotating log files. Defaults to RELAY_LOG_TO_FILE
        """
        if cls._initialized:
            return

        level_name = (level or os.getenv("RELAY_LOG_LEVEL") or "INFO").upper()
        cls._level = logging.getLevelName(level_name)
        if not isinstance(cls._level, int):
            cls._level = logging.INFO

        cls._log_to_file = (
            _env_flag("RELAY_LOG_TO_FILE", True) if log_to_file is None else log_to_file
        )

        if cls._log_to_file:
            base_dir = Path(log_dir or os.getenv("RELAY_LOG_DIR") or "logs")
            # Create session-specific subdirectory
            session_dir = datetime.now().strftime("%Y%m%d_%H%M%S")
            cls._log_dir = base_dir / session_dir
            cls._log_dir.mkdir(parents=True, exist_ok=True)

            unified_handler = logging.handlers.RotatingFileHandler(
                cls._log_dir / 'unified.log',
                maxBytes=20 * 1024 * 1024,  # 20MB
                backupCount=3,
                encoding='utf-8'
            )
            unified_handler.setLevel(cls._level)
            unified_handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
            cls._unified_handler = unified_handler

        # Mark as initialized before creating loggers to avoid recursion
        cls._initialized = True

        for component in cls.COMPONENTS:
            cls._create_component_logger(component)

        main_logger = cls._loggers['main']
        main_logger.info("=" * 80)
        main_logger.info("LifeSignal Relay Logging System Initialized")
        main_logger.info(f"Log directory: {cls._log_dir if cls._log_to_file else 'console only'}")
        main_logger.info(f"Level: {logging.getLevelName(cls._level)}")
        main_logger.info("=" * 80)

    @classmethod
    def _create_component_logger(cls, component: str) -> None:
        """Create a component logger on-demand."""
        if component in cls._loggers:
            return

        logger = logging.getLogger(f"lifesignal.{component}")
        logger.handlers.clear()
        logger.setLevel(cls._level)

        if cls._log_to_file and cls._log_dir is not None:
            logger.propagate = False

            file_name = cls.COMPONENTS.get(component, f'{component}.log')
            file_handler = logging.handlers.RotatingFileHandler(
                cls._log_dir / file_name,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setLevel(cls._level)
            file_handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
            logger.addHandler(file_handler)

            if cls._unified_handler is not None:
                logger.addHandler(cls._unified_handler)

            # Console handler for errors and critical
            if component in ('error', 'main'):
                console_handler = logging.StreamHandler(sys.stderr)
                console_handler.setLevel(logging.ERROR)
                console_handler.setFormatter(logging.Formatter(SIMPLE_FORMAT, datefmt='%H:%M:%S'))
                logger.addHandler(console_handler)
        else:
            # Console only: let records reach the root logger
            logger.propagate = True
            root = logging.getLogger()
            if not root.handlers:
                logging.basicConfig(level=cls._level, format=SIMPLE_FORMAT, datefmt='%H:%M:%S')

        cls._loggers[component] = logger

    @classmethod
    def get_logger(cls, component: str) -> logging.Logger:
        """
        Get a logger for a specific component.

        Args:
            component: Component name (registry, automation, router, ...)

        Returns:
            Logger instance for the component
        """
        if not cls._initialized:
            # Module-level loggers are fetched at import time; handlers are
            # attached to the same logger objects once initialize() runs
            return logging.getLogger(f"lifesignal.{component}")

        if component not in cls._loggers:
            cls._create_component_logger(component)
        return cls._loggers[component]

    @classmethod
    def log_exception(cls, component: str, exc: Exception, context: Optional[Dict[str, Any]] = None) -> None:
        """
        Log an exception with context to both component and error logs.

        Args:
            component: Component where the exception occurred
            exc: The exception to log
            context: Additional context information
        """
        component_logger = cls.get_logger(component)
        error_logger = cls.get_logger('error')

        context_str = ""
        if context:
            context_str = " | Context: " + ", ".join(f"{k}={v}" for k, v in context.items())

        component_logger.error(f"Exception in {component}: {type(exc).__name__}: {exc}{context_str}", exc_info=exc)
        error_logger.error(f"[{component}] {type(exc).__name__}: {exc}{context_str}", exc_info=exc)

    @classmethod
    def get_log_directory(cls) -> Optional[Path]:
        """Get the current log directory path."""
        return cls._log_dir

    @classmethod
    def reset(cls) -> None:
        """Close handlers and forget all loggers."""
        for logger in cls._loggers.values():
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                if handler is not cls._unified_handler:
                    handler.close()
            logger.propagate = True
        if cls._unified_handler is not None:
            cls._unified_handler.close()
        cls._loggers = {}
        cls._unified_handler = None
        cls._log_dir = None
        cls._initialized = False


# Convenience functions
def get_logger(component: str) -> logging.Logger:
    """Get a logger for a specific component."""
    return ComponentLogger.get_logger(component)


def initialize_logging(
    log_dir: Optional[str] = None,
    level: Optional[str] = None,
    log_to_file: Optional[bool] = None,
) -> None:
    """Initialize the logging system."""
    ComponentLogger.initialize(log_dir=log_dir, level=level, log_to_file=log_to_file)


def log_exception(component: str, exc: Exception, context: Optional[Dict[str, Any]] = None) -> None:
    """Log an exception with context."""
    ComponentLogger.log_exception(component, exc, context)


def get_log_directory() -> Optional[Path]:
    """Get the current log directory path."""
    return ComponentLogger.get_log_directory()
