from logging.config import dictConfig
from typing import Any

import structlog

from common.logging.std_logging_config import StdLoggingConfig, build_logging_config
from common.utils.utils import deep_merge


def setup_logging(logging_config: dict[str, Any] | None = None, log_level: str | None = None) -> None:
    """Send structlog and stdlib records through the same handlers and formatters.

    ``logging_config`` is merged over the shared ``dictConfig``; ``log_level`` sets the root level.
    """
    dictConfig(deep_merge(build_logging_config(root_level=log_level), logging_config or {}))

    structlog.configure(
        processors=StdLoggingConfig.structlog_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=StdLoggingConfig.logger_factory,
        cache_logger_on_first_use=True,
    )
