from .setup_logging import setup_logging
from .std_logging_config import StdLoggingConfig, build_logging_config, use_json_logs

__all__ = ["StdLoggingConfig", "build_logging_config", "setup_logging", "use_json_logs"]
