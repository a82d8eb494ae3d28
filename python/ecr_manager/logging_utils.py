import logging
import os
import traceback
from typing import Optional, Union

DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'

# AWS SDK loggers are chatty at INFO and DEBUG (credential lookups, every HTTP call)
SDK_LOGGERS = ("boto3", "botocore", "urllib3")


def resolve_level(level: Union[int, str, None]) -> int:
	"""Turn a level name ("debug", "INFO") or number into a logging level.
	Falls back to the LOG_LEVEL environment variable, then INFO.
	"""
	if level is None:
		level = os.environ.get("LOG_LEVEL", "INFO")
	if isinstance(level, int):
		return level
	resolved = logging.getLevelName(str(level).strip().upper())
	return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: Union[int, str, None] = None, fmt: Optional[str] = None) -> None:
	"""Configure root logging once. Subsequent calls are no-ops.
	SDK loggers are kept at WARNING or above whatever the service level is.
	"""
	if logging.getLogger().handlers:
		return
	numeric_level = resolve_level(level)
	logging.basicConfig(level=numeric_level, format=fmt or DEFAULT_FORMAT)
	for name in SDK_LOGGERS:
		logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: Optional[str] = None) -> logging.Logger:
	"""Return a module/logger by name, after ensuring logging is configured."""
	setup_logging()
	return logging.getLogger(name) if name else logging.getLogger("ecr_manager")


def log_exception(logger: logging.Logger, message: str, exc_info: Optional[BaseException] = None) -> None:
	"""Log a message followed by the exception type, text and traceback.

	Args:
		logger: Logger instance to use
		message: Context line logged before the exception details
		exc_info: Exception instance (if None, uses current exception context)
	"""
	logger.error(message)
	if exc_info is None:
		logger.debug(traceback.format_exc())
		return
	logger.error(f"{type(exc_info).__name__}: {exc_info}")
	logger.debug("".join(traceback.format_exception(type(exc_info), exc_info, exc_info.__traceback__)))
