"""Central logging utility for spendsort.

Provides a consistent, structured logger that can emit either plain text or
JSON lines depending on the environment variable `SPENDSORT_LOG_FORMAT`.

Usage:
	from spendsort.utils.logger import get_logger
	log = get_logger(__name__)
	log.info("Training set rebuilt", extra={"examples": 120})

The `extra` dict keys will be merged into the log record. For JSON format they
appear as top-level fields; for text format they are appended as key=value pairs.
"""
from __future__ import annotations

import logging
import json
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict

_LOG_FORMAT = os.getenv("SPENDSORT_LOG_FORMAT", "TEXT").upper()
_LEVEL = os.getenv("SPENDSORT_LOG_LEVEL", "INFO").upper()

_RESERVED = frozenset((
	"name", "msg", "args", "levelname", "levelno", "pathname", "filename", "module",
	"exc_info", "exc_text", "stack_info", "lineno", "funcName", "created", "msecs",
	"relativeCreated", "thread", "threadName", "processName", "process", "message",
	"taskName",
))


def _timestamp(record: logging.LogRecord) -> str:
	return datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _extras(record: logging.LogRecord) -> Dict[str, Any]:
	extras = {}
	for k, v in record.__dict__.items():
		if k.startswith('_') or k in _RESERVED:
			continue
		extras[k] = v
	return extras


class _KeyValueFormatter(logging.Formatter):
	def format(self, record: logging.LogRecord) -> str:
		base = f"{_timestamp(record)} level={record.levelname} logger={record.name} msg={record.getMessage()}"
		extras = _extras(record)
		if extras:
			extra_str = " ".join(f"{k}={json.dumps(v, ensure_ascii=False, default=str)}" for k, v in extras.items())
			base = f"{base} {extra_str}"
		if record.exc_info:
			base = f"{base}\n{self.formatException(record.exc_info)}"
		return base


class _JSONFormatter(logging.Formatter):
	def format(self, record: logging.LogRecord) -> str:
		payload: Dict[str, Any] = {
			"ts": _timestamp(record),
			"level": record.levelname,
			"message": record.getMessage(),
			"logger": record.name,
		}
		payload.update(_extras(record))
		if record.exc_info:
			payload["exc_type"] = str(record.exc_info[0].__name__)
			payload["exc_value"] = str(record.exc_info[1])
		return json.dumps(payload, ensure_ascii=False, default=str)


def _build_handler() -> logging.Handler:
	handler = logging.StreamHandler(sys.stdout)
	formatter: logging.Formatter
	if _LOG_FORMAT == "JSON":
		formatter = _JSONFormatter()
	else:
		formatter = _KeyValueFormatter()
	handler.setFormatter(formatter)
	return handler


_handler = _build_handler()


def get_logger(name: str) -> logging.Logger:
	logger = logging.getLogger(name)
	if not logger.handlers:
		logger.setLevel(getattr(logging, _LEVEL, logging.INFO))
		logger.addHandler(_handler)
		logger.propagate = False
	return logger


__all__ = ["get_logger"]
