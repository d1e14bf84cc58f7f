# Copyright 2025 Emcie Co Ltd.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

from __future__ import annotations
from abc import ABC, abstractmethod
from contextlib import ExitStack, contextmanager
import contextvars
from enum import Enum, auto
import logging
import sys
import time
from typing import Any, Iterator, MutableMapping, Sequence
import structlog
from typing_extensions import override

from esdata.core.common import generate_id


class LogLevel(Enum):
    TRACE = auto()
    DEBUG = auto()
    INFO = auto()
    WARNING = auto()
    ERROR = auto()
    CRITICAL = auto()

    def to_logging_level(self) -> int:
        return {
            LogLevel.TRACE: logging.DEBUG,
            LogLevel.DEBUG: logging.DEBUG,
            LogLevel.INFO: logging.INFO,
            LogLevel.WARNING: logging.WARNING,
            LogLevel.ERROR: logging.ERROR,
            LogLevel.CRITICAL: logging.CRITICAL,
        }[self]


class Logger(ABC):
    @abstractmethod
    def set_level(self, log_level: LogLevel) -> None: ...

    @abstractmethod
    def trace(self, message: str) -> None: ...

    @abstractmethod
    def debug(self, message: str) -> None: ...

    @abstractmethod
    def info(self, message: str) -> None: ...

    @abstractmethod
    def warning(self, message: str) -> None: ...

    @abstractmethod
    def error(self, message: str) -> None: ...

    @abstractmethod
    def critical(self, message: str) -> None: ...

    @contextmanager
    @abstractmethod
    def scope(self, scope_id: str) -> Iterator[None]: ...

    @contextmanager
    def operation(self, name: str, level: LogLevel = LogLevel.DEBUG) -> Iterator[None]:
        """Logs the start, end and duration of an operation."""
        log = {
            LogLevel.TRACE: self.trace,
            LogLevel.DEBUG: self.debug,
            LogLevel.INFO: self.info,
            LogLevel.WARNING: self.warning,
            LogLevel.ERROR: self.error,
            LogLevel.CRITICAL: self.critical,
        }[level]

        t_start = time.perf_counter()

        try:
            log(f"{name} started")
            yield
            log(f"{name} finished in {time.perf_counter() - t_start:.3f}s")
        except Exception as exc:
            self.error(f"{name} failed after {time.perf_counter() - t_start:.3f}s: {exc!r}")
            raise


class StdoutLogger(Logger):
    """A structlog-backed logger writing to stdout through the stdlib logging module."""

    def __init__(
        self,
        log_level: LogLevel = LogLevel.INFO,
        logger_id: str | None = None,
    ) -> None:
        self._instance_id = generate_id()

        self._scopes = contextvars.ContextVar[str](
            f"logger_{self._instance_id}_scopes",
            default="",
        )

        self.raw_logger = logging.getLogger(logger_id or "esdata")
        self.raw_logger.setLevel(log_level.to_logging_level())
        self.log_level = log_level

        if not any(getattr(h, "_esdata_handler", False) for h in self.raw_logger.handlers):
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
            setattr(handler, "_esdata_handler", True)
            self.raw_logger.addHandler(handler)

        self._logger = structlog.wrap_logger(
            self.raw_logger,
            processors=[
                self._add_scopes,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.KeyValueRenderer(key_order=["event"], drop_missing=True),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(0),
        )

    def _add_scopes(
        self,
        _: Any,  # logger
        __: str,  # method name
        event_dict: MutableMapping[str, Any],
    ) -> MutableMapping[str, Any]:
        if scopes := self.current_scope:
            event_dict["scope"] = scopes
        return event_dict

    @property
    def current_scope(self) -> str:
        return self._scopes.get()

    @override
    def set_level(self, log_level: LogLevel) -> None:
        self.log_level = log_level
        self.raw_logger.setLevel(log_level.to_logging_level())

    @override
    def trace(self, message: str) -> None:
        if self.log_level != LogLevel.TRACE:
            return

        self._logger.debug(message)

    @override
    def debug(self, message: str) -> None:
        self._logger.debug(message)

    @override
    def info(self, message: str) -> None:
        self._logger.info(message)

    @override
    def warning(self, message: str) -> None:
        self._logger.warning(message)

    @override
    def error(self, message: str) -> None:
        self._logger.error(message)

    @override
    def critical(self, message: str) -> None:
        self._logger.critical(message)

    @contextmanager
    @override
    def scope(self, scope_id: str) -> Iterator[None]:
        current_scopes = self._scopes.get()

        if current_scopes:
            new_scopes = current_scopes + f"[{scope_id}]"
        else:
            new_scopes = f"[{scope_id}]"

        reset_token = self._scopes.set(new_scopes)

        try:
            yield
        finally:
            self._scopes.reset(reset_token)


class CompositeLogger(Logger):
    def __init__(self, loggers: Sequence[Logger]) -> None:
        self._loggers = list(loggers)

    def append(self, logger: Logger) -> None:
        self._loggers.append(logger)

    @override
    def set_level(self, log_level: LogLevel) -> None:
        for logger in self._loggers:
            logger.set_level(log_level)

    @override
    def trace(self, message: str) -> None:
        for logger in self._loggers:
            logger.trace(message)

    @override
    def debug(self, message: str) -> None:
        for logger in self._loggers:
            logger.debug(message)

    @override
    def info(self, message: str) -> None:
        for logger in self._loggers:
            logger.info(message)

    @override
    def warning(self, message: str) -> None:
        for logger in self._loggers:
            logger.warning(message)

    @override
    def error(self, message: str) -> None:
        for logger in self._loggers:
            logger.error(message)

    @override
    def critical(self, message: str) -> None:
        for logger in self._loggers:
            logger.critical(message)

    @contextmanager
    @override
    def scope(self, scope_id: str) -> Iterator[None]:
        with ExitStack() as stack:
            for logger in self._loggers:
                stack.enter_context(logger.scope(scope_id))
            yield


class NullLogger(Logger):
    """A logger that discards all messages."""

    @override
    def set_level(self, log_level: LogLevel) -> None:
        pass

    @override
    def trace(self, message: str) -> None:
        pass

    @override
    def debug(self, message: str) -> None:
        pass

    @override
    def info(self, message: str) -> None:
        pass

    @override
    def warning(self, message: str) -> None:
        pass

    @override
    def error(self, message: str) -> None:
        pass

    @override
    def critical(self, message: str) -> None:
        pass

    @contextmanager
    @override
    def scope(self, scope_id: str) -> Iterator[None]:
        yield
