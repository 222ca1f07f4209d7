"""Run session: correlation id, error bookkeeping and the run log.

A RunSession is created once per maintenance pass and handed to every
component that logs or counts errors. It owns the append-only log file
(`<server>_<yyyyMMdd>.log`, UTC) and tags every line with the run's
correlation id. Decisions are logged at INFO, statement text at DEBUG.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from rich.logging import RichHandler

LOGGER_NAME = "sqlmaint.run"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(correlation_id)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def log_file_name(server_identity: str, day: datetime) -> str:
    """Return the log file name for a server and UTC day."""
    safe = re.sub(r"[^A-Za-z0-9_.-]+", "_", server_identity) or "server"
    return f"{safe}_{day:%Y%m%d}.log"


class _CorrelationAdapter(logging.LoggerAdapter):
    """Stamps the correlation id on every record."""

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("correlation_id", self.extra["correlation_id"])
        kwargs["extra"] = extra
        return msg, kwargs


class RunSession:
    """
    Shared state of a single maintenance run.

    Attributes:
        server_identity: Server the run targets (used for the log file name).
        correlation_id: Identifier stamped on every log line of the run.
        started_at: UTC start time of the run.
        error_count: Number of errors recorded so far.
        log_path: Path of the run log file.
        log: Logger adapter to use for all run output.
    """

    def __init__(
        self,
        server_identity: str,
        log_dir: Path,
        *,
        console: bool = True,
        clock: Callable[[], datetime] = utc_now,
        correlation_id: str | None = None,
    ) -> None:
        self.server_identity = server_identity
        self.correlation_id = correlation_id or f"sqlmaint-{uuid.uuid4()}"
        self.clock = clock
        self.started_at = clock()
        self.error_count = 0

        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        self.log_path = log_dir / log_file_name(server_identity, self.started_at)

        self._handlers: list[logging.Handler] = []
        self._file_handler = self._open_log_file()
        self._handlers.append(self._file_handler)

        if console:
            console_handler = RichHandler(show_path=False, markup=False)
            console_handler.setLevel(logging.INFO)
            self._handlers.append(console_handler)

        self._logger = logging.getLogger(LOGGER_NAME)
        self._logger.setLevel(logging.DEBUG)
        self._logger.propagate = False
        for handler in self._handlers:
            self._logger.addHandler(handler)

        self.log = _CorrelationAdapter(self._logger, {"correlation_id": self.correlation_id})

    def _open_log_file(self) -> logging.FileHandler:
        """Open the log file for appending, noting where this run starts in it."""
        self._log_offset = self.log_path.stat().st_size if self.log_path.exists() else 0
        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
        formatter.converter = time.gmtime
        handler = logging.FileHandler(self.log_path, mode="a", encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(formatter)
        return handler

    def use_server_identity(self, server_identity: str) -> None:
        """
        Re-home the run log under the identity the server reports for itself.

        The lines this run already wrote move to `<identity>_<yyyyMMdd>.log`;
        earlier runs in the provisional file are left untouched.
        """
        new_path = self.log_path.with_name(log_file_name(server_identity, self.started_at))
        self.server_identity = server_identity
        if new_path == self.log_path:
            return

        old = self._file_handler
        self._logger.removeHandler(old)
        old.close()
        with self.log_path.open("rb+") as fp:
            fp.seek(self._log_offset)
            carried = fp.read()
            fp.seek(self._log_offset)
            fp.truncate()
        if self._log_offset == 0:
            self.log_path.unlink()

        self.log_path = new_path
        self._file_handler = self._open_log_file()
        self._file_handler.stream.write(carried.decode("utf-8"))
        self._file_handler.flush()
        self._handlers[self._handlers.index(old)] = self._file_handler
        self._logger.addHandler(self._file_handler)

    def decision(self, msg: str, *args) -> None:
        """Log what was decided."""
        self.log.info(msg, *args)

    def statement(self, text: str) -> None:
        """Log what was sent to the server."""
        self.log.debug("SQL: %s", text)

    def record_error(self, msg: str, *args) -> None:
        """Log an error and count it against the run."""
        self.error_count += 1
        self.log.error(msg, *args)

    def close(self) -> None:
        """Detach and close the session's handlers."""
        for handler in self._handlers:
            self._logger.removeHandler(handler)
            handler.close()
        self._handlers = []

    def __enter__(self) -> "RunSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
