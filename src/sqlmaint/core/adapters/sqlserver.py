from __future__ import annotations

from typing import Any, Callable

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.pool import NullPool

from sqlmaint.core.executor import (
    ConnectionTarget,
    ConnectivityError,
    ExecutionError,
    Statement,
)

UrlFactory = Callable[[ConnectionTarget], "URL | str"]

# SQLSTATE class 08: connection exception
CONNECTION_EXCEPTION_CLASS = "08"


class SqlServerExecutor:
    """Executor over SQLAlchemy + pyodbc for SQL Server.

    One connection is opened per (server, catalog) target on first use and
    kept until `close(target)`, so all statements for a database run in
    order on the same session. Metadata queries run with a short timeout;
    maintenance actions run without one.
    """

    def __init__(
        self,
        url_factory: UrlFactory,
        *,
        metadata_timeout: int = 60,
        login_timeout: int = 30,
    ) -> None:
        self.url_factory = url_factory
        self.metadata_timeout = metadata_timeout
        self.login_timeout = login_timeout
        self._open: dict[ConnectionTarget, tuple[Engine, Connection]] = {}

    def _connection(self, target: ConnectionTarget) -> Connection:
        """Return the open connection for `target`, connecting if needed."""
        if target in self._open:
            return self._open[target][1]

        engine = create_engine(
            self.url_factory(target),
            # BACKUP and DBCC cannot run inside a user transaction
            isolation_level="AUTOCOMMIT",
            poolclass=NullPool,
            connect_args={"timeout": self.login_timeout},
        )
        try:
            conn = engine.connect()
        except SQLAlchemyError as exc:
            engine.dispose()
            raise ConnectivityError(f"Cannot connect to {target}: {exc}") from exc

        self._open[target] = (engine, conn)
        return conn

    @staticmethod
    def _driver_connection(conn: Connection) -> Any:
        return conn.connection.dbapi_connection

    def execute(self, target: ConnectionTarget, statement: Statement) -> list[dict[str, Any]]:
        """Run a statement and return its rows as plain dicts."""
        conn = self._connection(target)
        raw = self._driver_connection(conn)
        raw.timeout = 0 if statement.long_running else self.metadata_timeout

        if statement.long_running:
            return self._execute_action(target, conn, raw, statement)

        try:
            result = conn.exec_driver_sql(statement.text)
            if not result.returns_rows:
                return []
            return [dict(row) for row in result.mappings()]
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise ConnectivityError(f"Lost connection to {target}: {exc}") from exc
            raise ExecutionError(str(exc.orig or exc)) from exc

    def _execute_action(
        self,
        target: ConnectionTarget,
        conn: Connection,
        raw: Any,
        statement: Statement,
    ) -> list[dict[str, Any]]:
        """Run a long-running statement on the driver cursor, draining every result set.

        BACKUP and DBCC report progress as informational result sets; the
        statement only completes once all of them have been consumed.
        """
        driver_error = conn.dialect.loaded_dbapi.Error
        cursor = raw.cursor()
        try:
            cursor.execute(statement.text)
            while cursor.nextset():
                pass
        except driver_error as exc:
            sqlstate = str(exc.args[0]) if exc.args else ""
            if sqlstate.startswith(CONNECTION_EXCEPTION_CLASS):
                raise ConnectivityError(f"Lost connection to {target}: {exc}") from exc
            raise ExecutionError(str(exc)) from exc
        finally:
            cursor.close()
        return []

    def close(self, target: ConnectionTarget) -> None:
        """Close and dispose the connection held for `target`."""
        opened = self._open.pop(target, None)
        if opened is None:
            return
        engine, conn = opened
        try:
            conn.close()
        finally:
            engine.dispose()

    def close_all(self) -> None:
        for target in list(self._open):
            self.close(target)
