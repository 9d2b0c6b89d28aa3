
import os
import sqlite3
from threading import RLock
from traceback import format_exception
from typing import List, Optional
from .interfaces import AuditSinkInterface
from .logger import Logger


def describe_error(error: Optional[BaseException]) -> str:
    if error is None:
        return ''

    return ''.join(format_exception(type(error), error, error.__traceback__)).strip()


class LoggerAuditSink(AuditSinkInterface):
    """
    Writes audit events into the application log
    """

    def info(self, source: str, message: str):
        try:
            Logger.info('[%s] %s' % (source, message))
        except Exception:
            pass

    def error(self, source: str, message: str, error: Optional[BaseException] = None):
        try:
            Logger.error('[%s] %s' % (source, message))

            if error is not None:
                Logger.error(describe_error(error))
        except Exception:
            pass


class SqliteAuditSink(AuditSinkInterface):
    """
    Append-only audit log kept in a SQLite database

    Every write opens its own connection, so the sink can be shared between the supervisor thread
    and the hosting thread.
    """

    path: str
    _lock: RLock

    def __init__(self, path: str):
        self.path = os.path.abspath(os.path.expanduser(path))
        self._lock = RLock()
        self._ensure_database()

    def _ensure_database(self):
        directory = os.path.dirname(self.path)

        if directory and not os.path.isdir(directory):
            os.makedirs(directory, exist_ok=True)

        with self._lock:
            conn = sqlite3.connect(self.path)

            try:
                conn.execute('''CREATE TABLE IF NOT EXISTS Logs (
                    Id INTEGER PRIMARY KEY AUTOINCREMENT,
                    Timestamp DATETIME DEFAULT CURRENT_TIMESTAMP,
                    Level TEXT NOT NULL,
                    Source TEXT,
                    Message TEXT,
                    Exception TEXT
                );''')
                conn.execute('CREATE INDEX IF NOT EXISTS idx_logs_timestamp ON Logs(Timestamp);')
                conn.commit()
            finally:
                conn.close()

    def info(self, source: str, message: str):
        self._write('INFO', source, message, None)

    def error(self, source: str, message: str, error: Optional[BaseException] = None):
        self._write('ERROR', source, message, error)

    def _write(self, level: str, source: str, message: str, error: Optional[BaseException]):
        try:
            with self._lock:
                conn = sqlite3.connect(self.path)

                try:
                    conn.execute(
                        'INSERT INTO Logs (Level, Source, Message, Exception) VALUES (?, ?, ?, ?);',
                        (level, source or '', message or '', describe_error(error))
                    )
                    conn.commit()
                finally:
                    conn.close()

        except Exception as e:
            Logger.warning('Cannot write audit event to "%s": %s' % (self.path, str(e)))


class CompositeAuditSink(AuditSinkInterface):
    """
    Fans out events, one broken sink does not stop the others
    """

    sinks: List[AuditSinkInterface]

    def __init__(self, sinks: List[AuditSinkInterface]):
        self.sinks = sinks

    def info(self, source: str, message: str):
        for sink in self.sinks:
            try:
                sink.info(source, message)
            except Exception as e:
                Logger.warning('Audit sink %s failed: %s' % (sink.__class__.__name__, str(e)))

    def error(self, source: str, message: str, error: Optional[BaseException] = None):
        for sink in self.sinks:
            try:
                sink.error(source, message, error)
            except Exception as e:
                Logger.warning('Audit sink %s failed: %s' % (sink.__class__.__name__, str(e)))
