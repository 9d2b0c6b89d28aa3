
import os
import sqlite3
import tempfile
import unittest
from unittest.mock import Mock

from ..revkeeper.audit import SqliteAuditSink, CompositeAuditSink, LoggerAuditSink, describe_error
from ..revkeeper.logger import setup_dummy_logger


class SqliteAuditSinkTest(unittest.TestCase):
    def setUp(self) -> None:
        setup_dummy_logger()
        self.directory = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.directory.name, 'Database', 'Logs.db')

    def tearDown(self) -> None:
        self.directory.cleanup()

    def _fetch_rows(self) -> list:
        conn = sqlite3.connect(self.path)

        try:
            return conn.execute('SELECT Level, Source, Message, Exception FROM Logs ORDER BY Id').fetchall()
        finally:
            conn.close()

    def test_creates_database_and_appends_events(self):
        sink = SqliteAuditSink(self.path)

        try:
            raise ConnectionResetError('Connection reset by peer')
        except ConnectionResetError as e:
            error = e

        sink.info('ConnectionSupervisor', 'Connected to tunnel.riotkit.org:3422')
        sink.error('ConnectionSupervisor', 'Exception in supervisor loop', error)

        rows = self._fetch_rows()

        self.assertEqual(2, len(rows))
        self.assertEqual(('INFO', 'ConnectionSupervisor', 'Connected to tunnel.riotkit.org:3422', ''), rows[0])
        self.assertEqual('ERROR', rows[1][0])
        self.assertIn('ConnectionResetError: Connection reset by peer', rows[1][3])

    def test_reopening_keeps_existing_events(self):
        SqliteAuditSink(self.path).info('Program', 'first')
        SqliteAuditSink(self.path).info('Program', 'second')

        self.assertEqual(['first', 'second'], [row[2] for row in self._fetch_rows()])

    def test_write_failures_are_swallowed(self):
        sink = SqliteAuditSink(self.path)
        os.unlink(self.path)
        os.mkdir(self.path)

        sink.info('Program', 'this cannot be written')
        sink.error('Program', 'neither this', None)


class CompositeAuditSinkTest(unittest.TestCase):
    def setUp(self) -> None:
        setup_dummy_logger()

    def test_broken_sink_does_not_stop_others(self):
        broken = Mock()
        broken.info.side_effect = IOError('disk full')
        broken.error.side_effect = IOError('disk full')
        working = Mock()

        sink = CompositeAuditSink([broken, working])
        sink.info('ConnectionSupervisor', 'Heartbeat: connection alive')
        sink.error('ConnectionSupervisor', 'Error during disconnect', None)

        working.info.assert_called_once_with('ConnectionSupervisor', 'Heartbeat: connection alive')
        working.error.assert_called_once_with('ConnectionSupervisor', 'Error during disconnect', None)

    def test_logger_sink_accepts_events_without_error(self):
        sink = LoggerAuditSink()

        sink.info('Program', 'started')
        sink.error('Program', 'failed')

    def test_describe_error(self):
        self.assertEqual('', describe_error(None))
        self.assertIn('ValueError: bad port', describe_error(ValueError('bad port')))
