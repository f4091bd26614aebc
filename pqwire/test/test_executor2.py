##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
import unittest

from .. import exceptions as pg_exc
from ..python.structlib import ulong_pack, long_pack
from ..protocol.executor2 import Executor2
from ..protocol.session import IDLE, OPEN, FAILED
from ..protocol.query import \
	CollectingResultHandler, ParameterList, Notification, \
	SUPPRESS_BEGIN, DESCRIBE_ONLY, BOTH_ROWS_AND_STATUS
from .support import *

class test_executor2(unittest.TestCase):
	def setUp(self):
		self.session, self.sock = make_session(
			protocol_version = '2', executor = Executor2
		)
		self.executor = self.session.executor

	def select_response(self, *rows):
		return b'P' + v2_string('blank') + \
			v2_row_description(('x', 23)) + \
			b''.join([v2_data_row(x) for x in rows]) + \
			v2_complete('SELECT') + v2_ready()

	def test_select(self):
		q = self.executor.create_simple_query('select 1')
		h = CollectingResultHandler()
		self.sock.feed(self.select_response('1'))
		self.executor.execute(q, None, h, flags = SUPPRESS_BEGIN)
		self.assertEqual(self.sock.take_sent(), b'Qselect 1\x00')
		self.assertEqual(h.rows(), [[b'1']])
		fields = h.results[0][2]
		self.assertEqual([(f.name, f.type_oid) for f in fields], [('x', 23)])
		self.assertEqual(h.statuses(), [])
		self.assertTrue(h.completed)

	def test_null_and_max_rows(self):
		q = self.executor.create_simple_query('select x from t')
		h = CollectingResultHandler()
		self.sock.feed(self.select_response(None, '2', '3'))
		self.executor.execute(q, None, h, 2, 0, SUPPRESS_BEGIN | BOTH_ROWS_AND_STATUS)
		# Every row is read, only the first are kept.
		self.assertEqual(h.rows(), [[None], [b'2']])
		self.assertEqual(h.statuses(), [('SELECT', 0, 0)])

	def test_parameters(self):
		q = self.executor.create_parameterized_query("select ?, ?, '?'")
		p = q.create_parameter_list()
		p.set_string(1, "it's")
		p.set_null(2)
		self.sock.feed(self.select_response())
		self.executor.execute(q, p, CollectingResultHandler(), flags = SUPPRESS_BEGIN)
		self.assertEqual(self.sock.take_sent(), b"Qselect 'it''s', NULL, '?'\x00")

	def test_standard_conforming_strings(self):
		self.session.standard_conforming_strings = True
		q = self.executor.create_parameterized_query("select ?")
		p = q.create_parameter_list()
		p.set_string(1, "a\\b")
		self.sock.feed(self.select_response())
		self.executor.execute(q, p, CollectingResultHandler(), flags = SUPPRESS_BEGIN)
		self.assertEqual(self.sock.take_sent(), b"Qselect 'a\\b'\x00")

	def test_composite(self):
		q = self.executor.create_parameterized_query("insert into t values (?); select ?")
		p = q.create_parameter_list()
		p.set_int(1, 1)
		p.set_string(2, 'x')
		self.sock.feed(v2_complete('INSERT 0 1'), self.select_response('x'))
		h = CollectingResultHandler()
		self.executor.execute(q, p, h, flags = SUPPRESS_BEGIN)
		self.assertEqual(
			self.sock.take_sent(), b"Qinsert into t values (1); select 'x'\x00"
		)
		self.assertEqual(h.statuses(), [('INSERT 0 1', 1, 0)])
		self.assertEqual(h.rows(), [[b'x']])

	def test_implicit_begin(self):
		q = self.executor.create_simple_query('insert into t values (1)')
		h = CollectingResultHandler()
		self.sock.feed(v2_complete('BEGIN'), v2_complete('INSERT 12345 1'), v2_ready())
		self.executor.execute(q, None, h)
		self.assertEqual(self.sock.take_sent(), b'QBEGIN;insert into t values (1)\x00')
		self.assertEqual(h.statuses(), [('INSERT 12345 1', 1, 12345)])
		self.assertEqual(self.session.transaction_status, OPEN)

		self.sock.feed(v2_complete('COMMIT'), v2_ready())
		h = CollectingResultHandler()
		self.executor.execute(self.executor.create_simple_query('commit'), None, h)
		self.assertEqual(self.sock.take_sent(), b'Qcommit\x00')
		self.assertEqual(self.session.transaction_status, IDLE)

	def test_error(self):
		self.session.set_transaction_status(OPEN)
		q = self.executor.create_simple_query('select * from t')
		h = CollectingResultHandler()
		self.sock.feed(
			v2_error('ERROR:  Relation "t" does not exist\n'), v2_ready(),
		)
		self.assertRaises(pg_exc.ServerReportedError, self.executor.execute, q, None, h)
		self.assertTrue('does not exist' in h.errors[0].message)
		self.assertEqual(self.session.transaction_status, FAILED)
		self.assertFalse(self.session.closed)

	def test_empty_query(self):
		q = self.executor.create_simple_query('')
		h = CollectingResultHandler()
		self.sock.feed(v2_empty_query(), v2_ready())
		self.executor.execute(q, None, h, flags = SUPPRESS_BEGIN)
		self.assertEqual(h.statuses(), [('EMPTY', 0, 0)])
		self.assertEqual(h.errors, [])

	def test_notices_and_notifications(self):
		q = self.executor.create_simple_query('listen x')
		h = CollectingResultHandler()
		self.sock.feed(
			v2_notice('NOTICE:  be careful\n'), v2_complete('LISTEN'),
			v2_notify(5, 'x'), v2_ready(),
		)
		self.executor.execute(q, None, h, flags = SUPPRESS_BEGIN)
		self.assertEqual([w.message for w in h.warnings], ['be careful'])
		self.assertEqual(self.session.notifications(), [Notification('x', 5)])

	def test_describe_only(self):
		q = self.executor.create_simple_query('select 1')
		h = CollectingResultHandler()
		self.executor.execute(q, None, h, flags = DESCRIBE_ONLY)
		self.assertEqual(self.sock.take_sent(), b'')
		self.assertTrue(h.completed)

	def test_bind_mismatch(self):
		q = self.executor.create_parameterized_query('select ?, ?')
		p = ParameterList(1)
		p.set_int(1, 1)
		self.assertRaises(
			pg_exc.BindMismatchError,
			self.executor.execute, q, p, CollectingResultHandler()
		)
		self.assertEqual(self.sock.take_sent(), b'')

	def test_eof(self):
		q = self.executor.create_simple_query('select 1')
		self.sock.feed(b'P')
		self.assertRaises(
			pg_exc.UnexpectedEof,
			self.executor.execute, q, None, CollectingResultHandler(), 0, 0, SUPPRESS_BEGIN
		)
		self.assertTrue(self.session.closed)

	def test_batch(self):
		qs = [
			self.executor.create_simple_query('insert into t values (%d)' %(i,))
			for i in range(2)
		]
		h = CollectingResultHandler()
		self.sock.feed(
			v2_complete('INSERT 0 1'), v2_ready(),
			v2_complete('INSERT 0 1'), v2_ready(),
		)
		self.executor.execute_batch(qs, None, h, flags = SUPPRESS_BEGIN)
		self.assertEqual(
			self.sock.take_sent(),
			b'Qinsert into t values (0)\x00Qinsert into t values (1)\x00'
		)
		self.assertEqual(len(h.statuses()), 2)

	def test_unsupported(self):
		self.assertRaises(
			pg_exc.UnsupportedOperationError,
			self.executor.fetch, None, CollectingResultHandler()
		)
		self.assertRaises(
			pg_exc.UnsupportedOperationError,
			self.executor.start_copy, 'copy t from stdin'
		)

class test_fastpath2(unittest.TestCase):
	def setUp(self):
		self.session, self.sock = make_session(
			protocol_version = '2', executor = Executor2
		)
		self.executor = self.session.executor

	def test_call(self):
		p = self.executor.create_fastpath_parameters(1)
		p.set_int(1, 5)
		self.sock.feed(b'VG' + ulong_pack(4) + b'\x00\x00\x00\x06' + b'0' + b'Z')
		r = self.executor.fastpath_call(1234, p, suppress_begin = True)
		self.assertEqual(r, b'\x00\x00\x00\x06')
		self.assertEqual(
			self.sock.take_sent(),
			b'F\x00' + ulong_pack(1234) + ulong_pack(1) + long_pack(1) + b'5'
		)

	def test_void(self):
		p = self.executor.create_fastpath_parameters(0)
		self.sock.feed(b'V0Z')
		self.assertEqual(self.executor.fastpath_call(1, p, True), None)

	def test_begin(self):
		p = self.executor.create_fastpath_parameters(0)
		self.sock.feed(v2_complete('BEGIN'), v2_ready(), b'V0Z')
		self.executor.fastpath_call(1, p)
		sent = self.sock.take_sent()
		self.assertTrue(sent.startswith(b'QBEGIN\x00F'))
		self.assertEqual(self.session.transaction_status, OPEN)

	def test_null_argument(self):
		p = self.executor.create_fastpath_parameters(1)
		p.set_null(1)
		self.assertRaises(
			pg_exc.UnsupportedOperationError,
			self.executor.fastpath_call, 1, p, True
		)
		self.assertEqual(self.sock.take_sent(), b'')

	def test_error(self):
		p = self.executor.create_fastpath_parameters(0)
		self.sock.feed(v2_error('ERROR:  no such function\n'), b'Z')
		self.assertRaises(
			pg_exc.ServerReportedError,
			self.executor.fastpath_call, 1, p, True
		)

	def test_process_notifies(self):
		self.sock.feed(v2_notify(5, 'x'))
		self.executor.process_notifies()
		self.assertEqual(self.session.notifications(), [Notification('x', 5)])

	def test_process_notifies_in_transaction(self):
		self.session.set_transaction_status(OPEN)
		self.sock.feed(v2_notify(5, 'x'))
		self.executor.process_notifies()
		self.assertEqual(self.session.notifications(), [])

if __name__ == '__main__':
	unittest.main()
