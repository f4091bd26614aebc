##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
import unittest
import gc

from .. import exceptions as pg_exc
from .. import types as pg_types
from ..encodings.codec import Encoding
from ..protocol import query as pg_query
from ..protocol.query import compile_query, ParameterList

owner = object()

class test_compile(unittest.TestCase):
	def test_simple(self):
		q = compile_query("select ?, ? from t where x = '?'", owner)
		self.assertIsInstance(q, pg_query.SimpleQuery)
		self.assertEqual(q.parameter_count, 2)
		self.assertEqual(q.native_sql(), "select $1, $2 from t where x = '?'")
		self.assertTrue(q.owner is owner)

	def test_no_placeholders(self):
		q = compile_query("select '?' || ?", owner, False)
		self.assertEqual(q.parameter_count, 0)
		self.assertTrue(q.create_parameter_list() is pg_query.NO_PARAMETERS)

	def test_empty(self):
		q = compile_query('  ', owner)
		self.assertEqual(q.fragments, ('',))
		self.assertEqual(q.parameter_count, 0)

	def test_composite(self):
		q = compile_query("insert into t values (?); select ?, ?", owner)
		self.assertIsInstance(q, pg_query.CompositeQuery)
		self.assertEqual(len(q.subqueries), 2)
		self.assertEqual(q.offsets, (0, 1))
		self.assertEqual(q.parameter_count, 3)
		p = q.create_parameter_list()
		p.set_int(1, 10)
		p.set_string(2, 'a')
		p.set_null(3)
		subs = p.subparams()
		self.assertEqual([len(x) for x in subs], [1, 2])
		self.assertEqual(subs[0][1].value, '10')
		self.assertTrue(subs[1].is_null(2))

	def test_to_string(self):
		q = compile_query("select ?, ?", owner)
		p = q.create_parameter_list()
		p.set_string(1, 'x')
		self.assertEqual(q.to_string(p), "select 'x', ?")

class test_parameters(unittest.TestCase):
	def test_bounds(self):
		p = ParameterList(2)
		self.assertRaises(pg_exc.BindMismatchError, p.set_int, 0, 1)
		self.assertRaises(pg_exc.BindMismatchError, p.set_int, 3, 1)
		self.assertRaises(pg_exc.BindMismatchError, p.check_all_set)
		p.set_int(1, 1)
		p.set_null(2)
		p.check_all_set()

	def test_types(self):
		p = ParameterList(3)
		p.set_int(1, 5)
		p.set_bytea(2, b'\x00')
		p.set_string(3, 'x', pg_types.VARCHAROID)
		self.assertEqual(p.type_oids(), [
			pg_types.INT4OID, pg_types.BYTEAOID, pg_types.VARCHAROID
		])
		self.assertTrue(p.is_binary(2))
		self.assertFalse(p.is_binary(1))
		self.assertEqual(ParameterList(1).type_oids(), [pg_types.UNSPECIFIED])

	def test_v3_value(self):
		enc = Encoding('utf-8')
		p = ParameterList(3)
		p.set_string(1, 'ä')
		p.set_null(2)
		p.set_binary(3, b'\x00\x01', pg_types.INT2OID)
		self.assertEqual(p.v3_value(1, enc), b'\xc3\xa4')
		self.assertEqual(p.v3_value(2, enc), None)
		self.assertEqual(p.v3_value(3, enc), b'\x00\x01')

	def test_v2_text(self):
		p = ParameterList(4)
		p.set_string(1, "it's a \\")
		p.set_null(2)
		p.set_literal(3, 'now()')
		p.set_bytea(4, b"a'\x00")
		self.assertEqual(p.v2_text(1), "'it''s a \\\\'")
		self.assertEqual(p.v2_text(1, True), "'it''s a \\'")
		self.assertEqual(p.v2_text(2), 'NULL')
		self.assertEqual(p.v2_text(3), 'now()')
		self.assertEqual(p.v2_text(4, True), "'a\\047\\000'::bytea")

	def test_nul_string(self):
		p = ParameterList(1)
		self.assertRaises(pg_exc.EncodingError, p.set_string, 1, 'a\x00b')

	def test_copy_and_clear(self):
		p = ParameterList(1)
		p.set_int(1, 1)
		c = p.copy()
		p.clear()
		self.assertEqual(p[1], None)
		self.assertEqual(c[1].value, '1')

class test_cleanup(unittest.TestCase):
	def test_close(self):
		garbage = []
		q = compile_query('select 1', owner)
		q.statement_name = 'S_1'
		q.register(garbage.append)
		q.close()
		self.assertEqual(garbage, ['S_1'])
		q.close()
		self.assertEqual(garbage, ['S_1'])
		self.assertEqual(q.statement_name, None)

	def test_collected(self):
		garbage = []
		q = compile_query('select 1', owner)
		q.statement_name = 'S_2'
		q.register(garbage.append)
		del q
		gc.collect()
		self.assertEqual(garbage, ['S_2'])

	def test_unregister(self):
		garbage = []
		q = compile_query('select 1', owner)
		q.statement_name = 'S_3'
		q.register(garbage.append)
		q.unregister()
		q.close()
		self.assertEqual(garbage, [])

	def test_portal(self):
		garbage = []
		p = pg_query.Portal(None, 'C_1')
		p.register(garbage.append)
		p.close()
		p.close()
		self.assertEqual(garbage, ['C_1'])
		self.assertTrue(p.closed)

class test_handlers(unittest.TestCase):
	def test_collecting(self):
		h = pg_query.CollectingResultHandler()
		h.handle_result_rows(None, [], [[b'1'], [b'2']], None)
		h.handle_command_status('SELECT 2', 0, 0)
		self.assertEqual(h.rows(), [[b'1'], [b'2']])
		self.assertEqual(h.statuses(), [('SELECT 2', 0, 0)])
		h.handle_completion()
		self.assertTrue(h.completed)
		err = pg_exc.ProtocolSyntaxError("x")
		h.handle_error(err)
		h.handle_error(pg_exc.ProtocolSyntaxError("y"))
		try:
			h.handle_completion()
		except pg_exc.ProtocolSyntaxError as e:
			self.assertTrue(e is err)
		else:
			self.fail("first error was not raised")

	def test_begin_intercepting(self):
		h = pg_query.CollectingResultHandler()
		b = pg_query.BeginInterceptingResultHandler(h)
		b.handle_command_status('BEGIN', 0, 0)
		b.handle_command_status('INSERT 0 1', 1, 0)
		self.assertEqual(h.statuses(), [('INSERT 0 1', 1, 0)])
		self.assertEqual(h.errors, [])

	def test_begin_intercepting_mismatch(self):
		h = pg_query.CollectingResultHandler()
		b = pg_query.BeginInterceptingResultHandler(h)
		b.handle_command_status('SET', 0, 0)
		self.assertEqual(len(h.errors), 1)
		self.assertIsInstance(h.errors[0], pg_exc.ProtocolSyntaxError)

	def test_abstract(self):
		self.assertRaises(TypeError, pg_query.ResultHandler)

if __name__ == '__main__':
	unittest.main()
