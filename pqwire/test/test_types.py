##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
import unittest
import datetime
import decimal

from .. import types as pg_types
from ..types import SQLTypes
from ..types.registry import TypeRegistry, UntypedValue, bytea_from_text

def typmod(precision, scale):
	return ((precision << 16) | scale) + 4

class test_registry(unittest.TestCase):
	def setUp(self):
		self.reg = TypeRegistry(unknown_length = 1000)

	def test_names(self):
		r = self.reg
		self.assertEqual(r.get_pg_type(pg_types.INT4OID), 'int4')
		self.assertEqual(r.get_pg_type_oid('int4'), pg_types.INT4OID)
		self.assertEqual(r.get_pg_type_oid('nosuchtype'), pg_types.UNSPECIFIED)
		self.assertEqual(r.get_pg_type(99999), None)

	def test_arrays(self):
		r = self.reg
		self.assertEqual(r.get_pg_type_oid('int4[]'), pg_types.INT4ARRAYOID)
		self.assertEqual(r.get_pg_type_oid('_int4'), pg_types.INT4ARRAYOID)
		self.assertEqual(r.get_pg_type(pg_types.INT4ARRAYOID), '_int4')
		self.assertEqual(r.get_pg_array_element(pg_types.INT4ARRAYOID), pg_types.INT4OID)
		self.assertEqual(r.get_pg_array_element(pg_types.INT4OID), pg_types.UNSPECIFIED)
		self.assertEqual(r.get_pg_array_type('integer'), pg_types.INT4ARRAYOID)
		self.assertEqual(r.get_sql_type(pg_types.TEXTARRAYOID), SQLTypes.ARRAY)
		self.assertEqual(r.get_array_delimiter(pg_types.BOXARRAYOID), ';')
		self.assertEqual(r.get_array_delimiter(pg_types.INT4ARRAYOID), ',')
		self.assertEqual(r.get_array_delimiter(pg_types.UNSPECIFIED), ',')

	def test_sql_types(self):
		r = self.reg
		self.assertEqual(r.get_sql_type(pg_types.INT2OID), SQLTypes.SMALLINT)
		self.assertEqual(r.get_sql_type('varchar'), SQLTypes.VARCHAR)
		self.assertEqual(r.get_sql_type('unheard_of'), SQLTypes.OTHER)
		self.assertEqual(r.get_sql_type(99999), SQLTypes.OTHER)

	def test_aliases(self):
		r = self.reg
		self.assertEqual(r.get_type_for_alias('INTEGER'), 'int4')
		self.assertEqual(r.get_type_for_alias('"INTEGER"'), '"INTEGER"')
		self.assertEqual(r.get_type_for_alias('mytype'), 'mytype')
		self.assertEqual(r.get_type_for_alias(None), None)

	def test_signed_and_case(self):
		r = self.reg
		self.assertTrue(r.is_signed(pg_types.NUMERICOID))
		self.assertFalse(r.is_signed(pg_types.TEXTOID))
		self.assertTrue(r.is_signed(pg_types.INT4ARRAYOID))
		self.assertTrue(r.is_case_sensitive(pg_types.TEXTOID))
		self.assertFalse(r.is_case_sensitive(pg_types.INT8OID))

	def test_fetch(self):
		calls = []
		def fetch(oid):
			calls.append(oid)
			if oid == 50000:
				return ('hstore', 0, None, SQLTypes.OTHER)
			if oid == 50001:
				return ('_hstore', 50000, ';', None)
			return None
		r = TypeRegistry(fetch = fetch)
		self.assertEqual(r.get_pg_type(50000), 'hstore')
		# remembered
		self.assertEqual(r.get_pg_type(50000), 'hstore')
		self.assertEqual(calls, [50000])
		self.assertEqual(r.get_pg_array_element(50001), 50000)
		self.assertEqual(r.get_array_delimiter(50001), ';')
		self.assertEqual(r.get_sql_type(50001), SQLTypes.ARRAY)
		self.assertEqual(r.get_pg_type(50002), None)

class test_typmod(unittest.TestCase):
	def setUp(self):
		self.reg = TypeRegistry(unknown_length = 1000)

	def test_numeric(self):
		r = self.reg
		self.assertEqual(r.get_precision(pg_types.NUMERICOID, typmod(10, 2)), 10)
		self.assertEqual(r.get_scale(pg_types.NUMERICOID, typmod(10, 2)), 2)
		self.assertEqual(r.get_display_size(pg_types.NUMERICOID, typmod(10, 2)), 12)
		self.assertEqual(r.get_display_size(pg_types.NUMERICOID, typmod(10, 0)), 11)
		self.assertEqual(r.get_precision(pg_types.NUMERICOID, -1), 0)
		self.assertEqual(r.get_scale(pg_types.NUMERICOID, -1), 0)
		self.assertEqual(r.get_display_size(pg_types.NUMERICOID, -1), 131089)

	def test_character(self):
		r = self.reg
		self.assertEqual(r.get_precision(pg_types.VARCHAROID, 24), 20)
		self.assertEqual(r.get_display_size(pg_types.BPCHAROID, 14), 10)
		# unknown lengths
		self.assertEqual(r.get_precision(pg_types.VARCHAROID, -1), 1000)
		self.assertEqual(r.get_display_size(pg_types.TEXTOID, -1), 1000)
		self.assertEqual(r.get_precision(pg_types.TEXTOID, -1), 1000)

	def test_datetime(self):
		r = self.reg
		self.assertEqual(r.get_scale(pg_types.TIMESTAMPOID, -1), 6)
		self.assertEqual(r.get_scale(pg_types.TIMESTAMPOID, 3), 3)
		# 'hh:mm:ss' plus '.nnnnnn'
		self.assertEqual(r.get_display_size(pg_types.TIMEOID, -1), 15)
		self.assertEqual(r.get_display_size(pg_types.TIMEOID, 0), 8)
		# time(1) still shows two digits
		self.assertEqual(r.get_display_size(pg_types.TIMEOID, 1), 11)
		self.assertEqual(r.get_display_size(pg_types.TIMESTAMPTZOID, 3), 13 + 1 + 8 + 6 + 4)
		self.assertEqual(r.get_precision(pg_types.DATEOID, -1), 13)
		self.assertEqual(r.get_scale(pg_types.INTERVALOID, -1), 6)

	def test_fixed(self):
		r = self.reg
		self.assertEqual(r.get_precision(pg_types.INT2OID, -1), 5)
		self.assertEqual(r.get_precision(pg_types.INT8OID, -1), 19)
		self.assertEqual(r.get_display_size(pg_types.INT4OID, -1), 11)
		self.assertEqual(r.get_scale(pg_types.FLOAT8OID, -1), 17)
		self.assertEqual(r.get_precision(pg_types.BOOLOID, -1), 1)

	def test_bits(self):
		r = self.reg
		self.assertEqual(r.get_precision(pg_types.BITOID, 8), 8)
		self.assertEqual(r.get_precision(pg_types.VARBITOID, -1), 1000)

	def test_maximum_precision(self):
		r = self.reg
		self.assertEqual(r.get_maximum_precision(pg_types.NUMERICOID), 1000)
		self.assertEqual(r.get_maximum_precision(pg_types.VARCHAROID), 10485760)
		self.assertEqual(r.get_maximum_precision(pg_types.TIMEOID), 6)
		self.assertEqual(r.get_maximum_precision(pg_types.INT4OID), 0)

class test_conversion(unittest.TestCase):
	def setUp(self):
		self.reg = TypeRegistry()

	def test_core(self):
		n = self.reg.to_native
		self.assertEqual(n(pg_types.INT4OID, '42'), 42)
		self.assertEqual(n('numeric', '1.50'), decimal.Decimal('1.50'))
		self.assertEqual(n(pg_types.BOOLOID, 't'), True)
		self.assertEqual(n(pg_types.BOOLOID, 'f'), False)
		self.assertEqual(n(pg_types.TEXTOID, 'x'), 'x')
		self.assertEqual(n(pg_types.INT4OID, None), None)
		self.assertEqual(n(pg_types.DATEOID, '2009-01-03'), datetime.date(2009, 1, 3))

	def test_timestamptz(self):
		v = self.reg.to_native(pg_types.TIMESTAMPTZOID, '2009-01-03 16:53:00-07')
		self.assertEqual(v.utcoffset(), datetime.timedelta(hours = -7))

	def test_bytea(self):
		self.assertEqual(bytea_from_text('\\x00ff'), b'\x00\xff')
		self.assertEqual(bytea_from_text('a\\000\\\\b'), b'a\x00\\b')

	def test_untyped(self):
		v = self.reg.to_native(pg_types.POINTOID, '(1,2)')
		self.assertIsInstance(v, UntypedValue)
		self.assertEqual(v.type_name, 'point')
		self.assertEqual(str(v), '(1,2)')

	def test_factory(self):
		self.reg.add_data_type('point', lambda name, text: tuple(
			float(x) for x in text.strip('()').split(',')
		))
		self.assertEqual(self.reg.to_native(pg_types.POINTOID, '(1,2)'), (1.0, 2.0))

if __name__ == '__main__':
	unittest.main()
