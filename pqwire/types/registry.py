##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
OID keyed registry of the types a session knows about.

The registry is seeded with the core types, each of which also registers its
array type under both the "name[]" and "_name" spellings. Types the registry
does not know are resolved through an optional `fetch` callable, normally a
catalog query issued by the connection::

	fetch(oid) -> (name, array_element_oid, delimiter, sql_type)

Text values are converted to Python objects by `to_native`. Values of types
that have neither a registered factory nor a core conversion are returned as
`UntypedValue` instances.
"""
import datetime
import decimal
import re

from . import SQLTypes
from .. import types as pg_types

class UntypedValue(tuple):
	'UntypedValue(type_name, text)'
	__slots__ = ()

	def __new__(typ, type_name, text):
		return tuple.__new__(typ, (type_name, text))

	type_name = property(lambda self: self[0])
	text = property(lambda self: self[1])

	def __str__(self):
		return self[1]

	def __repr__(self):
		return '%s.%s(%r, %r)' %(
			type(self).__module__, type(self).__name__, self[0], self[1]
		)

##
# Text input conversions.
def bool_from_text(text):
	return text in ('t', 'true', '1', 'y', 'yes', 'on')

def money_from_text(text):
	# Strip the currency symbol and the group separators.
	neg = text.startswith('-') or text.startswith('(')
	v = float(''.join([c for c in text if c.isdigit() or c == '.']))
	return -v if neg else v

def bytea_from_text(text):
	"""
	Decode the hex ("\\x..."), or the escape format of a bytea value.
	"""
	if text.startswith('\\x'):
		return bytes.fromhex(text[2:])
	out = bytearray()
	i = 0
	end = len(text)
	while i < end:
		c = text[i]
		if c == '\\':
			if text[i+1:i+2] == '\\':
				out.append(0x5C)
				i += 2
			else:
				out.append(int(text[i+1:i+4], 8))
				i += 4
		else:
			out += c.encode('latin-1')
			i += 1
	return bytes(out)

def bit_from_text(text):
	return text == '1'

_offset_re = re.compile(r'([+-]\d\d)(:?\d\d)?(:?\d\d)?$')

def _normalize_offset(text):
	# Python wants "+HH:MM" where the server may send "+HH".
	m = _offset_re.search(text)
	if m is None:
		return text
	hh, mm, ss = m.groups()
	return text[:m.start()] + hh + ':' + (mm or '00').lstrip(':') + (
		(':' + ss.lstrip(':')) if ss else ''
	)

def date_from_text(text):
	return datetime.date.fromisoformat(text)

def time_from_text(text):
	return datetime.time.fromisoformat(text)

def timetz_from_text(text):
	return datetime.time.fromisoformat(_normalize_offset(text))

def timestamp_from_text(text):
	return datetime.datetime.fromisoformat(text)

def timestamptz_from_text(text):
	return datetime.datetime.fromisoformat(_normalize_offset(text))

core_types = (
	# name, oid, sql type, native conversion, array oid
	('int2', pg_types.INT2OID, SQLTypes.SMALLINT, int, pg_types.INT2ARRAYOID),
	('int4', pg_types.INT4OID, SQLTypes.INTEGER, int, pg_types.INT4ARRAYOID),
	('oid', pg_types.OIDOID, SQLTypes.BIGINT, int, pg_types.OIDARRAYOID),
	('int8', pg_types.INT8OID, SQLTypes.BIGINT, int, pg_types.INT8ARRAYOID),
	('money', pg_types.CASHOID, SQLTypes.DOUBLE, money_from_text, pg_types.CASHARRAYOID),
	('numeric', pg_types.NUMERICOID, SQLTypes.NUMERIC, decimal.Decimal, pg_types.NUMERICARRAYOID),
	('float4', pg_types.FLOAT4OID, SQLTypes.REAL, float, pg_types.FLOAT4ARRAYOID),
	('float8', pg_types.FLOAT8OID, SQLTypes.DOUBLE, float, pg_types.FLOAT8ARRAYOID),
	('char', pg_types.CHAROID, SQLTypes.CHAR, str, pg_types.CHARARRAYOID),
	('bpchar', pg_types.BPCHAROID, SQLTypes.CHAR, str, pg_types.BPCHARARRAYOID),
	('varchar', pg_types.VARCHAROID, SQLTypes.VARCHAR, str, pg_types.VARCHARARRAYOID),
	('text', pg_types.TEXTOID, SQLTypes.VARCHAR, str, pg_types.TEXTARRAYOID),
	('name', pg_types.NAMEOID, SQLTypes.VARCHAR, str, pg_types.NAMEARRAYOID),
	('bytea', pg_types.BYTEAOID, SQLTypes.BINARY, bytea_from_text, pg_types.BYTEAARRAYOID),
	('bool', pg_types.BOOLOID, SQLTypes.BIT, bool_from_text, pg_types.BOOLARRAYOID),
	('bit', pg_types.BITOID, SQLTypes.BIT, bit_from_text, pg_types.BITARRAYOID),
	('date', pg_types.DATEOID, SQLTypes.DATE, date_from_text, pg_types.DATEARRAYOID),
	('time', pg_types.TIMEOID, SQLTypes.TIME, time_from_text, pg_types.TIMEARRAYOID),
	('timetz', pg_types.TIMETZOID, SQLTypes.TIME, timetz_from_text, pg_types.TIMETZARRAYOID),
	('timestamp', pg_types.TIMESTAMPOID, SQLTypes.TIMESTAMP, timestamp_from_text, pg_types.TIMESTAMPARRAYOID),
	('timestamptz', pg_types.TIMESTAMPTZOID, SQLTypes.TIMESTAMP, timestamptz_from_text, pg_types.TIMESTAMPTZARRAYOID),
	('refcursor', pg_types.REFCURSOROID, SQLTypes.REF_CURSOR, None, pg_types.REFCURSORARRAYOID),
	('json', pg_types.JSONOID, SQLTypes.OTHER, None, pg_types.JSONARRAYOID),
)

# Geometric types with no native conversion; box arrays use ';'.
geometric_types = (
	('point', pg_types.POINTOID, SQLTypes.OTHER, None, pg_types.POINTARRAYOID, ','),
	('box', pg_types.BOXOID, SQLTypes.OTHER, None, pg_types.BOXARRAYOID, ';'),
)

type_aliases = {
	'smallint' : 'int2',
	'integer' : 'int4',
	'int' : 'int4',
	'bigint' : 'int8',
	'float' : 'float8',
	'boolean' : 'bool',
	'decimal' : 'numeric',
}

signed_types = frozenset((
	pg_types.INT2OID, pg_types.INT4OID, pg_types.INT8OID,
	pg_types.FLOAT4OID, pg_types.FLOAT8OID, pg_types.NUMERICOID,
))

case_insensitive_types = frozenset((
	pg_types.OIDOID, pg_types.INT2OID, pg_types.INT4OID, pg_types.INT8OID,
	pg_types.FLOAT4OID, pg_types.FLOAT8OID, pg_types.NUMERICOID,
	pg_types.BOOLOID, pg_types.BITOID, pg_types.VARBITOID,
	pg_types.DATEOID, pg_types.TIMEOID, pg_types.TIMETZOID,
	pg_types.TIMESTAMPOID, pg_types.TIMESTAMPTZOID, pg_types.INTERVALOID,
))

datetime_types = frozenset((
	pg_types.TIMEOID, pg_types.TIMETZOID,
	pg_types.TIMESTAMPOID, pg_types.TIMESTAMPTZOID,
))

# Width of the datetime values without the fractional seconds.
datetime_base_width = {
	pg_types.TIMEOID : 8,
	pg_types.TIMETZOID : 8 + 6,
	pg_types.TIMESTAMPOID : 13 + 1 + 8,
	pg_types.TIMESTAMPTZOID : 13 + 1 + 8 + 6,
}

fixed_display_size = {
	pg_types.INT2OID : 6,
	pg_types.INT4OID : 11,
	pg_types.OIDOID : 10,
	pg_types.INT8OID : 20,
	pg_types.FLOAT4OID : 15,
	pg_types.FLOAT8OID : 25,
	pg_types.CHAROID : 1,
	pg_types.BOOLOID : 1,
	pg_types.DATEOID : 13,
	pg_types.INTERVALOID : 49,
}

def second_precision_width(typmod):
	'Characters used by the fractional seconds, including the point'
	if typmod == -1:
		return 6 + 1
	elif typmod == 0:
		return 0
	elif typmod == 1:
		# time(1) is displayed with two digits.
		return 2 + 1
	return typmod + 1

class TypeRegistry(object):
	"""
	TypeRegistry(unknown_length = 2**31 - 1, fetch = None)

	`unknown_length` is reported as the precision and display size of values
	whose length can not be determined from the type modifier.
	"""

	def __init__(self, unknown_length = 2**31 - 1, fetch = None):
		self.unknown_length = unknown_length
		self.fetch = fetch
		self._oid_to_name = {}
		self._name_to_oid = {}
		self._oid_to_sql_type = {}
		self._name_to_sql_type = {}
		self._natives = {}
		self._array_to_element = {}
		self._delimiters = {}
		self._factories = {}

		for name, oid, sql_type, native, array_oid in core_types:
			self.add_core_type(name, oid, sql_type, native, array_oid)
		for name, oid, sql_type, native, array_oid, delim in geometric_types:
			self.add_core_type(name, oid, sql_type, native, array_oid, delimiter = delim)

	def add_core_type(self, name, oid, sql_type, native, array_oid, delimiter = ','):
		self._oid_to_name[oid] = name
		self._name_to_oid[name] = oid
		self._oid_to_sql_type[oid] = sql_type
		self._name_to_sql_type[name] = sql_type
		self._natives[oid] = native

		self._array_to_element[array_oid] = oid
		self._delimiters[array_oid] = delimiter
		self._oid_to_sql_type[array_oid] = SQLTypes.ARRAY

		array_name = name + '[]'
		self._name_to_oid[array_name] = array_oid
		self._name_to_sql_type[array_name] = SQLTypes.ARRAY

		array_name = '_' + name
		if array_name not in self._name_to_oid:
			self._name_to_oid[array_name] = array_oid
			self._name_to_sql_type[array_name] = SQLTypes.ARRAY
			self._oid_to_name[array_oid] = array_name

	def add_data_type(self, name, factory):
		"""
		Convert values of the type `name` with ``factory(name, text)``. Factories
		take precedence over the core conversions.
		"""
		self._factories[name] = factory

	def _resolve(self, oid):
		'Ask `fetch` about an unknown type and remember the answer'
		if self.fetch is None or oid == pg_types.UNSPECIFIED:
			return None
		info = self.fetch(oid)
		if info is None:
			return None
		name, element_oid, delimiter, sql_type = info
		self._oid_to_name[oid] = name
		self._name_to_oid.setdefault(name, oid)
		if element_oid:
			self._array_to_element[oid] = element_oid
			self._delimiters[oid] = delimiter or ','
			sql_type = SQLTypes.ARRAY
		self._oid_to_sql_type[oid] = sql_type
		self._name_to_sql_type.setdefault(name, sql_type)
		return name

	def get_pg_type(self, oid):
		'The name of the type identified by `oid`; `None` when unknown'
		name = self._oid_to_name.get(oid)
		if name is None:
			name = self._resolve(oid)
		return name

	def get_pg_type_oid(self, name):
		return self._name_to_oid.get(name, pg_types.UNSPECIFIED)

	def get_sql_type(self, oid_or_name):
		if isinstance(oid_or_name, str):
			return self._name_to_sql_type.get(oid_or_name, SQLTypes.OTHER)
		sql_type = self._oid_to_sql_type.get(oid_or_name)
		if sql_type is None:
			if self._resolve(oid_or_name) is None:
				return SQLTypes.OTHER
			sql_type = self._oid_to_sql_type[oid_or_name]
		return sql_type

	def get_pg_array_element(self, oid):
		if oid == pg_types.UNSPECIFIED:
			return pg_types.UNSPECIFIED
		element = self._array_to_element.get(oid)
		if element is None and oid not in self._oid_to_name:
			self._resolve(oid)
			element = self._array_to_element.get(oid)
		return pg_types.UNSPECIFIED if element is None else element

	def get_pg_array_type(self, element_name):
		element_name = self.get_type_for_alias(element_name)
		return self.get_pg_type_oid(element_name + '[]')

	def get_array_delimiter(self, oid):
		if oid == pg_types.UNSPECIFIED:
			return ','
		delim = self._delimiters.get(oid)
		if delim is None:
			self.get_pg_array_element(oid)
			delim = self._delimiters.get(oid, ',')
		return delim

	def get_type_for_alias(self, alias):
		if alias is None:
			return None
		name = type_aliases.get(alias)
		if name is None and '"' not in alias:
			name = type_aliases.get(alias.lower())
		return alias if name is None else name

	def _base_oid(self, oid):
		return self._array_to_element.get(oid, oid)

	def is_signed(self, oid):
		return self._base_oid(oid) in signed_types

	def is_case_sensitive(self, oid):
		return self._base_oid(oid) not in case_insensitive_types

	def get_precision(self, oid, typmod):
		oid = self._base_oid(oid)
		if oid == pg_types.INT2OID:
			return 5
		elif oid in (pg_types.OIDOID, pg_types.INT4OID):
			return 10
		elif oid == pg_types.INT8OID:
			return 19
		elif oid == pg_types.FLOAT4OID:
			return 8
		elif oid == pg_types.FLOAT8OID:
			return 17
		elif oid == pg_types.NUMERICOID:
			if typmod == -1:
				return 0
			return ((typmod - 4) & 0xFFFF0000) >> 16
		elif oid in (pg_types.CHAROID, pg_types.BOOLOID):
			return 1
		elif oid in (pg_types.BPCHAROID, pg_types.VARCHAROID):
			if typmod == -1:
				return self.unknown_length
			return typmod - 4
		elif oid in datetime_types or oid in (pg_types.DATEOID, pg_types.INTERVALOID):
			return self.get_display_size(oid, typmod)
		elif oid == pg_types.BITOID:
			return typmod
		elif oid == pg_types.VARBITOID:
			if typmod == -1:
				return self.unknown_length
			return typmod
		return self.unknown_length

	def get_scale(self, oid, typmod):
		oid = self._base_oid(oid)
		if oid == pg_types.FLOAT4OID:
			return 8
		elif oid == pg_types.FLOAT8OID:
			return 17
		elif oid == pg_types.NUMERICOID:
			if typmod == -1:
				return 0
			return (typmod - 4) & 0xFFFF
		elif oid in datetime_types:
			if typmod == -1:
				return 6
			return typmod
		elif oid == pg_types.INTERVALOID:
			if typmod == -1:
				return 6
			return typmod & 0xFFFF
		return 0

	def get_display_size(self, oid, typmod):
		oid = self._base_oid(oid)
		size = fixed_display_size.get(oid)
		if size is not None:
			return size
		elif oid in datetime_types:
			return datetime_base_width[oid] + second_precision_width(typmod)
		elif oid in (pg_types.VARCHAROID, pg_types.BPCHAROID):
			if typmod == -1:
				return self.unknown_length
			return typmod - 4
		elif oid == pg_types.NUMERICOID:
			if typmod == -1:
				return 131089
			precision = ((typmod - 4) >> 16) & 0xFFFF
			scale = (typmod - 4) & 0xFFFF
			# sign, digits, and the decimal point when there is a scale
			return 1 + precision + (1 if scale else 0)
		elif oid == pg_types.BITOID:
			return typmod
		elif oid == pg_types.VARBITOID:
			if typmod == -1:
				return self.unknown_length
			return typmod
		return self.unknown_length

	def get_maximum_precision(self, oid):
		oid = self._base_oid(oid)
		if oid == pg_types.NUMERICOID:
			return 1000
		elif oid in datetime_types or oid == pg_types.INTERVALOID:
			return 6
		elif oid in (pg_types.BPCHAROID, pg_types.VARCHAROID):
			return 10485760
		elif oid in (pg_types.BITOID, pg_types.VARBITOID):
			return 83886080
		return 0

	def to_native(self, oid_or_name, text):
		"""
		Convert the text representation of a value. `None`, SQL NULL, is returned
		as is.
		"""
		if text is None:
			return None
		if isinstance(oid_or_name, str):
			name = oid_or_name
			oid = self._name_to_oid.get(name)
		else:
			oid = oid_or_name
			name = self.get_pg_type(oid)

		factory = self._factories.get(name)
		if factory is not None:
			return factory(name, text)

		native = self._natives.get(oid)
		if native is not None:
			return native(text)
		return UntypedValue(name, text)
