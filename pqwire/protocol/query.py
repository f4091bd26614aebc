##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Compiled queries, their parameter lists, and the result handler interface used
by the executors.

`Query` objects are produced by an executor's `create_simple_query` and
`create_parameterized_query` and can only be run by that executor. The
statement a query was parsed into on the server, and the portals bound from it,
are closed automatically once the Python objects are collected, or explicitly
using their `close` methods.
"""
import weakref
from abc import ABCMeta, abstractmethod

from .. import exceptions as pg_exc
from .. import types as pg_types
from ..encodings import literal
from . import lexer

##
# Execution flags.
ONESHOT = 1
NO_METADATA = 2
NO_RESULTS = 4
FORWARD_CURSOR = 8
SUPPRESS_BEGIN = 16
DESCRIBE_ONLY = 32
BOTH_ROWS_AND_STATUS = 64
DISALLOW_BATCHING = 128
NO_BINARY_TRANSFER = 256

TextFormat = 0
BinaryFormat = 1

class Notification(tuple):
	'Notification(name, pid, payload)'
	__slots__ = ()

	def __new__(typ, name, pid, payload = ''):
		return tuple.__new__(typ, (name, pid, payload))

	name = property(lambda self: self[0])
	pid = property(lambda self: self[1])
	payload = property(lambda self: self[2])

	def __repr__(self):
		return '%s.%s(%r, %r, %r)' %(
			type(self).__module__, type(self).__name__,
			self[0], self[1], self[2],
		)

class Field(object):
	"""
	Description of a result column.
	"""
	__slots__ = (
		'name',
		'table_oid',
		'column_position',
		'type_oid',
		'type_length',
		'type_modifier',
		'format',
	)

	def __init__(self,
		name, type_oid,
		type_length = -1,
		type_modifier = -1,
		table_oid = 0,
		column_position = 0,
		format = TextFormat,
	):
		self.name = name
		self.type_oid = type_oid
		self.type_length = type_length
		self.type_modifier = type_modifier
		self.table_oid = table_oid
		self.column_position = column_position
		self.format = format

	def __repr__(self):
		return '%s.%s(%r, %r)' %(
			type(self).__module__, type(self).__name__,
			self.name, self.type_oid,
		)

	def __eq__(self, ob):
		return isinstance(ob, Field) and not False in (
			getattr(self, x) == getattr(ob, x) for x in self.__slots__
		)

	def __hash__(self):
		return hash(tuple([getattr(self, x) for x in self.__slots__]))

##
# Parameter slot kinds.
LITERAL = 'literal'
STRING = 'string'
BYTEA = 'bytea'
BINARY = 'binary'
NULL = 'null'

class Parameter(tuple):
	'Parameter(kind, value, oid)'
	__slots__ = ()

	def __new__(typ, kind, value, oid):
		return tuple.__new__(typ, (kind, value, oid))

	kind = property(lambda self: self[0])
	value = property(lambda self: self[1])
	oid = property(lambda self: self[2])

	@property
	def binary(self):
		return self[0] in (BYTEA, BINARY)

class ParameterList(object):
	"""
	ParameterList(count)

	Values bound to the placeholders of a query. Indexes are 1-based. A slot is
	unset until one of the `set_*` methods is called for it; executing a query
	with unset slots raises `pqwire.exceptions.BindMismatchError`.
	"""

	def __init__(self, count, offsets = ()):
		self._values = [None] * count
		# Boundaries of the statements of a composite query.
		self._offsets = tuple(offsets)

	def __len__(self):
		return len(self._values)

	def __repr__(self):
		return '<%s.%s %s>' %(
			type(self).__module__, type(self).__name__,
			', '.join([self.to_string(i) for i in range(1, len(self) + 1)])
		)

	def _check_index(self, index):
		if index < 1 or index > len(self._values):
			raise pg_exc.BindMismatchError(
				"parameter index %d is out of range, number of parameters: %d" %(
					index, len(self._values)
				),
				details = {'index' : index, 'count' : len(self._values)}
			)

	def _set(self, index, param):
		self._check_index(index)
		self._values[index - 1] = param

	def __getitem__(self, index):
		self._check_index(index)
		return self._values[index - 1]

	def set_literal(self, index, text, oid = pg_types.UNSPECIFIED):
		'Bind text that is already a valid SQL literal'
		self._set(index, Parameter(LITERAL, text, oid))

	def set_int(self, index, value):
		self._set(index, Parameter(LITERAL, str(int(value)), pg_types.INT4OID))

	def set_string(self, index, text, oid = pg_types.UNSPECIFIED):
		'Bind text that will be quoted as a string literal'
		if '\x00' in text:
			raise pg_exc.EncodingError(
				"zero bytes may not occur in string parameters",
				details = {'index' : index}
			)
		self._set(index, Parameter(STRING, text, oid))

	def set_bytea(self, index, data):
		self._set(index, Parameter(BYTEA, bytes(data), pg_types.BYTEAOID))

	def set_binary(self, index, data, oid):
		'Bind the binary representation of a value of the given type'
		self._set(index, Parameter(BINARY, bytes(data), oid))

	def set_null(self, index, oid = pg_types.UNSPECIFIED):
		self._set(index, Parameter(NULL, None, oid))

	def is_null(self, index):
		return self[index].kind == NULL

	def is_binary(self, index):
		return self[index].binary

	def type_oid(self, index):
		return self[index].oid

	def type_oids(self):
		return [
			pg_types.UNSPECIFIED if x is None else x.oid
			for x in self._values
		]

	def check_all_set(self):
		for i, x in enumerate(self._values):
			if x is None:
				raise pg_exc.BindMismatchError(
					"no value specified for parameter %d" %(i + 1,),
					details = {'index' : i + 1}
				)

	def v3_value(self, index, encoding):
		'The wire value of the parameter; `None` for NULL'
		p = self[index]
		if p.kind == NULL:
			return None
		if p.binary:
			return p.value
		return encoding.encode(p.value)

	def v2_text(self, index, standard_conforming_strings = False):
		'The parameter as inline SQL text'
		p = self[index]
		if p.kind == NULL:
			return 'NULL'
		elif p.kind == STRING:
			return literal.quote_literal(p.value, standard_conforming_strings)
		elif p.binary:
			return literal.quote_bytea(p.value, standard_conforming_strings)
		return p.value

	def to_string(self, index):
		p = self[index]
		if p is None:
			return '?'
		elif p.kind == NULL:
			return 'NULL'
		elif p.binary:
			return '<binary %d bytes>' %(len(p.value),)
		return repr(p.value)

	def subparams(self):
		"""
		Split the list into one list per statement of a composite query. `None`
		for a non-composite list.
		"""
		if not self._offsets:
			return None
		bounds = self._offsets + (len(self._values),)
		subs = []
		for i in range(len(self._offsets)):
			start, end = bounds[i], bounds[i + 1]
			sub = type(self)(end - start)
			sub._values[:] = self._values[start:end]
			subs.append(sub)
		return subs

	def copy(self):
		c = type(self)(len(self._values), self._offsets)
		c._values[:] = self._values
		return c

	def clear(self):
		self._values[:] = [None] * len(self._values)

NO_PARAMETERS = ParameterList(0)

class Query(object):
	"""
	A compiled statement. Only the executor that created the query, identified
	by the `owner` token, may run it.
	"""
	owner = None
	subqueries = None

	def create_parameter_list(self):
		raise NotImplementedError

	def close(self):
		pass

class SimpleQuery(Query):
	"""
	A single statement split into the text fragments that surround its
	placeholders.

	`parameter_types` and `fields` are filled in from the server's descriptions
	of the statement; the executor uses `fields` to pick result formats the next
	time the statement is bound.
	"""
	parameter_types = None
	fields = None

	def __init__(self, fragments, owner):
		self.fragments = tuple(fragments)
		self.owner = owner
		self.statement_name = None
		self._del = None
		self._garbage = None

	def __repr__(self):
		return '<%s.%s %r>' %(
			type(self).__module__, type(self).__name__, self.native_sql()
		)

	def __str__(self):
		return '?'.join(self.fragments)

	@property
	def parameter_count(self):
		return len(self.fragments) - 1

	def create_parameter_list(self):
		if self.parameter_count == 0:
			return NO_PARAMETERS
		return ParameterList(self.parameter_count)

	def native_sql(self):
		'The statement with "$n" style placeholders'
		parts = [self.fragments[0]]
		for i in range(1, len(self.fragments)):
			parts.append('$%d' %(i,))
			parts.append(self.fragments[i])
		return ''.join(parts)

	def to_string(self, params):
		parts = [self.fragments[0]]
		for i in range(1, len(self.fragments)):
			parts.append(params.to_string(i))
			parts.append(self.fragments[i])
		return ''.join(parts)

	def register(self, addgarbage):
		"""
		The statement named `statement_name` now exists on the server;
		`addgarbage` is called with the name once the query is closed or
		collected.
		"""
		name = self.statement_name
		if name is None:
			return
		self._garbage = addgarbage
		# Callback for closing the statement on the remote end.
		self._del = weakref.ref(self, lambda x: addgarbage(name))

	def unregister(self):
		'Forget a statement name that never made it to the server'
		self.statement_name = None
		self._del = None
		self._garbage = None

	def close(self):
		if self._del is not None:
			self._garbage(self.statement_name)
			# Don't need the weakref anymore.
			self._del = None
			self._garbage = None
		self.statement_name = None

class CompositeQuery(Query):
	'Several statements compiled from one text'

	def __init__(self, subqueries, offsets, owner):
		self.subqueries = tuple(subqueries)
		self.offsets = tuple(offsets)
		self.owner = owner

	def __repr__(self):
		return '<%s.%s %r>' %(
			type(self).__module__, type(self).__name__, str(self)
		)

	def __str__(self):
		return ';'.join([str(x) for x in self.subqueries])

	@property
	def parameter_count(self):
		return sum([x.parameter_count for x in self.subqueries])

	def create_parameter_list(self):
		return ParameterList(self.parameter_count, self.offsets)

	def close(self):
		for x in self.subqueries:
			x.close()

class Portal(object):
	"""
	A suspended portal on the server, returned to result handlers as the cursor
	of a partial result. `close` is advisory: the portal is closed before the
	next operation of the executor.
	"""
	def __init__(self, query, name):
		self.query = query
		self.name = name
		self.closed = False
		self._del = None
		self._garbage = None

	def __repr__(self):
		return '<%s.%s %s>' %(
			type(self).__module__, type(self).__name__, self.name
		)

	def register(self, addgarbage):
		name = self.name
		self._garbage = addgarbage
		# Callback for closing the portal on the remote end.
		self._del = weakref.ref(self, lambda x: addgarbage(name))

	def close(self):
		if self.closed is False and self._del is not None:
			self._garbage(self.name)
		self.closed = True
		self._del = None
		self._garbage = None

def compile_query(sql, owner, placeholders = True):
	"""
	Compile `sql` into a `SimpleQuery`, or a `CompositeQuery` when it holds more
	than one statement. Text without statements gives an empty query.
	"""
	statements = lexer.split(sql, placeholders)
	if not statements:
		return SimpleQuery(('',), owner)
	if len(statements) == 1:
		return SimpleQuery(statements[0], owner)
	subqueries = []
	offsets = []
	offset = 0
	for fragments in statements:
		q = SimpleQuery(fragments, owner)
		subqueries.append(q)
		offsets.append(offset)
		offset += q.parameter_count
	return CompositeQuery(subqueries, offsets, owner)

class ResultHandler(metaclass = ABCMeta):
	"""
	Receives the results of an execution in wire order: rows, command statuses
	and warnings, then exactly one call to `handle_completion`.
	"""

	@abstractmethod
	def handle_result_rows(self, query, fields, tuples, cursor):
		"""
		A set of rows. `cursor` is a `Portal` when more rows can be fetched.
		"""

	@abstractmethod
	def handle_command_status(self, status, update_count, insert_oid):
		pass

	@abstractmethod
	def handle_warning(self, warning):
		pass

	@abstractmethod
	def handle_error(self, error):
		pass

	@abstractmethod
	def handle_completion(self):
		pass

class DelegatingResultHandler(ResultHandler):
	'Forward everything to another handler'

	def __init__(self, delegate):
		self.delegate = delegate

	def handle_result_rows(self, query, fields, tuples, cursor):
		self.delegate.handle_result_rows(query, fields, tuples, cursor)

	def handle_command_status(self, status, update_count, insert_oid):
		self.delegate.handle_command_status(status, update_count, insert_oid)

	def handle_warning(self, warning):
		self.delegate.handle_warning(warning)

	def handle_error(self, error):
		self.delegate.handle_error(error)

	def handle_completion(self):
		self.delegate.handle_completion()

class ErrorTrackingResultHandler(DelegatingResultHandler):
	saw_error = False

	def handle_error(self, error):
		self.saw_error = True
		self.delegate.handle_error(error)

class BeginInterceptingResultHandler(DelegatingResultHandler):
	"""
	Swallow the results of the implicit BEGIN that precedes the first statement
	of a transaction.
	"""
	saw_begin = False

	def handle_result_rows(self, query, fields, tuples, cursor):
		if self.saw_begin:
			self.delegate.handle_result_rows(query, fields, tuples, cursor)

	def handle_command_status(self, status, update_count, insert_oid):
		if not self.saw_begin:
			self.saw_begin = True
			if status != 'BEGIN':
				self.handle_error(pg_exc.ProtocolSyntaxError(
					"expected command status BEGIN, got %r" %(status,),
					details = {'status' : status}
				))
		else:
			self.delegate.handle_command_status(status, update_count, insert_oid)

class CollectingResultHandler(ResultHandler):
	"""
	Keep everything. `results` holds ('rows', query, fields, tuples, cursor) and
	('status', status, update_count, insert_oid) entries in arrival order.
	`handle_completion` raises the first error.
	"""

	def __init__(self):
		self.results = []
		self.warnings = []
		self.errors = []
		self.completed = False

	def handle_result_rows(self, query, fields, tuples, cursor):
		self.results.append(('rows', query, fields, tuples, cursor))

	def handle_command_status(self, status, update_count, insert_oid):
		self.results.append(('status', status, update_count, insert_oid))

	def handle_warning(self, warning):
		self.warnings.append(warning)

	def handle_error(self, error):
		self.errors.append(error)

	def handle_completion(self):
		self.completed = True
		if self.errors:
			raise self.errors[0]

	def rows(self):
		'The tuples of every row set, concatenated'
		r = []
		for x in self.results:
			if x[0] == 'rows' and x[3] is not None:
				r.extend(x[3])
		return r

	def statuses(self):
		return [x[1:] for x in self.results if x[0] == 'status']

class BeginResultHandler(ResultHandler):
	'Check the results of a BEGIN sent on its own; warnings go to the session'

	def __init__(self, session):
		self.session = session
		self.error = None

	def handle_result_rows(self, query, fields, tuples, cursor):
		self.handle_error(pg_exc.ProtocolSyntaxError(
			"unexpected rows in response to BEGIN"
		))

	def handle_command_status(self, status, update_count, insert_oid):
		if status != 'BEGIN':
			self.handle_error(pg_exc.ProtocolSyntaxError(
				"expected command status BEGIN, got %r" %(status,),
				details = {'status' : status}
			))

	def handle_warning(self, warning):
		self.session.add_warning(warning)

	def handle_error(self, error):
		if self.error is None:
			self.error = error

	def handle_completion(self):
		if self.error is not None:
			raise self.error

