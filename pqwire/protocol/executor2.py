##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Protocol version 2.0 query execution.

The legacy protocol has no extended query messages: parameters are written
into the query text as literals and the whole text is sent in one Query
message. Backend messages carry no length word and are read field by field.
The transaction status is tracked from the BEGIN, COMMIT and ROLLBACK command
statuses.
"""
import io
import structlog

from .. import exceptions as pg_exc
from . import element2 as element
from . import query as pg_query
from .query import \
	SUPPRESS_BEGIN, DESCRIBE_ONLY, BOTH_ROWS_AND_STATUS, BinaryFormat
from .session import IDLE, OPEN, FAILED

logger = structlog.get_logger(__name__)

class Executor2(object):
	'Executor2(session)'

	def __init__(self, session):
		self.session = session
		self.capability = object()

	def __repr__(self):
		return '<%s.%s %r>' %(
			type(self).__module__, type(self).__name__, self.session
		)

	@property
	def stream(self):
		return self.session.stream

	def create_simple_query(self, sql):
		return pg_query.compile_query(sql, self.capability, False)

	def create_parameterized_query(self, sql):
		return pg_query.compile_query(sql, self.capability, True)

	def create_parameter_list(self, query):
		return query.create_parameter_list()

	def create_fastpath_parameters(self, count):
		return pg_query.ParameterList(count)

	def _check_owner(self, query):
		if query.owner is not self.capability:
			raise pg_exc.UnsupportedOperationError(
				"query was not created by this executor",
				details = {'query' : repr(query)}
			)

	##
	# Sending
	def _write_query(self, writer, query, params):
		scs = self.session.standard_conforming_strings
		if query.subqueries is None:
			parts = [(query, params)]
		else:
			subparams = params.subparams()
			if subparams is None:
				subparams = [pg_query.NO_PARAMETERS] * len(query.subqueries)
			parts = zip(query.subqueries, subparams)

		first = True
		for sub, p in parts:
			if not first:
				writer.write(';')
			first = False
			fragments = sub.fragments
			for i, fragment in enumerate(fragments):
				writer.write(fragment)
				if i < len(p):
					writer.write(p.v2_text(i + 1, scs))

	def _send_query(self, query, params, prefix = None):
		buf = io.BytesIO()
		writer = self.session.encoding.writer(buf)
		try:
			if prefix is not None:
				writer.write(prefix)
			self._write_query(writer, query, params)
		except UnicodeError as err:
			raise pg_exc.EncodingError(
				"could not encode query using %s" %(self.session.encoding.name,),
				details = {'detail' : str(err)}
			) from err
		data = buf.getvalue()
		logger.debug("FE=> Query", prefix = prefix, size = len(data))
		self.stream.send(element.Query(data).bytes())
		self.stream.flush()

	##
	# Operations
	def _execute(self, query, params, handler, max_rows, flags):
		if params is None:
			params = query.create_parameter_list()
		try:
			params.check_all_set()
			if len(params) != query.parameter_count:
				raise pg_exc.BindMismatchError(
					"query takes %d parameters, %d given" %(
						query.parameter_count, len(params)
					),
				)
		except pg_exc.BindMismatchError as err:
			handler.handle_error(err)
			return

		prefix = None
		if self.session.transaction_status == IDLE and not flags & SUPPRESS_BEGIN:
			prefix = 'BEGIN;'
			handler = pg_query.BeginInterceptingResultHandler(handler)

		try:
			self._send_query(query, params, prefix)
			self.process_results(query, handler, max_rows, flags)
		except (pg_exc.TransportError, pg_exc.ProtocolSyntaxError) as err:
			self.session.abort(err)
			handler.handle_error(err)

	def execute(self, query, params, handler,
		max_rows = 0, fetch_size = 0, flags = 0
	):
		"""
		Run `query` with its parameters inlined. `fetch_size` is ignored; the
		legacy protocol always returns every row. With `DESCRIBE_ONLY`, nothing
		is sent as the legacy protocol can not describe without executing.
		"""
		self.session.check_usable()
		self._check_owner(query)
		if not flags & DESCRIBE_ONLY:
			self._execute(query, params, handler, max_rows, flags)
		handler.handle_completion()

	def execute_batch(self, queries, parameter_lists, handler,
		max_rows = 0, fetch_size = 0, flags = 0
	):
		'Run the queries one at a time'
		self.session.check_usable()
		for q in queries:
			self._check_owner(q)
		if parameter_lists is None:
			parameter_lists = [None] * len(queries)
		if not flags & DESCRIBE_ONLY:
			for query, params in zip(queries, parameter_lists):
				self._execute(query, params, handler, max_rows, flags)
				if self.session.closed:
					break
		handler.handle_completion()

	def fetch(self, cursor, handler, fetch_size = 0):
		raise pg_exc.UnsupportedOperationError(
			"cursor based fetches are not supported by protocol 2.0"
		)

	def start_copy(self, sql, suppress_begin = False):
		raise pg_exc.UnsupportedOperationError(
			"COPY is not supported by protocol 2.0"
		)

	def fastpath_call(self, fnid, params, suppress_begin = False):
		"""
		Call the function with the oid `fnid` and return its binary result, or
		`None` for a void result.
		"""
		self.session.check_usable()
		params.check_all_set()
		args = []
		for i in range(1, len(params) + 1):
			if params.is_null(i):
				raise pg_exc.UnsupportedOperationError(
					"NULL fastpath arguments are not supported by protocol 2.0",
					details = {'index' : i}
				)
			args.append(params.v3_value(i, self.session.encoding))

		try:
			if not suppress_begin and self.session.transaction_status == IDLE:
				handler = pg_query.BeginResultHandler(self.session)
				begin = pg_query.SimpleQuery(('BEGIN',), self.capability)
				self._send_query(begin, pg_query.NO_PARAMETERS)
				self.process_results(begin, handler, 0, 0)
				handler.handle_completion()

			logger.debug("FE=> FunctionCall", oid = fnid, nargs = len(args))
			self.stream.send(element.Function(fnid, args).bytes())
			self.stream.flush()
			return self._receive_fastpath_result()
		except (pg_exc.TransportError, pg_exc.ProtocolSyntaxError) as err:
			self.session.abort(err)
			raise

	def _receive_fastpath_result(self):
		stream = self.stream
		error = None
		result = None
		while True:
			c = stream.receive_char()
			if c == b'A':
				self._receive_notify()
			elif c == b'E':
				err = self._receive_error()
				if error is None:
					error = err
			elif c == b'N':
				self.session.add_warning(self._receive_notice())
			elif c == b'V':
				c = stream.receive_char()
				if c == b'G':
					length = stream.receive_integer4()
					result = stream.receive(length)
					c = stream.receive_char()
					logger.debug("BE<= FunctionResult", size = length)
				else:
					logger.debug("BE<= FunctionVoidResult")
				if c != b'0':
					raise pg_exc.ProtocolSyntaxError(
						"unknown response type in function result: %r" %(c,)
					)
			elif c == b'Z':
				logger.debug("BE<= ReadyForQuery")
				break
			else:
				raise pg_exc.ProtocolSyntaxError(
					"unknown response to a fastpath call: %r" %(c,)
				)
		if error is not None:
			raise error
		return result

	def process_notifies(self):
		"""
		Read the asynchronous messages that have already arrived. The legacy
		protocol only delivers them outside of transactions.
		"""
		self.session.check_usable()
		if self.session.transaction_status != IDLE:
			return
		stream = self.stream
		try:
			while stream.has_pending_data():
				c = stream.receive_char()
				if c == b'A':
					self._receive_notify()
				elif c == b'E':
					raise self._receive_error()
				elif c == b'N':
					self.session.add_warning(self._receive_notice())
				else:
					raise pg_exc.ProtocolSyntaxError(
						"unknown response type while waiting for notifications: %r" %(c,)
					)
		except (pg_exc.TransportError, pg_exc.ProtocolSyntaxError) as err:
			self.session.abort(err)
			raise

	##
	# Backend messages
	def _receive_notify(self):
		pid = self.stream.receive_integer4()
		name = self.stream.receive_string()
		logger.debug("BE<= AsyncNotify", pid = pid, name = name)
		self.session.add_notification(pg_query.Notification(name, pid))

	def _receive_error(self):
		msg = self.stream.receive_string().strip()
		logger.debug("BE<= ErrorResponse", message = msg)
		return pg_exc.server_error({'severity' : 'ERROR', 'message' : msg})

	def _receive_notice(self):
		msg = self.stream.receive_string()
		# Drop the severity so that the message matches the 3.0 field.
		msg = msg[msg.find(':') + 1:].strip()
		logger.debug("BE<= NoticeResponse", message = msg)
		return pg_exc.Warning(msg)

	def _receive_fields(self):
		stream = self.stream
		count = stream.receive_integer2()
		fields = []
		for i in range(count):
			name = stream.receive_string()
			oid = stream.receive_integer4() & 0xFFFFFFFF
			length = stream.receive_integer2()
			typmod = stream.receive_integer4()
			fields.append(pg_query.Field(
				name, oid, type_length = length, type_modifier = typmod
			))
		logger.debug("BE<= RowDescription", count = count)
		return fields

	def interpret_command_status(self, status, handler):
		update_count = 0
		insert_oid = 0
		if status == 'BEGIN':
			self.session.set_transaction_status(OPEN)
		elif status in ('COMMIT', 'ROLLBACK'):
			self.session.set_transaction_status(IDLE)
		elif status.startswith(('INSERT', 'UPDATE', 'DELETE', 'MOVE')):
			parts = status.split()
			try:
				update_count = int(parts[-1])
				if parts[0] == 'INSERT':
					insert_oid = int(parts[1])
			except (ValueError, IndexError):
				handler.handle_error(pg_exc.ProtocolSyntaxError(
					"unable to interpret the update count in command completion tag: %r" %(
						status,
					),
					details = {'status' : status}
				))
				return
		handler.handle_command_status(status, update_count, insert_oid)

	def process_results(self, query, handler, max_rows, flags):
		stream = self.stream
		both = flags & BOTH_ROWS_AND_STATUS
		fields = None
		tuples = None

		while True:
			c = stream.receive_char()

			if c == b'A':
				self._receive_notify()

			elif c in (b'B', b'D'):
				if fields is None:
					raise pg_exc.ProtocolSyntaxError("data transfer before field metadata")
				binary = c == b'B'
				row = stream.receive_row_v2(len(fields), binary)
				if binary:
					for f in fields:
						f.format = BinaryFormat
				if max_rows == 0 or len(tuples) < max_rows:
					tuples.append(row)

			elif c == b'C':
				status = stream.receive_string()
				logger.debug("BE<= CommandStatus", status = status)
				if fields is not None:
					handler.handle_result_rows(query, fields, tuples, None)
					fields = None
					tuples = None
					if both:
						self.interpret_command_status(status, handler)
				else:
					self.interpret_command_status(status, handler)

			elif c == b'E':
				handler.handle_error(self._receive_error())
				if self.session.transaction_status == OPEN:
					self.session.set_transaction_status(FAILED)

			elif c == b'I':
				logger.debug("BE<= EmptyQuery")
				c = stream.receive_char()
				if c != b'\x00':
					raise pg_exc.ProtocolSyntaxError(
						"expected \\0 after EmptyQuery, got %r" %(c,)
					)
				handler.handle_command_status('EMPTY', 0, 0)

			elif c == b'N':
				handler.handle_warning(self._receive_notice())

			elif c == b'P':
				name = stream.receive_string()
				logger.debug("BE<= PortalName", name = name)

			elif c == b'T':
				fields = self._receive_fields()
				tuples = []

			elif c == b'Z':
				logger.debug("BE<= ReadyForQuery")
				break

			else:
				raise pg_exc.ProtocolSyntaxError(
					"unexpected packet type: %r" %(c,)
				)
