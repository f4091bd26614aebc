##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Protocol version 3.0 query execution.

`Executor3` drives the extended query protocol of a `Session`: it compiles SQL
into `Query` objects, sends Parse, Bind, Describe and Execute messages followed
by a Sync, and feeds the responses to a `ResultHandler` in the order they
arrive. Statements and portals are named on the server only when they are worth
keeping; names of collected objects are queued and closed at the start of the
next operation.
"""
import structlog

from .. import exceptions as pg_exc
from . import element3 as element
from . import query as pg_query
from .query import \
	ONESHOT, NO_METADATA, NO_RESULTS, FORWARD_CURSOR, \
	SUPPRESS_BEGIN, DESCRIBE_ONLY, BOTH_ROWS_AND_STATUS, DISALLOW_BATCHING, \
	NO_BINARY_TRANSFER
from .session import IDLE, transaction_states

logger = structlog.get_logger(__name__)

# Statements that can be sent before the responses must be read. Each is
# assumed to produce about 250 bytes of responses, and the server's send
# buffer is assumed to hold 64000 bytes.
MAX_BUFFERED_QUERIES = 64000 // 250

# Bind messages with a larger length word are rejected by the server.
MAX_BIND_LENGTH = 0x3fffffff

class FetchResultHandler(pg_query.DelegatingResultHandler):
	'Report a bare command status of a fetch as an empty set of rows'

	def __init__(self, delegate, portal):
		super().__init__(delegate)
		self.portal = portal

	def handle_command_status(self, status, update_count, insert_oid):
		self.handle_result_rows(self.portal.query, None, [], None)

class Executor3(object):
	"""
	Executor3(session)

	`on_allocation_failure` decides what happens to a row with a column that
	could not be allocated: 'raise' reports a `RowAllocationError` to the handler
	and drops the row, 'placeholder' keeps the row with `AllocationFailed` in
	place of the column.
	"""
	on_allocation_failure = 'raise'

	def __init__(self, session):
		self.session = session
		# Identifies the queries this executor created.
		self.capability = object()
		self.next_unique_id = 1

		self.garbage_statements = []
		self.garbage_portals = []

		self.pending_parse = []
		self.pending_bind = []
		self.pending_execute = []
		self.pending_describe = []

		self.begin_query = pg_query.SimpleQuery(('BEGIN',), self.capability)

	def __repr__(self):
		return '<%s.%s %r>' %(
			type(self).__module__, type(self).__name__, self.session
		)

	@property
	def stream(self):
		return self.session.stream

	def _unique_name(self, prefix):
		name = '%s_%d' %(prefix, self.next_unique_id)
		self.next_unique_id += 1
		return name

	def _add_garbage_statement(self, name):
		self.garbage_statements.append(name)

	def _add_garbage_portal(self, name):
		self.garbage_portals.append(name)

	##
	# Query compilation
	def create_simple_query(self, sql):
		'Compile `sql` without treating question marks as placeholders'
		return pg_query.compile_query(sql, self.capability, False)

	def create_parameterized_query(self, sql):
		'Compile `sql` with a placeholder for every unquoted question mark'
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
	# Frontend messages
	def _send(self, msg):
		self.stream.send(msg.bytes())

	def _send_sync(self):
		logger.debug("FE=> Sync")
		self._send(element.SynchronizeMessage)
		self.stream.flush()

	def _send_close_garbage(self):
		while self.garbage_statements:
			name = self.garbage_statements.pop(0)
			logger.debug("FE=> CloseStatement", statement = name)
			self._send(element.CloseStatement(name.encode('ascii')))
		while self.garbage_portals:
			name = self.garbage_portals.pop(0)
			logger.debug("FE=> ClosePortal", portal = name)
			self._send(element.ClosePortal(name.encode('ascii')))

	def _send_parse(self, query, params, one_shot):
		if query.statement_name is not None:
			# Already parsed.
			return
		name = None if one_shot else self._unique_name('S')
		sql = query.native_sql()
		logger.debug("FE=> Parse", statement = name, query = sql)
		self._send(element.Parse(
			b'' if name is None else name.encode('ascii'),
			self.session.encoding.encode(sql),
			params.type_oids(),
		))
		query.statement_name = name
		self.pending_parse.append(query)

	def _result_formats(self, query, flags):
		"""
		Result formats for the next Bind of `query`. Columns whose type is in the
		session's `binary_oids` are requested in binary once the statement has
		been described; otherwise the list is empty and every column is text.
		"""
		binary_oids = self.session.binary_oids
		if flags & NO_BINARY_TRANSFER or not binary_oids or not query.fields:
			return ()
		formats = [
			element.BinaryFormat if f.type_oid in binary_oids else element.StringFormat
			for f in query.fields
		]
		if element.BinaryFormat not in formats:
			return ()
		return formats

	def _send_bind(self, query, params, portal, flags = 0):
		count = len(params)
		aformats = []
		arguments = []
		for i in range(1, count + 1):
			aformats.append(
				element.BinaryFormat if params.is_binary(i) else element.StringFormat
			)
			arguments.append(params.v3_value(i, self.session.encoding))
		rformats = self._result_formats(query, flags)
		msg = element.Bind(
			b'' if portal is None else portal.name.encode('ascii'),
			b'' if query.statement_name is None else \
				query.statement_name.encode('ascii'),
			aformats, arguments, rformats,
		)
		size = msg.size()
		if size > MAX_BIND_LENGTH:
			raise pg_exc.BindMismatchError(
				"bind message length %d too long; this can be caused by very " \
				"large or incorrect length specifications on parameter values" %(size,),
				details = {'length' : size, 'maximum' : MAX_BIND_LENGTH}
			)
		logger.debug("FE=> Bind",
			statement = query.statement_name,
			portal = portal.name if portal is not None else None,
			binary = len([x for x in rformats if x == element.BinaryFormat]),
		)
		self._send(msg)
		self.pending_bind.append(portal)

	def _send_describe_portal(self, portal):
		logger.debug("FE=> DescribePortal")
		self._send(element.DescribePortal(
			b'' if portal is None else portal.name.encode('ascii')
		))

	def _send_describe_statement(self, query):
		logger.debug("FE=> DescribeStatement", statement = query.statement_name)
		self._send(element.DescribeStatement(
			b'' if query.statement_name is None else \
				query.statement_name.encode('ascii')
		))
		self.pending_describe.append(query)

	def _send_execute(self, query, portal, rows):
		logger.debug("FE=> Execute", rows = rows)
		self._send(element.Execute(
			b'' if portal is None else portal.name.encode('ascii'), rows
		))
		self.pending_execute.append((query, portal))

	def _send_one_query(self, query, params, max_rows, fetch_size, flags):
		if flags & DESCRIBE_ONLY:
			self._send_parse(query, params, bool(flags & ONESHOT))
			self._send_describe_statement(query)
			return

		params.check_all_set()

		no_results = flags & NO_RESULTS
		no_meta = flags & NO_METADATA
		use_portal = bool(flags & FORWARD_CURSOR) and not no_results \
			and not no_meta and fetch_size > 0
		one_shot = bool(flags & ONESHOT) and not use_portal

		if no_results:
			rows = 1
		elif not use_portal:
			rows = max_rows
		elif max_rows != 0 and fetch_size > max_rows:
			rows = max_rows
		else:
			rows = fetch_size

		self._send_parse(query, params, one_shot)

		portal = None
		if use_portal:
			portal = pg_query.Portal(query, self._unique_name('C'))
		self._send_bind(query, params, portal, flags)

		if not no_meta:
			self._send_describe_portal(portal)
		self._send_execute(query, portal, rows)

	def _send_query(self, query, params, max_rows, fetch_size, flags):
		if query.subqueries is None:
			if len(params) != query.parameter_count:
				raise pg_exc.BindMismatchError(
					"query takes %d parameters, %d given" %(
						query.parameter_count, len(params)
					),
				)
			self._send_one_query(query, params, max_rows, fetch_size, flags)
			return
		subparams = params.subparams()
		for i, sub in enumerate(query.subqueries):
			if subparams is None:
				p = pg_query.NO_PARAMETERS
			else:
				p = subparams[i]
			# Statements in the middle of a composite query must run to completion.
			if i + 1 < len(query.subqueries):
				self._send_one_query(sub, p, 0, 0, flags & ~FORWARD_CURSOR)
			else:
				self._send_one_query(sub, p, max_rows, fetch_size, flags)

	def _send_query_preamble(self, handler, flags):
		'Close the collected statements and portals; start a transaction if needed'
		self._send_close_garbage()
		if self.session.transaction_status != IDLE or \
		flags & (SUPPRESS_BEGIN | DESCRIBE_ONLY):
			return handler
		self._send_one_query(
			self.begin_query, pg_query.NO_PARAMETERS, 0, 0, NO_METADATA
		)
		return pg_query.BeginInterceptingResultHandler(handler)

	##
	# Operations
	def execute(self, query, params, handler,
		max_rows = 0, fetch_size = 0, flags = 0
	):
		"""
		Run `query` with `params`, delivering the results to `handler`, and always
		finishing with `handler.handle_completion()`.
		"""
		self.session.check_usable()
		self._check_owner(query)
		if params is None:
			params = query.create_parameter_list()

		try:
			handler = self._send_query_preamble(handler, flags)
			bind_error = None
			try:
				self._send_query(query, params, max_rows, fetch_size, flags)
			except pg_exc.BindMismatchError as err:
				bind_error = err
			self._send_sync()
			self.process_results(handler, flags)
			if bind_error is not None:
				handler.handle_error(bind_error)
		except (pg_exc.TransportError, pg_exc.ProtocolSyntaxError) as err:
			self.session.abort(err)
			handler.handle_error(err)

		handler.handle_completion()

	def execute_batch(self, queries, parameter_lists, handler,
		max_rows = 0, fetch_size = 0, flags = 0
	):
		"""
		Run each query with the corresponding parameter list. The server's
		responses are read after every `MAX_BUFFERED_QUERIES` statements, or
		after each statement when `DISALLOW_BATCHING` is given. The first error
		ends the batch.
		"""
		self.session.check_usable()
		for q in queries:
			self._check_owner(q)
		if parameter_lists is None:
			parameter_lists = [pg_query.NO_PARAMETERS] * len(queries)

		limit = 1 if flags & DISALLOW_BATCHING else MAX_BUFFERED_QUERIES
		try:
			handler = self._send_query_preamble(handler, flags)
			tracker = pg_query.ErrorTrackingResultHandler(handler)
			count = 0
			pending = True
			bind_error = None
			for query, params in zip(queries, parameter_lists):
				try:
					self._send_query(query, params, max_rows, fetch_size, flags)
				except pg_exc.BindMismatchError as err:
					bind_error = err
					# The Parse of the rejected query may already be buffered.
					pending = True
					break
				pending = True
				count += 1
				if count >= limit:
					self._send_sync()
					self.process_results(tracker, flags)
					count = 0
					pending = False
					if tracker.saw_error:
						break
			if pending:
				self._send_sync()
				self.process_results(tracker, flags)
			if bind_error is not None:
				tracker.handle_error(bind_error)
		except (pg_exc.TransportError, pg_exc.ProtocolSyntaxError) as err:
			self.session.abort(err)
			handler.handle_error(err)

		handler.handle_completion()

	def fetch(self, cursor, handler, fetch_size = 0):
		'Read up to `fetch_size` more rows from the suspended portal `cursor`'
		self.session.check_usable()
		self._check_owner(cursor.query)
		if fetch_size < 0:
			fetch_size = 0
		handler = FetchResultHandler(handler, cursor)
		try:
			self._send_close_garbage()
			self._send_execute(cursor.query, cursor, fetch_size)
			self._send_sync()
			self.process_results(handler, 0)
		except (pg_exc.TransportError, pg_exc.ProtocolSyntaxError) as err:
			self.session.abort(err)
			handler.handle_error(err)

		handler.handle_completion()

	def _begin_transaction(self):
		handler = pg_query.BeginResultHandler(self.session)
		self._send_close_garbage()
		self._send_one_query(
			self.begin_query, pg_query.NO_PARAMETERS, 0, 0, NO_METADATA
		)
		self._send_sync()
		self.process_results(handler, NO_METADATA)
		handler.handle_completion()

	def fastpath_call(self, fnid, params, suppress_begin = False):
		"""
		Call the function with the oid `fnid` using the FunctionCall message and
		return the binary result, `None` for NULL.
		"""
		self.session.check_usable()
		params.check_all_set()
		try:
			if not suppress_begin and self.session.transaction_status == IDLE:
				self._begin_transaction()

			aformats = []
			args = []
			for i in range(1, len(params) + 1):
				aformats.append(
					element.BinaryFormat if params.is_binary(i) else element.StringFormat
				)
				args.append(params.v3_value(i, self.session.encoding))
			logger.debug("FE=> FunctionCall", oid = fnid, nargs = len(args))
			self._send(element.Function(fnid, aformats, args, element.BinaryFormat))
			self.stream.flush()
			return self._receive_fastpath_result()
		except (pg_exc.TransportError, pg_exc.ProtocolSyntaxError) as err:
			self.session.abort(err)
			raise

	def _receive_fastpath_result(self):
		stream = self.stream
		decode = self.session.encoding.decode
		error = None
		result = None
		while True:
			c = stream.receive_char()
			length = stream.receive_integer4()
			body = stream.receive(length - 4)
			if c == b'A':
				self._receive_notify(body)
			elif c == b'E':
				err = pg_exc.server_error(element.Error.parse(body).decode(decode))
				logger.debug("BE<= ErrorResponse", code = err.code)
				if error is None:
					error = err
			elif c == b'N':
				self.session.add_warning(
					pg_exc.server_warning(element.Notice.parse(body).decode(decode))
				)
			elif c == b'S':
				self._receive_parameter(body)
			elif c == b'V':
				try:
					result = element.FunctionResult.parse(body).result
				except ValueError as err:
					raise pg_exc.ProtocolSyntaxError(str(err)) from err
				logger.debug("BE<= FunctionCallResponse",
					size = None if result is None else len(result)
				)
			elif c == b'Z':
				self._receive_ready(length, body)
				break
			else:
				raise pg_exc.ProtocolSyntaxError(
					"unknown response to a fastpath call: %r" %(c,)
				)
		if error is not None:
			raise error
		return result

	def start_copy(self, sql, suppress_begin = False):
		"""
		Start the COPY statement `sql`; returns a `copy3.CopyIn` or
		`copy3.CopyOut` operation that locks the session until it is ended or
		cancelled.
		"""
		from . import copy3
		self.session.check_usable()
		try:
			if not suppress_begin and self.session.transaction_status == IDLE:
				self._begin_transaction()
			logger.debug("FE=> Query", query = sql)
			self._send(element.Query(self.session.encoding.encode(sql)))
			self.stream.flush()
			return copy3.start(self, sql)
		except (pg_exc.TransportError, pg_exc.ProtocolSyntaxError) as err:
			self.session.abort(err)
			raise

	def process_notifies(self):
		"""
		Read the asynchronous messages that have already arrived, without
		blocking.
		"""
		self.session.check_usable()
		stream = self.stream
		decode = self.session.encoding.decode
		try:
			while stream.has_pending_data():
				c = stream.receive_char()
				length = stream.receive_integer4()
				body = stream.receive(length - 4)
				if c == b'A':
					self._receive_notify(body)
				elif c == b'N':
					self.session.add_warning(
						pg_exc.server_warning(element.Notice.parse(body).decode(decode))
					)
				elif c == b'S':
					self._receive_parameter(body)
				elif c == b'E':
					raise pg_exc.server_error(element.Error.parse(body).decode(decode))
				else:
					raise pg_exc.ProtocolSyntaxError(
						"unexpected packet type while waiting for notifications: %r" %(c,)
					)
		except (pg_exc.TransportError, pg_exc.ProtocolSyntaxError) as err:
			self.session.abort(err)
			raise

	##
	# Backend messages
	def _receive_notify(self, body):
		decode = self.session.encoding.decode
		try:
			msg = element.Notify.parse(body)
		except ValueError as err:
			raise pg_exc.ProtocolSyntaxError(str(err)) from err
		logger.debug("BE<= NotificationResponse", pid = msg.pid)
		self.session.add_notification(pg_query.Notification(
			decode(msg.relation), msg.pid, decode(msg.parameter)
		))

	def _receive_parameter(self, body):
		decode = self.session.encoding.decode
		try:
			opt = element.ShowOption.parse(body)
		except ValueError as err:
			raise pg_exc.ProtocolSyntaxError(str(err)) from err
		name, value = decode(opt.name), decode(opt.value)
		logger.debug("BE<= ParameterStatus", name = name, value = value)
		self.session.receive_parameter(name, value)

	def _receive_ready(self, length, body):
		if length != 5:
			raise pg_exc.ProtocolSyntaxError(
				"unexpected length of ReadyForQuery message: %d" %(length,)
			)
		status = transaction_states.get(body)
		if status is None:
			raise pg_exc.ProtocolSyntaxError(
				"unexpected transaction state in ReadyForQuery message: %r" %(body,)
			)
		logger.debug("BE<= ReadyForQuery", status = status)
		self.session.set_transaction_status(status)

	def _receive_fields(self, body):
		decode = self.session.encoding.decode
		try:
			desc = element.TupleDescriptor.parse(body)
		except (ValueError, IndexError) as err:
			raise pg_exc.ProtocolSyntaxError(
				"invalid RowDescription message", details = {'detail' : str(err)}
			) from err
		return [
			pg_query.Field(
				decode(name), typid,
				type_length = typlen,
				type_modifier = typmod,
				table_oid = relid,
				column_position = colnum,
				format = fmt,
			)
			for (name, relid, colnum, typid, typlen, typmod, fmt) in desc
		]

	def _receive_row(self, handler):
		try:
			return self.stream.receive_row(self.on_allocation_failure)
		except pg_exc.RowAllocationError as err:
			handler.handle_error(err)
			return None

	def interpret_command_status(self, status, handler):
		"""
		Report the CommandComplete `status` to the handler with the update count
		and, for INSERT, the oid of the inserted row.
		"""
		update_count = 0
		insert_oid = 0
		parts = status.split()
		if parts and parts[0] in (
			'INSERT', 'UPDATE', 'DELETE', 'MOVE', 'FETCH', 'COPY', 'SELECT'
		):
			try:
				if len(parts) > 1:
					update_count = int(parts[-1])
				if parts[0] == 'INSERT' and len(parts) > 2:
					insert_oid = int(parts[1])
			except ValueError:
				handler.handle_error(pg_exc.ProtocolSyntaxError(
					"unable to interpret the update count in command completion tag: %r" %(
						status,
					),
					details = {'status' : status}
				))
				return
		handler.handle_command_status(status, update_count, insert_oid)

	def process_results(self, handler, flags):
		"""
		Read the responses up to and including ReadyForQuery, dispatching them to
		`handler`.
		"""
		stream = self.stream
		decode = self.session.encoding.decode
		no_results = flags & NO_RESULTS
		both = flags & BOTH_ROWS_AND_STATUS

		fields = None
		tuples = None
		parse_index = 0
		execute_index = 0
		bind_index = 0

		while True:
			c = stream.receive_char()

			if c == b'D':
				# DataRow reads its own length.
				row = self._receive_row(handler)
				if no_results or row is None:
					continue
				if tuples is None:
					tuples = []
				tuples.append(row)
				continue

			length = stream.receive_integer4()
			if length < 4:
				raise pg_exc.ProtocolSyntaxError(
					"invalid message length %d" %(length,),
					details = {'type' : repr(c)}
				)
			body = stream.receive(length - 4)

			if c == b'A':
				self._receive_notify(body)

			elif c == b'1':
				logger.debug("BE<= ParseComplete")
				query = self.pending_parse[parse_index]
				parse_index += 1
				query.register(self._add_garbage_statement)

			elif c == b't':
				try:
					types = element.AttributeTypes.parse(body)
				except ValueError as err:
					raise pg_exc.ProtocolSyntaxError(str(err)) from err
				logger.debug("BE<= ParameterDescription", types = list(types))
				if self.pending_describe:
					self.pending_describe[0].parameter_types = tuple(types)

			elif c == b'2':
				logger.debug("BE<= BindComplete")
				portal = self.pending_bind[bind_index]
				bind_index += 1
				if portal is not None:
					portal.register(self._add_garbage_portal)

			elif c == b'3':
				logger.debug("BE<= CloseComplete")

			elif c == b'n':
				logger.debug("BE<= NoData")
				if flags & DESCRIBE_ONLY and self.pending_describe:
					query = self.pending_describe.pop(0)
					query.fields = ()
					handler.handle_result_rows(query, [], [], None)
				elif execute_index < len(self.pending_execute):
					self.pending_execute[execute_index][0].fields = ()

			elif c == b's':
				logger.debug("BE<= PortalSuspended")
				query, portal = self.pending_execute[execute_index]
				execute_index += 1
				if fields is not None or tuples is not None:
					handler.handle_result_rows(query, fields, tuples or [], portal)
				fields = None
				tuples = None

			elif c == b'C':
				status = decode(element.Complete.parse(body).data)
				logger.debug("BE<= CommandComplete", status = status)
				query, portal = self.pending_execute[execute_index]
				execute_index += 1
				if fields is not None or tuples is not None:
					handler.handle_result_rows(query, fields, tuples or [], None)
					fields = None
					tuples = None
					if both:
						self.interpret_command_status(status, handler)
				else:
					self.interpret_command_status(status, handler)
				if portal is not None:
					portal.close()

			elif c == b'E':
				fields_ = element.Error.parse(body).decode(decode)
				logger.debug("BE<= ErrorResponse", code = fields_.get('code'))
				handler.handle_error(pg_exc.server_error(fields_))

			elif c == b'I':
				logger.debug("BE<= EmptyQueryResponse")
				query, portal = self.pending_execute[execute_index]
				execute_index += 1
				handler.handle_command_status('EMPTY', 0, 0)
				if portal is not None:
					portal.close()

			elif c == b'N':
				notice = element.Notice.parse(body).decode(decode)
				logger.debug("BE<= NoticeResponse", code = notice.get('code'))
				handler.handle_warning(pg_exc.server_warning(notice))

			elif c == b'S':
				self._receive_parameter(body)

			elif c == b'T':
				logger.debug("BE<= RowDescription")
				if fields is not None:
					raise pg_exc.ProtocolSyntaxError(
						"received RowDescription while a row set is in progress"
					)
				fields = self._receive_fields(body)
				if flags & DESCRIBE_ONLY and self.pending_describe:
					query = self.pending_describe.pop(0)
					query.fields = tuple(fields)
					handler.handle_result_rows(query, fields, [], None)
					fields = None
				else:
					if execute_index < len(self.pending_execute):
						self.pending_execute[execute_index][0].fields = tuple(fields)
					tuples = []

			elif c == b'Z':
				self._receive_ready(length, body)
				# Statements parsed by failed Parse messages do not exist.
				for q in self.pending_parse[parse_index:]:
					q.unregister()
				del self.pending_parse[:]
				del self.pending_bind[:]
				del self.pending_execute[:]
				del self.pending_describe[:]
				break

			elif c in (b'G', b'H', b'c', b'd'):
				logger.debug("BE<= COPY message outside of a COPY operation", type = c)
				handler.handle_error(pg_exc.UnsupportedOperationError(
					"COPY statements must be run using start_copy"
				))

			else:
				raise pg_exc.ProtocolSyntaxError(
					"unknown response type from the server: %r" %(c,),
					details = {'length' : length}
				)
