##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
COPY operations of protocol version 3.0.

While a `CopyIn` or `CopyOut` is active the session is locked: every other
operation raises `pqwire.exceptions.UnsupportedOperationError` until the
operation is ended or cancelled.
"""
import structlog

from .. import exceptions as pg_exc
from . import element3 as element

logger = structlog.get_logger(__name__)

# Error code of the response to CopyFail and to a cancel request.
QUERY_CANCELED = '57014'

class CopyOperation(object):
	"""
	Base class of `CopyIn` and `CopyOut`.

	`format` is 0 for text and 1 for binary; `formats` holds the format of each
	column.
	"""
	def __init__(self, executor, sql, format, formats):
		self.executor = executor
		self.session = executor.session
		self.sql = sql
		self.format = format
		self.formats = formats
		self.active = True
		self.count = None
		self.session.lock_copy(self)

	def __repr__(self):
		return '<%s.%s %r%s>' %(
			type(self).__module__, type(self).__name__, self.sql,
			'' if self.active else ' complete',
		)

	def _check_active(self):
		if not self.active:
			raise pg_exc.UnsupportedOperationError(
				"COPY operation is no longer active"
			)

	def _finish(self):
		self.active = False
		self.session.unlock_copy(self)

	def _abort(self, err):
		self._finish()
		self.session.abort(err)

	def _receive_until_ready(self, absorb = None):
		"""
		Read the closing messages of the operation through ReadyForQuery. The
		first error is raised afterwards unless its code is `absorb`.
		"""
		stream = self.session.stream
		decode = self.session.encoding.decode
		error = None
		while True:
			c = stream.receive_char()
			length = stream.receive_integer4()
			body = stream.receive(length - 4)
			if c == b'C':
				status = element.Complete.parse(body)
				logger.debug("BE<= CommandComplete", status = status.data)
				try:
					self.count = status.extract_count()
				except ValueError:
					self.count = None
			elif c == b'E':
				fields = element.Error.parse(body).decode(decode)
				logger.debug("BE<= ErrorResponse", code = fields.get('code'))
				if error is None and fields.get('code') != absorb:
					error = pg_exc.server_error(fields)
			elif c == b'N':
				self.session.add_warning(
					pg_exc.server_warning(element.Notice.parse(body).decode(decode))
				)
			elif c == b'A':
				self.executor._receive_notify(body)
			elif c == b'S':
				self.executor._receive_parameter(body)
			elif c == b'd':
				# Data still in flight after a cancel.
				pass
			elif c == b'c':
				logger.debug("BE<= CopyDone")
			elif c == b'Z':
				self.executor._receive_ready(length, body)
				break
			else:
				raise pg_exc.ProtocolSyntaxError(
					"unexpected message type while ending COPY: %r" %(c,)
				)
		return error

class CopyIn(CopyOperation):
	'COPY ... FROM STDIN'

	def write(self, data):
		self._check_active()
		try:
			self.session.stream.send(element.CopyData(data).bytes())
			self.session.stream.flush()
		except pg_exc.TransportError as err:
			self._abort(err)
			raise

	def end(self):
		"""
		Complete the COPY and return the number of rows copied.
		"""
		self._check_active()
		try:
			logger.debug("FE=> CopyDone")
			self.session.stream.send(element.CopyDoneMessage.bytes())
			self.session.stream.flush()
			error = self._receive_until_ready()
		except (pg_exc.TransportError, pg_exc.ProtocolSyntaxError) as err:
			self._abort(err)
			raise
		self._finish()
		if error is not None:
			raise error
		return self.count

	def cancel(self, reason = "COPY cancelled by the client"):
		'Abandon the COPY; the data written so far is discarded by the server'
		self._check_active()
		try:
			logger.debug("FE=> CopyFail")
			self.session.stream.send(
				element.CopyFail(self.session.encoding.encode(reason)).bytes()
			)
			self.session.stream.flush()
			error = self._receive_until_ready(absorb = QUERY_CANCELED)
		except (pg_exc.TransportError, pg_exc.ProtocolSyntaxError) as err:
			self._abort(err)
			raise
		self._finish()
		if error is not None:
			raise error

class CopyOut(CopyOperation):
	'COPY ... TO STDOUT'

	def read(self):
		"""
		Return the next row of data, or `None` once the COPY is complete.
		"""
		if not self.active:
			return None
		stream = self.session.stream
		decode = self.session.encoding.decode
		try:
			while True:
				c = stream.receive_char()
				length = stream.receive_integer4()
				body = stream.receive(length - 4)
				if c == b'd':
					return body
				elif c == b'c':
					logger.debug("BE<= CopyDone")
					error = self._receive_until_ready()
					break
				elif c == b'E':
					# The server ends the COPY; pick up the rest up to ReadyForQuery.
					fields = element.Error.parse(body).decode(decode)
					first = pg_exc.server_error(fields)
					self._receive_until_ready()
					error = first
					break
				elif c == b'N':
					self.session.add_warning(
						pg_exc.server_warning(element.Notice.parse(body).decode(decode))
					)
				elif c == b'A':
					self.executor._receive_notify(body)
				elif c == b'S':
					self.executor._receive_parameter(body)
				else:
					raise pg_exc.ProtocolSyntaxError(
						"unexpected message type during COPY: %r" %(c,)
					)
		except (pg_exc.TransportError, pg_exc.ProtocolSyntaxError) as err:
			self._abort(err)
			raise
		self._finish()
		if error is not None:
			raise error
		return None

	def __iter__(self):
		while True:
			data = self.read()
			if data is None:
				break
			yield data

	def cancel(self):
		'Ask the server to stop the COPY and discard the remaining data'
		self._check_active()
		self.session.cancel()
		try:
			error = self._receive_until_ready(absorb = QUERY_CANCELED)
		except (pg_exc.TransportError, pg_exc.ProtocolSyntaxError) as err:
			self._abort(err)
			raise
		self._finish()
		if error is not None:
			raise error

def start(executor, sql):
	"""
	Read the response to the COPY query `sql`; return the operation for a
	CopyInResponse or CopyOutResponse.
	"""
	session = executor.session
	stream = session.stream
	decode = session.encoding.decode
	error = None
	op = None
	completed = False
	while True:
		c = stream.receive_char()
		length = stream.receive_integer4()
		body = stream.receive(length - 4)
		if c == b'G':
			try:
				msg = element.CopyFromBegin.parse(body)
			except ValueError as err:
				raise pg_exc.ProtocolSyntaxError(str(err)) from err
			logger.debug("BE<= CopyInResponse", format = msg.format)
			op = CopyIn(executor, sql, msg.format, msg.formats)
			break
		elif c == b'H':
			try:
				msg = element.CopyToBegin.parse(body)
			except ValueError as err:
				raise pg_exc.ProtocolSyntaxError(str(err)) from err
			logger.debug("BE<= CopyOutResponse", format = msg.format)
			op = CopyOut(executor, sql, msg.format, msg.formats)
			break
		elif c == b'E':
			fields = element.Error.parse(body).decode(decode)
			logger.debug("BE<= ErrorResponse", code = fields.get('code'))
			if error is None:
				error = pg_exc.server_error(fields)
		elif c == b'N':
			session.add_warning(
				pg_exc.server_warning(element.Notice.parse(body).decode(decode))
			)
		elif c == b'A':
			executor._receive_notify(body)
		elif c == b'S':
			executor._receive_parameter(body)
		elif c in (b'C', b'T', b'D', b'I'):
			completed = True
		elif c == b'Z':
			executor._receive_ready(length, body)
			break
		else:
			raise pg_exc.ProtocolSyntaxError(
				"unexpected message type in response to COPY: %r" %(c,)
			)

	if op is not None:
		return op
	if error is not None:
		raise error
	raise pg_exc.UnsupportedOperationError(
		"statement did not start a COPY operation",
		details = {
			'query' : sql,
			'completed' : completed,
		}
	)
