##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
State of an established connection.

A `Session` is created by the negotiator once the handshake completed and is
afterwards maintained by its executor as messages arrive: the transaction
status, the server parameters, queued notifications and warnings.
"""
import warnings
import structlog

from .. import exceptions as pg_exc
from .. import versionstring as pg_version
from ..types.registry import TypeRegistry
from . import element2
from . import element3
from . import startup
from .stream import Stream

logger = structlog.get_logger(__name__)

IDLE = 'IDLE'
OPEN = 'OPEN'
FAILED = 'FAILED'

# ReadyForQuery status bytes.
transaction_states = {
	b'I' : IDLE,
	b'T' : OPEN,
	b'E' : FAILED,
}

# Server reported encodings the executors can work with.
utf8_encodings = ('UNICODE', 'UTF8')

class Session(object):
	"""
	Session(stream, socket_factory, user, database, protocol_version = '3')

	`warn_notices` makes notices that are not delivered to a result handler go
	through the `warnings` module instead of being queued for `warnings()`.
	"""
	warn_notices = False
	connect_timeout = None
	secured = False

	def __init__(self,
		stream, socket_factory,
		user, database,
		protocol_version = '3',
		host = None, port = None,
		unknown_length = 2**31 - 1,
	):
		self.stream = stream
		self.socket_factory = socket_factory
		self.user = user
		self.database = database
		self.protocol_version = protocol_version
		self.host = host
		self.port = port

		self.executor = None
		self.closed = False
		self.transaction_status = IDLE
		self.parameters = {}
		self.server_version = None
		self.server_version_num = 0
		self.standard_conforming_strings = False
		self.integer_datetimes = False
		self.binary_oids = set()
		self.backend_pid = 0
		self.cancel_key = 0
		self.types = TypeRegistry(unknown_length = unknown_length)
		# The active COPY operation; excludes every other operation.
		self.copy_operation = None

		self._notifications = []
		self._warnings = []

	def __repr__(self):
		return '<%s.%s %s@%s:%s/%s%s>' %(
			type(self).__module__, type(self).__name__,
			self.user, self.host, self.port, self.database,
			' closed' if self.closed else '',
		)

	@property
	def encoding(self):
		return self.stream.encoding

	@encoding.setter
	def encoding(self, encoding):
		self.stream.encoding = encoding

	def set_backend_key(self, pid, key):
		self.backend_pid = pid
		self.cancel_key = key

	def set_transaction_status(self, status):
		if status != self.transaction_status:
			logger.debug("transaction status", old = self.transaction_status, new = status)
		self.transaction_status = status

	def set_server_version(self, version):
		self.server_version = version
		try:
			self.server_version_num = pg_version.number(version)
		except ValueError as err:
			logger.debug("unparseable server version", version = version, error = str(err))
			self.server_version_num = 0

	def receive_parameter(self, name, value):
		"""
		Record a ParameterStatus report. Changes that the session can not work
		with raise `pqwire.exceptions.ProtocolSyntaxError`.
		"""
		self.parameters[name] = value
		if name == 'client_encoding':
			if value.upper() not in utf8_encodings:
				raise pg_exc.ProtocolSyntaxError(
					"the server's client_encoding parameter was changed to %r" %(value,),
					details = {
						'hint' : "The client_encoding parameter must be UTF8.",
					}
				)
		elif name == 'DateStyle':
			if not value.startswith('ISO,'):
				raise pg_exc.ProtocolSyntaxError(
					"the server's DateStyle parameter was changed to %r" %(value,),
					details = {
						'hint' : "The DateStyle parameter must begin with ISO.",
					}
				)
		elif name == 'standard_conforming_strings':
			if value == 'on':
				self.standard_conforming_strings = True
			elif value == 'off':
				self.standard_conforming_strings = False
			else:
				raise pg_exc.ProtocolSyntaxError(
					"invalid standard_conforming_strings value %r" %(value,)
				)
		elif name == 'integer_datetimes':
			self.integer_datetimes = (value == 'on')
		elif name == 'server_version':
			self.set_server_version(value)

	##
	# Asynchronous messages
	def add_notification(self, notification):
		logger.debug("notification", name = notification.name, pid = notification.pid)
		self._notifications.append(notification)

	def notifications(self):
		'Return and clear the queued notifications'
		n = self._notifications
		self._notifications = []
		return n

	def add_warning(self, warning):
		if self.warn_notices:
			warnings.warn(warning)
		else:
			self._warnings.append(warning)

	def warnings(self):
		'Return and clear the queued warnings'
		w = self._warnings
		self._warnings = []
		return w

	##
	# Usage checks
	def check_open(self):
		if self.closed:
			if self.stream.timed_out:
				raise pg_exc.TransportError(
					"session was closed after a socket timeout"
				)
			raise pg_exc.TransportError("session is closed")

	def check_usable(self):
		'Raise if the session is closed or locked by a COPY operation'
		self.check_open()
		if self.copy_operation is not None:
			raise pg_exc.UnsupportedOperationError(
				"a COPY operation is in progress",
				details = {'hint' : "End or cancel the COPY operation first."}
			)

	def lock_copy(self, operation):
		self.copy_operation = operation

	def unlock_copy(self, operation):
		if self.copy_operation is operation:
			self.copy_operation = None

	##
	# Connection management
	def cancel(self):
		"""
		Ask the server to cancel the running query using a separate connection.
		Failures are logged and ignored.
		"""
		try:
			sock = self.socket_factory(timeout = self.connect_timeout)
		except OSError as err:
			logger.debug("cancel connection failed", error = str(err))
			return
		s = Stream(sock)
		try:
			logger.debug("FE=> CancelRequest", pid = self.backend_pid)
			s.send(startup.cancel_request(self.backend_pid, self.cancel_key))
			s.flush()
			s.receive_eof()
		except pg_exc.Error as err:
			logger.debug("cancel request failed", error = str(err))
		finally:
			s.close()

	def close(self):
		'Send Terminate, once, and close the stream'
		if self.closed:
			return
		self.closed = True
		if not self.stream.timed_out:
			if self.protocol_version == '2':
				msg = element2.DisconnectMessage
			else:
				msg = element3.DisconnectMessage
			logger.debug("FE=> Terminate")
			self.stream.send(msg.bytes())
		self.stream.close()

	def abort(self, err):
		'Close the session after a fatal error'
		logger.debug("closing session after fatal error", error = str(err))
		if self.closed:
			return
		self.closed = True
		self.stream.close()
