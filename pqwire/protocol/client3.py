##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Protocol version 3.0 connection establishment.

`connect` sends the startup packet over an already connected (and, when
negotiated, secured) `Stream`, authenticates, and reads the startup messages.
It returns the new `Session`, or `None` when the server only speaks the legacy
protocol.
"""
from hashlib import md5
import structlog

from .. import exceptions as pg_exc
from . import element3 as element
from . import startup
from .executor3 import Executor3
from .session import Session, transaction_states

logger = structlog.get_logger(__name__)

# Error responses of the legacy protocol are plain strings; read as a version 3
# length word, their first bytes give a huge number.
LEGACY_ERROR_LENGTH = 30000

def md5_password(password, user, salt):
	"""
	The response to an MD5 authentication request::

		'md5' + md5(md5(password + user).hexdigest() + salt).hexdigest()
	"""
	pw = md5(password + user).hexdigest().encode('ascii')
	return b'md5' + md5(pw + salt).hexdigest().encode('ascii')

def password_bytes(password):
	if password is None:
		return None
	if isinstance(password, str):
		return password.encode('utf-8')
	return password

def authentication_response(request, salt, user, password):
	"""
	Return the password data for the authentication `request`. Raises for
	unsupported methods and for password requests without a password.
	"""
	if request not in (element.AuthRequest_Cleartext, element.AuthRequest_MD5):
		##
		# Not going to work.
		# crypt() is no longer available in the standard library, and the
		# remaining methods want control of the wire.
		raise pg_exc.AuthenticationMethodError(
			"unsupported authentication request %r(%d)" %(
				element.AuthNameMap.get(request, '<unknown>'), request,
			),
			details = {
				'hint' : "'pqwire' supports: MD5, plaintext, and trust. " \
					"Check the server's pg_hba.conf.",
			}
		)
	if password is None:
		raise pg_exc.ClientCannotConnectError(
			"the server requested password-based authentication, " \
			"but no password was provided",
			code = '08004',
		)
	if request == element.AuthRequest_MD5:
		return md5_password(password, user, salt)
	return password

class Negotiation(object):
	"""
	Negotiation(user, password)

	Keeps the state of the authentication and startup exchange. The
	`state_machine` generator takes the (type, body) pairs of the received
	messages and answers with the messages to send. Asynchronous messages,
	ErrorResponse, NoticeResponse and ParameterStatus, are handled by the caller.
	"""
	def __init__(self, user, password = None):
		self.user = user
		self.password = password_bytes(password)
		self.authtype = None
		self.authenticated = False
		self.killinfo = None
		self.last_ready = None
		self.complete = False
		self.machine = self.state_machine()
		next(self.machine)

	def __repr__(self):
		return '<%s.%s %s%s>' %(
			type(self).__module__, type(self).__name__,
			'authenticated' if self.authenticated else 'authenticating',
			' complete' if self.complete else '',
		)

	def put(self, message):
		'Progress the negotiation; returns the messages to send'
		try:
			return self.machine.send(message) or ()
		except StopIteration:
			self.complete = True
			return ()

	@staticmethod
	def unexpected(x, expected):
		return pg_exc.ProtocolSyntaxError(
			"received message of type %r, but expected %r" %(x[0], expected),
			details = {'hint' : "The server may not be a PostgreSQL server."}
		)

	def state_machine(self):
		"""
		Generator keeping the state of the connection negotiation process.
		"""
		x = (yield ())

		while True:
			if x[0] != element.Authentication.type:
				raise self.unexpected(x, element.Authentication.type)
			try:
				self.authtype = element.Authentication.parse(x[1])
			except ValueError as err:
				raise pg_exc.ProtocolSyntaxError(str(err)) from err
			req = self.authtype.request
			if req == element.AuthRequest_OK:
				logger.debug("BE<= AuthenticationOk")
				break
			logger.debug("BE<= AuthenticationRequest",
				method = element.AuthNameMap.get(req, req)
			)
			pw = authentication_response(
				req, self.authtype.salt[0:4], self.user, self.password
			)
			logger.debug("FE=> Password")
			x = (yield (element.Password(pw),))
		self.authenticated = True

		# Done authenticating, pick up the killinfo and the ready message.
		while True:
			x = (yield ())
			if x[0] == element.KillInformation.type:
				try:
					self.killinfo = element.KillInformation.parse(x[1])
				except ValueError as err:
					raise pg_exc.ProtocolSyntaxError(str(err)) from err
				logger.debug("BE<= BackendKeyData", pid = self.killinfo.pid)
			elif x[0] == element.Ready.type:
				try:
					self.last_ready = element.Ready.parse(x[1])
				except ValueError as err:
					raise pg_exc.ProtocolSyntaxError(str(err)) from err
				logger.debug("BE<= ReadyForQuery", status = self.last_ready.xact_state)
				return
			else:
				raise self.unexpected(x, element.Ready.type)

def connect(stream, socket_factory, user, database,
	password = None,
	settings = None,
	**session_kw
):
	"""
	Establish a version 3.0 session over `stream`.
	"""
	settings = dict(settings or ())
	logger.debug("FE=> StartupPacket", user = user, database = database,
		settings = sorted(settings)
	)
	stream.send(startup.build_startup3(user, database, **settings))
	stream.flush()

	neg = Negotiation(user.encode('utf-8'), password)
	session = Session(
		stream, socket_factory, user, database,
		protocol_version = '3', **session_kw
	)
	decode = stream.encoding.decode
	while not neg.complete:
		typ = stream.receive_char()
		length = stream.receive_integer4()
		if typ == element.Error.type:
			if not neg.authenticated and length > LEGACY_ERROR_LENGTH:
				logger.debug("protocol 3.0 rejected by server", length = length)
				return None
			fields = element.Error.parse(stream.receive(length - 4)).decode(decode)
			logger.debug("BE<= ErrorResponse", code = fields.get('code'))
			raise pg_exc.server_error(fields)
		if length < 4:
			raise pg_exc.ProtocolSyntaxError(
				"invalid message length %d" %(length,),
				details = {'type' : repr(typ)}
			)
		body = stream.receive(length - 4)

		if typ == element.Notice.type:
			fields = element.Notice.parse(body).decode(decode)
			logger.debug("BE<= NoticeResponse", code = fields.get('code'))
			session.add_warning(pg_exc.server_warning(fields))
		elif typ == element.ShowOption.type:
			try:
				opt = element.ShowOption.parse(body)
			except ValueError as err:
				raise pg_exc.ProtocolSyntaxError(str(err)) from err
			name, value = decode(opt.name), decode(opt.value)
			logger.debug("BE<= ParameterStatus", name = name, value = value)
			session.receive_parameter(name, value)
		else:
			out = neg.put((typ, body))
			if out:
				for x in out:
					stream.send(x.bytes())
				stream.flush()

	if neg.killinfo is not None:
		session.set_backend_key(neg.killinfo.pid, neg.killinfo.key)
	session.set_transaction_status(transaction_states[neg.last_ready.xact_state])
	session.executor = Executor3(session)
	return session
