##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Connection establishment with protocol version fallback.

A `Negotiator` holds an ordered list of protocol version objects, newest first.
`Negotiator.open` tries each version against the candidate addresses; a version
whose `connect` returns `None` was declined by the server and the next one is
tried. Any other failure ends the attempt.

SSL follows the `sslmode` parameter:

 disable
  No SSLRequest is sent.
 allow
  Connect without SSL. When the server rejects the connection on
  authorization grounds, try again with SSL.
 prefer
  Send an SSLRequest; continue without SSL if the server declines it. When an
  SSL connection is rejected on authorization grounds, try again without SSL.
 require
  Send an SSLRequest; fail if the server declines it.
"""
import os
from traceback import format_exception_only
import structlog

from .. import exceptions as pg_exc
from ..python.socket import SocketFactory, host_factories
from . import client2
from . import client3
from . import startup
from .stream import Stream

logger = structlog.get_logger(__name__)

# Authorization failures; with 'allow' and 'prefer' the other SSL choice is
# tried when the server rejects the first.
INVALID_AUTHORIZATION = '28000'

class ConnectionAttempt(object):
	"""
	When a connection attempt is made, but not successfully established, a
	ConnectionAttempt can be used to document the attempt in order to provide
	detailed information about the failure.

	Instances of this class are held by
	`pqwire.exceptions.ClientCannotConnectError`s.

	Properties:

	 ssl_negotiation
	  True if SSL was required
	  False if SSL was requested, but the connection may continue without it
	  None if SSL was not requested
	 protocol_version
	  The name of the protocol version that was being tried, if any.
	"""
	exception_string = staticmethod(format_exception_only)
	__slots__ = (
		'ssl_negotiation',
		'socket_creator',
		'exception',
		'protocol_version',
	)

	def __init__(self,
		ssl_negotiation,
		socket_creator,
		exception,
		protocol_version = None,
	):
		self.ssl_negotiation = ssl_negotiation
		self.socket_creator = socket_creator
		self.exception = exception
		self.protocol_version = protocol_version

	def __str__(self):
		if self.ssl_negotiation is True:
			ssl = 'SSL'
		elif self.ssl_negotiation is False:
			ssl = 'SSL then NOSSL'
		elif self.ssl_negotiation is None:
			ssl = 'NOSSL'
		else:
			ssl = '<unexpected ssl_negotiation configuration>'
		if self.protocol_version is not None:
			ssl += ', protocol ' + self.protocol_version
		excstr = ''.join(self.exception_string(type(self.exception), self.exception))
		return str(self.socket_creator) \
			+ ' -> (' + ssl + ')' \
			+ os.linesep + excstr.strip()

class ProtocolVersion(object):
	"""
	A protocol version the negotiator can try. `connect` runs the handshake on a
	connected stream and returns the `Session`, or `None` when the server does
	not speak the version.
	"""
	name = None

	def __repr__(self):
		return '%s.%s()' %(type(self).__module__, type(self).__name__)

	def connect(self, stream, socket_factory, user, database,
		password = None, settings = None, client_encoding = None, **session_kw
	):
		raise NotImplementedError

class ProtocolVersion3(ProtocolVersion):
	name = '3'

	def connect(self, stream, socket_factory, user, database,
		password = None, settings = None, client_encoding = None, **session_kw
	):
		# The 3.0 session always uses UTF8; client_encoding is for 2.0 servers.
		return client3.connect(
			stream, socket_factory, user, database,
			password = password, settings = settings, **session_kw
		)

class ProtocolVersion2(ProtocolVersion):
	name = '2'

	def connect(self, stream, socket_factory, user, database,
		password = None, settings = None, client_encoding = None, **session_kw
	):
		return client2.connect(
			stream, socket_factory, user, database,
			password = password, settings = settings,
			client_encoding = client_encoding, **session_kw
		)

class AddressFailed(Exception):
	'The socket could not be connected; the next address is tried'

def negotiate_ssl(stream, socket_factory):
	"""
	Send an SSLRequest and secure the stream when the server agrees.

	Returns True when the stream was secured, False when the server declined,
	and None when the server answered with an error, which servers that predate
	SSLRequest do. An error answer leaves the connection unusable.
	"""
	logger.debug("FE=> SSLRequest")
	stream.send(startup.ssl_request())
	stream.flush()
	answer = stream.receive_char()
	logger.debug("BE<= SSL answer", answer = answer)
	if answer == b'S':
		stream.swap_socket(socket_factory.secure(stream.socket))
		return True
	elif answer == b'N':
		return False
	elif answer == b'E':
		return None
	raise pg_exc.ProtocolSyntaxError(
		"unexpected answer to SSLRequest: %r" %(answer,),
		details = {'hint' : "The server may not be a PostgreSQL server."}
	)

class Negotiator(object):
	"""
	Negotiator(versions = (ProtocolVersion3(), ProtocolVersion2()))
	"""
	def __init__(self, versions = None):
		if versions is None:
			versions = (ProtocolVersion3(), ProtocolVersion2())
		self.versions = tuple(versions)

	def __repr__(self):
		return '%s.%s(%r)' %(
			type(self).__module__, type(self).__name__, self.versions
		)

	def select_versions(self, protocol_version = None):
		if protocol_version is None:
			return self.versions
		versions = tuple([
			x for x in self.versions if x.name == str(protocol_version)
		])
		if not versions:
			raise ValueError(
				"unknown protocol version %r, expecting one of %r" %(
					protocol_version, [x.name for x in self.versions]
				)
			)
		return versions

	@staticmethod
	def ssl_sequence(sslmode):
		'The SSL choices to try, in order, for the `sslmode`'
		if sslmode == 'disable':
			return (None,)
		elif sslmode == 'allow':
			return (None, True)
		elif sslmode == 'prefer':
			return (False, None)
		elif sslmode == 'require':
			return (True,)
		raise ValueError("invalid sslmode: " + repr(sslmode))

	def socket_factories(self, addresses, socket_secure, attempts):
		"""
		Expand the addresses into socket factories. Names that can not be
		resolved are recorded in `attempts`.
		"""
		factories = []
		for address in addresses:
			if isinstance(address, SocketFactory):
				factories.append((address, None, None))
				continue
			host, port = address
			try:
				for sf in host_factories(host, port, socket_secure):
					factories.append((sf, host, port))
			except OSError as err:
				logger.debug("address resolution failed", host = host, port = port, error = str(err))
				attempts.append(ConnectionAttempt(None, '%s:%s' %(host, port), err))
		return factories

	def connect_socket(self, version, socket_factory, ssl, attempts,
		connect_timeout = None, **kw
	):
		"""
		Open a stream with `socket_factory` and run the `version` handshake.
		Raises `AddressFailed` when the socket can not be connected.
		"""
		try:
			sock = socket_factory(timeout = connect_timeout)
			sock.settimeout(connect_timeout)
		except OSError as err:
			logger.debug("socket connection failed", socket = str(socket_factory), error = str(err))
			attempts.append(ConnectionAttempt(ssl, socket_factory, err, version.name))
			raise AddressFailed() from err

		stream = Stream(sock)
		try:
			secured = None
			if ssl is not None:
				try:
					secured = negotiate_ssl(stream, socket_factory)
				except OSError as err:
					logger.debug("SSL negotiation failed", error = str(err))
					attempts.append(ConnectionAttempt(ssl, socket_factory, err, version.name))
					raise AddressFailed() from err
				if secured is not True and ssl is True:
					raise pg_exc.InsecurityError(
						"the server does not support SSL connections, but sslmode is 'require'",
						connection_attempts = attempts,
					)
				if secured is None:
					# The error answer ends the connection; start over without SSL.
					stream.close()
					try:
						sock = socket_factory(timeout = connect_timeout)
						sock.settimeout(connect_timeout)
					except OSError as err:
						attempts.append(ConnectionAttempt(ssl, socket_factory, err, version.name))
						raise AddressFailed() from err
					stream = Stream(sock)

			session = version.connect(stream, socket_factory, **kw)
		except pg_exc.TransportError as err:
			stream.close()
			attempts.append(ConnectionAttempt(ssl, socket_factory, err, version.name))
			raise pg_exc.ClientCannotConnectError(
				"could not establish connection to server",
				connection_attempts = attempts,
			) from err
		except BaseException:
			stream.close()
			raise

		if session is None:
			stream.close()
			return None
		session.secured = secured is True
		return session

	def open(self, addresses, user, database = None,
		protocol_version = None,
		password = None,
		sslmode = 'prefer',
		settings = None,
		connect_timeout = None,
		socket_timeout = None,
		sslcrtfile = None,
		sslkeyfile = None,
		sslrootcrtfile = None,
		unknown_length = 2**31 - 1,
		client_encoding = None,
	):
		"""
		Connect to the first address that accepts a connection, using the
		newest protocol version the server supports, and return the `Session`.

		`addresses` is a sequence of ``(host, port)`` pairs or `SocketFactory`
		objects, tried in order.
		"""
		if database is None:
			database = user
		versions = self.select_versions(protocol_version)
		ssl_choices = self.ssl_sequence(sslmode)
		socket_secure = dict([
			(k, v) for k, v in (
				('certfile', sslcrtfile),
				('keyfile', sslkeyfile),
				('ca_certs', sslrootcrtfile),
			) if v is not None
		])

		attempts = []
		factories = self.socket_factories(addresses, socket_secure, attempts)

		for version in versions:
			logger.info("trying protocol version", version = version.name)
			declined = False
			for sf, host, port in factories:
				for ssl in ssl_choices:
					try:
						session = self.connect_socket(
							version, sf, ssl, attempts,
							connect_timeout = connect_timeout,
							user = user,
							database = database,
							password = password,
							settings = settings,
							client_encoding = client_encoding,
							host = host,
							port = port,
							unknown_length = unknown_length,
						)
					except AddressFailed:
						# Try the next address.
						break
					except pg_exc.ServerReportedError as err:
						if ssl is ssl_choices[-1] or str(err.code) != INVALID_AUTHORIZATION:
							raise
						logger.info("connection rejected, trying the other SSL mode",
							sslmode = sslmode, code = str(err.code)
						)
						attempts.append(ConnectionAttempt(ssl, sf, err, version.name))
						continue

					if session is None:
						declined = True
						break
					session.connect_timeout = connect_timeout
					session.stream.socket.settimeout(socket_timeout)
					logger.info("connection established",
						version = version.name, socket = str(sf),
						ssl = session.secured,
					)
					return session
				if declined:
					break

			if not declined:
				raise pg_exc.ClientCannotConnectError(
					"could not establish connection to server",
					connection_attempts = attempts,
				)
			logger.info("protocol version declined by server", version = version.name)

		raise pg_exc.ConnectionUnableToConnect(
			"the server does not support protocol versions %s" %(
				', '.join([x.name for x in versions]),
			),
			versions = [x.name for x in versions],
			connection_attempts = attempts,
		)

