##
# .python.socket - additional tools for working with sockets
##
import socket
import errno

__all__ = ['SocketFactory', 'host_factories']

class SocketFactory(object):
	"""
	Object used to create a socket and connect it.

	This is, more or less, a specialized partial() for socket creation.

	Additionally, it provides methods and attributes for abstracting
	exception management on socket operation, and the TLS upgrade used after a
	successful SSLRequest.
	"""

	timeout_exception = socket.timeout
	fatal_exception = OSError
	try_again_exception = OSError

	def timed_out(self, err) -> bool:
		return isinstance(err, self.timeout_exception)

	@staticmethod
	def try_again(err, codes = (errno.EAGAIN, errno.EINTR, errno.EWOULDBLOCK, errno.ETIMEDOUT)) -> bool:
		"""
		Does the error indicate that the operation should be tried again?

		More importantly, the connection is *not* dead.
		"""
		errno = getattr(err, 'errno', None)
		if errno is None:
			return False
		return errno in codes

	@classmethod
	def fatal_exception_message(typ, err) -> (str, None):
		"""
		If the exception was fatal to the connection,
		what message should be given to the user?
		"""
		if typ.try_again(err):
			return None
		return getattr(err, 'strerror', None) or str(err) or '<strerror not present>'

	@property
	def _security_context(self):
		if self._security_context_ii is None:
			from ssl import SSLContext, PROTOCOL_TLS_CLIENT, CERT_NONE
			ctx = self._security_context_ii = SSLContext(PROTOCOL_TLS_CLIENT)
			# Trust decisions belong to the caller's context.
			ctx.check_hostname = False
			ctx.verify_mode = CERT_NONE

			cf = self.socket_secure.get('certfile')
			kf = self.socket_secure.get('keyfile')
			if cf is not None:
				ctx.load_cert_chain(cf, keyfile=kf)

			ca = self.socket_secure.get('ca_certs')
			if ca is not None:
				from ssl import CERT_REQUIRED
				ctx.verify_mode = CERT_REQUIRED
				ctx.load_verify_locations(ca)

		return self._security_context_ii

	def secure(self, socket: socket.socket):
		"""
		Secure a socket with SSL.
		"""
		return self._security_context.wrap_socket(socket)

	def __call__(self, timeout = None):
		s = socket.socket(*self.socket_create)
		try:
			s.settimeout(float(timeout) if timeout is not None else None)
			s.connect(self.socket_connect)
			s.settimeout(None)
		except Exception:
			s.close()
			raise
		return s

	def __init__(self,
		socket_create,
		socket_connect,
		socket_secure = None,
		socket_security_context = None
	):
		self._security_context_ii = socket_security_context
		self.socket_create = socket_create
		self.socket_connect = socket_connect
		self.socket_secure = socket_secure or {}

	def __str__(self):
		return 'socket' + repr(self.socket_connect)

def host_factories(
	host, port,
	socket_secure = None,
	address_family = socket.AF_UNSPEC,
):
	"""
	Return a list of `SocketFactory`s based on the results of
	`socket.getaddrinfo`. Unix domain socket paths (hosts starting with '/')
	produce a single AF_UNIX factory.
	"""
	if host.startswith('/'):
		path = host.rstrip('/') + '/.s.PGSQL.' + str(port)
		return [SocketFactory((socket.AF_UNIX, socket.SOCK_STREAM), path, socket_secure)]
	return [
		# (AF, socktype, proto), (IP, Port)
		SocketFactory(x[0:3], x[4][:2], socket_secure)
		for x in socket.getaddrinfo(
			host, port, address_family, socket.SOCK_STREAM
		)
	]
