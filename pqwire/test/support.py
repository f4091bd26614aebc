##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Scripted sockets and backend message builders for driving the protocol
machinery without a server.
"""
from ..protocol import element3 as e3
from ..python.structlib import ulong_pack, ushort_pack, long_pack
from ..protocol.stream import Stream
from ..protocol.session import Session
from ..python.socket import SocketFactory

class ScriptedSocket(object):
	"""
	A socket whose incoming data is given up front, or fed while a test runs.
	Everything written is collected in `sent`. Once the script is exhausted,
	reads return end of file, or raise `BlockingIOError` when the timeout is
	zero.

	`tls` is the data the server sends once the socket is secured; it becomes
	readable only after `upgrade` is called.
	"""
	def __init__(self, *chunks, tls = b''):
		self.incoming = bytearray(b''.join(chunks))
		self.tls_incoming = bytes(tls)
		self.upgraded = False
		self.sent = bytearray()
		self.timeout = None
		self.closed = False
		self.recv_sizes = []

	def feed(self, *chunks):
		self.incoming += b''.join(chunks)

	def upgrade(self):
		self.upgraded = True
		self.feed(self.tls_incoming)
		self.tls_incoming = b''

	def recv(self, n):
		if not self.incoming:
			if self.timeout == 0:
				raise BlockingIOError("no data")
			return b''
		self.recv_sizes.append(n)
		data = bytes(self.incoming[:n])
		del self.incoming[:n]
		return data

	def sendall(self, data):
		if self.closed:
			raise OSError("socket is closed")
		self.sent += data

	def settimeout(self, timeout):
		self.timeout = timeout

	def gettimeout(self):
		return self.timeout

	def close(self):
		self.closed = True

	def take_sent(self):
		data = bytes(self.sent)
		del self.sent[:]
		return data

class ScriptedSocketFactory(SocketFactory):
	"""
	Hands out the given sockets in order. An exception instance in the list is
	raised instead.
	"""
	def __init__(self, *sockets):
		self.sockets = list(sockets)
		self.made = []
		self.secured = []

	def __call__(self, timeout = None):
		s = self.sockets.pop(0)
		if isinstance(s, BaseException):
			raise s
		self.made.append(s)
		return s

	def secure(self, sock):
		self.secured.append(sock)
		sock.upgrade()
		return sock

	def __str__(self):
		return 'scripted'

def frontend_messages(data):
	'Split typed frontend messages into (type, body) pairs'
	msgs = []
	pos = 0
	while pos < len(data):
		typ = data[pos:pos+1]
		length = int.from_bytes(data[pos+1:pos+5], 'big')
		msgs.append((typ, data[pos+5:pos+1+length]))
		pos += 1 + length
	return msgs

def frontend_types(data):
	return b''.join([x[0] for x in frontend_messages(data)])

##
# Backend messages of protocol 3.0.
def auth_ok():
	return e3.Authentication(e3.AuthRequest_OK, b'').bytes()

def auth_request(request, salt = b''):
	return e3.Authentication(request, salt).bytes()

def parameter(name, value):
	return e3.ShowOption(name.encode('utf-8'), value.encode('utf-8')).bytes()

def key_data(pid = 42, key = 4242):
	return e3.KillInformation(pid, key).bytes()

def ready(state = b'I'):
	return e3.Ready(state).bytes()

def bodyless(typ):
	'A backend message that is only its type and length word'
	return typ + ulong_pack(4)

def parse_complete():
	return bodyless(b'1')

def bind_complete():
	return bodyless(b'2')

def close_complete():
	return bodyless(b'3')

def no_data():
	return bodyless(b'n')

def suspended():
	return bodyless(b's')

def empty_query():
	return bodyless(b'I')

def complete(tag):
	return e3.Complete(tag.encode('utf-8')).bytes()

def row_description(*columns):
	'columns are (name, type oid) pairs'
	return e3.TupleDescriptor([
		(name.encode('utf-8'), 0, 0, oid, -1, -1, 0)
		for name, oid in columns
	]).bytes()

def parameter_description(*oids):
	return e3.AttributeTypes(oids).bytes()

def data_row(*values):
	'A DataRow; `None` values are NULL and strings are encoded as UTF-8'
	body = ushort_pack(len(values))
	for v in values:
		if v is None:
			body += long_pack(-1)
			continue
		if isinstance(v, str):
			v = v.encode('utf-8')
		body += ulong_pack(len(v)) + v
	return b'D' + ulong_pack(len(body) + 4) + body

def error(code, message, severity = 'ERROR'):
	return e3.Error(
		severity = severity.encode('ascii'),
		code = code.encode('ascii'),
		message = message.encode('utf-8'),
	).bytes()

def notice(code, message, severity = 'NOTICE'):
	return e3.Notice(
		severity = severity.encode('ascii'),
		code = code.encode('ascii'),
		message = message.encode('utf-8'),
	).bytes()

def notify(pid, name, payload = ''):
	return e3.Notify(pid, name.encode('utf-8'), payload.encode('utf-8')).bytes()

def function_result(data):
	return e3.FunctionResult(data).bytes()

def copy_in_response(format = 0, formats = (0,)):
	return e3.CopyFromBegin(format, list(formats)).bytes()

def copy_out_response(format = 0, formats = (0,)):
	return e3.CopyToBegin(format, list(formats)).bytes()

def copy_data(data):
	return e3.CopyData(data).bytes()

def copy_done():
	return e3.CopyDoneMessage.bytes()

def startup_ok(*extra, state = b'I'):
	'A complete successful startup response'
	return b''.join((
		auth_ok(),
		parameter('server_version', '9.4.3'),
		parameter('client_encoding', 'UTF8'),
		parameter('DateStyle', 'ISO, MDY'),
		parameter('standard_conforming_strings', 'on'),
		key_data(),
	) + extra + (ready(state),))

def begin_response():
	'The responses to the implicit BEGIN sent ahead of a statement'
	return parse_complete() + bind_complete() + complete('BEGIN')

##
# Backend messages of protocol 2.0.
def v2_string(s):
	return s.encode('utf-8') + b'\x00'

def v2_row_description(*columns):
	return b'T' + ushort_pack(len(columns)) + b''.join([
		v2_string(name) + ulong_pack(oid) + ushort_pack(0xFFFF) + long_pack(-1)
		for name, oid in columns
	])

def v2_data_row(*values):
	'A text row; `None` values are NULL'
	count = len(values)
	bitmap = bytearray((count + 7) // 8)
	body = b''
	for i, v in enumerate(values):
		if v is None:
			continue
		bitmap[i // 8] |= 0x80 >> (i % 8)
		v = v.encode('utf-8')
		body += ulong_pack(len(v) + 4) + v
	return b'D' + bytes(bitmap) + body

def v2_complete(tag):
	return b'C' + v2_string(tag)

def v2_error(message):
	return b'E' + v2_string(message)

def v2_notice(message):
	return b'N' + v2_string(message)

def v2_ready():
	return b'Z'

def v2_empty_query():
	return b'I\x00'

def v2_notify(pid, name):
	return b'A' + long_pack(pid) + v2_string(name)

##
# Sessions
def make_session(*chunks, protocol_version = '3', executor = None):
	"""
	A session over a `ScriptedSocket` primed with `chunks`; `executor` is the
	executor class to attach.
	"""
	sock = ScriptedSocket(*chunks)
	stream = Stream(sock)
	session = Session(
		stream, ScriptedSocketFactory(), 'user', 'db',
		protocol_version = protocol_version,
		host = 'localhost', port = 5432,
	)
	if executor is not None:
		session.executor = executor(session)
	return session, sock

if __name__ == '__main__':
	# python -m pqwire.test.support <server_version>
	# Prints the version number a fresh interpreter derives from the reported
	# version: first for a bare session, then for a negotiated connection.
	import sys
	import logging
	import structlog
	from ..protocol.negotiate import Negotiator
	structlog.configure(
		wrapper_class = structlog.make_filtering_bound_logger(logging.WARNING)
	)
	version = sys.argv[1]
	session, sock = make_session()
	session.receive_parameter('server_version', version)
	print(session.server_version_num)
	factory = ScriptedSocketFactory(
		ScriptedSocket(startup_ok(parameter('server_version', version)))
	)
	session = Negotiator().open([factory], 'user', sslmode = 'disable')
	print(session.server_version_num)
