##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Protocol version 2.0 connection establishment.

Servers older than 7.4 only speak the legacy protocol. The startup packet has
no room for settings, so the date style and client encoding are configured
with queries once the session is up.
"""
import structlog

from .. import exceptions as pg_exc
from ..encodings.codec import Encoding
from . import element2
from . import element3
from . import startup
from .client3 import authentication_response, password_bytes
from .executor2 import Executor2
from .query import ONESHOT, SUPPRESS_BEGIN, NO_RESULTS, NO_METADATA
from .query import CollectingResultHandler
from .session import Session

logger = structlog.get_logger(__name__)

# Servers from this version on accept client_encoding = 'UNICODE'.
UNICODE_VERSION_NUM = 70300

version_query = \
	"set datestyle = 'ISO'; " \
	"select version(), case when pg_encoding_to_char(1) = 'SQL_ASCII' " \
	"then 'UNKNOWN' else getdatabaseencoding() end"

unicode_query = \
	"begin; set autocommit = on; set client_encoding = 'UNICODE'; commit"

class SetupResultHandler(CollectingResultHandler):
	'Results of the initial queries; warnings are kept by the session'

	def __init__(self, session):
		super().__init__()
		self.session = session

	def handle_warning(self, warning):
		self.session.add_warning(warning)

def authenticate(stream, user, password):
	stream_user = user.encode('utf-8')
	password = password_bytes(password)
	while True:
		c = stream.receive_char()
		if c == b'E':
			msg = stream.receive_string()
			logger.debug("BE<= ErrorMessage", message = msg)
			raise pg_exc.ConnectionRejectionError(
				"connection rejected: %s" %(msg.strip(),),
				details = {'severity' : 'FATAL', 'message' : msg.strip()}
			)
		elif c == b'R':
			areq = stream.receive_integer4()
			if areq == element3.AuthRequest_OK:
				logger.debug("BE<= AuthenticationOk")
				return
			logger.debug("BE<= AuthenticationRequest",
				method = element3.AuthNameMap.get(areq, areq)
			)
			salt = b''
			if areq == element3.AuthRequest_MD5:
				salt = stream.receive(4)
			elif areq == element3.AuthRequest_Crypt:
				# Consume the salt to keep the stream in sync before refusing.
				salt = stream.receive(2)
			pw = authentication_response(areq, salt, stream_user, password)
			logger.debug("FE=> Password")
			stream.send(element2.Password(pw).bytes())
			stream.flush()
		else:
			raise pg_exc.ProtocolSyntaxError(
				"unexpected message type %r during authentication" %(c,),
				details = {'hint' : "The server may not be a PostgreSQL server."}
			)

def read_startup_messages(stream, session):
	while True:
		c = stream.receive_char()
		if c == b'Z':
			logger.debug("BE<= ReadyForQuery")
			return
		elif c == b'K':
			pid = stream.receive_integer4()
			key = stream.receive_integer4()
			logger.debug("BE<= BackendKeyData", pid = pid)
			session.set_backend_key(pid, key)
		elif c == b'E':
			msg = stream.receive_string().strip()
			logger.debug("BE<= ErrorResponse", message = msg)
			raise pg_exc.server_error({
				'severity' : 'FATAL',
				'code' : '08001',
				'message' : "backend start-up failed: " + msg,
			})
		elif c == b'N':
			msg = stream.receive_string()
			logger.debug("BE<= NoticeResponse", message = msg)
			session.add_warning(pg_exc.Warning(msg[msg.find(':') + 1:].strip()))
		else:
			raise pg_exc.ProtocolSyntaxError(
				"unexpected message type %r during session setup" %(c,)
			)

def run_setup_query(session, sql, want_results):
	executor = session.executor
	query = executor.create_simple_query(sql)
	handler = SetupResultHandler(session)
	flags = ONESHOT | SUPPRESS_BEGIN
	if not want_results:
		flags |= NO_RESULTS | NO_METADATA
	try:
		executor.execute(query, None, handler, 0, 0, flags)
	finally:
		query.close()
	if not want_results:
		return None
	rows = handler.rows()
	if len(rows) != 1:
		raise pg_exc.ProtocolSyntaxError(
			"an unexpected result was returned by a setup query",
			details = {'query' : sql, 'rows' : len(rows)}
		)
	return rows[0]

def run_initial_queries(session, client_encoding = None):
	"""
	Find the server version and the database encoding, then configure the
	client encoding.
	"""
	row = run_setup_query(session, version_query, True)
	decode = session.encoding.decode
	raw_version = decode(row[0])
	parts = raw_version.split()
	if len(parts) < 2:
		raise pg_exc.ProtocolSyntaxError(
			"unexpected version string %r" %(raw_version,)
		)
	session.set_server_version(parts[1])

	if session.server_version_num >= UNICODE_VERSION_NUM:
		logger.debug("switching to UNICODE client_encoding")
		run_setup_query(session, unicode_query, False)
		session.encoding = Encoding.for_server('UNICODE')
	else:
		db_encoding = None if row[1] is None else decode(row[1])
		logger.debug("database encoding",
			server_encoding = db_encoding, client_encoding = client_encoding
		)
		if client_encoding is not None:
			session.encoding = Encoding.for_python(client_encoding)
		elif db_encoding is not None:
			session.encoding = Encoding.for_server(db_encoding)
		else:
			session.encoding = Encoding()
	logger.debug("connection encoding", encoding = session.encoding.name)

def connect(stream, socket_factory, user, database,
	password = None,
	settings = None,
	client_encoding = None,
	**session_kw
):
	"""
	Establish a version 2.0 session over `stream`. Startup settings are not
	supported and raise `pqwire.exceptions.UnsupportedOperationError`.
	"""
	packet = startup.build_startup2(user, database, **dict(settings or ()))
	logger.debug("FE=> StartupPacket", protocol = '2.0', user = user, database = database)
	stream.send(packet)
	stream.flush()

	authenticate(stream, user, password)
	session = Session(
		stream, socket_factory, user, database,
		protocol_version = '2', **session_kw
	)
	read_startup_messages(stream, session)
	session.executor = Executor2(session)
	run_initial_queries(session, client_encoding = client_encoding)
	return session
