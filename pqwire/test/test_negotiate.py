##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
import os
import unittest

import pqwire
from .. import exceptions as pg_exc
from ..python.structlib import ulong_pack
from ..protocol import startup
from ..protocol.negotiate import *
from ..protocol.executor2 import Executor2
from ..protocol.executor3 import Executor3
from .support import *

legacy_rejection = b'EFATAL:  unsupported frontend protocol\n\x00'

def v2_startup_ok():
	return b'R' + ulong_pack(0) + b'Z' + \
		v2_complete('SET') + b'P' + v2_string('blank') + \
		v2_row_description(('version', 25), ('case', 25)) + \
		v2_data_row('PostgreSQL 7.2.4 on i686-pc-linux-gnu', 'LATIN1') + \
		v2_complete('SELECT') + v2_ready()

def ssl_request_sent(sock):
	return bytes(sock.sent).startswith(startup.ssl_request())

class test_ssl(unittest.TestCase):
	def open(self, sslmode, *sockets, **kw):
		self.factory = ScriptedSocketFactory(*sockets)
		return Negotiator().open([self.factory], 'jwp', sslmode = sslmode, **kw)

	def test_prefer_accepted(self):
		sock = ScriptedSocket(b'S', tls = startup_ok())
		s = self.open('prefer', sock)
		self.assertTrue(s.secured)
		self.assertEqual(self.factory.secured, [sock])
		self.assertTrue(sock.upgraded)
		self.assertTrue(ssl_request_sent(sock))
		self.assertIsInstance(s.executor, Executor3)
		self.assertEqual(s.database, 'jwp')

	def test_plaintext_after_accept(self):
		# Data sent in the clear behind the 'S' must not be read as if it had
		# arrived over the secured connection.
		sock = ScriptedSocket(b'S' + startup_ok())
		self.assertRaises(pg_exc.ProtocolSyntaxError, self.open, 'prefer', sock)
		self.assertTrue(sock.closed)

	def test_prefer_declined(self):
		sock = ScriptedSocket(b'N', startup_ok())
		s = self.open('prefer', sock)
		self.assertFalse(s.secured)
		self.assertEqual(self.factory.secured, [])
		self.assertTrue(ssl_request_sent(sock))

	def test_prefer_rejected(self):
		# An SSL connection refused on authorization grounds is retried without.
		first = ScriptedSocket(
			b'S', tls = auth_ok() + error('28000', 'no pg_hba.conf entry', 'FATAL'),
		)
		second = ScriptedSocket(startup_ok())
		s = self.open('prefer', first, second)
		self.assertFalse(s.secured)
		self.assertTrue(first.closed)
		self.assertFalse(ssl_request_sent(second))

	def test_allow(self):
		first = ScriptedSocket(error('28000', 'no pg_hba.conf entry', 'FATAL'))
		second = ScriptedSocket(b'S', tls = startup_ok())
		s = self.open('allow', first, second)
		self.assertFalse(ssl_request_sent(first))
		self.assertTrue(ssl_request_sent(second))
		self.assertTrue(s.secured)

	def test_other_errors(self):
		sock = ScriptedSocket(
			b'N', error('28P01', 'password authentication failed', 'FATAL'),
		)
		self.assertRaises(pg_exc.InvalidPasswordError, self.open, 'prefer', sock)
		self.assertTrue(sock.closed)

	def test_require(self):
		sock = ScriptedSocket(b'N')
		self.assertRaises(pg_exc.InsecurityError, self.open, 'require', sock)
		self.assertTrue(sock.closed)

	def test_disable(self):
		sock = ScriptedSocket(startup_ok())
		s = self.open('disable', sock)
		self.assertFalse(ssl_request_sent(sock))
		self.assertFalse(s.secured)

	def test_error_answer(self):
		# Servers that predate SSLRequest answer with an error and hang up.
		first = ScriptedSocket(b'E')
		second = ScriptedSocket(startup_ok())
		s = self.open('prefer', first, second)
		self.assertTrue(first.closed)
		self.assertFalse(ssl_request_sent(second))
		self.assertFalse(s.secured)

	def test_bad_answer(self):
		sock = ScriptedSocket(b'X')
		self.assertRaises(pg_exc.ProtocolSyntaxError, self.open, 'prefer', sock)
		self.assertTrue(sock.closed)

	def test_sequence(self):
		self.assertEqual(Negotiator.ssl_sequence('disable'), (None,))
		self.assertEqual(Negotiator.ssl_sequence('allow'), (None, True))
		self.assertEqual(Negotiator.ssl_sequence('prefer'), (False, None))
		self.assertEqual(Negotiator.ssl_sequence('require'), (True,))
		self.assertRaises(ValueError, Negotiator.ssl_sequence, 'always')

class test_versions(unittest.TestCase):
	def test_fallback(self):
		factory = ScriptedSocketFactory(
			ScriptedSocket(legacy_rejection),
			ScriptedSocket(v2_startup_ok()),
		)
		s = Negotiator().open([factory], 'jwp', 'db', sslmode = 'disable')
		self.assertEqual(s.protocol_version, '2')
		self.assertIsInstance(s.executor, Executor2)
		self.assertEqual(s.server_version_num, 70204)
		self.assertTrue(factory.made[0].closed)

	def test_pinned(self):
		sock = ScriptedSocket(v2_startup_ok())
		s = Negotiator().open(
			[ScriptedSocketFactory(sock)], 'jwp',
			protocol_version = 2, sslmode = 'disable',
		)
		self.assertEqual(s.protocol_version, '2')
		self.assertEqual(bytes(sock.sent)[4:8], b'\x00\x02\x00\x00')

	def test_unknown_version(self):
		self.assertRaises(ValueError, Negotiator().select_versions, '4')

	def test_all_declined(self):
		factory = ScriptedSocketFactory(ScriptedSocket(legacy_rejection))
		n = Negotiator(versions = [ProtocolVersion3()])
		try:
			n.open([factory], 'jwp', sslmode = 'disable')
		except pg_exc.ConnectionUnableToConnect as err:
			self.assertEqual(err.versions, ('3',))
		else:
			self.fail("declined connection did not raise")

class test_addresses(unittest.TestCase):
	def test_failover(self):
		refused = ScriptedSocketFactory(ConnectionRefusedError(111, "refused"))
		sock = ScriptedSocket(startup_ok())
		s = Negotiator().open(
			[refused, ScriptedSocketFactory(sock)], 'jwp', sslmode = 'disable',
		)
		self.assertTrue(s.stream.socket is sock)

	def test_all_failed(self):
		factories = [
			ScriptedSocketFactory(ConnectionRefusedError(111, "refused")),
			ScriptedSocketFactory(TimeoutError("timed out")),
		]
		try:
			Negotiator().open(factories, 'jwp', sslmode = 'disable')
		except pg_exc.ClientCannotConnectError as err:
			self.assertNotIsInstance(err, pg_exc.ConnectionUnableToConnect)
			self.assertEqual(len(err.connection_attempts), 2)
			self.assertTrue('refused' in str(err))
		else:
			self.fail("connection to unavailable addresses did not raise")

	def test_transport_failure(self):
		sock = ScriptedSocket(auth_ok())
		try:
			Negotiator().open([ScriptedSocketFactory(sock)], 'jwp', sslmode = 'disable')
		except pg_exc.ClientCannotConnectError as err:
			self.assertIsInstance(err.connection_attempts[-1].exception, pg_exc.UnexpectedEof)
		else:
			self.fail("interrupted handshake did not raise")
		self.assertTrue(sock.closed)

	def test_timeouts(self):
		sock = ScriptedSocket(startup_ok())
		s = Negotiator().open(
			[ScriptedSocketFactory(sock)], 'jwp', sslmode = 'disable',
			connect_timeout = 3, socket_timeout = 7,
		)
		self.assertEqual(s.connect_timeout, 3)
		self.assertEqual(sock.timeout, 7)

	def test_unix_socket(self):
		attempts = []
		factories = Negotiator().socket_factories([('/tmp', 5432)], {}, attempts)
		self.assertEqual(len(factories), 1)
		sf, host, port = factories[0]
		self.assertTrue('/tmp/.s.PGSQL.5432' in str(sf))
		self.assertEqual((host, port), ('/tmp', 5432))
		self.assertEqual(attempts, [])

	def test_open(self):
		self.assertRaises(
			pg_exc.ClientCannotConnectError,
			pqwire.open,
			host = '/nonexistent/pqwire', port = 5432,
			user = 'jwp', sslmode = 'disable', protocol_version = '3',
		)

class test_attempt(unittest.TestCase):
	def test_str(self):
		a = ConnectionAttempt(False, 'localhost:5432', ValueError('x'), '3')
		self.assertEqual(
			str(a),
			'localhost:5432 -> (SSL then NOSSL, protocol 3)' + os.linesep + 'ValueError: x'
		)
		a = ConnectionAttempt(None, 'h', ValueError('y'))
		self.assertTrue(str(a).startswith('h -> (NOSSL)'))

if __name__ == '__main__':
	unittest.main()
