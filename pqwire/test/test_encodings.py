##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
import io
import unittest

from .. import exceptions as pg_exc
from ..encodings import aliases
from ..encodings import literal
from ..encodings import utf8
from ..encodings.codec import Encoding

class test_utf8(unittest.TestCase):
	def test_sequences(self):
		for s in ('abc', 'é', '€', '\U0001F600', 'aé€\U0001F600z', ''):
			self.assertEqual(utf8.decode(s.encode('utf-8')), s)

	def test_range(self):
		data = b'xx\xc3\xa9yy'
		self.assertEqual(utf8.decode(data, 2, 2), 'é')
		self.assertEqual(utf8.decode(data, 4), 'yy')
		self.assertRaises(ValueError, utf8.decode, data, 4, 10)

	def test_illegal_initial_byte(self):
		self.assertRaises(pg_exc.EncodingError, utf8.decode, b'\x80')
		self.assertRaises(pg_exc.EncodingError, utf8.decode, b'\xf8\x80\x80\x80\x80')

	def test_truncated(self):
		try:
			utf8.decode(b'ab\xe2\x82')
		except pg_exc.EncodingError as err:
			self.assertEqual(err.details['position'], 2)
		else:
			self.fail("truncated sequence was decoded")

	def test_bad_continuation(self):
		self.assertRaises(pg_exc.EncodingError, utf8.decode, b'\xc3\x28')

	def test_out_of_range(self):
		# 0x110000
		self.assertRaises(pg_exc.EncodingError, utf8.decode, b'\xf4\x90\x80\x80')

class test_encoding(unittest.TestCase):
	def test_for_server(self):
		self.assertEqual(Encoding.for_server('UTF8').name, 'utf-8')
		self.assertEqual(Encoding.for_server('unicode').name, 'utf-8')
		self.assertEqual(Encoding.for_server('LATIN1'), Encoding('iso8859_1'))
		self.assertEqual(Encoding.for_server('SQL_ASCII').name, 'ascii')

	def test_for_server_fallback(self):
		# Encodings without a codec use the platform default.
		self.assertEqual(Encoding.for_server('MULE_INTERNAL'), Encoding())
		self.assertEqual(Encoding.for_server('NOT_AN_ENCODING'), Encoding())

	def test_for_python(self):
		self.assertEqual(Encoding.for_python('latin-1').name, 'iso8859-1')
		self.assertRaises(pg_exc.EncodingError, Encoding.for_python, 'not-an-encoding')

	def test_candidates(self):
		self.assertEqual(aliases.candidates('sjis'), ('ms932', 'shift_jis'))
		self.assertEqual(aliases.candidates('UNKNOWN'), ())
		self.assertEqual(aliases.candidates(None), ())

	def test_encode_decode(self):
		e = Encoding('iso8859_1')
		self.assertEqual(e.encode('é'), b'\xe9')
		self.assertEqual(e.decode(b'x\xe9y', 1, 1), 'é')
		self.assertRaises(pg_exc.EncodingError, e.encode, '€')
		a = Encoding('ascii')
		self.assertRaises(pg_exc.EncodingError, a.decode, b'\xe9')

	def test_reader_writer(self):
		e = Encoding('utf_8')
		buf = io.BytesIO()
		w = e.writer(buf)
		w.write('€1')
		self.assertEqual(buf.getvalue(), b'\xe2\x82\xac1')
		r = e.reader(io.BytesIO(b'\xe2\x82\xac1'))
		self.assertEqual(r.read(), '€1')

class test_literal(unittest.TestCase):
	def test_standard_conforming(self):
		self.assertEqual(literal.quote_literal("it's", True), "'it''s'")
		self.assertEqual(literal.quote_literal('a\\b', True), "'a\\b'")

	def test_backslash_escapes(self):
		self.assertEqual(literal.quote_literal("it's", False), "'it''s'")
		self.assertEqual(literal.quote_literal('a\\b', False), "'a\\\\b'")

	def test_adversarial(self):
		# A trailing backslash must not escape the closing quote.
		q = literal.quote_literal("\\'; drop table x; --", False)
		self.assertEqual(q, "'\\\\''; drop table x; --'")
		q = literal.quote_literal("\\'; drop table x; --", True)
		self.assertEqual(q, "'\\''; drop table x; --'")

	def test_zero_byte(self):
		self.assertRaises(pg_exc.EncodingError, literal.quote_literal, 'a\x00b')
		self.assertRaises(pg_exc.EncodingError, literal.quote_identifier, 'a\x00b')

	def test_identifier(self):
		self.assertEqual(literal.quote_identifier('a"b'), '"a""b"')

	def test_bytea(self):
		self.assertEqual(
			literal.quote_bytea(b"a\x00'\\", True),
			"'a\\000\\047\\134'::bytea"
		)
		self.assertEqual(
			literal.quote_bytea(b'\xff', False),
			"'\\\\377'::bytea"
		)

if __name__ == '__main__':
	unittest.main()
