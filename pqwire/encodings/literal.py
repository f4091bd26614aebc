##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Quoting of values that are inlined into query text.

The legacy protocol has no parameter mechanism, so parameters are written into
the statement as literals. The rules depend on the server's
`standard_conforming_strings` setting:

 standard_conforming_strings = on
  Backslash is an ordinary character; only the quote is doubled.

 standard_conforming_strings = off
  Backslash is an escape character; both the quote and the backslash are
  doubled.

A zero byte can not be represented in a literal or identifier and is refused
instead of being silently truncated by the server.
"""
from ..exceptions import EncodingError

def _check_nul(text, what):
	pos = text.find('\x00')
	if pos != -1:
		raise EncodingError(
			"zero byte in %s" %(what,),
			details = {'position' : pos}
		)

def quote_literal(text, standard_conforming_strings = False):
	"""
	Quote the given text as an SQL string literal::

		>>> quote_literal("it's")
		"'it''s'"
	"""
	_check_nul(text, 'string literal')
	text = text.replace("'", "''")
	if not standard_conforming_strings:
		text = text.replace('\\', '\\\\')
	return "'" + text + "'"

def quote_identifier(text):
	'Quote the given text as an SQL identifier'
	_check_nul(text, 'identifier')
	return '"' + text.replace('"', '""') + '"'

def quote_bytea(data, standard_conforming_strings = False):
	"""
	Quote the given bytes as a bytea literal. Every byte outside of the
	printable ASCII range, and the quote and backslash characters, are written
	as octal escapes.
	"""
	if standard_conforming_strings:
		esc = '\\'
	else:
		esc = '\\\\'
	parts = []
	for b in bytes(data):
		if b < 0x20 or b > 0x7e or b in (0x27, 0x5c):
			parts.append('%s%03o' %(esc, b))
		else:
			parts.append(chr(b))
	return "'" + ''.join(parts) + "'::bytea"
