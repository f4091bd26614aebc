##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Python encodings for the encoding names that Postgres uses.

Each server encoding maps to an ordered tuple of Python codec names; the first
one the running interpreter provides is used. An empty tuple means that no
Python codec implements the encoding.
"""
from types import MappingProxyType

postgres_to_python = MappingProxyType({
	'SQL_ASCII' : ('ascii',),
	'UNICODE' : ('utf_8',),
	'UTF8' : ('utf_8',),
	'LATIN1' : ('iso8859_1',),
	'LATIN2' : ('iso8859_2',),
	'LATIN3' : ('iso8859_3',),
	'LATIN4' : ('iso8859_4',),
	'ISO_8859_5' : ('iso8859_5',),
	'ISO_8859_6' : ('iso8859_6',),
	'ISO_8859_7' : ('iso8859_7',),
	'ISO_8859_8' : ('iso8859_8',),
	'LATIN5' : ('iso8859_9',),
	'LATIN7' : ('iso8859_13',),
	'LATIN9' : ('iso8859_15',),
	'EUC_JP' : ('euc_jp',),
	'EUC_CN' : ('gb2312',),
	'EUC_KR' : ('euc_kr',),
	'JOHAB' : ('johab',),
	'EUC_TW' : ('euc_tw',),
	'SJIS' : ('ms932', 'shift_jis'),
	'BIG5' : ('big5', 'cp950'),
	'GBK' : ('gbk', 'cp936'),
	'UHC' : ('cp949',),
	'TCVN' : ('cp1258',),
	'WIN1256' : ('cp1256',),
	'WIN1250' : ('cp1250',),
	'WIN1251' : ('cp1251',),
	'WIN1252' : ('cp1252',),
	'WIN1258' : ('cp1258',),
	'WIN874' : ('cp874',),
	'WIN' : ('cp1251',),
	'ALT' : ('cp866',),
	'KOI8' : ('koi8_u', 'koi8_r'),
	'KOI8R' : ('koi8_r',),
	'KOI8U' : ('koi8_u',),
	# No Python codecs.
	'UNKNOWN' : (),
	'MULE_INTERNAL' : (),
	'LATIN6' : (),
	'LATIN8' : (),
	'LATIN10' : (),
})

def candidates(server_name, aliases = postgres_to_python):
	"""
	Return the tuple of Python codec names that may implement `server_name`.
	Unknown names produce an empty tuple.
	"""
	if server_name is None:
		return ()
	return aliases.get(server_name.strip().upper(), ())
