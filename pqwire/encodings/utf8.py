##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
UTF-8 decoding for wire data.

`decode` accepts sequences of one to four bytes (every code point through
U+10FFFF). Truncated sequences and malformed lead or continuation bytes raise
`pqwire.exceptions.EncodingError` instead of being replaced, so corrupt data
never turns into text silently.
"""
from ..exceptions import EncodingError

def _fail(msg, position):
	return EncodingError(msg, details = {'position' : position})

def decode(data, offset = 0, length = None):
	"""
	Decode `length` bytes of `data` starting at `offset`.
	"""
	if length is None:
		length = len(data) - offset
	end = offset + length
	if offset < 0 or length < 0 or end > len(data):
		raise ValueError("byte range %d:%d is outside of the data" %(offset, end))
	buf = memoryview(data)
	chars = []
	append = chars.append
	i = offset
	while i < end:
		ch = buf[i]
		if ch < 0x80:
			append(ch)
			i += 1
			continue

		if ch < 0xC0:
			raise _fail("Illegal UTF-8 sequence: initial byte is %s" %(hex(ch),), i)
		elif ch < 0xE0:
			need = 1
			cp = ch & 0x1F
		elif ch < 0xF0:
			need = 2
			cp = ch & 0x0F
		elif ch < 0xF8:
			need = 3
			cp = ch & 0x07
		else:
			raise _fail("Illegal UTF-8 sequence: initial byte is %s" %(hex(ch),), i)

		if i + need >= end:
			raise _fail("UTF-8 string representation was truncated", i)

		for j in range(i + 1, i + need + 1):
			cont = buf[j]
			if cont & 0xC0 != 0x80:
				raise _fail(
					"Illegal UTF-8 sequence: byte %d of %d byte sequence is not 10xxxxxx: %s" %(
						j - i + 1, need + 1, hex(cont)
					), j
				)
			cp = (cp << 6) | (cont & 0x3F)

		if cp > 0x10FFFF:
			raise _fail("Illegal UTF-8 sequence: final value is out of range: %s" %(hex(cp),), i)
		append(cp)
		i += need + 1
	return ''.join(map(chr, chars))
