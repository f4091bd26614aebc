##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Scanning functions for SQL text.

Every `scan_*` function takes the text and the offset of the character that
opens the region (the quote, the dollar sign, the first '-' or '/'), and returns
the offset at which the region ends. When the character at `offset` does not
actually open a region, `offset` is returned unchanged; when the region is not
terminated, ``len(text)`` is returned.

`split` uses these to break text into statements and placeholder fragments
without being fooled by semicolons and question marks inside literals,
identifiers or comments.
"""

def scan_single_quoted(text, offset):
	"""
	Return the offset of the quote that ends the single-quoted region opened at
	`offset`. A backslash skips the following character.

	For a doubled quote, ``'it''s'``, the offset of the first quote of the pair is
	returned; the caller scans again from that offset to continue the literal.
	"""
	end = len(text)
	offset += 1
	while offset < end:
		c = text[offset]
		if c == '\\':
			offset += 1
		elif c == "'":
			return offset
		offset += 1
	return end

def scan_double_quoted(text, offset):
	'Return the offset of the next double quote after `offset`'
	pos = text.find('"', offset + 1)
	if pos == -1:
		return len(text)
	return pos

def is_dollar_quote_start_char(c):
	return ('a' <= c <= 'z') or ('A' <= c <= 'Z') or c == '_' or ord(c) > 127

def is_dollar_quote_cont_char(c):
	return is_dollar_quote_start_char(c) or ('0' <= c <= '9')

def scan_dollar_quoted(text, offset):
	"""
	If the '$' at `offset` opens a dollar quote, ``$$`` or ``$tag$``, return the
	offset of the final '$' of the matching closer.
	"""
	end = len(text)
	if offset + 1 >= end:
		return offset

	if text[offset + 1] == '$':
		tag_end = offset + 1
	elif is_dollar_quote_start_char(text[offset + 1]):
		tag_end = -1
		for d in range(offset + 2, end):
			c = text[d]
			if c == '$':
				tag_end = d
				break
			elif not is_dollar_quote_cont_char(c):
				break
		if tag_end == -1:
			return offset
	else:
		return offset

	tag = text[offset:tag_end + 1]
	pos = text.find(tag, tag_end + 1)
	if pos == -1:
		return end
	return pos + len(tag) - 1

def scan_line_comment(text, offset):
	"""
	If the '-' at `offset` starts a ``--`` comment, return the offset of the
	line break that ends it.
	"""
	end = len(text)
	if offset + 1 < end and text[offset + 1] == '-':
		offset += 1
		while offset < end:
			if text[offset] in '\r\n':
				return offset
			offset += 1
		return end
	return offset

def scan_block_comment(text, offset):
	"""
	If the '/' at `offset` starts a block comment, return the offset of the '/'
	that closes it. Block comments nest.
	"""
	end = len(text)
	if not (offset + 1 < end and text[offset + 1] == '*'):
		return offset

	level = 1
	offset += 2
	while offset < end:
		prev = text[offset - 1]
		c = text[offset]
		if prev == '*' and c == '/':
			level -= 1
			if level == 0:
				return offset
			# "*/*" does not open another comment.
			offset += 1
		elif prev == '/' and c == '*':
			level += 1
			# "/*/" does not close the comment.
			offset += 1
		offset += 1
	return end

def skip_region(text, offset):
	"""
	If a quoted or commented region starts at `offset`, return the offset of
	its last character; otherwise return `offset`.
	"""
	c = text[offset]
	if c == "'":
		return scan_single_quoted(text, offset)
	elif c == '"':
		return scan_double_quoted(text, offset)
	elif c == '$':
		return scan_dollar_quoted(text, offset)
	elif c == '-':
		return scan_line_comment(text, offset)
	elif c == '/':
		return scan_block_comment(text, offset)
	return offset

def split(text, placeholders = True):
	"""
	Split `text` into statements, each a list of fragments that surround the
	'?' placeholders::

		>>> split("select ?, '?'; select 1")
		[['select ', ", '?'"], [' select 1']]

	Statements consisting only of whitespace are dropped. With `placeholders`
	false, question marks are not treated specially.
	"""
	statements = []
	fragments = []
	start = 0
	i = 0
	end = len(text)
	while i < end:
		c = text[i]
		if c == ';':
			fragments.append(text[start:i])
			start = i + 1
			if len(fragments) > 1 or fragments[0].strip():
				statements.append(fragments)
			fragments = []
		elif c == '?' and placeholders:
			fragments.append(text[start:i])
			start = i + 1
		else:
			i = skip_region(text, i)
		i += 1

	fragments.append(text[start:])
	if len(fragments) > 1 or fragments[0].strip():
		statements.append(fragments)
	return statements
