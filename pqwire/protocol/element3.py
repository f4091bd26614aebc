##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PQ version 3.0 elements

Frontend messages are built and serialized here. Backend messages with a
structured body are decoded by the `parse` classmethods; their `serialize`
methods produce the same bodies.

Backend messages without a body, such as ParseComplete or NoData, and the
DataRow are read by the executors straight off the stream and have no classes.
"""
import pprint
from struct import Struct, unpack
from ..python.structlib import \
	ushort_pack, ushort_unpack, ulong_pack, ulong_unpack, \
	long_pack, long_unpack, null_sequence

##
# The type byte of each ordinal; compare message types with `is`.
message_types = tuple([bytes((x,)) for x in range(256)])

StringFormat = b'\x00\x00'
BinaryFormat = b'\x00\x01'

def pack_version(major, minor):
	return ushort_pack(major) + ushort_pack(minor)

V3_0 = pack_version(3, 0)
NegotiateSSLCode = pack_version(1234, 5679)
CancelRequestCode = pack_version(1234, 5678)

def pack_tuple_data(atts):
	'Length prefixed values; `None` is NULL'
	return b''.join([
		null_sequence if x is None else ulong_pack(len(x)) + x
		for x in atts
	])

def unpack_tuple_data(data, count, offset):
	'Read `count` length prefixed values at `offset`; returns (values, end)'
	values = []
	for i in range(count):
		head = data[offset:offset+4]
		offset += 4
		if head == null_sequence:
			values.append(None)
			continue
		end = offset + ulong_unpack(head)
		values.append(data[offset:end])
		offset = end
	return values, offset

def unpack_formats(data, offset):
	'Read a format code count and the codes at `offset`; returns (formats, end)'
	count = ushort_unpack(data[offset:offset+2])
	start = offset + 2
	end = start + 2 * count
	return tuple([data[x:x+2] for x in range(start, end, 2)]), end

def split_strings(data, count):
	'The first `count` NUL terminated strings of `data`, and the remainder'
	parts = data.split(b'\x00', count)
	if len(parts) <= count:
		raise ValueError("expected %d NUL terminated strings" %(count,))
	return parts[:count], parts[count]

class Message(object):
	'A typed message: the type byte, the length word, then the body'
	bytes_struct = Struct("!cL")
	__slots__ = ()

	def __repr__(self):
		return '%s.%s(%s)' %(
			type(self).__module__, type(self).__name__,
			', '.join([repr(getattr(self, x)) for x in self.__slots__]),
		)

	def bytes(self):
		body = self.serialize()
		return self.bytes_struct.pack(self.type, len(body) + 4) + body

	@classmethod
	def parse(typ, data):
		return typ(data)

class UntypedMessage(Message):
	'Startup phase packet: a length word and the body, no type byte'
	type = b''
	__slots__ = ()

	def bytes(self):
		body = self.serialize()
		return ulong_pack(len(body) + 4) + body

class EmptyMessage(Message):
	'A message that is nothing but its type'
	__slots__ = ('type',)

	def __init__(self, type):
		self.type = type

	def serialize(self):
		return b''

class StringMessage(Message):
	'A message whose body is a single NUL terminated string'
	__slots__ = ('data',)

	def __init__(self, data):
		self.data = data

	def serialize(self):
		return bytes(self.data) + b'\x00'

	@classmethod
	def parse(typ, data):
		if not data.endswith(b'\x00'):
			raise ValueError("string message not NUL-terminated")
		return typ(data[:-1])

class SubtypedStringMessage(StringMessage):
	'Describe and Close: a target kind byte, then the name of the target'
	__slots__ = ()

	def serialize(self):
		return self.subtype + bytes(self.data) + b'\x00'

def dict_message_repr(self):
	return '%s.%s(**%s)' %(
		type(self).__module__, type(self).__name__, pprint.pformat(dict(self))
	)

##
# Backend messages.
class Authentication(Message):
	"""Authentication(request, salt)"""
	type = message_types[b'R'[0]]
	__slots__ = ('request', 'salt')

	def __init__(self, request, salt):
		self.request = request
		self.salt = salt

	def serialize(self):
		return ulong_pack(self.request) + self.salt

	@classmethod
	def parse(typ, data):
		if len(data) < 4:
			raise ValueError("authentication request is too short")
		return typ(ulong_unpack(data[0:4]), data[4:])

AuthRequest_OK = 0
AuthRequest_KRB4 = 1
AuthRequest_KRB5 = 2
AuthRequest_Cleartext = 3
AuthRequest_Password = AuthRequest_Cleartext
AuthRequest_Crypt = 4
AuthRequest_MD5 = 5
AuthRequest_SCMC = 6
AuthRequest_GSS = 7
AuthRequest_GSSContinue = 8
AuthRequest_SSPI = 9

AuthNameMap = {
	AuthRequest_KRB4 : 'Kerberos4',
	AuthRequest_KRB5 : 'Kerberos5',
	AuthRequest_Cleartext : 'Cleartext',
	AuthRequest_Crypt : 'Crypt',
	AuthRequest_MD5 : 'MD5',
	AuthRequest_SCMC : 'SCM Credential',
	AuthRequest_GSS : 'GSS',
	AuthRequest_GSSContinue : 'GSSContinue',
	AuthRequest_SSPI : 'SSPI',
}

class ShowOption(Message):
	"""ShowOption(name, value)
	A run-time parameter reported by the backend"""
	type = message_types[b'S'[0]]
	__slots__ = ('name', 'value')

	def __init__(self, name, value):
		self.name = name
		self.value = value

	def serialize(self):
		return self.name + b'\x00' + self.value + b'\x00'

	@classmethod
	def parse(typ, data):
		(name, value), rest = split_strings(data, 2)
		return typ(name, value)

class KillInformation(Message):
	'BackendKeyData: what a CancelRequest must quote'
	type = message_types[b'K'[0]]
	struct = Struct("!ll")
	__slots__ = ('pid', 'key')

	def __init__(self, pid, key):
		self.pid = pid
		self.key = key

	def serialize(self):
		return self.struct.pack(self.pid, self.key)

	@classmethod
	def parse(typ, data):
		if len(data) != 8:
			raise ValueError("backend key data must be 8 bytes, got %d" %(len(data),))
		return typ(*typ.struct.unpack(data))

class Ready(Message):
	'ReadyForQuery with the transaction state byte'
	type = message_types[b'Z'[0]]
	possible_states = (b'I', b'T', b'E')
	__slots__ = ('xact_state',)

	def __init__(self, state):
		if state not in self.possible_states:
			raise ValueError("invalid state for Ready message: " + repr(state))
		self.xact_state = state

	def serialize(self):
		return self.xact_state

class Notify(Message):
	'Asynchronous notification'
	type = message_types[b'A'[0]]
	__slots__ = ('pid', 'relation', 'parameter')

	def __init__(self, pid, relation, parameter = b''):
		self.pid = pid
		self.relation = relation
		self.parameter = parameter

	def serialize(self):
		return long_pack(self.pid) + self.relation + b'\x00' + \
			self.parameter + b'\x00'

	@classmethod
	def parse(typ, data):
		if len(data) < 4:
			raise ValueError("notification is too short")
		(relation, parameter), rest = split_strings(data[4:], 2)
		return typ(long_unpack(data[0:4]), relation, parameter)

class Complete(StringMessage):
	'CommandComplete and its command tag'
	type = message_types[b'C'[0]]
	__slots__ = ()

	@classmethod
	def parse(typ, data):
		return typ(data.rstrip(b'\x00'))

	def extract_count(self):
		"""
		The row count at the end of the tag; `None` when the tag carries none.
		A bare "COPY" tag, sent by servers before 8.2, has no count.
		"""
		words = self.data.split()
		if not words:
			return None
		if words[0].upper() == b'COPY':
			return int(words[-1]) if len(words) > 1 else None
		if words[-1].isdigit():
			return int(words[-1])
		return None

	def extract_command(self):
		words = self.data.split()
		return words[0] if words else None

class Notice(Message, dict):
	"""
	NoticeResponse fields keyed by name. Only the fields the server sent are
	present; unknown field codes are ignored.
	"""
	type = message_types[b'N'[0]]
	field_names = {
		b'S' : 'severity',
		b'C' : 'code',
		b'M' : 'message',
		b'D' : 'detail',
		b'H' : 'hint',
		b'P' : 'position',
		b'p' : 'internal_position',
		b'q' : 'internal_query',
		b'W' : 'context',
		b'F' : 'file',
		b'L' : 'line',
		b'R' : 'function',
	}
	__slots__ = ()
	__repr__ = dict_message_repr

	def __init__(self, **fields):
		dict.__init__(self, [
			(k, v) for k, v in fields.items() if v is not None
		])

	def serialize(self):
		return b''.join([
			code + self[name] + b'\x00'
			for code, name in self.field_names.items()
			if name in self
		]) + b'\x00'

	@classmethod
	def parse(typ, data):
		names = typ.field_names
		fields = {}
		for frag in data.split(b'\x00'):
			name = names.get(frag[0:1])
			if name is not None:
				fields[name] = frag[1:]
		return typ(**fields)

	def decode(self, decode):
		'The fields as strings, using the `decode` callable'
		return dict([(k, decode(v)) for k, v in self.items()])

class Error(Notice):
	'ErrorResponse; the same fields as a notice'
	type = message_types[b'E'[0]]
	__slots__ = ()

class FunctionResult(Message):
	"""FunctionCallResponse; `result` is `None` for NULL"""
	type = message_types[b'V'[0]]
	__slots__ = ('result',)

	def __init__(self, result):
		self.result = result

	def serialize(self):
		return pack_tuple_data((self.result,))

	@classmethod
	def parse(typ, data):
		if data == null_sequence:
			return typ(None)
		if len(data) < 4:
			raise ValueError("function result is too short")
		size = ulong_unpack(data[0:4])
		if size != len(data) - 4:
			raise ValueError(
				"function result of %d bytes declared %d bytes" %(len(data) - 4, size)
			)
		return typ(data[4:])

class AttributeTypes(tuple, Message):
	'ParameterDescription: the type oids of the parameters'
	type = message_types[b't'[0]]
	__slots__ = ()

	def serialize(self):
		return ushort_pack(len(self)) + b''.join([ulong_pack(x) for x in self])

	@classmethod
	def parse(typ, data):
		if len(data) < 2:
			raise ValueError("missing column count")
		count = ushort_unpack(data[0:2])
		if len(data) != 2 + count * 4:
			raise ValueError("invalid argument type data size")
		return typ(unpack('!%dL' %(count,), data[2:]))

class TupleDescriptor(tuple, Message):
	"""
	RowDescription: one tuple per column of
	(name, table oid, column number, type oid, type length, type modifier, format)
	"""
	type = message_types[b'T'[0]]
	struct = Struct("!LhLhlh")
	__slots__ = ()

	def keys(self):
		return [x[0] for x in self]

	def serialize(self):
		return ushort_pack(len(self)) + b''.join([
			x[0] + b'\x00' + self.struct.pack(*x[1:])
			for x in self
		])

	@classmethod
	def parse(typ, data):
		if len(data) < 2:
			raise ValueError("missing column count")
		count = ushort_unpack(data[0:2])
		size = typ.struct.size
		columns = []
		offset = 2
		for i in range(count):
			end = data.index(b'\x00', offset)
			fixed = data[end+1:end+1+size]
			if len(fixed) != size:
				raise ValueError("column %d description is truncated" %(i,))
			columns.append((data[offset:end],) + typ.struct.unpack(fixed))
			offset = end + 1 + size
		return typ(columns)

class CopyBegin(Message):
	'CopyInResponse and CopyOutResponse: the overall format and column formats'
	struct = Struct("!BH")
	__slots__ = ('format', 'formats')

	def __init__(self, format, formats):
		self.format = format
		self.formats = formats

	def serialize(self):
		return self.struct.pack(self.format, len(self.formats)) + \
			b''.join([ushort_pack(x) for x in self.formats])

	@classmethod
	def parse(typ, data):
		if len(data) < 3:
			raise ValueError("copy response is too short")
		format, count = typ.struct.unpack(data[:3])
		if len(data) != 3 + count * 2:
			raise ValueError("number of formats and data do not match up")
		return typ(format, list(unpack('!%dH' %(count,), data[3:])))

class CopyToBegin(CopyBegin):
	type = message_types[b'H'[0]]
	__slots__ = ()

class CopyFromBegin(CopyBegin):
	type = message_types[b'G'[0]]
	__slots__ = ()

##
# Both directions.
class CopyData(Message):
	type = message_types[b'd'[0]]
	__slots__ = ('data',)

	def __init__(self, data):
		self.data = bytes(data)

	def serialize(self):
		return self.data

CopyDoneMessage = EmptyMessage(message_types[b'c'[0]])

##
# Frontend messages.
class Startup(UntypedMessage, dict):
	"""
	Startup(pairs)

	The protocol 3.0 startup packet; keys and values are bytes.
	"""
	packed_version = V3_0
	__slots__ = ()
	__repr__ = dict_message_repr

	def serialize(self):
		return self.packed_version + b''.join([
			k + b'\x00' + v + b'\x00'
			for k, v in self.items()
			if v is not None
		]) + b'\x00'

	@classmethod
	def parse(typ, data):
		if data[0:4] != typ.packed_version:
			raise ValueError("invalid version code %r" %(data[0:4],))
		strings = data[4:].split(b'\x00')
		# The packet ends with an empty key.
		pairs = strings[:-2]
		return typ(zip(pairs[0::2], pairs[1::2]))

class NegotiateSSL(UntypedMessage):
	"SSLRequest"
	__slots__ = ()

	def serialize(self):
		return NegotiateSSLCode
NegotiateSSLMessage = NegotiateSSL()

class CancelRequest(UntypedMessage):
	'Ask the postmaster to cancel the query running in the given backend'
	__slots__ = ('pid', 'key')

	def __init__(self, pid, key):
		self.pid = pid
		self.key = key

	def serialize(self):
		return CancelRequestCode + KillInformation.struct.pack(self.pid, self.key)

class Password(StringMessage):
	'PasswordMessage'
	type = message_types[b'p'[0]]
	__slots__ = ()

class Query(StringMessage):
	'Simple query'
	type = message_types[b'Q'[0]]
	__slots__ = ()

class Parse(Message):
	"""Parse(name, statement, argtypes)"""
	type = message_types[b'P'[0]]
	__slots__ = ('name', 'statement', 'argtypes')

	def __init__(self, name, statement, argtypes):
		self.name = name
		self.statement = statement
		self.argtypes = argtypes

	def serialize(self):
		return self.name + b'\x00' + self.statement + b'\x00' + \
			ushort_pack(len(self.argtypes)) + \
			b''.join([ulong_pack(x) for x in self.argtypes])

class Bind(Message):
	"""
	Bind a parsed statement with the given arguments to a Portal

	Bind(
		name,      # Portal/Cursor identifier
		statement, # Prepared Statement name/identifier
		aformats,  # Argument formats; Sequence of BinaryFormat or StringFormat.
		arguments, # Argument data; Sequence of None or argument data(bytes).
		rformats,  # Result formats; Sequence of BinaryFormat or StringFormat.
	)

	An empty `rformats` asks for every result column in text.
	"""
	type = message_types[b'B'[0]]
	__slots__ = ('name', 'statement', 'aformats', 'arguments', 'rformats')

	def __init__(self, name, statement, aformats, arguments, rformats):
		self.name = name
		self.statement = statement
		self.aformats = aformats
		self.arguments = arguments
		self.rformats = rformats

	def size(self):
		'The length word of the serialized message'
		return 4 + len(self.name) + 1 + len(self.statement) + 1 + \
			2 + 2 * len(self.aformats) + \
			2 + sum([4 if x is None else 4 + len(x) for x in self.arguments]) + \
			2 + 2 * len(self.rformats)

	def serialize(self):
		return self.name + b'\x00' + self.statement + b'\x00' + \
			ushort_pack(len(self.aformats)) + b''.join(self.aformats) + \
			ushort_pack(len(self.arguments)) + pack_tuple_data(self.arguments) + \
			ushort_pack(len(self.rformats)) + b''.join(self.rformats)

	@classmethod
	def parse(typ, data):
		(name, statement), rest = split_strings(data, 2)
		aformats, offset = unpack_formats(rest, 0)
		count = ushort_unpack(rest[offset:offset+2])
		arguments, offset = unpack_tuple_data(rest, count, offset + 2)
		rformats, offset = unpack_formats(rest, offset)
		return typ(name, statement, aformats, arguments, rformats)

class Execute(Message):
	"""Execute(portal, max); a `max` of zero fetches every row"""
	type = message_types[b'E'[0]]
	__slots__ = ('name', 'max')

	def __init__(self, name, max = 0):
		self.name = name
		self.max = max

	def serialize(self):
		return self.name + b'\x00' + ulong_pack(self.max)

class DescribeStatement(SubtypedStringMessage):
	type = message_types[b'D'[0]]
	subtype = b'S'
	__slots__ = ()

class DescribePortal(SubtypedStringMessage):
	type = message_types[b'D'[0]]
	subtype = b'P'
	__slots__ = ()

class CloseStatement(SubtypedStringMessage):
	type = message_types[b'C'[0]]
	subtype = b'S'
	__slots__ = ()

class ClosePortal(SubtypedStringMessage):
	type = message_types[b'C'[0]]
	subtype = b'P'
	__slots__ = ()

class Function(Message):
	"""Function(oid, aformats, arguments, rformat)"""
	type = message_types[b'F'[0]]
	__slots__ = ('oid', 'aformats', 'arguments', 'rformat')

	def __init__(self, oid, aformats, arguments, rformat = StringFormat):
		self.oid = oid
		self.aformats = aformats
		self.arguments = arguments
		self.rformat = rformat

	def serialize(self):
		return ulong_pack(self.oid) + \
			ushort_pack(len(self.aformats)) + b''.join(self.aformats) + \
			ushort_pack(len(self.arguments)) + pack_tuple_data(self.arguments) + \
			self.rformat

class CopyFail(StringMessage):
	type = message_types[b'f'[0]]
	__slots__ = ()

SynchronizeMessage = EmptyMessage(message_types[b'S'[0]])
DisconnectMessage = EmptyMessage(message_types[b'X'[0]])
