##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PQ version 2.0 elements

Only the frontend messages are represented here. Backend messages of the legacy
protocol carry no length word, so the executor reads them directly from the
stream.
"""
from ..python.structlib import ulong_pack, long_pack
from .element3 import Message, message_types, pack_version

V2_0 = pack_version(2, 0)

# Sizes of the fixed fields of the startup packet.
DATABASE_SIZE = 64
USER_SIZE = 32
OPTIONS_SIZE = 64
UNUSED_SIZE = 64
TTY_SIZE = 64
STARTUP_SIZE = 4 + 4 + DATABASE_SIZE + USER_SIZE + \
	OPTIONS_SIZE + UNUSED_SIZE + TTY_SIZE

def fixed(data, size):
	'Zero pad or truncate `data` to exactly `size` bytes'
	data = bytes(data[:size])
	return data + bytes(size - len(data))

class Startup(Message):
	"""
	Startup(user, database, options = b'', tty = b'')

	The fixed size startup packet.
	"""
	type = b''
	packed_version = V2_0
	__slots__ = ('user', 'database', 'options', 'tty')

	def __init__(self, user, database, options = b'', tty = b''):
		self.user = user
		self.database = database
		self.options = options
		self.tty = tty

	def serialize(self):
		return self.packed_version + \
			fixed(self.database, DATABASE_SIZE) + \
			fixed(self.user, USER_SIZE) + \
			fixed(self.options, OPTIONS_SIZE) + \
			bytes(UNUSED_SIZE) + \
			fixed(self.tty, TTY_SIZE)

	def bytes(self):
		return ulong_pack(STARTUP_SIZE) + self.serialize()

class Password(Message):
	'Password packet; unlike in 3.0, it has no message type'
	type = b''
	__slots__ = ('data',)

	def __init__(self, data):
		self.data = data

	def serialize(self):
		return self.data + b'\x00'

	def bytes(self):
		data = self.serialize()
		return ulong_pack(len(data) + 4) + data

class Query(Message):
	'Simple query'
	type = message_types[b'Q'[0]]
	__slots__ = ('data',)

	def __init__(self, data):
		self.data = data

	def serialize(self):
		return self.data + b'\x00'

	def bytes(self):
		return self.type + self.serialize()

class Function(Message):
	"""
	Function(oid, arguments)

	Fastpath function call. Arguments are bytes; the legacy protocol has no NULL
	arguments.
	"""
	type = message_types[b'F'[0]]
	__slots__ = ('oid', 'arguments')

	def __init__(self, oid, arguments):
		self.oid = oid
		self.arguments = arguments

	def serialize(self):
		return b'\x00' + ulong_pack(self.oid) + \
			ulong_pack(len(self.arguments)) + b''.join([
				long_pack(len(x)) + x for x in self.arguments
			])

	def bytes(self):
		return self.type + self.serialize()

class Disconnect(Message):
	'Close the connection'
	type = message_types[b'X'[0]]
	__slots__ = ()

	def serialize(self):
		return b''

	def bytes(self):
		return self.type
DisconnectMessage = Disconnect()
