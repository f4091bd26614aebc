##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Character encoding of a session.

An `Encoding` translates between wire bytes and text for discrete values
(`encode` and `decode`) and provides a reader/writer pair for bulk text I/O
over byte streams.
"""
import codecs
import locale
import structlog

from . import aliases
from . import utf8
from ..exceptions import EncodingError

logger = structlog.get_logger(__name__)

def available(name):
	'Whether Python provides a codec for the given name'
	try:
		codecs.lookup(name)
	except LookupError:
		return False
	return True

def platform_default():
	return codecs.lookup(locale.getpreferredencoding(False)).name

class Encoding(object):
	"""
	Wraps one Python codec. `None` as the name selects the platform default.
	"""
	__slots__ = ('name', 'utf8', '_codec')

	def __init__(self, name = None):
		if name is None:
			name = platform_default()
		try:
			codec = codecs.lookup(name)
		except LookupError:
			raise EncodingError(
				"unknown encoding %r" %(name,), details = {'encoding' : name}
			)
		self._codec = codec
		self.name = codec.name
		self.utf8 = (codec.name == 'utf-8')

	def __repr__(self):
		return '%s.%s(%r)' %(
			type(self).__module__,
			type(self).__name__,
			self.name,
		)

	def __eq__(self, ob):
		return isinstance(ob, Encoding) and ob.name == self.name

	def __hash__(self):
		return hash(self.name)

	@classmethod
	def for_server(typ, server_name):
		"""
		Create the Encoding for a server-side encoding name.

		The first available candidate of the alias map wins. Failing that, the
		server name itself is tried as a Python codec name, and then the platform
		default is used.
		"""
		for name in aliases.candidates(server_name):
			if available(name):
				return typ(name)
		if server_name and available(server_name):
			return typ(server_name)
		logger.debug("no codec for server encoding", server_encoding = server_name)
		return typ(None)

	@classmethod
	def for_python(typ, name):
		'Create the Encoding for a Python codec name'
		return typ(name)

	def encode(self, text):
		try:
			return self._codec.encode(text)[0]
		except UnicodeError as err:
			raise EncodingError(
				"could not encode text using %s" %(self.name,),
				details = {'encoding' : self.name, 'detail' : str(err)}
			) from err

	def decode(self, data, offset = 0, length = None):
		if self.utf8:
			return utf8.decode(data, offset, length)
		if length is None:
			length = len(data) - offset
		try:
			return self._codec.decode(memoryview(data)[offset:offset+length])[0]
		except UnicodeError as err:
			raise EncodingError(
				"could not decode bytes using %s" %(self.name,),
				details = {'encoding' : self.name, 'detail' : str(err)}
			) from err

	def reader(self, byte_stream):
		'A text reader decoding the given binary stream'
		return codecs.getreader(self.name)(byte_stream)

	def writer(self, byte_stream):
		'A text writer encoding into the given binary stream'
		return codecs.getwriter(self.name)(byte_stream)
