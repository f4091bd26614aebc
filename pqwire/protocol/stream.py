##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Buffered transport over a single socket.

Output is collected by the `send_*` methods and written only when `flush` is
called. Input is read on demand; every `receive_*` call blocks until exactly the
requested amount of data is available.

Text goes through the stream's `encoding` (`send_string`, `receive_string`);
everything else is raw bytes and network order integers.

A `Stream` is not safe for concurrent use.
"""
import socket
import ssl
import structlog

from ..encodings.codec import Encoding
from ..python.structlib import \
	short_pack, short_unpack, \
	long_pack, long_unpack, ulong_pack, \
	byte_unpack
from ..exceptions import \
	TransportError, UnexpectedEof, ProtocolSyntaxError, \
	EncodingError, RowAllocationError

logger = structlog.get_logger(__name__)

class AllocationFailedType(object):
	"""
	Marker placed in a decoded row for a column whose buffer could not be
	allocated. The column's bytes were consumed and discarded.
	"""
	__slots__ = ()
	def __repr__(self):
		return 'AllocationFailed'
	def __bool__(self):
		return False
AllocationFailed = AllocationFailedType()

class Stream(object):
	"""
	Stream(sock, encoding = None)

	`allocate` is the column buffer constructor used by `receive_row`; it is
	called with the declared size of each non-NULL column.
	"""
	recv_size = 8192
	allocate = bytearray

	def __init__(self, sock, encoding = None):
		self.socket = sock
		self.encoding = encoding or Encoding('utf_8')
		self.timed_out = False
		self.closed = False
		self._out = bytearray()
		self._in = bytearray()
		self._pos = 0

	def __repr__(self):
		return '<%s.%s %r>' %(
			type(self).__module__, type(self).__name__, self.socket
		)

	##
	# Sending
	def send_char(self, c):
		if isinstance(c, int):
			self._out.append(c)
		else:
			self._out += c[0:1]

	def send_integer2(self, v):
		if not -32768 <= v <= 32767:
			raise ValueError("integer %d does not fit into two bytes" %(v,))
		self._out += short_pack(v)

	def send_integer4(self, v):
		if -0x80000000 <= v < 0:
			self._out += long_pack(v)
		elif 0 <= v <= 0xFFFFFFFF:
			self._out += ulong_pack(v)
		else:
			raise ValueError("integer %d does not fit into four bytes" %(v,))

	def send(self, data, size = None):
		"""
		Append `data`. With `size`, exactly `size` bytes are written: shorter
		data is padded with zero bytes and longer data is truncated.
		"""
		if size is None:
			self._out += data
		else:
			data = bytes(data[:size])
			self._out += data
			if len(data) < size:
				self._out += bytes(size - len(data))

	def send_string(self, text):
		'Encode `text` and write it with the terminating zero byte'
		if '\x00' in text:
			raise EncodingError(
				"string contains a zero byte",
				details = {'position' : text.index('\x00')}
			)
		self._out += self.encoding.encode(text)
		self._out.append(0)

	def flush(self):
		if not self._out:
			return
		data = bytes(self._out)
		del self._out[:]
		try:
			self.socket.sendall(data)
		except socket.timeout as err:
			self.timed_out = True
			raise TransportError(
				"timed out while writing to the server", details = {'detail' : str(err)}
			) from err
		except OSError as err:
			raise TransportError(
				"could not write to the server", details = {'detail' : str(err)}
			) from err

	##
	# Receiving
	def _recv(self, size):
		try:
			return self.socket.recv(size)
		except socket.timeout as err:
			self.timed_out = True
			raise TransportError(
				"timed out while reading from the server", details = {'detail' : str(err)}
			) from err
		except OSError as err:
			raise TransportError(
				"could not read from the server", details = {'detail' : str(err)}
			) from err

	def _buffered(self):
		return len(self._in) - self._pos

	def _fill(self, n):
		'make sure at least `n` bytes are buffered'
		if self._pos and self._pos >= len(self._in) // 2:
			del self._in[:self._pos]
			self._pos = 0
		while self._buffered() < n:
			data = self._recv(max(self.recv_size, n - self._buffered()))
			if not data:
				raise UnexpectedEof(
					"server closed the connection",
					details = {'expected' : n, 'available' : self._buffered()}
				)
			self._in += data

	def _take(self, n):
		if n < 0:
			raise ProtocolSyntaxError(
				"negative read size %d" %(n,), details = {'size' : n}
			)
		self._fill(n)
		pos = self._pos
		self._pos = pos + n
		return bytes(self._in[pos:pos+n])

	def receive_char(self):
		'Read one byte, returning it as a length one `bytes` object'
		return self._take(1)

	def receive_integer2(self):
		return short_unpack(self._take(2))

	def receive_integer4(self):
		return long_unpack(self._take(4))

	def receive_integer(self, size):
		'Read a signed integer of 1, 2 or 4 bytes'
		if size == 4:
			return self.receive_integer4()
		elif size == 2:
			return self.receive_integer2()
		elif size == 1:
			v = byte_unpack(self._take(1))
			return v - 0x100 if v > 0x7F else v
		raise ValueError("unsupported integer size %d" %(size,))

	def receive(self, n):
		return self._take(n)

	def receive_string(self, n = None):
		"""
		Read and decode a string. Without `n`, read up to and including the next
		zero byte; otherwise read exactly `n` bytes.
		"""
		if n is not None:
			return self.encoding.decode(self._take(n))

		while True:
			end = self._in.find(b'\x00', self._pos)
			if end != -1:
				break
			self._fill(self._buffered() + 1)
		data = bytes(self._in[self._pos:end])
		self._pos = end + 1
		return self.encoding.decode(data)

	def skip(self, n):
		'Discard `n` bytes'
		if n < 0:
			raise ProtocolSyntaxError(
				"negative skip size %d" %(n,), details = {'size' : n}
			)
		have = min(n, self._buffered())
		self._pos += have
		n -= have
		while n > 0:
			data = self._recv(min(self.recv_size, n))
			if not data:
				raise UnexpectedEof(
					"server closed the connection", details = {'expected' : n}
				)
			n -= len(data)

	def _read_into(self, buf, n):
		view = memoryview(buf)
		have = min(n, self._buffered())
		view[0:have] = self._in[self._pos:self._pos+have]
		self._pos += have
		while have < n:
			data = self._recv(n - have)
			if not data:
				raise UnexpectedEof(
					"server closed the connection", details = {'expected' : n - have}
				)
			view[have:have+len(data)] = data
			have += len(data)

	def receive_row(self, on_allocation_failure = 'raise'):
		"""
		Read a DataRow body: the message length, the column count, and the
		columns. NULL columns are returned as `None`.

		When a column buffer can not be allocated, the column's bytes are still
		consumed and `AllocationFailed` takes its place. Once the complete row has
		been read, the first failure is raised as a `RowAllocationError` holding the
		row, unless `on_allocation_failure` is 'placeholder'.
		"""
		self.receive_integer4()
		count = self.receive_integer2()
		row = []
		failure = None
		for i in range(count):
			length = self.receive_integer4()
			if length == -1:
				row.append(None)
				continue
			if length < -1:
				raise ProtocolSyntaxError(
					"invalid length %d of column %d in DataRow" %(length, i),
					details = {'column' : i, 'length' : length}
				)
			try:
				buf = self.allocate(length)
			except MemoryError as err:
				logger.debug("column allocation failed", column = i, size = length)
				self.skip(length)
				row.append(AllocationFailed)
				if failure is None:
					failure = (i, err)
				continue
			self._read_into(buf, length)
			row.append(bytes(buf))

		if failure is not None and on_allocation_failure != 'placeholder':
			column, err = failure
			raise RowAllocationError(
				"could not allocate column %d of a row" %(column,),
				row = row,
				details = {'column' : column},
			) from err
		return row

	def receive_row_v2(self, count, binary):
		"""
		Read a legacy protocol row of `count` columns: the NULL bitmap followed by
		the non-NULL values. Text row lengths include the length word itself.
		"""
		bitmap = self._take((count + 7) // 8)
		row = []
		for i in range(count):
			isnull = not (bitmap[i // 8] & (0x80 >> (i % 8)))
			if isnull:
				row.append(None)
				continue
			length = self.receive_integer4()
			if not binary:
				length -= 4
				if length < 0:
					length = 0
			elif length < 0:
				raise ProtocolSyntaxError(
					"invalid length %d of column %d in binary row" %(length, i),
					details = {'column' : i, 'length' : length}
				)
			row.append(self._take(length))
		return row

	def receive_eof(self):
		'Expect the server to close the connection'
		if self._buffered():
			raise ProtocolSyntaxError(
				"expected end of file, but data is buffered",
				details = {'available' : self._buffered()}
			)
		data = self._recv(1)
		if data:
			raise ProtocolSyntaxError(
				"expected end of file, but received data",
				details = {'data' : repr(data)}
			)

	##
	# Inspecting
	def peek_char(self):
		self._fill(1)
		return bytes(self._in[self._pos:self._pos+1])

	def has_pending_data(self):
		"""
		Whether a read would return without blocking. This does not block.
		"""
		if self._buffered():
			return True
		try:
			timeout = self.socket.gettimeout()
		except OSError as err:
			raise TransportError(
				"could not inspect the connection", details = {'detail' : str(err)}
			) from err
		self.socket.settimeout(0)
		try:
			data = self.socket.recv(self.recv_size)
		except (BlockingIOError, ssl.SSLWantReadError, socket.timeout):
			return False
		except OSError as err:
			raise TransportError(
				"could not read from the server", details = {'detail' : str(err)}
			) from err
		finally:
			self.socket.settimeout(timeout)
		# An empty read is the end of file, and a read would return at once.
		self._in += data
		return True

	##
	# Connection management
	def swap_socket(self, sock):
		"""
		Replace the socket, normally with its TLS wrapped version. Buffered input
		would belong to the old socket, so the read buffer must be empty.
		"""
		if self._buffered():
			raise ProtocolSyntaxError(
				"cannot swap socket with unread data buffered",
				details = {'available' : self._buffered()}
			)
		self.socket = sock

	def close(self):
		if self.closed:
			return
		self.closed = True
		try:
			self.flush()
		except TransportError as err:
			logger.debug("flush failed while closing", error = str(err))
		try:
			self.socket.close()
		except OSError as err:
			logger.debug("socket close failed", error = str(err))
