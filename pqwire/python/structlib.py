##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Network order pack and unpack pairs used by the message elements and the
transport stream.
"""
import struct

null_sequence = b'\xff\xff\xff\xff'

# Always to and from network order.
# Create a pair, (pack, unpack) for the given `struct` format.
def mk_pack(x):
	s = struct.Struct('!' + x)
	if len(x) > 1:
		return (lambda y: s.pack(*y), s.unpack_from)
	else:
		return (s.pack, lambda y: s.unpack_from(y)[0])

byte_pack, byte_unpack = lambda x: bytes((x,)), lambda x: x[0]
short_pack, short_unpack = mk_pack("h")
ushort_pack, ushort_unpack = mk_pack("H")
long_pack, long_unpack = mk_pack("l")
ulong_pack, ulong_unpack = mk_pack("L")
