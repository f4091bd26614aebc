##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PostgreSQL SQLState codes, the exceptions mapped to them, and the client side
protocol failures.

The primary entry points of this module are the `ErrorLookup` and
`WarningLookup` functions, and `server_error` which builds the exception for
the fields of an ErrorResponse.

For more information see:
 http://www.postgresql.org/docs/current/static/errcodes-appendix.html

This module is executable via -m: python -m pqwire.exceptions.
It provides a convenient way to look up the exception object mapped to by the
given error code::

	$ python -m pqwire.exceptions XX000
	pqwire.exceptions.InternalError [XX000]

Every exception raised by the protocol engine carries a `taxonomy` tag:

 'transport'
  Socket I/O failed. The session is no longer usable.
 'eof'
  The server closed the connection in the middle of a message.
 'protocol'
  A malformed or out of sequence message was received; the session is closed.
 'server'
  The server reported an error. The session survives.
 'connect'
  No protocol version could establish a session.
 'bind'
  The parameters do not fit the query.
 'unsupported'
  The operation is not available on the session's protocol or state.
 'encoding'
  Text could not be translated, or held a disallowed zero byte.
"""
import sys
from os import linesep

class Exception(Exception):
	'Base pqwire exception class'
	pass

def sixbit(i):
	'force values to be in the sixbit range'
	return ((i - 0x30) & 0x3F)
def unsixbit(i):
	'extract the original value from an integer processed with `sixbit`'
	return ((i & 0x3F) + 0x30)

def make(chars):
	"""
	Given an SQL state code as a character string, create the integer
	representation using `sixbit`.
	"""
	return sixbit(ord(chars[0])) + (sixbit(ord(chars[1])) << 6) + \
			(sixbit(ord(chars[2])) << 12) + (sixbit(ord(chars[3])) << 18) + \
			(sixbit(ord(chars[4])) << 24)

def unmake(code):
	"""
	Given an SQL state code as an integer, create the character string
	representation using `unsixbit`.
	"""
	return chr(unsixbit(code)) + chr(unsixbit(code >> 6)) + \
		chr(unsixbit(code >> 12)) + chr(unsixbit(code >> 18)) + \
		chr(unsixbit(code >> 24))

class State(int):
	"""
	An SQL state code. Normally used to identify the kind of error that occurred.
	"""
	def __new__(self, arg):
		if isinstance(arg, State):
			return arg
		elif isinstance(arg, int):
			chars = unmake(arg)
		else:
			chars = ''.join(arg)
			if len(chars) != 5:
				raise ValueError("SQL state codes are five characters, got %r" %(chars,))
			arg = make(chars)

		rob = int.__new__(self, arg)
		rob._chars = chars
		return rob

	def __str__(self):
		return self._chars

	def __repr__(self):
		return '%s.%s(%r)' %(
			type(self).__module__,
			type(self).__name__,
			self._chars,
		)

	def __getitem__(self, item):
		return self._chars[item]

class Class(State):
	"""
	SQL state code class. This is a state code whose last three characters are
	'000'.
	"""
	def __new__(self, chars, **kw):
		if isinstance(chars, Class):
			return chars

		rob = State.__new__(self, (chars[0], chars[1], '0', '0', '0'))
		for k, v in kw.items():
			setattr(rob, k, v)
		return rob

	def __contains__(self, ob):
		"""
		Whether the given state, `ob`, is in the state-class, `self`.

		>>> State('Ex000') in Class('Ex')
		True
		>>> State('EX000') in Class('Ex')
		False
		"""
		return State(ob)._chars[0:2] == self._chars[0:2]

	def __setattr__(self, att, val):
		"""
		Create a state code in the class. If the attribute name starts with '_', a
		normal set will occur.
		"""
		if att.startswith('_'):
			super(Class, self).__setattr__(att, val)
		else:
			if isinstance(val, int):
				c = State(val)
			else:
				c = State((self._chars[0], self._chars[1], val[0], val[1], val[2]))
			super(Class, self).__setattr__(att, c)

	def __iter__(self):
		return iter([
			x for x in self.__dict__.values() if isinstance(x, State)
		])

class Mapping(dict):
	'Dictionary subclass for mapping states and classes to Python classes'
	__slots__ = ()
	def get(self, key):
		'Gets the value that at the key or the Class of that key or None'
		c = State(key)
		supr = super(Mapping, self)
		return supr.get(c) or supr.get(Class(c))

	def set(self, code, cls):
		'Assumes that it will be given a class for the value argument'
		code = State(code)
		codec = Class(code)
		if codec != SUCCESS:
			cur = self.get(code)
			if cur is None or codec != code or \
				(issubclass(cur, cls) and codec == code):
				self[code] = cls

SUCCESS = Class('00',
	COMPLETION = '000',
)

WARNING = Class('01',
	DYNAMIC_RESULT_SETS_RETURNED = '00C',
	IMPLICIT_ZERO_BIT_PADDING = '008',
	NULL_VALUE_ELIMINATED_IN_SET_FUNCTION = '003',
	PRIVILEGE_NOT_GRANTED = '007',
	PRIVILEGE_NOT_REVOKED = '006',
	STRING_DATA_RIGHT_TRUNCATION = '004',
	DEPRECATED_FEATURE = 'P01',
)

NO_DATA_WARNING = Class('02',
	NO_ADDITIONAL_DYNAMIC_RESULT_SETS_RETURNED = '001',
)

CONNECTION = Class('08',
	DOES_NOT_EXIST = '003',
	FAILURE = '006',
	SQLCLIENT_UNABLE_TO_ESTABLISH_SQLCONNECTION = '001',
	SQLSERVER_REJECTED_ESTABLISHMENT_OF_SQLCONNECTION = '004',
	TRANSACTION_RESOLUTION_UNKNOWN = '007',
	PROTOCOL_VIOLATION = 'P01',
)

FEATURE_NOT_SUPPORTED = Class('0A')

DATA = Class('22',
	CHARACTER_NOT_IN_REPERTOIRE = '021',
	DIVISION_BY_ZERO = '012',
	NUMERIC_VALUE_OUT_OF_RANGE = '003',
	INVALID_PARAMETER_VALUE = '023',
	INVALID_DATETIME_FORMAT = '007',
	NULL_VALUE_NOT_ALLOWED = '004',
	STRING_RIGHT_TRUNCATION = '001',
	INVALID_TEXT_REPRESENTATION = 'P02',
	INVALID_BINARY_REPRESENTATION = 'P03',
	BAD_COPY_FILE_FORMAT = 'P04',
	UNTRANSLATABLE_CHARACTER = 'P05',
	NONSTANDARD_USE_OF_ESCAPE_CHARACTER = 'P06',
)

# Integrity Constraint Violation
ICV = Class('23',
	RESTRICT = '001',
	NOT_NULL = '502',
	FOREIGN_KEY = '503',
	UNIQUE = '505',
	CHECK = '514',
)

# Invalid Transaction State
ITS = Class('25',
	ACTIVE = '001',
	READ_ONLY = '006',
	NO_ACTIVE = 'P01',
	IN_FAILED = 'P02',
)

INVALID_CURSOR_NAME = Class('34')
INVALID_STATEMENT_NAME = Class('26')

AUTHORIZATION_SPECIFICATION = Class('28',
	INVALID_PASSWORD = 'P01',
)

# Transaction Rollback
TR = Class('40',
	INTEGRITY_CONSTRAINT_VIOLATION = '002',
	SERIALIZATION_FAILURE = '001',
	STATEMENT_COMPLETION_UNKNOWN = '003',
	DEADLOCK_DETECTED = 'P01',
)

# Syntax Error or Access Rule Violation
SEARV = Class('42',
	SYNTAX = '601',
	INSUFFICIENT_PRIVILEGE = '501',
	DATATYPE_MISMATCH = '804',
	UNDEFINED_COLUMN = '703',
	UNDEFINED_FUNCTION = '883',
	UNDEFINED_TABLE = 'P01',
	UNDEFINED_PARAMETER = 'P02',
	UNDEFINED_OBJECT = '704',
	DUPLICATE_PSTATEMENT = 'P05',
	DUPLICATE_CURSOR = 'P03',
)

# Insufficient Resources
IR = Class('53',
	DISK_FULL = '100',
	OUT_OF_MEMORY = '200',
	CONNECTION_OVERFLOW = '300'
)

# Operator Intervention
OI = Class('57',
	QUERY_CANCELED = '014',
	ADMIN_SHUTDOWN = 'P01',
	CRASH_SHUTDOWN = 'P02',
	CANNOT_CONNECT_NOW = 'P03',
)

# Internal Error
IE = Class('XX',
	DATA_CORRUPTED = '001',
	INDEX_CORRUPTED = '002',
)

def msgstr(ob):
	'Create a string for display in a warning or traceback'
	message = ob.message
	details = ob.details or {}
	loc = [
		details.get('file'),
		details.get('line'),
		details.get('function')
	]
	# If there are any location details, make the locstr.
	if loc.count(None) < 3:
		locstr = '%sLOCATION: File %r, line %s, in %s' %(
			linesep,
			loc[0] or '?',
			loc[1] or '?',
			loc[2] or '?',
		)
	else:
		locstr = ''

	extra = [
		'%s: %s' %(k.upper(), v) for k, v in details.items()
		if k not in ('message', 'severity', 'file', 'function', 'line', 'code')
	]
	return str(message or details.get('message')) + (
		extra and linesep + linesep.join(extra) or ''
	) + locstr

class Warning(Warning):
	code = WARNING
	message = None
	__str__ = msgstr

	def __init__(self, msg, code = None, details = None):
		self.message = msg
		if code is not None and self.code != code:
			self.code = State(code)
		self.details = details or {}

class DeprecationWarning(Warning, DeprecationWarning):
	code = WARNING.DEPRECATED_FEATURE
class DynamicResultSetsReturnedWarning(Warning):
	code = WARNING.DYNAMIC_RESULT_SETS_RETURNED
class ImplicitZeroBitPaddingWarning(Warning):
	code = WARNING.IMPLICIT_ZERO_BIT_PADDING
class NullValueEliminatedInSetFunctionWarning(Warning):
	code = WARNING.NULL_VALUE_ELIMINATED_IN_SET_FUNCTION
class PrivilegeNotGrantedWarning(Warning):
	code = WARNING.PRIVILEGE_NOT_GRANTED
class PrivilegeNotRevokedWarning(Warning):
	code = WARNING.PRIVILEGE_NOT_REVOKED
class StringDataRightTruncationWarning(Warning):
	code = WARNING.STRING_DATA_RIGHT_TRUNCATION

class NoDataWarning(Warning):
	code = NO_DATA_WARNING

class NoMoreSetsReturned(NoDataWarning):
	code = NO_DATA_WARNING.NO_ADDITIONAL_DYNAMIC_RESULT_SETS_RETURNED

class Error(Exception):
	"""Error(msg[, code[, details]])

	Implements an interface to a PostgreSQL-style exception. Raised errors
	always carry a `code`, the SQL state, and a `taxonomy` tag describing the
	consequence of the failure for the session.
	"""
	code = IE
	details = None
	taxonomy = None
	fatal = False
	message = None

	def __init__(self, msg, code = None, details = None):
		if code is not None and self.code != code:
			self.code = State(code)
		if details is not None:
			self.details = details
		self.message = msg

	__str__ = msgstr
	def __repr__(self):
		return '%s.%s(%r%s%r)' %(
			type(self).__module__,
			type(self).__name__,
			self.message,
			self.details and ', ',
			self.details
		)

##
# Client side failures.
##
class TransportError(Error):
	"Socket I/O failed; the session can not be used anymore"
	code = CONNECTION.FAILURE
	taxonomy = 'transport'
	fatal = True

class UnexpectedEof(TransportError):
	"The peer closed the connection in the middle of a message"
	taxonomy = 'eof'

class ProtocolSyntaxError(Error):
	"""
	A malformed or out-of-sequence message was received from the server.
	The stream can not be resynchronized.
	"""
	code = CONNECTION.PROTOCOL_VIOLATION
	taxonomy = 'protocol'
	fatal = True

class ClientCannotConnectError(Error):
	"""
	A connection could not be established. The `connection_attempts` attribute
	holds the `pqwire.protocol.negotiate.ConnectionAttempt` made for each
	address.
	"""
	code = CONNECTION.SQLCLIENT_UNABLE_TO_ESTABLISH_SQLCONNECTION
	taxonomy = 'connect'
	fatal = True

	def __init__(self, msg, connection_attempts = (), **kw):
		super().__init__(msg, **kw)
		self.connection_attempts = list(connection_attempts)

	def __str__(self):
		s = msgstr(self)
		if self.connection_attempts:
			s += linesep + linesep.join([
				'  ' + str(x).replace(linesep, linesep + '  ')
				for x in self.connection_attempts
			])
		return s

class ConnectionUnableToConnect(ClientCannotConnectError):
	"Every candidate protocol version declined the connection"
	def __init__(self, msg, versions = (), **kw):
		super().__init__(msg, **kw)
		self.versions = tuple(versions)

class AuthenticationMethodError(ClientCannotConnectError):
	"The server requested an authentication method that is not supported"
	code = CONNECTION.SQLSERVER_REJECTED_ESTABLISHMENT_OF_SQLCONNECTION

class InsecurityError(ClientCannotConnectError):
	"SSL was required, but the server refused it"
	code = CONNECTION.SQLSERVER_REJECTED_ESTABLISHMENT_OF_SQLCONNECTION

class BindMismatchError(Error):
	"The parameter list does not fit the query being executed"
	code = DATA.INVALID_PARAMETER_VALUE
	taxonomy = 'bind'

class UnsupportedOperationError(Error):
	"The operation is not available in the session's current protocol or state"
	code = FEATURE_NOT_SUPPORTED
	taxonomy = 'unsupported'

class EncodingError(Error, ValueError):
	"Bytes could not be decoded, or text carried a disallowed zero byte"
	code = DATA.CHARACTER_NOT_IN_REPERTOIRE
	taxonomy = 'encoding'

class RowAllocationError(Error, MemoryError):
	"""
	A column buffer could not be allocated while a row was decoded. The row was
	consumed completely; `row` holds the decoded columns with
	`AllocationFailed` markers in the places that failed.
	"""
	code = IR.OUT_OF_MEMORY
	taxonomy = 'allocation'

	def __init__(self, msg, row = None, **kw):
		super().__init__(msg, **kw)
		self.row = row

##
# Errors reported by the server.
##
class ServerReportedError(Error):
	"""
	An error sent by the server in an ErrorResponse. The `details` dictionary
	holds every field of the response, unmodified.
	"""
	taxonomy = 'server'

	@classmethod
	def from_fields(typ, fields):
		'Create the most specific error for the code in `fields`'
		return server_error(fields)

# Abstract Exceptions
class TransactionError(ServerReportedError):
	pass
class IntegrityError(ServerReportedError):
	pass

class FeatureError(ServerReportedError):
	code = FEATURE_NOT_SUPPORTED

class ConnectionError(ServerReportedError):
	code = CONNECTION
class ConnectionDoesNotExistError(ConnectionError):
	code = CONNECTION.DOES_NOT_EXIST
class ConnectionFailureError(ConnectionError):
	code = CONNECTION.FAILURE
class ProtocolError(ConnectionError):
	code = CONNECTION.PROTOCOL_VIOLATION
class ConnectionRejectionError(ConnectionError):
	code = CONNECTION.SQLSERVER_REJECTED_ESTABLISHMENT_OF_SQLCONNECTION

class AuthenticationSpecificationError(ServerReportedError):
	code = AUTHORIZATION_SPECIFICATION
class InvalidPasswordError(AuthenticationSpecificationError):
	code = AUTHORIZATION_SPECIFICATION.INVALID_PASSWORD

class ICVError(IntegrityError):
	"Integrity Contraint Violation"
	code = ICV
class RestrictError(ICVError):
	code = ICV.RESTRICT
class NotNullError(ICVError):
	code = ICV.NOT_NULL
class ForeignKeyError(ICVError):
	code = ICV.FOREIGN_KEY
class UniqueError(ICVError):
	code = ICV.UNIQUE
class CheckError(ICVError):
	code = ICV.CHECK

class DataError(ServerReportedError):
	code = DATA
class ZeroDivisionError(DataError, ZeroDivisionError):
	code = DATA.DIVISION_BY_ZERO
class NumericRangeError(DataError):
	code = DATA.NUMERIC_VALUE_OUT_OF_RANGE
class InvalidTextRepresentationError(DataError):
	code = DATA.INVALID_TEXT_REPRESENTATION
class InvalidBinaryRepresentationError(DataError):
	code = DATA.INVALID_BINARY_REPRESENTATION
class BadCopyError(DataError):
	code = DATA.BAD_COPY_FILE_FORMAT
class UntranslatableCharacterError(DataError):
	code = DATA.UNTRANSLATABLE_CHARACTER
class NonstandardUseOfEscapeCharacterError(DataError):
	code = DATA.NONSTANDARD_USE_OF_ESCAPE_CHARACTER

class ITSError(TransactionError):
	"Invalid Transaction State"
	code = ITS
class ActiveTransactionError(ITSError):
	code = ITS.ACTIVE
class ReadOnlyTransactionError(ITSError):
	code = ITS.READ_ONLY
class NoActiveTransactionError(ITSError):
	code = ITS.NO_ACTIVE
class InFailedTransactionError(ITSError):
	code = ITS.IN_FAILED

class InvalidCursorName(ServerReportedError, NameError):
	code = INVALID_CURSOR_NAME
class InvalidStatementName(ServerReportedError, NameError):
	code = INVALID_STATEMENT_NAME

class TRError(TransactionError):
	"Transaction Rollback"
	code = TR
class DeadlockError(TRError):
	code = TR.DEADLOCK_DETECTED
class SerializationError(TRError):
	code = TR.SERIALIZATION_FAILURE

class SEARVError(ServerReportedError):
	"Syntax Error or Access Rule Violation"
	code = SEARV
class SyntaxError(SEARVError):
	code = SEARV.SYNTAX
class InsufficientPrivilegeError(SEARVError):
	code = SEARV.INSUFFICIENT_PRIVILEGE
class DatatypeMismatchError(SEARVError):
	code = SEARV.DATATYPE_MISMATCH
class UndefinedError(SEARVError):
	pass
class UndefinedColumnError(UndefinedError):
	code = SEARV.UNDEFINED_COLUMN
class UndefinedFunctionError(UndefinedError):
	code = SEARV.UNDEFINED_FUNCTION
class UndefinedTableError(UndefinedError):
	code = SEARV.UNDEFINED_TABLE
class UndefinedParameterError(UndefinedError):
	code = SEARV.UNDEFINED_PARAMETER
class UndefinedObjectError(UndefinedError):
	code = SEARV.UNDEFINED_OBJECT
class DuplicatePreparedStatementError(SEARVError):
	code = SEARV.DUPLICATE_PSTATEMENT
class DuplicateCursorError(SEARVError):
	code = SEARV.DUPLICATE_CURSOR

class IRError(ServerReportedError):
	"Insufficient Resources"
	code = IR
class MemoryError(IRError, MemoryError):
	code = IR.OUT_OF_MEMORY
class DiskFullError(IRError):
	code = IR.DISK_FULL
class ConnectionOverflowError(IRError):
	code = IR.CONNECTION_OVERFLOW

class OIError(ServerReportedError):
	"Operator Intervention"
	code = OI
class QueryCanceledError(OIError):
	code = OI.QUERY_CANCELED
class AdminShutdownError(OIError):
	code = OI.ADMIN_SHUTDOWN
class CrashShutdownError(OIError):
	code = OI.CRASH_SHUTDOWN
class CannotConnectNowError(OIError):
	code = OI.CANNOT_CONNECT_NOW

class InternalError(ServerReportedError):
	code = IE
class DataCorruptedError(InternalError):
	code = IE.DATA_CORRUPTED
class IndexCorruptedError(InternalError):
	code = IE.INDEX_CORRUPTED

CodeClass = Mapping()
WarningCodeClass = Mapping()

def ErrorLookup(c):
	"""
	Given an error code, return the exception that is most closely associated
	with it.
	"""
	return CodeClass.get(c) or ServerReportedError

def WarningLookup(c):
	"""
	Given a warning code, return the warning that is most closely associated
	with it.
	"""
	return WarningCodeClass.get(c) or Warning

def server_error(fields, error_lookup = ErrorLookup):
	"""
	Create the exception for the given ErrorResponse fields. `fields` is a
	dictionary keyed by field name ('code', 'message', 'severity', ...).
	Fields without a code produce a plain `ServerReportedError`.
	"""
	code = fields.get('code')
	if code:
		try:
			typ = error_lookup(code)
		except ValueError:
			typ = ServerReportedError
			code = None
	else:
		typ = ServerReportedError
	return typ(fields.get('message'), code = code, details = fields)

def server_warning(fields, warning_lookup = WarningLookup):
	'Create the warning for the given NoticeResponse fields'
	code = fields.get('code')
	if code:
		try:
			typ = warning_lookup(code)
		except ValueError:
			typ = Warning
			code = None
	else:
		typ = Warning
	return typ(fields.get('message'), code = code, details = fields)

# Setup mapping to provide code based exception lookup.
d = sys.modules[__name__].__dict__
e = None
for e in d.values():
	if type(e) == type(Error) and issubclass(e, ServerReportedError) and e not in (
		ServerReportedError, TransactionError, IntegrityError, UndefinedError,
	) and Class(e.code) != SUCCESS:
		CodeClass.set(e.code, e)
	elif type(e) == type(Warning) and issubclass(e, Warning):
		WarningCodeClass.set(e.code, e)
del e, d

if __name__ == '__main__':
	for x in sys.argv[1:]:
		e = ErrorLookup(x)
		sys.stdout.write('pqwire.exceptions.%s [%s]%s%s' %(
				e.__name__, e.code, linesep, (
					e.__doc__ is not None and linesep.join([
						'  ' + x for x in (e.__doc__).split('\n')
					]) + linesep or ''
				)
			)
		)
