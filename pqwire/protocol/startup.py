##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Construction of the packets sent before a session is established.
"""
from .. import exceptions as pg_exc
from . import element3
from . import element2

startup_defaults = (
	('client_encoding', 'UTF8'),
	('DateStyle', 'ISO'),
)

def build_startup3(user, database, **params):
	"""
	The protocol 3.0 startup packet. `user` and `database` are always sent,
	followed by the session defaults and any additional `params`; keywords
	override the defaults.
	"""
	settings = [('user', user), ('database', database)]
	settings.extend([x for x in startup_defaults if x[0] not in params])
	settings.extend(params.items())
	return element3.Startup([
		(k.encode('utf-8'), str(v).encode('utf-8'))
		for k, v in settings if v is not None
	]).bytes()

def _ascii(name, value):
	try:
		return value.encode('ascii')
	except UnicodeEncodeError as err:
		raise pg_exc.EncodingError(
			"the legacy startup packet only supports ASCII in the %s" %(name,),
			details = {'value' : value}
		) from err

def build_startup2(user, database, **params):
	"""
	The fixed size protocol 2.0 startup packet. The legacy packet has no room for
	settings, so any `params` are rejected.
	"""
	if params:
		raise pg_exc.UnsupportedOperationError(
			"startup parameters are not supported by protocol 2.0",
			details = {'parameters' : ', '.join(sorted(params))}
		)
	return element2.Startup(
		_ascii('user name', user), _ascii('database name', database)
	).bytes()

def ssl_request():
	return element3.NegotiateSSLMessage.bytes()

def cancel_request(pid, key):
	return element3.CancelRequest(pid, key).bytes()
