##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
py-pqwire is a client side implementation of the PostgreSQL frontend/backend
protocol, versions 3.0 and 2.0. It includes the connection negotiation, the
message codecs, and the query executors the sessions are driven with.
"""
__all__ = [
	'__author__',
	'__date__',
	'__project__',
	'__project_id__',
	'__docformat__',
	'__version__',
	'version',
	'version_info',
	'open',
]

__author__ = "James William Pye <x@jwp.name>"
__date__ = "2009-01-03 16:53:00-07"

__project__ = 'py-pqwire'
__project_id__ = 'http://python.projects.postgresql.org'

#: The py-pqwire version tuple.
version_info = (0, 9, 3, 'final', 0)

#: The py-pqwire version string.
version = __version__ = '.'.join(map(str, version_info[:3])) + (
	version_info[3] if version_info[3] != 'final' else ''
)

# Avoid importing these until requested.
_pg_negotiate = _pg_param = None
def open(**kw):
	"""
	Connect to the server described by the connection keywords and return the
	established `pqwire.protocol.session.Session`::

		>>> import pqwire
		>>> s = pqwire.open(host = 'localhost', user = 'postgres')

	The keywords are merged over the environment (PGHOST, PGUSER, ...) and the
	defaults, see `pqwire.clientparameters`.
	"""
	global _pg_negotiate, _pg_param
	if _pg_negotiate is None:
		from .protocol import negotiate as _pg_negotiate
		from . import clientparameters as _pg_param

	params = _pg_param.collect(**kw)
	_pg_param.resolve_password(params)

	host = params.pop('host')
	port = params.pop('port')
	params.setdefault('database', params['user'])
	return _pg_negotiate.Negotiator().open([(host, int(port))], **params)

__docformat__ = 'reStructuredText'
