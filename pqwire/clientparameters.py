##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Collect client connection parameters from various sources.

Parameters are passed around in a denormalized form, a sequence of
``(key_path, value)`` pairs where `key_path` is a tuple, before they are folded
into the dictionary given to `pqwire.protocol.negotiate.Negotiator.open`::

	[(('host',), 'localhost'), (('settings', 'timezone'), 'utc')]
	{'host' : 'localhost', 'settings' : {'timezone' : 'utc'}}
"""
import os
import sys
from itertools import chain
from getpass import getuser

default_host = 'localhost'
default_port = 5432
default_sslmode = 'prefer'

# posix
pg_home_directory = '.postgresql'

# win32
pg_appdata_directory = 'postgresql'

sslmodes = ('disable', 'allow', 'prefer', 'require')

# environment variables that will be in the parameters' "settings" dictionary.
default_envvar_settings_map = {
	'TZ' : 'timezone',
	'GEQO' : 'geqo',
	'OPTIONS' : 'options',
}

# Environment variables that require no transformation.
default_envvar_map = {
	'USER' : 'user',
	'DATABASE' : 'database',
	'HOST' : 'host',
	'PORT' : 'port',
	'PASSWORD' : 'password',
	'SSLMODE' : 'sslmode',
	'CONNECT_TIMEOUT' : 'connect_timeout',
	'CLIENTENCODING' : 'client_encoding',
	# Pins the protocol version, '3' or '2'.
	'PROTOCOL' : 'protocol_version',
}

def defaults(environ = os.environ):
	"""
	Produce the defaults based on the existing configuration.
	"""
	user = getuser() or 'postgres'
	userdir = os.path.expanduser('~' + user) or '/dev/null'
	pgdata = os.path.join(userdir, pg_home_directory)
	yield ('user',), user
	yield ('host',), default_host
	yield ('port',), default_port
	yield ('sslmode',), default_sslmode

	if sys.platform == 'win32':
		appdata = environ.get('APPDATA')
		if appdata:
			pgdata = os.path.join(appdata, pg_appdata_directory)

	for k, v in (
		('sslcrtfile', os.path.join(pgdata, 'postgresql.crt')),
		('sslkeyfile', os.path.join(pgdata, 'postgresql.key')),
		('sslrootcrtfile', os.path.join(pgdata, 'root.crt')),
	):
		if os.path.exists(v):
			yield (k,), v

def envvars(environ = os.environ, modifier = 'PG'.__add__):
	"""
	Create denormalized parameters from the given environment variables.

		PGUSER -> user
		PGDATABASE -> database
		PGHOST -> host
		PGPORT -> port
		PGPASSWORD -> password
		PGSSLMODE -> sslmode
		PGREQUIRESSL gets rewritten into "sslmode = 'require'".
		PGCONNECT_TIMEOUT -> connect_timeout
		PGCLIENTENCODING -> client_encoding
		PGPROTOCOL -> protocol_version

		PGTZ -> settings['timezone']
		PGGEQO -> settings['geqo']
		PGOPTIONS -> settings['options']
	"""
	reqssl = modifier('REQUIRESSL')
	if reqssl in environ:
		if environ[reqssl].strip() == '1':
			yield ('sslmode',), 'require'

	for k, v in default_envvar_map.items():
		k = modifier(k)
		if k in environ:
			yield ((v,), environ[k])

	for k, v in default_envvar_settings_map.items():
		k = modifier(k)
		if k in environ:
			yield (('settings', v), environ[k])

def denormalize_parameters(p):
	"""
	Given a fully normalized parameters dictionary:
	{'host': 'localhost', 'settings' : {'timezone':'utc'}}

	Denormalize it:
	[(('host',), 'localhost'), (('settings','timezone'), 'utc')]
	"""
	for k,v in p.items():
		if k == 'settings':
			for sk, sv in dict(v).items():
				yield (('settings', sk), sv)
		else:
			yield ((k,), v)

def normalize_parameter(kv):
	"""
	Translate a parameter into standard form.
	"""
	(k, v) = kv
	k = list(k)
	if k[0] == 'requiressl' and v in ('1', True):
		k[0] = 'sslmode'
		v = 'require'
	elif k[0] == 'dbname':
		k[0] = 'database'
	elif k[0] == 'sslmode':
		v = v.lower()
		if v not in sslmodes:
			raise ValueError("unknown sslmode %r, expecting one of %r" %(v, sslmodes))
	elif k[0] in ('port', 'unknown_length') and v is not None:
		v = int(v)
	elif k[0] in ('connect_timeout', 'socket_timeout') and v is not None:
		v = float(v)
	elif k[0] == 'protocol_version' and v is not None:
		v = str(v).strip()
	return (tuple(k), v)

def normalize(iter):
	"""
	Fold denormalized parameters into a dictionary. Later entries override
	earlier ones, and the 'settings' sub-dictionaries are merged.
	"""
	rd = {}
	for (k, v) in map(normalize_parameter, iter):
		sd = rd
		for sk in k[:len(k)-1]:
			sd = sd.setdefault(sk, {})
		sd[k[-1]] = v
	return rd

def resolve_password(d):
	"""
	Given a parameters dictionary, resolve the 'password' key. A callable is
	invoked, without arguments, to provide the password.
	"""
	pw = d.get('password')
	if callable(pw):
		d['password'] = pw()

def collect(environ = os.environ, no_defaults = False, no_environ = False, **kw):
	"""
	Build the normalized parameters dictionary from the defaults, the
	environment, and finally the given keywords.
	"""
	parameters = []
	if not no_defaults:
		parameters.append(defaults(environ = environ))
	if not no_environ:
		parameters.append(envvars(environ = environ))
	parameters.append(denormalize_parameters(kw))
	return normalize(chain(*parameters))

if __name__ == '__main__':
	import pprint
	pprint.pprint(collect())
