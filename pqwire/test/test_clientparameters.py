##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
import unittest
from .. import clientparameters as pg_param

env_samples = [
	(
		{
			'PGUSER' : 'the_user',
			'PGHOST' : 'the_host',
		},
		{
			'user' : 'the_user',
			'host' : 'the_host',
		}
	),
	(
		{
			'PGPORT' : '5433',
			'PGREQUIRESSL' : '1',
			'PGTZ' : 'utc',
		},
		{
			'port' : 5433,
			'sslmode' : 'require',
			'settings' : {'timezone' : 'utc'},
		}
	),
	(
		{
			'PGPROTOCOL' : '2',
			'PGCLIENTENCODING' : 'latin1',
			'PGCONNECT_TIMEOUT' : '10',
		},
		{
			'protocol_version' : '2',
			'client_encoding' : 'latin1',
			'connect_timeout' : 10.0,
		}
	),
]

class test_clientparameters(unittest.TestCase):
	def test_envvars(self):
		for env, expect in env_samples:
			params = pg_param.collect(environ = env, no_defaults = True)
			self.assertEqual(params, expect)

	def test_keywords_override(self):
		params = pg_param.collect(
			environ = {'PGHOST' : 'envhost', 'PGOPTIONS' : '-c x=y'},
			no_defaults = True,
			host = 'kwhost',
			settings = {'search_path' : 'public'},
		)
		self.assertEqual(params['host'], 'kwhost')
		self.assertEqual(params['settings'], {
			'options' : '-c x=y',
			'search_path' : 'public',
		})

	def test_defaults(self):
		params = pg_param.collect(environ = {}, no_environ = True)
		self.assertEqual(params['host'], pg_param.default_host)
		self.assertEqual(params['port'], pg_param.default_port)
		self.assertEqual(params['sslmode'], 'prefer')
		self.assertTrue(params['user'])

	def test_normalize(self):
		self.assertEqual(
			pg_param.normalize([(('dbname',), 'x'), (('requiressl',), '1')]),
			{'database' : 'x', 'sslmode' : 'require'}
		)
		self.assertEqual(
			pg_param.normalize([(('socket_timeout',), '2.5'), (('unknown_length',), '10')]),
			{'socket_timeout' : 2.5, 'unknown_length' : 10}
		)
		self.assertRaises(ValueError, pg_param.normalize, [(('sslmode',), 'sometimes')])

	def test_denormalize(self):
		d = {'host' : 'h', 'settings' : {'a' : 'b'}}
		self.assertEqual(
			sorted(pg_param.denormalize_parameters(d)),
			[(('host',), 'h'), (('settings', 'a'), 'b')]
		)

	def test_resolve_password(self):
		d = {'password' : lambda: 'secret'}
		pg_param.resolve_password(d)
		self.assertEqual(d['password'], 'secret')
		d = {'password' : 'plain'}
		pg_param.resolve_password(d)
		self.assertEqual(d['password'], 'plain')

if __name__ == '__main__':
	unittest.main()
