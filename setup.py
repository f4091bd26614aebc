#!/usr/bin/env python
##
# setup.py - py-pqwire
##
import sys
import os

if sys.version_info[:2] < (3,3):
	sys.stderr.write(
		"ERROR: py-pqwire is for Python 3.3 and greater." + os.linesep
	)
	sys.stderr.write(
		"HINT: setup.py was ran using Python " + \
		'.'.join([str(x) for x in sys.version_info[:3]]) +
		': ' + sys.executable + os.linesep
	)
	sys.exit(1)

# project metadata is kept in `pqwire/__init__.py`
sys.path.insert(0, '')

sys.dont_write_bytecode = True
import pqwire
sys.dont_write_bytecode = False

LONG_DESCRIPTION = """
py-pqwire is a client side implementation of the PostgreSQL frontend/backend
protocol. It negotiates connections with 3.0 and 2.0 servers, frames and
parses the protocol messages, and drives extended queries, COPY and fastpath
calls over blocking sockets.
"""

CLASSIFIERS = [
	'Development Status :: 4 - Beta',
	'Intended Audience :: Developers',
	'Natural Language :: English',
	'Operating System :: OS Independent',
	'Programming Language :: Python',
	'Programming Language :: Python :: 3',
	'Topic :: Database',
]

defaults = {
	'name' : pqwire.__project__,
	'version' : pqwire.__version__,
	'description' : 'PostgreSQL frontend/backend protocol engine',
	'long_description' : LONG_DESCRIPTION,
	'author' : 'James William Pye',
	'author_email' : 'x@jwp.name',
	'url' : pqwire.__project_id__,
	'classifiers' : CLASSIFIERS,
	'packages' : [
		'pqwire',
		'pqwire.encodings',
		'pqwire.types',
		'pqwire.protocol',
		'pqwire.python',
		'pqwire.test',
	],
	'install_requires' : [
		'structlog',
	],
	'python_requires' : '>=3.3',
	'zip_safe' : False,
}

if __name__ == '__main__':
	from setuptools import setup
	setup(**defaults)
