##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PostgreSQL version parsing.

>>> pqwire.versionstring.split('8.0.1')
(8, 0, 1, None, None)

>>> pqwire.versionstring.compare(
...  pqwire.versionstring.split('8.0.1'),
...  pqwire.versionstring.split('8.0.1'),
... )
0

>>> pqwire.versionstring.number('9.4.3')
90403
"""
import re

def split(vstr):
	"""
	Split a PostgreSQL version string into a tuple
	(major,minor,patch,state_class,state_level)
	"""
	v = vstr.strip().split('.', 3)

	# Get rid of the numbers around the state_class (beta,a,dev,alpha)
	state_class = v[-1].strip('0123456789')
	if state_class:
		last_version_num, state_level = v[-1].split(state_class)
		if not state_level:
			state_level = None
		else:
			state_level = int(state_level)
	else:
		last_version_num = v[-1]
		state_level = None
		state_class = None

	if last_version_num:
		last_version_num = int(last_version_num)
	else:
		last_version_num = None

	if len(v) == 3:
		major = int(v[0])
		if v[1]:
			minor = int(v[1])
		else:
			minor = None
		patch = last_version_num
	elif len(v) == 2:
		major = int(v[0])
		minor = last_version_num
		patch = None
	else:
		major = last_version_num
		minor = None
		patch = None

	return (
		major,
		minor,
		patch,
		state_class,
		state_level
	)

def unsplit(vtup):
	'join a version tuple back into a version string'
	return '%s%s%s%s%s' %(
		vtup[0],
		vtup[1] is not None and '.' + str(vtup[1]) or '',
		vtup[2] is not None and '.' + str(vtup[2]) or '',
		vtup[3] is not None and str(vtup[3]) or '',
		vtup[4] is not None and str(vtup[4]) or ''
	)

default_state_class_priority = [
	'dev',
	'a',
	'alpha',
	'b',
	'beta',
	'rc',
	None,
]

def _cmp(a, b):
	return (a > b) - (a < b)

def compare(
	v1, v2,
	state_class_priority = default_state_class_priority,
	cmp = _cmp
):
	"""
	Compare the given versions using the given `cmp` function after translating
	the state class of each version into a numeric value derived by the class's
	position in the given `state_class_priority`.

	`None` parts compare lower than any number.
	"""
	v1l = list(v1)
	v2l = list(v2)
	try:
		v1l[-2] = state_class_priority.index(v1[-2])
	except ValueError:
		raise ValueError("first argument has unknown state class %r" %(v1[-2],))
	try:
		v2l[-2] = state_class_priority.index(v2[-2])
	except ValueError:
		raise ValueError("second argument has unknown state class %r" %(v2[-2],))
	v1l = [-1 if x is None else x for x in v1l]
	v2l = [-1 if x is None else x for x in v2l]
	return cmp(v1l, v2l)

_leading_int = re.compile(r'\d+')

def number(vstr):
	"""
	Convert the server's version string into the numeric form used by
	`server_version_num`: major * 10000 + minor * 100 + patch.

	A bare major version below 10000 is multiplied out ("10" is 100000). A
	leading number of 10000 or more is taken to already be in numeric form and
	must not be followed by anything. Trailing text after the numeric parts,
	such as "devel" or "beta2", is ignored.

	Raises `ValueError` when the string does not start with a number, or when a
	minor or patch part is out of range.
	"""
	if vstr is None:
		return 0
	s = vstr.strip()
	m = _leading_int.match(s)
	if m is None:
		raise ValueError("version string %r does not start with a number" %(vstr,))
	major = int(m.group())
	pos = m.end()
	if major >= 10000:
		if pos != len(s):
			raise ValueError("unexpected text after numeric version in %r" %(vstr,))
		return major

	result = major * 10000
	if pos == len(s) or s[pos] != '.':
		return result

	m = _leading_int.match(s, pos + 1)
	if m is None:
		raise ValueError("version string %r has no minor version" %(vstr,))
	minor = int(m.group())
	if minor > 99:
		raise ValueError("minor version of %r is out of range" %(vstr,))
	result += minor * 100
	pos = m.end()
	if pos == len(s) or s[pos] != '.':
		return result

	m = _leading_int.match(s, pos + 1)
	if m is None:
		return result
	patch = int(m.group())
	if patch > 99:
		raise ValueError("patch version of %r is out of range" %(vstr,))
	return result + patch

if __name__ == '__main__':
	import sys
	from optparse import OptionParser
	op = OptionParser()
	op.add_option('-n', '--number',
		action='store_true',
		dest='number',
		help='print the numeric form of the version',
		default=False,
	)
	op.set_usage(op.get_usage().strip() + ' "version to parse"')
	co, ca = op.parse_args()
	if len(ca) != 1:
		op.error('requires exactly one argument, the version')
	if co.number:
		sys.stdout.write(str(number(ca[0])))
	else:
		sys.stdout.write(repr(split(ca[0])))
	sys.stdout.write('\n')
