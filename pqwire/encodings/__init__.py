##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Character encoding support: the server name aliases, the session `Encoding`,
and literal quoting for inlined parameters.
"""
from .codec import Encoding
