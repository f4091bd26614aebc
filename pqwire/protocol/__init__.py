##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
The frontend/backend protocol: message codecs, the byte stream, connection
negotiation, and the query executors of protocol versions 3.0 and 2.0.
"""
