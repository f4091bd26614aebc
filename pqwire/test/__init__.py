##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
