##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PostgreSQL types and identifiers.
"""
InvalidOid = 0
# Parameter type left for the server to infer.
UNSPECIFIED = InvalidOid

RECORDOID = 2249
BOOLOID = 16
BITOID = 1560
VARBITOID = 1562

CHAROID = 18
NAMEOID = 19
TEXTOID = 25
BYTEAOID = 17
BPCHAROID = 1042
VARCHAROID = 1043
CSTRINGOID = 2275
UNKNOWNOID = 705
REFCURSOROID = 1790
UUIDOID = 2950
JSONOID = 114
XMLOID = 142

DATEOID = 1082
TIMEOID = 1083
TIMESTAMPOID = 1114
TIMESTAMPTZOID = 1184
INTERVALOID = 1186
TIMETZOID = 1266

INT8OID = 20
INT2OID = 21
INT4OID = 23
OIDOID = 26
CASHOID = 790
FLOAT4OID = 700
FLOAT8OID = 701
NUMERICOID = 1700

POINTOID = 600
BOXOID = 603

VOIDOID = 2278

##
# Array types
BOOLARRAYOID = 1000
BYTEAARRAYOID = 1001
CHARARRAYOID = 1002
NAMEARRAYOID = 1003
INT2ARRAYOID = 1005
INT4ARRAYOID = 1007
TEXTARRAYOID = 1009
BPCHARARRAYOID = 1014
VARCHARARRAYOID = 1015
INT8ARRAYOID = 1016
POINTARRAYOID = 1017
BOXARRAYOID = 1020
FLOAT4ARRAYOID = 1021
FLOAT8ARRAYOID = 1022
OIDARRAYOID = 1028
TIMESTAMPARRAYOID = 1115
DATEARRAYOID = 1182
TIMEARRAYOID = 1183
TIMESTAMPTZARRAYOID = 1185
NUMERICARRAYOID = 1231
TIMETZARRAYOID = 1270
BITARRAYOID = 1561
CASHARRAYOID = 791
JSONARRAYOID = 199
REFCURSORARRAYOID = 2201

class SQLTypes(object):
	"""
	Generic SQL type codes reported for PostgreSQL types. The values are the
	ones commonly used by database interfaces to classify column types.
	"""
	BIT = -7
	SMALLINT = 5
	INTEGER = 4
	BIGINT = -5
	REAL = 7
	DOUBLE = 8
	NUMERIC = 2
	CHAR = 1
	VARCHAR = 12
	BINARY = -2
	DATE = 91
	TIME = 92
	TIMESTAMP = 93
	ARRAY = 2003
	OTHER = 1111
	REF_CURSOR = 2012
