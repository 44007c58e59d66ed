'''
constants.py - Status codes and return types shared across the OMP.
'''

from omp.exceptions import BadArgsError

# MSB history status codes
DONE_FETCH = 0
DONE_DONE = 1
DONE_REMOVED = 2
DONE_COMMENT = 3
DONE_UNDONE = 4
DONE_ALLDONE = 5
DONE_REJECTED = 6
DONE_SUSPENDED = 7
DONE_ABORTED = 8
DONE_UNREMOVED = 9

STATUS_NAMES = {
    DONE_FETCH: 'FETCH',
    DONE_DONE: 'DONE',
    DONE_REMOVED: 'REMOVED',
    DONE_COMMENT: 'COMMENT',
    DONE_UNDONE: 'UNDONE',
    DONE_ALLDONE: 'ALLDONE',
    DONE_REJECTED: 'REJECTED',
    DONE_SUSPENDED: 'SUSPENDED',
    DONE_ABORTED: 'ABORTED',
    DONE_UNREMOVED: 'UNREMOVED',
}

STATUS_CODES = dict((name, code) for code, name in STATUS_NAMES.items())

# Activity that counts as "the MSB was observed" on a night
OBSERVED_STATUSES = (DONE_DONE, DONE_REJECTED, DONE_SUSPENDED, DONE_ABORTED)

# Statuses that do not change the state of an MSB
PASSIVE_STATUSES = (DONE_FETCH, DONE_COMMENT, DONE_REJECTED, DONE_ABORTED)

# Science program return types
SCIPROG_XML = 0
SCIPROG_OBJ = 1
SCIPROG_GZIP = 2
SCIPROG_AUTO = 3

RETURN_TYPES = {
    'XML': SCIPROG_XML,
    'OBJECT': SCIPROG_OBJ,
    'GZIP': SCIPROG_GZIP,
    'AUTO': SCIPROG_AUTO,
}


def status_name(status):
    return STATUS_NAMES.get(status, 'UNKNOWN')


def status_code(status):
    '''Accept either a numeric status or its name.'''
    if isinstance(status, int):
        return status
    status = str(status).strip()
    if status.isdigit():
        return int(status)
    try:
        return STATUS_CODES[status.upper()]
    except KeyError:
        raise BadArgsError("Unrecognised MSB status '{}'".format(status))


def find_return_type(rettype):
    '''Translate a return type name (any case) or number into a SCIPROG constant.'''
    if rettype is None:
        return SCIPROG_XML
    if isinstance(rettype, int):
        return rettype
    rettype = str(rettype).upper()
    if rettype.isdigit():
        return int(rettype)
    try:
        return RETURN_TYPES[rettype]
    except KeyError:
        raise BadArgsError("Unrecognised return type '{}'".format(rettype))
