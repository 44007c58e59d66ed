'''
exceptions.py - OMP exceptions.

Every error raised by the database layer and the servers is an OMPError.
The server facades translate anything else into a StorageFatalError.
'''


class OMPError(Exception):
    '''Base class for all OMP errors.'''

    def __init__(self, value=''):
        Exception.__init__(self, value)
        self.value = value

    def __str__(self):
        return str(self.value)


class NotFoundError(OMPError):
    '''An MSB or project is absent. Not fatal to the caller.'''
    pass


class MSBNotFoundError(NotFoundError):
    pass


class UnknownProjectError(NotFoundError):
    pass


class ConcurrencyConflict(OMPError):
    '''The stored science program changed since the caller fetched it.'''

    def __init__(self, value, stored_timestamp=None, expected_timestamp=None):
        OMPError.__init__(self, value)
        self.stored_timestamp = stored_timestamp
        self.expected_timestamp = expected_timestamp


SpChangedOnDisk = ConcurrencyConflict


class AuthenticationError(OMPError):
    pass


class InvalidUserError(AuthenticationError):
    pass


class MalformedQueryError(OMPError):
    pass


class RangeConflictError(MalformedQueryError):
    '''Two inverted ranges whose excluded zones can not be combined.'''
    pass


class BadArgsError(MalformedQueryError):
    pass


class InvalidTransitionError(BadArgsError):
    '''The requested state change is not allowed from the MSB's current state.'''
    pass


class StorageFatalError(OMPError):
    pass


class SpStoreFailError(StorageFatalError):
    pass
