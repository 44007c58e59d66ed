'''
server.py - Common infrastructure for the OMP server facades.

Every public server method is wrapped by server_method, the single place
where errors are translated for callers: OMPError subclasses pass through
unchanged, anything else (database driver errors included) becomes a
StorageFatalError. Each call is logged with its arguments and duration.
'''

import functools
import logging
import time

from omp.backend    import make_engine
from omp.constants  import (SCIPROG_XML, SCIPROG_OBJ, SCIPROG_GZIP, SCIPROG_AUTO,
                            find_return_type)
from omp.eventbus   import get_eventbus
from omp.feedback   import MSBActivityLogger, FirstAcceptNotifier
from omp.params     import OMPParameters
from omp.userdb     import UserDB
from omp.utils      import gzip_text
from omp.exceptions import OMPError, StorageFatalError, BadArgsError

log = logging.getLogger(__name__)

event_bus = get_eventbus()

MAX_LOGGED_ARG = 200


def _short(value):
    text = repr(value)
    if len(text) > MAX_LOGGED_ARG:
        text = text[:MAX_LOGGED_ARG] + '...'
    return text


def server_method(method):
    '''Decorator for facade methods.'''

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        name = "%s.%s" % (self.__class__.__name__, method.__name__)
        arguments = ', '.join([_short(a) for a in args] +
                              ['%s=%s' % (k, _short(v)) for k, v in kwargs.items()])
        log.info("%s: Begin (%s)", name, arguments)

        start = time.time()
        try:
            result = method(self, *args, **kwargs)
        except OMPError as e:
            log.warning("%s: %s after %.2f sec: %s", name, e.__class__.__name__,
                        time.time() - start, e)
            raise
        except Exception as e:
            log.exception("%s: unexpected error after %.2f sec", name, time.time() - start)
            raise StorageFatalError("{} failed: {}: {}".format(name, e.__class__.__name__, e))

        log.info("%s: Complete. %.2f seconds", name, time.time() - start)
        return result

    return wrapper


class OMPServer(object):
    '''Base class for the facades. Holds the configuration and the engine;
       database objects are created per call.'''

    def __init__(self, params=None, engine=None):
        self.params = params or OMPParameters()
        self.engine = engine or make_engine(self.params.db_url)
        self._register_listeners()


    def _register_listeners(self):
        if not event_bus.has_listener(MSBActivityLogger):
            event_bus.add_listener(MSBActivityLogger(), persist=True)

        notifiers = [n for n in event_bus.live_listeners(FirstAcceptNotifier)
                     if n.engine is self.engine]
        if notifiers:
            self.notifier = notifiers[0]
        else:
            self.notifier = FirstAcceptNotifier(self.engine, self.params)
            event_bus.add_listener(self.notifier)


    def author(self, userid, reason=None):
        '''Verify the user making a change. A reason may only be given with a
           valid user id.'''
        if userid:
            UserDB(self.engine).require_user(userid)
            return userid.upper()
        if reason:
            raise BadArgsError("A user ID must be supplied if a reason is given")
        return None


    @server_method
    def testServer(self):
        '''Returns True if the server can reach its database.'''
        with self.engine.connect() as c:
            c.exec_driver_sql('SELECT 1')
        return True


def convert_sciprog(sp, rettype, gzip_threshold):
    '''Render a science program for return to a caller in the requested form.
       AUTO compresses only documents larger than gzip_threshold.'''
    rettype = find_return_type(rettype)
    if rettype == SCIPROG_OBJ:
        return sp

    xml = sp.to_xml()
    if rettype == SCIPROG_GZIP or (rettype == SCIPROG_AUTO and len(xml) > gzip_threshold):
        return gzip_text(xml)
    if rettype in (SCIPROG_XML, SCIPROG_AUTO):
        return xml
    raise BadArgsError("Unknown science program return type {}".format(rettype))
