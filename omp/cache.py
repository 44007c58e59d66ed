'''
cache.py - Cache of the last known status of each MSB.

The status of an MSB is defined by its history. The cache only saves a
history scan: each entry records how many history rows (and the id of the
newest row) it was computed from, and is thrown away and rebuilt whenever
that no longer matches the table.
'''

import logging
import weakref

from dogpile.cache import make_region
from dogpile.cache.api import NO_VALUE

log = logging.getLogger(__name__)

_REGIONS = weakref.WeakKeyDictionary()


def status_region(engine, expiration_time=3600):
    '''One memory region per database engine.'''
    region = _REGIONS.get(engine)
    if region is None:
        region = make_region().configure(
            'dogpile.cache.memory',
            expiration_time=expiration_time,
        )
        _REGIONS[engine] = region
    return region


class StatusCache(object):

    def __init__(self, engine, expiration_time=3600):
        self.region = status_region(engine, expiration_time)

    @staticmethod
    def make_key(projectid, checksum):
        return '%s:%s' % (projectid.upper(), checksum)

    def get(self, projectid, checksum, n_rows, last_commid):
        '''Cached status if it was computed from exactly this history, else NO_VALUE.'''
        key = self.make_key(projectid, checksum)
        entry = self.region.get(key)
        if entry is NO_VALUE:
            return NO_VALUE
        cached_rows, cached_commid, status = entry
        if (cached_rows, cached_commid) != (n_rows, last_commid):
            log.debug("Status cache for %s is stale (%s rows cached, %s in table); rebuilding",
                      key, cached_rows, n_rows)
            self.region.delete(key)
            return NO_VALUE
        return status

    def set(self, projectid, checksum, n_rows, last_commid, status):
        self.region.set(self.make_key(projectid, checksum), (n_rows, last_commid, status))

    def invalidate(self, projectid, checksum):
        self.region.delete(self.make_key(projectid, checksum))
