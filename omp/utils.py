'''
utils.py - Miscellaneous utility functions.
'''

import gzip
import logging
import time
from datetime import datetime, date, timedelta

from dateutil.parser import parse
from unidecode import unidecode

from omp.exceptions import BadArgsError, SpStoreFailError, StorageFatalError

log = logging.getLogger(__name__)

GZIP_MAGIC = b'\x1f\x8b'


def safe_unidecode(unicode_str, max_length):
    ''' unidecode and then replace mystery characters with a single ?'''
    if unicode_str is None:
        return None
    decoded_str = unidecode(str(unicode_str)).replace('[?]', '?')
    if len(decoded_str) > max_length:
        decoded_str = decoded_str[:max_length]

    return decoded_str


def to_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def split_list(value):
    '''Split a comma delimited string, dropping empty entries.'''
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [v.strip() for v in value.split(',') if v.strip()]


class EqualityMixin(object):
    '''Inherit from this class if you want your object to have simple equality
       properties based on common attributes (this is what you usually want).'''

    def __eq__(self, other):
        if type(other) is type(self):
            return self.__dict__ == other.__dict__
        return False

    def __ne__(self, other):
        return not self.__eq__(other)


def utcnow():
    return datetime.utcnow().replace(microsecond=0)


def parse_date(value):
    '''Convert a date given as a string (ISO or YYYYMMDD), date or datetime
       into a naive UT datetime.'''
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return parse(str(value)).replace(tzinfo=None)
    except (ValueError, OverflowError):
        raise BadArgsError("Date '{}' not understood".format(value))


def ut_day_range(value):
    '''Return the (start, end) datetimes of the UT day containing value.'''
    start = parse_date(value).replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def new_timestamp(previous=None):
    '''Version token for a stored science program. Always moves forward.'''
    now = int(time.time())
    if previous is not None and now <= previous:
        return previous + 1
    return now


def is_gzipped(data):
    if isinstance(data, str):
        return data[:2] == GZIP_MAGIC.decode('latin-1')
    return data[:2] == GZIP_MAGIC


def gunzip_if_needed(data):
    '''Decompress data that starts with the gzip magic number. Always returns text.'''
    if is_gzipped(data):
        if isinstance(data, str):
            data = data.encode('latin-1')
        try:
            data = gzip.decompress(data)
        except (OSError, EOFError) as e:
            raise SpStoreFailError(
                "Science program looked like a gzip byte stream but did not uncompress correctly: {}".format(e))
    if isinstance(data, bytes):
        data = data.decode('utf-8')
    return data


def gzip_text(text):
    try:
        return gzip.compress(text.encode('utf-8'))
    except (OSError, ValueError) as e:
        raise StorageFatalError('Unable to gzip compress science program: {}'.format(e))


def timeit(method):
    '''Decorator for timing methods.'''

    def timed(*args, **kwargs):
        start = time.time()
        result = method(*args, **kwargs)
        end = time.time()

        log.info('TIMER: %s (%s): %2.2f sec' % (method.__name__, method.__module__, end - start))
        return result

    timed.__name__ = method.__name__
    timed.__doc__ = method.__doc__
    return timed
