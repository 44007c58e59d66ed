'''
comment.py - A comment attached to an MSB or an observation.

Comments are immutable once created. The only exception is the status,
which may be patched once so that a status can be propagated to the most
recently added comment of a containing MSB (see MSBInfo.set_status).
'''

from omp.constants  import status_name
from omp.utils      import utcnow, parse_date
from omp.exceptions import BadArgsError


class Comment(object):

    def __init__(self, text, author=None, date=None, status=None, tid=None, relevance=0):
        if not text:
            raise BadArgsError('Must supply comment text')
        self._text = text
        self._author = author
        self._date = parse_date(date) if date is not None else utcnow()
        self._status = status
        self._status_patched = False
        self._tid = tid
        self.relevance = relevance

    @property
    def text(self):
        return self._text

    @property
    def author(self):
        return self._author

    @property
    def date(self):
        return self._date

    @property
    def tid(self):
        return self._tid

    @property
    def status(self):
        return self._status

    def patch_status(self, status):
        if self._status_patched:
            raise BadArgsError('Comment status has already been patched')
        self._status = status
        self._status_patched = True

    def with_tid(self, tid):
        '''Return a copy of this comment carrying a transaction id.'''
        return Comment(self._text, author=self._author, date=self._date,
                       status=self._status, tid=tid, relevance=self.relevance)

    def display_string(self):
        author = self._author or 'anonymous'
        return '%s [%s] %s: %s' % (self._date.strftime('%Y-%m-%d %H:%M:%S'),
                                  status_name(self._status), author, self._text)

    def __eq__(self, other):
        if type(other) is type(self):
            return (self._text, self._author, self._date, self._status, self._tid) == \
                   (other._text, other._author, other._date, other._status, other._tid)
        return False

    def __ne__(self, other):
        return not self.__eq__(other)

    def __repr__(self):
        return "Comment <%s [%s] %s>" % (self._date, status_name(self._status), self._text)
