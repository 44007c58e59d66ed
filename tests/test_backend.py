'''
test_backend.py - Tests for the translation of query predicates into SQL.
'''

import pytest
from dogpile.cache.api import NO_VALUE
from sqlalchemy import select, inspect

from omp.backend    import (make_engine, init_db, drop_db, msb_table, msb_clause_builder,
                            msbdone_clause_builder)
from omp.cache      import StatusCache
from omp.range      import Range
from omp.exceptions import MalformedQueryError


class TestClauseBuilder(object):

    def setup_method(self):
        self.engine = make_engine('sqlite://')
        init_db(self.engine)
        rows = [
                 dict(checksum='normal',   taumin=0.1,  taumax=0.3,  priority=1),
                 dict(checksum='open',     taumin=None, taumax=None, priority=2),
                 dict(checksum='upper',    taumin=None, taumax=0.05, priority=3),
                 dict(checksum='inverted', taumin=0.3,  taumax=0.1,  priority=4),
               ]
        with self.engine.begin() as c:
            for row in rows:
                c.execute(msb_table.insert().values(projectid='P', remaining=1, removed=False, **row))


    def matching(self, expression):
        clause = msb_clause_builder().build(expression)
        with self.engine.connect() as c:
            return sorted(c.execute(select(msb_table.c.checksum).where(clause)).scalars().all())


    def test_contains(self):
        assert self.matching(('contains', 'tau', 0.2)) == ['normal', 'open']
        assert self.matching(('contains', 'tau', 0.04)) == ['inverted', 'open', 'upper']
        assert self.matching(('contains', 'tau', 0.5)) == ['inverted', 'open']


    def test_range(self):
        assert self.matching(('range', 'priority', Range(2, 3))) == ['open', 'upper']
        assert self.matching(('range', 'priority', Range(min=4, max=1))) == ['inverted', 'normal']


    def test_boolean_operators(self):
        assert self.matching(('or', [('eq', 'checksum', 'open'), ('eq', 'checksum', 'upper')])) == ['open', 'upper']
        assert self.matching(('not', ('eq', 'checksum', 'open'))) == ['inverted', 'normal', 'upper']
        assert self.matching(('and', [])) == ['inverted', 'normal', 'open', 'upper']
        assert self.matching(('or', [])) == []


    def test_text(self):
        assert self.matching(('text', 'checksum', 'VERT')) == ['inverted']


    def test_unknown_field(self):
        with pytest.raises(MalformedQueryError):
            msb_clause_builder().build(('eq', 'colour', 'blue'))


    def test_contains_needs_a_range_pair(self):
        with pytest.raises(MalformedQueryError):
            msbdone_clause_builder().build(('contains', 'tau', 0.1))


    def test_drop_db(self):
        drop_db(self.engine)

        assert inspect(self.engine).get_table_names() == []



class TestStatusCache(object):

    def setup_method(self):
        self.cache = StatusCache(make_engine('sqlite://'))


    def test_current_entry_is_returned(self):
        self.cache.set('m01bu53', 'abc123', 2, 10, 1)

        assert self.cache.get('M01BU53', 'abc123', 2, 10) == 1


    def test_stale_entries_are_discarded(self):
        self.cache.set('M01BU53', 'abc123', 2, 10, 1)

        assert self.cache.get('M01BU53', 'abc123', 3, 11) is NO_VALUE
        assert self.cache.region.get(StatusCache.make_key('M01BU53', 'abc123')) is NO_VALUE


    def test_invalidate(self):
        self.cache.set('M01BU53', 'abc123', 2, 10, 1)
        self.cache.invalidate('M01BU53', 'abc123')

        assert self.cache.get('M01BU53', 'abc123', 2, 10) is NO_VALUE
