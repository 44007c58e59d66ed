'''
backend.py - Database schema, engine construction and translation of query
predicates into SQL clauses.

All access goes through sqlalchemy Core. Any sqlalchemy URL is accepted; an
in-memory sqlite URL gets a single shared connection so that every server
in the process sees the same database.
'''

import logging
from contextlib import contextmanager

from sqlalchemy import (MetaData, Table, Column, Integer, String, Text, Float, Boolean,
                        DateTime, ForeignKey, Index, and_, or_, not_, true, false, select)
from sqlalchemy.engine import create_engine
from sqlalchemy.pool import StaticPool

from omp.exceptions import MalformedQueryError

log = logging.getLogger(__name__)

metadata = MetaData()

sciprog_table = Table('ompsciprog', metadata,
    Column('projectid', String(32), primary_key=True),
    Column('timestamp', Integer, nullable=False),
    Column('sciprog', Text, nullable=False),
)

msb_table = Table('ompmsb', metadata,
    Column('msbid', Integer, primary_key=True, autoincrement=True),
    Column('projectid', String(32), nullable=False, index=True),
    Column('checksum', String(64), nullable=False, index=True),
    Column('title', String(255)),
    Column('telescope', String(32)),
    Column('remaining', Integer, nullable=False),
    Column('priority', Integer),
    Column('removed', Boolean, nullable=False, default=False),
    Column('suspended', String(64)),
    Column('or_group', String(32)),
    Column('taumin', Float),
    Column('taumax', Float),
    Column('seeingmin', Float),
    Column('seeingmax', Float),
    Column('datemin', DateTime),
    Column('datemax', DateTime),
)

obs_table = Table('ompobs', metadata,
    Column('obsid', Integer, primary_key=True, autoincrement=True),
    Column('msbid', Integer, ForeignKey('ompmsb.msbid', ondelete='CASCADE'), nullable=False, index=True),
    Column('projectid', String(32), nullable=False),
    Column('label', String(32)),
    Column('instrument', String(32)),
    Column('target', String(64)),
    Column('waveband', String(64)),
    Column('coordstype', String(16)),
    Column('ra', String(32)),
    Column('dec', String(32)),
)

msbdone_table = Table('ompmsbdone', metadata,
    Column('commid', Integer, primary_key=True, autoincrement=True),
    Column('checksum', String(64), nullable=False),
    Column('projectid', String(32), nullable=False),
    Column('status', Integer, nullable=False),
    Column('date', DateTime, nullable=False),
    Column('userid', String(32)),
    Column('commenttext', Text),
    Column('tid', String(64)),
    Column('title', String(255)),
    Column('target', String(64)),
    Column('instrument', String(64)),
    Column('waveband', String(64)),
    Index('ompmsbdone_proj_checksum', 'projectid', 'checksum'),
    Index('ompmsbdone_tid', 'tid'),
)

proj_table = Table('ompproj', metadata,
    Column('projectid', String(32), primary_key=True),
    Column('telescope', String(32)),
    Column('title', String(255)),
    Column('pi', String(32)),
    Column('encrypted', String(128)),
    Column('state', Boolean, nullable=False, default=True),
)

user_table = Table('ompuser', metadata,
    Column('userid', String(32), primary_key=True),
    Column('uname', String(255)),
    Column('email', String(255)),
    Column('obfuscated', Boolean, nullable=False, default=False),
)

feedback_table = Table('ompfeedback', metadata,
    Column('commid', Integer, primary_key=True, autoincrement=True),
    Column('projectid', String(32), nullable=False, index=True),
    Column('author', String(32), nullable=False),
    Column('date', DateTime, nullable=False),
    Column('subject', String(128)),
    Column('program', String(50)),
    Column('sourceinfo', String(60)),
    Column('status', Integer),
    Column('text', Text, nullable=False),
    Column('msgtype', Integer),
)


def make_engine(url):
    if url.startswith('sqlite') and (url.rstrip('/') == 'sqlite:' or ':memory:' in url):
        return create_engine(url, poolclass=StaticPool,
                             connect_args={'check_same_thread': False})
    return create_engine(url, pool_pre_ping=True)


def init_db(engine):
    metadata.create_all(engine)
    log.info("Created OMP tables on %s", engine.url)


def drop_db(engine):
    metadata.drop_all(engine)


def range_clause(column, range_):
    if range_.inverted:
        return or_(column <= range_.max, column >= range_.min)
    clauses = []
    if range_.min is not None:
        clauses.append(column >= range_.min)
    if range_.max is not None:
        clauses.append(column <= range_.max)
    if not clauses:
        return true()
    return and_(*clauses)


def contains_clause(low, high, value):
    '''Rows whose own (low, high) range contains value. Missing bounds are
       open; rows with low > high are inverted ranges.'''
    inverted = and_(low.isnot(None), high.isnot(None), low > high)
    normal = and_(or_(low.is_(None), low <= value), or_(high.is_(None), high >= value))
    return or_(and_(not_(inverted), normal),
               and_(inverted, or_(high >= value, low <= value)))


class ClauseBuilder(object):
    '''Translates a predicate expression tree into a sqlalchemy clause.

       columns        - field name to column
       pairs          - field name to (low, high) columns for "contains"
       related        - field name to column of a related table, matched
                        through an EXISTS subquery joined by join_clause
    '''

    def __init__(self, columns, pairs=None, related=None, join_clause=None):
        self.columns = columns
        self.pairs = pairs or {}
        self.related = related or {}
        self.join_clause = join_clause


    def build(self, expression):
        op = expression[0]

        if op == 'and':
            if not expression[1]:
                return true()
            return and_(*[self.build(e) for e in expression[1]])
        if op == 'or':
            if not expression[1]:
                return false()
            return or_(*[self.build(e) for e in expression[1]])
        if op == 'not':
            return not_(self.build(expression[1]))

        if op == 'contains':
            _, field, value = expression
            if field not in self.pairs:
                raise MalformedQueryError("Field '{}' has no range to test against".format(field))
            low, high = self.pairs[field]
            return contains_clause(low, high, value)

        _, field, value = expression
        if field in self.related:
            column = self.related[field]
            return select(column).where(and_(self.join_clause, self._leaf(op, column, value))).exists()
        if field not in self.columns:
            raise MalformedQueryError("Unable to query on field '{}'".format(field))
        return self._leaf(op, self.columns[field], value)


    def _leaf(self, op, column, value):
        if op == 'eq':
            return column == value
        if op == 'range':
            return range_clause(column, value)
        if op == 'text':
            return column.ilike('%' + value + '%')
        raise MalformedQueryError("Unknown query operator '{}'".format(op))


def msb_clause_builder():
    c = msb_table.c
    columns = dict((name, c[name]) for name in
                   ('projectid', 'checksum', 'title', 'telescope', 'remaining', 'priority',
                    'removed', 'suspended', 'datemin', 'datemax'))
    pairs = {
              'tau'    : (c.taumin, c.taumax),
              'seeing' : (c.seeingmin, c.seeingmax),
              'date'   : (c.datemin, c.datemax),
            }
    o = obs_table.c
    related = dict((name, o[name]) for name in
                   ('instrument', 'target', 'waveband', 'coordstype'))
    return ClauseBuilder(columns, pairs, related, join_clause=(o.msbid == c.msbid))


def msbdone_clause_builder():
    c = msbdone_table.c
    columns = dict((name, c[name]) for name in
                   ('checksum', 'projectid', 'status', 'date', 'userid', 'commenttext',
                    'tid', 'title', 'target', 'instrument', 'waveband'))
    return ClauseBuilder(columns)


@contextmanager
def transaction(engine, conn=None):
    '''Use the caller's connection if given, otherwise run in a new
       transaction that commits on exit and rolls back on error.'''
    if conn is not None:
        yield conn
        return
    with engine.begin() as new_conn:
        yield new_conn
