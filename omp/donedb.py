'''
donedb.py - The MSB history ("done") table.

Every change to an MSB (and every comment about it) is appended here. Rows
are never updated or deleted. The current status of an MSB is the status of
its newest state-changing row; fetches and comments do not change state.
'''

import logging
import uuid
from collections import OrderedDict

from dogpile.cache.api import NO_VALUE
from sqlalchemy import select, func, and_, or_

from omp.backend    import msbdone_table, transaction, msbdone_clause_builder
from omp.cache      import StatusCache
from omp.comment    import Comment
from omp.constants  import (DONE_DONE, DONE_UNDONE, DONE_REMOVED, DONE_UNREMOVED,
                            OBSERVED_STATUSES, PASSIVE_STATUSES, status_name)
from omp.msbinfo    import MSBInfo
from omp.utils      import safe_unidecode, utcnow, ut_day_range, parse_date, timeit
from omp.exceptions import BadArgsError, MSBNotFoundError

log = logging.getLogger(__name__)


def make_transaction_id():
    return uuid.uuid4().hex


def fold_status(statuses):
    '''Replay statuses in insertion order. None if nothing changed state.'''
    current = None
    for status in statuses:
        if status not in PASSIVE_STATUSES:
            current = status
    return current


class DoneDB(object):

    def __init__(self, engine, params=None):
        self.engine = engine
        expiration = params.status_cache_expiration if params is not None else 3600
        self.status_cache = StatusCache(engine, expiration)


    def add_history(self, projectid, checksum, comment, info=None, conn=None):
        '''Append a history row. Descriptive columns are taken from info (an
           MSB or MSBInfo) or, failing that, from the previous row for the MSB.'''
        projectid = projectid.upper()
        t = msbdone_table
        with transaction(self.engine, conn) as c:
            described = self._describe(c, projectid, checksum, info)
            c.execute(t.insert().values(
                checksum    = checksum,
                projectid   = projectid,
                status      = comment.status,
                date        = comment.date,
                userid      = safe_unidecode(comment.author, 32),
                commenttext = comment.text,
                tid         = comment.tid,
                **described))

        log.debug("History %s %s: %s (%s)", projectid, checksum,
                  status_name(comment.status), comment.tid)


    def _describe(self, conn, projectid, checksum, info):
        fields = ('title', 'target', 'instrument', 'waveband')
        if info is not None:
            if not isinstance(info, MSBInfo):
                info = MSBInfo.from_msb(info)
            return dict((f, safe_unidecode(getattr(info, f), 255 if f == 'title' else 64))
                        for f in fields)

        t = msbdone_table
        row = conn.execute(select(t.c.title, t.c.target, t.c.instrument, t.c.waveband)
                           .where(and_(t.c.projectid == projectid, t.c.checksum == checksum))
                           .order_by(t.c.commid.desc()).limit(1)).first()
        if row is None:
            return dict((f, None) for f in fields)
        return dict(row._mapping)


    def _rows(self, clause, conn=None):
        t = msbdone_table
        with transaction(self.engine, conn) as c:
            return c.execute(select(t).where(clause).order_by(t.c.commid)).fetchall()


    def entries(self, projectid, checksum, conn=None):
        t = msbdone_table
        return self._rows(and_(t.c.projectid == projectid.upper(), t.c.checksum == checksum), conn)


    def has_history(self, projectid, checksum, conn=None):
        return len(self.entries(projectid, checksum, conn)) > 0


    def replay_status(self, projectid, checksum, conn=None):
        return fold_status([row.status for row in self.entries(projectid, checksum, conn)])


    def current_status(self, projectid, checksum, conn=None):
        '''Newest state-changing status, served from the cache when the cache
           was built from the current history.'''
        projectid = projectid.upper()
        t = msbdone_table
        mine = and_(t.c.projectid == projectid, t.c.checksum == checksum)
        with transaction(self.engine, conn) as c:
            n_rows, last_commid = c.execute(
                select(func.count(t.c.commid), func.max(t.c.commid)).where(mine)).one()

            status = self.status_cache.get(projectid, checksum, n_rows, last_commid)
            if status is not NO_VALUE:
                return status

            status = c.execute(select(t.c.status)
                               .where(and_(mine, t.c.status.not_in(PASSIVE_STATUSES)))
                               .order_by(t.c.commid.desc()).limit(1)).scalar()

        # An uncommitted history is not cached
        if conn is None:
            self.status_cache.set(projectid, checksum, n_rows, last_commid, status)
        return status


    def undoable_tid(self, projectid, checksum, conn=None):
        '''Transaction id of the latest "done" of this MSB not yet undone, or
           None. An undo without a tid cancels the latest open done.'''
        t = msbdone_table
        rows = self._rows(and_(t.c.projectid == projectid.upper(), t.c.checksum == checksum,
                               t.c.status.in_((DONE_DONE, DONE_UNDONE))), conn)
        open_tids = []
        for row in rows:
            if row.status == DONE_DONE:
                open_tids.append(row.tid)
            elif row.tid in open_tids:
                open_tids.remove(row.tid)
            elif open_tids:
                open_tids.pop()
        return open_tids[-1] if open_tids else None


    def removed_by(self, projectid, tid, conn=None):
        '''Checksums removed as a side effect of the transaction tid and not
           yet reinstated.'''
        if tid is None:
            return []
        t = msbdone_table
        rows = self._rows(and_(t.c.projectid == projectid.upper(), t.c.tid == tid,
                               t.c.status.in_((DONE_REMOVED, DONE_UNREMOVED))), conn)
        removed = OrderedDict()
        for row in rows:
            if row.status == DONE_REMOVED:
                removed[row.checksum] = True
            else:
                removed.pop(row.checksum, None)
        return list(removed)


    @timeit
    def history(self, projectid=None, checksum=None):
        '''History of one MSB, or of every MSB in a project, as MSBInfo objects.'''
        if not projectid and not checksum:
            raise BadArgsError("Must supply a project or an MSB checksum to retrieve history")

        t = msbdone_table
        clauses = []
        if projectid:
            clauses.append(t.c.projectid == projectid.upper())
        if checksum:
            clauses.append(t.c.checksum == checksum)
        return self._infos(self._rows(and_(*clauses)))


    def history_for_transaction(self, tid):
        '''The MSB acted on in transaction tid, with that transaction's comments.'''
        if not tid:
            raise BadArgsError("Must supply a transaction id")
        infos = self._infos(self._rows(msbdone_table.c.tid == tid))
        if not infos:
            return None
        primary = [i for i in infos if any(c.status not in (DONE_REMOVED, DONE_UNREMOVED)
                                           for c in i.comments)]
        return (primary or infos)[0]


    def title(self, checksum):
        t = msbdone_table
        with self.engine.connect() as c:
            return c.execute(select(t.c.title)
                             .where(and_(t.c.checksum == checksum, t.c.title.isnot(None)))
                             .order_by(t.c.commid.desc()).limit(1)).scalar()


    @timeit
    def observed_msbs(self, date=None, usenow=False, projectid=None, comments=True,
                      transactions=False):
        '''MSBs observed on a UT night and/or for a project.

           comments     - attach every comment for the MSB rather than only
                          those made on the night
           transactions - also attach the comments that share a transaction
                          id with the night's activity
        '''
        if not date and not usenow and not projectid:
            raise BadArgsError("observedMSBs needs a date, usenow or a project id")

        t = msbdone_table
        night = []
        if usenow and not date:
            date = utcnow()
        if date:
            start, end = ut_day_range(date)
            night.append(and_(t.c.date >= start, t.c.date < end))
        if projectid:
            night.append(t.c.projectid == projectid.upper())

        observed = self._rows(and_(t.c.status.in_(OBSERVED_STATUSES), *night))
        keys = list(OrderedDict(((r.projectid, r.checksum), True) for r in observed))
        if not keys:
            return []

        wanted = [and_(t.c.projectid == p, t.c.checksum == c) for p, c in keys]
        if comments:
            clause = or_(*wanted)
        else:
            clause = and_(or_(*wanted), *night)
        if transactions:
            tids = set(r.tid for r in self._rows(and_(or_(*wanted), *night)) if r.tid)
            if tids:
                clause = or_(clause, t.c.tid.in_(tids))

        infos = dict(((i.projectid, i.checksum), i) for i in self._infos(self._rows(clause)))
        return [infos[k] for k in keys if k in infos]


    def observed_dates(self, projectid, as_dates=False):
        '''UT dates on which MSBs of the project were observed.'''
        t = msbdone_table
        with self.engine.connect() as c:
            dates = c.execute(select(t.c.date)
                              .where(and_(t.c.projectid == projectid.upper(),
                                          t.c.status.in_(OBSERVED_STATUSES)))
                              .order_by(t.c.date)).scalars().all()
        days = []
        for d in dates:
            day = parse_date(d).date()
            if day not in days:
                days.append(day)
        if as_dates:
            return days
        return [d.strftime('%Y-%m-%d') for d in days]


    @timeit
    def query(self, done_query, comments=True):
        '''MSBs with history rows matching an MSBDoneQuery. Without comments only
           the matching rows are attached.'''
        t = msbdone_table
        clause = msbdone_clause_builder().build(done_query.expression())
        matched = self._rows(clause)
        if not comments or not matched:
            return self._infos(matched)

        keys = list(OrderedDict(((r.projectid, r.checksum), True) for r in matched))
        rows = self._rows(or_(*[and_(t.c.projectid == p, t.c.checksum == c) for p, c in keys]))
        return self._infos(rows)


    def _infos(self, rows):
        infos = OrderedDict()
        for row in rows:
            key = (row.projectid, row.checksum)
            info = infos.get(key)
            if info is None:
                info = MSBInfo(row.checksum, row.projectid)
                infos[key] = info
            for field in ('title', 'target', 'instrument', 'waveband'):
                value = getattr(row, field)
                if value:
                    setattr(info, field, value)
            if row.status == DONE_DONE:
                info.nrepeats += 1
            elif row.status == DONE_UNDONE and info.nrepeats > 0:
                info.nrepeats -= 1
            info.add_comment(Comment(row.commenttext or status_name(row.status),
                                     author=row.userid, date=row.date,
                                     status=row.status, tid=row.tid))
        return list(infos.values())


    def require_history(self, projectid, checksum):
        if not self.has_history(projectid, checksum):
            raise MSBNotFoundError("No history for MSB {} in project {}".format(checksum, projectid))
