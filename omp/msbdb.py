'''
msbdb.py - Storage of science programs and their MSBs.

The science program document is the master copy. The ompmsb and ompobs
tables hold a searchable summary of it which is rewritten on every store and
kept in step by every transition.

Transitions lock the project's program row, write history first and the new
MSB state second, and commit both together. The program's version token is
compared-and-swapped on every write, so a writer holding a stale copy loses.
'''

import logging

from sqlalchemy import select, update, delete, and_, func
from sqlalchemy.exc import IntegrityError

from omp.backend    import sciprog_table, msb_table, obs_table, msb_clause_builder
from omp.comment    import Comment
from omp.constants  import (DONE_FETCH, DONE_COMMENT, DONE_DONE, DONE_UNDONE, DONE_ALLDONE, DONE_SUSPENDED,
                            DONE_REJECTED, DONE_REMOVED, DONE_UNREMOVED)
from omp.donedb     import DoneDB, make_transaction_id
from omp.eventbus   import get_eventbus
from omp.feedback   import MSBActivityLogger
from omp.msbinfo    import MSBInfo
from omp.sciprog    import ScienceProgram
from omp.range      import Range
from omp.utils      import new_timestamp, timeit
from omp.exceptions import ConcurrencyConflict, MSBNotFoundError, NotFoundError

log = logging.getLogger(__name__)

event_bus = get_eventbus()

DONE_TEXT = "MSB marked as done"
UNDONE_TEXT = "MSB done status reversed."
ALLDONE_TEXT = "MSB marked as all done"
SUSPENDED_TEXT = "MSB suspended at observation %s"
REJECTED_TEXT = "This MSB was observed but was not accepted by the observer/TSS. No reason was given."
REMOVED_TEXT = "MSB removed from consideration"
OR_REMOVED_TEXT = "MSB removed: OR group satisfied by %s"
UNREMOVED_TEXT = "MSB removed status reversed."


class MSBDB(object):

    def __init__(self, engine, params=None, donedb=None):
        self.engine = engine
        self.params = params
        self.donedb = donedb or DoneDB(engine, params)


    # Science programs

    def _program_row(self, conn, projectid, lock=False):
        query = select(sciprog_table).where(sciprog_table.c.projectid == projectid)
        if lock:
            query = query.with_for_update()
        return conn.execute(query).first()


    def program_timestamp(self, projectid):
        with self.engine.connect() as c:
            row = self._program_row(c, projectid.upper())
        return row.timestamp if row is not None else None


    def fetch_program(self, projectid):
        '''The stored ScienceProgram, with its version token in .timestamp.'''
        projectid = projectid.upper()
        with self.engine.connect() as c:
            row = self._program_row(c, projectid)
        if row is None:
            raise NotFoundError("Unable to retrieve science program for project {}".format(projectid))

        sp = ScienceProgram(row.sciprog)
        sp.timestamp = row.timestamp
        return sp


    def has_program(self, projectid):
        return self.program_timestamp(projectid) is not None


    @timeit
    def store_program(self, sp, expected_timestamp=None, force=False):
        '''Store a science program and return its new version token.

           If a program is already stored for the project, expected_timestamp
           must be the token it was fetched with, unless force is set.
        '''
        projectid = sp.projectid
        try:
            with self.engine.begin() as c:
                row = self._program_row(c, projectid, lock=True)
                previous = row.timestamp if row is not None else None

                if row is not None and not force and expected_timestamp != previous:
                    raise ConcurrencyConflict(
                        "The science program for {} has been modified since it was retrieved "
                        "(stored version {}, you fetched {})".format(projectid, previous, expected_timestamp),
                        stored_timestamp=previous, expected_timestamp=expected_timestamp)

                timestamp = new_timestamp(previous)
                xml = sp.to_xml()
                if row is None:
                    c.execute(sciprog_table.insert().values(projectid=projectid, timestamp=timestamp,
                                                            sciprog=xml))
                else:
                    self._swap_program(c, projectid, previous, timestamp, xml)

                self._replace_msb_rows(c, sp)
        except IntegrityError as e:
            raise ConcurrencyConflict(
                "The science program for {} was stored by another client at the same time: {}"
                .format(projectid, e.orig), expected_timestamp=expected_timestamp)

        sp.timestamp = timestamp
        log.info("Stored science program %s (%d MSBs) with timestamp %d",
                 projectid, len(sp.msbs), timestamp)
        return timestamp


    def _swap_program(self, conn, projectid, previous, timestamp, xml):
        result = conn.execute(update(sciprog_table)
                              .where(and_(sciprog_table.c.projectid == projectid,
                                          sciprog_table.c.timestamp == previous))
                              .values(timestamp=timestamp, sciprog=xml))
        if result.rowcount != 1:
            raise ConcurrencyConflict(
                "The science program for {} changed while it was being written".format(projectid),
                expected_timestamp=previous)


    def _replace_msb_rows(self, conn, sp):
        msbids = select(msb_table.c.msbid).where(msb_table.c.projectid == sp.projectid)
        conn.execute(delete(obs_table).where(obs_table.c.msbid.in_(msbids)))
        conn.execute(delete(msb_table).where(msb_table.c.projectid == sp.projectid))

        for msb in sp.msbs:
            result = conn.execute(msb_table.insert().values(
                projectid = sp.projectid,
                checksum  = msb.checksum,
                title     = msb.title,
                telescope = sp.telescope,
                remaining = msb.remaining,
                priority  = msb.priority,
                removed   = msb.removed,
                suspended = msb.suspended,
                or_group  = msb.or_group,
                taumin    = msb.tau.min,
                taumax    = msb.tau.max,
                seeingmin = msb.seeing.min,
                seeingmax = msb.seeing.max,
                datemin   = msb.datemin,
                datemax   = msb.datemax))
            msbid = result.inserted_primary_key[0]

            if msb.observations:
                conn.execute(obs_table.insert(), [
                    dict(obs.as_dict(), msbid=msbid, projectid=sp.projectid)
                    for obs in msb.observations])


    def _update_msb_rows(self, conn, sp):
        for msb in sp.msbs:
            conn.execute(update(msb_table)
                         .where(and_(msb_table.c.projectid == sp.projectid,
                                     msb_table.c.checksum == msb.checksum))
                         .values(remaining=msb.remaining, removed=msb.removed,
                                 suspended=msb.suspended))


    # MSBs

    def fetch_msb(self, checksum, projectid=None):
        '''Return (ScienceProgram, MSB) or None if no MSB has that checksum.'''
        query = select(msb_table.c.projectid).where(msb_table.c.checksum == checksum)
        if projectid:
            query = query.where(msb_table.c.projectid == projectid.upper())
        with self.engine.connect() as c:
            found = c.execute(query).scalars().all()
        if not found:
            return None
        if len(set(found)) > 1:
            log.warning("MSB %s is present in more than one project (%s); using %s",
                        checksum, ', '.join(sorted(set(found))), found[0])

        sp = self.fetch_program(found[0])
        msb = sp.fetch_msb(checksum)
        if msb is None:
            return None
        return sp, msb


    def record_fetch(self, sp, msb, author=None):
        self.donedb.add_history(sp.projectid, msb.checksum,
                                Comment("MSB retrieved from the OMP", author=author, status=DONE_FETCH),
                                info=msb)


    @timeit
    def query(self, msbquery, default_max=None, visibility=None):
        '''Run an MSBQuery and return MSBInfo summaries.

           visibility, if given, is called with each candidate MSBInfo and the
           query (which carries the elevation/airmass constraints the database
           can not evaluate) and must return True for the MSB to be kept.
        '''
        if default_max is None:
            default_max = self.params.msb_query_default_max if self.params is not None else 100

        clause = msb_clause_builder().build(msbquery.expression())
        with self.engine.connect() as c:
            rows = c.execute(select(msb_table).where(clause)).fetchall()
            observations = self._observations_for(c, [row.msbid for row in rows])

        infos = []
        for row in rows:
            info = self._row_info(row, observations.get(row.msbid, []))
            info.relevance = msbquery.relevance({'title': row.title or ''})
            if visibility is not None and not msbquery.observability_disabled:
                if not visibility(info, msbquery):
                    continue
            infos.append(info)

        infos.sort(key=lambda i: (i.priority if i.priority is not None else 99,
                                  -i.relevance, i.projectid, i.checksum))

        limit = msbquery.effective_max(default_max)
        if limit is not None:
            infos = infos[:limit]

        log.info("MSB query matched %d MSBs, returning %d", len(rows), len(infos))
        return infos


    def _observations_for(self, conn, msbids):
        observations = {}
        if not msbids:
            return observations
        rows = conn.execute(select(obs_table).where(obs_table.c.msbid.in_(msbids))
                            .order_by(obs_table.c.obsid)).fetchall()
        for row in rows:
            observations.setdefault(row.msbid, []).append(row)
        return observations


    def _row_info(self, row, observations):
        def joined(field):
            values = []
            for obs in observations:
                value = getattr(obs, field)
                if value and value not in values:
                    values.append(value)
            return '/'.join(values) or None

        return MSBInfo(row.checksum, row.projectid,
                       title      = row.title,
                       target     = joined('target'),
                       instrument = joined('instrument'),
                       waveband   = joined('waveband'),
                       remaining  = row.remaining,
                       priority   = row.priority,
                       tau        = _pair(row.taumin, row.taumax),
                       seeing     = _pair(row.seeingmin, row.seeingmax),
                       datemin    = row.datemin,
                       datemax    = row.datemax,
                       telescope  = row.telescope)


    def msb_count(self, projectids):
        '''{projectid: {'total': n, 'active': m}} for projects with stored MSBs.'''
        projectids = [p.upper() for p in projectids]
        if not projectids:
            return {}
        m = msb_table.c
        with self.engine.connect() as c:
            totals = c.execute(select(m.projectid, func.count(m.msbid))
                               .where(m.projectid.in_(projectids))
                               .group_by(m.projectid)).fetchall()
            actives = dict(c.execute(select(m.projectid, func.count(m.msbid))
                                     .where(and_(m.projectid.in_(projectids), m.remaining > 0,
                                                 m.removed.is_(False)))
                                     .group_by(m.projectid)).fetchall())
        return dict((projectid, {'total': total, 'active': actives.get(projectid, 0)})
                    for projectid, total in totals)


    # Transitions

    def apply_transition(self, projectid, checksum, transition):
        '''Run transition(sp, msb, conn) with the project's program locked.

           The transition writes its history through conn and alters sp; the
           new program and MSB state are then written and the version token
           swapped, all in one database transaction. Returns whatever the
           transition returns.
        '''
        projectid = projectid.upper()
        with self.engine.begin() as c:
            row = self._program_row(c, projectid, lock=True)
            if row is None:
                raise MSBNotFoundError(
                    "No science program for project {} so MSB {} can not be found".format(projectid, checksum))

            sp = ScienceProgram(row.sciprog)
            sp.timestamp = row.timestamp
            msb = sp.get_msb(checksum)

            result = transition(sp, msb, c)

            timestamp = new_timestamp(row.timestamp)
            self._swap_program(c, projectid, row.timestamp, timestamp, sp.to_xml())
            self._update_msb_rows(c, sp)

        return result


    def _history(self, conn, sp, msb, status, text, author, tid):
        comment = Comment(text, author=author, status=status, tid=tid)
        self.donedb.add_history(sp.projectid, msb.checksum, comment, info=msb, conn=conn)
        return comment


    def _fire(self, projectid, checksum, comment):
        event_bus.fire_event(MSBActivityLogger.create_event(projectid.upper(), checksum, comment,
                                                             self.engine))


    def done_msb(self, projectid, checksum, author=None, reason=None, tid=None):
        '''Mark one repeat of the MSB as observed. Returns the checksums of OR
           group siblings removed as a result.'''
        tid = tid or make_transaction_id()
        comments = []

        def transition(sp, msb, conn):
            comments.append(self._history(conn, sp, msb, DONE_DONE, reason or DONE_TEXT, author, tid))
            removed = sp.msb_done(msb.checksum)
            for other in removed:
                comments.append((other, self._history(conn, sp, sp.get_msb(other), DONE_REMOVED,
                                                       OR_REMOVED_TEXT % msb.checksum, author, tid)))
            return removed

        removed = self.apply_transition(projectid, checksum, transition)

        self._fire(projectid, checksum, comments[0])
        for other, comment in comments[1:]:
            self._fire(projectid, other, comment)
        return removed


    def undo_msb(self, projectid, checksum, author=None, tid=None):
        '''Reverse one "done". OR group siblings of this MSB removed by that
           done (found through its transaction id) are reinstated. Returns the
           reinstated checksums.'''
        comments = []

        def transition(sp, msb, conn):
            undo_tid = tid or self.donedb.undoable_tid(sp.projectid, msb.checksum, conn=conn)
            restore = self.donedb.removed_by(sp.projectid, undo_tid, conn=conn)
            undo_tid = undo_tid or make_transaction_id()

            restored = sp.msb_undo(msb.checksum, restore)
            comments.append(self._history(conn, sp, msb, DONE_UNDONE, UNDONE_TEXT, author, undo_tid))
            for other in restored:
                comments.append((other, self._history(conn, sp, sp.get_msb(other), DONE_UNREMOVED,
                                                       UNREMOVED_TEXT, author, undo_tid)))
            return restored

        restored = self.apply_transition(projectid, checksum, transition)

        self._fire(projectid, checksum, comments[0])
        for other, comment in comments[1:]:
            self._fire(projectid, other, comment)
        return restored


    def alldone_msb(self, projectid, checksum, author=None, tid=None):
        return self._simple_transition(projectid, checksum, DONE_ALLDONE, ALLDONE_TEXT, author, tid,
                                       lambda sp, msb: sp.msb_all_done(msb.checksum))


    def suspend_msb(self, projectid, checksum, label, author=None, reason=None, tid=None):
        return self._simple_transition(projectid, checksum, DONE_SUSPENDED,
                                       reason or SUSPENDED_TEXT % label, author, tid,
                                       lambda sp, msb: sp.msb_suspend(msb.checksum, label))


    def remove_msb(self, projectid, checksum, author=None, reason=None, tid=None):
        return self._simple_transition(projectid, checksum, DONE_REMOVED, reason or REMOVED_TEXT,
                                       author, tid, lambda sp, msb: sp.msb_remove(msb.checksum))


    def unremove_msb(self, projectid, checksum, author=None, tid=None):
        return self._simple_transition(projectid, checksum, DONE_UNREMOVED, UNREMOVED_TEXT,
                                       author, tid, lambda sp, msb: sp.msb_unremove(msb.checksum))


    def _simple_transition(self, projectid, checksum, status, text, author, tid, change):
        comments = []

        def transition(sp, msb, conn):
            # The state change is checked before any history is written
            change(sp, msb)
            comments.append(self._history(conn, sp, msb, status, text, author, tid))

        self.apply_transition(projectid, checksum, transition)
        self._fire(projectid, checksum, comments[0])


    def reject_msb(self, projectid, checksum, author=None, reason=None, tid=None):
        '''Record that the MSB was observed but not accepted. The MSB itself is
           unchanged; it need only exist in the program or in the history.'''
        projectid = projectid.upper()
        text = "MSB rejected: " + (reason or REJECTED_TEXT)
        comment = Comment(text, author=author, status=DONE_REJECTED, tid=tid)

        found = self.fetch_msb(checksum, projectid)
        if found is not None:
            self.donedb.add_history(projectid, checksum, comment, info=found[1])
        elif self.donedb.has_history(projectid, checksum):
            self.donedb.add_history(projectid, checksum, comment)
        else:
            raise MSBNotFoundError("MSB {} not found in project {}".format(checksum, projectid))

        self._fire(projectid, checksum, comment)


    def add_comment(self, projectid, checksum, comment):
        '''Attach a comment to an MSB (present in the program or the history).'''
        projectid = projectid.upper()
        if comment.status is None:
            comment = Comment(comment.text, author=comment.author, date=comment.date,
                              status=DONE_COMMENT, tid=comment.tid)
        found = self.fetch_msb(checksum, projectid)
        if found is None and not self.donedb.has_history(projectid, checksum):
            raise MSBNotFoundError("MSB {} not found in project {}".format(checksum, projectid))
        self.donedb.add_history(projectid, checksum, comment, info=found[1] if found else None)
        self._fire(projectid, checksum, comment)


def _pair(low, high):
    if low is None and high is None:
        return None
    return str(Range(low, high))
