'''
feedback.py - Listeners reacting to MSB activity.

    MSBActivityLogger    - writes each MSB event to the per-project log
    FirstAcceptNotifier  - adds a feedback comment the first time an MSB of
                           a project is accepted, for configured telescopes
'''

import logging

from sqlalchemy import select, func, and_

from omp.backend    import msbdone_table
from omp.constants  import DONE_DONE, status_name
from omp.eventbus   import BaseListener, Event
from omp.feedbackdb import FeedbackDB
from omp.log        import get_project_logger
from omp.projdb     import ProjDB
from omp.utils      import EqualityMixin

log = logging.getLogger(__name__)

project_log = get_project_logger()


class MSBActivityLogger(BaseListener):

    def __init__(self):
        pass

    @classmethod
    def create_event(cls, projectid, checksum, comment, engine=None):
        return cls._Event(projectid, checksum, comment, engine)


    def on_activity(self, event):
        project_log.info(str(event), event.projectid)


    class _Event(Event, EqualityMixin):
        def __init__(self, projectid, checksum, comment, engine=None):
            self.projectid = projectid
            self.checksum  = checksum
            self.comment   = comment
            self.engine    = engine

        @property
        def status(self):
            return self.comment.status

        def key(self):
            return (self.projectid, self.checksum)

        def dispatch(self, listener):
            listener.on_activity(self)

        def __repr__(self):
            return "%s <%s %s [%s] %s: %s>" % ('MSBActivity', self.projectid, self.checksum,
                                             status_name(self.comment.status),
                                             self.comment.author or 'anonymous', self.comment.text)



class FirstAcceptNotifier(BaseListener):
    '''Register against MSBActivityLogger.event_type().'''

    def __init__(self, engine, params):
        self.engine = engine
        self.telescopes = params.first_accept_telescopes
        self.projdb = ProjDB(engine, params)
        self.feedbackdb = FeedbackDB(engine, self.projdb)

    @classmethod
    def event_type(cls):
        return MSBActivityLogger.event_type()


    def on_activity(self, event):
        if event.engine is not self.engine or event.status != DONE_DONE:
            return

        telescope = self.projdb.telescope(event.projectid)
        if telescope is None or telescope not in self.telescopes:
            return

        t = msbdone_table
        with self.engine.connect() as c:
            n_accepted = c.execute(select(func.count(t.c.commid))
                                   .where(and_(t.c.projectid == event.projectid,
                                               t.c.status == DONE_DONE))).scalar()
        if n_accepted != 1:
            return

        self.feedbackdb.add_comment(event.projectid, {
            'author'  : 'OMP',
            'subject' : '[%s] First accepted MSB' % event.projectid,
            'program' : 'omp.feedback',
            'text'    : "The first MSB for project %s (%s) has been accepted." % (
                          event.projectid, event.checksum),
        })
        log.info("Sent first accepted MSB notification for %s", event.projectid)
