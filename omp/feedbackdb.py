'''
feedbackdb.py - Feedback comments attached to projects.

Comments with status FB_HIDDEN are only returned when hidden comments are
explicitly asked for.
'''

import logging

from sqlalchemy import select, and_

from omp.backend    import feedback_table, transaction
from omp.projdb     import ProjDB
from omp.utils      import safe_unidecode, utcnow
from omp.exceptions import BadArgsError, UnknownProjectError

log = logging.getLogger(__name__)

FB_HIDDEN = 0
FB_INFO = 1

DEFAULTS = {
             'subject'    : 'none',
             'program'    : 'unspecified',
             'sourceinfo' : 'unspecified',
             'status'     : FB_INFO,
           }


class FeedbackDB(object):

    def __init__(self, engine, projdb=None):
        self.engine = engine
        self.projdb = projdb or ProjDB(engine)


    def add_comment(self, projectid, comment, conn=None):
        '''Store a comment (a dict with at least author and text). Returns
           its id.'''
        if not isinstance(comment, dict):
            raise BadArgsError("Comment was not a dict")

        comment = dict(DEFAULTS, **comment)
        for required in ('author', 'text'):
            if not comment.get(required):
                raise BadArgsError("%s was not specified" % required)

        if not self.projdb.verify_project(projectid):
            raise UnknownProjectError("Project %s not known." % projectid)

        with transaction(self.engine, conn) as c:
            result = c.execute(feedback_table.insert().values(
                projectid  = projectid.upper(),
                author     = safe_unidecode(comment['author'], 32),
                date       = comment.get('date') or utcnow(),
                subject    = safe_unidecode(comment['subject'], 128),
                program    = safe_unidecode(comment['program'], 50),
                sourceinfo = safe_unidecode(comment['sourceinfo'], 60),
                status     = comment['status'],
                text       = comment['text'],
                msgtype    = comment.get('msgtype')))

        log.info("Added feedback comment '%s' to %s", comment['subject'], projectid.upper())
        return result.inserted_primary_key[0]


    def get_comments(self, projectid, password, amount=None, show_hidden=False):
        '''Comments for a project, oldest first. amount limits the result to
           the most recent comments.'''
        self.projdb.verify_password(projectid, password)

        t = feedback_table
        clause = t.c.projectid == projectid.upper()
        if not show_hidden:
            clause = and_(clause, t.c.status != FB_HIDDEN)

        with self.engine.connect() as c:
            rows = c.execute(select(t).where(clause).order_by(t.c.date, t.c.commid)).fetchall()

        comments = [dict(row._mapping) for row in rows]
        if amount is not None and amount != 'all':
            comments = comments[-int(amount):] if int(amount) > 0 else []
        return comments
