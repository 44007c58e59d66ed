'''
msbserver.py - The MSB server: fetching, querying and marking MSBs.

Methods that change an MSB silently do nothing when the MSB can not be
found: that normally means the science program has been resubmitted or
reorganized since the caller last looked, which is not an error.
'''

import logging

from omp.comment    import Comment
from omp.constants  import DONE_COMMENT
from omp.donedb     import DoneDB
from omp.msbdb      import MSBDB
from omp.msbinfo    import summaries_xml
from omp.msbquery   import MSBQuery, MSBDoneQuery
from omp.server     import OMPServer, server_method, convert_sciprog
from omp.utils      import to_bool, split_list
from omp.exceptions import MSBNotFoundError, BadArgsError, InvalidTransitionError

log = logging.getLogger(__name__)


class MSBServer(OMPServer):

    def __init__(self, params=None, engine=None, visibility=None):
        '''visibility - optional callable(msbinfo, query) used by queryMSB to
           apply the elevation/airmass constraints the database can not.'''
        OMPServer.__init__(self, params, engine)
        self.visibility = visibility


    def _donedb(self):
        return DoneDB(self.engine, self.params)


    def _msbdb(self):
        return MSBDB(self.engine, self.params, self._donedb())


    def _ignore_missing(self, name, projectid, checksum, action):
        try:
            return action()
        except MSBNotFoundError as e:
            log.warning("%s: MSB %s in %s not found, ignoring: %s", name, checksum, projectid, e)
            return None


    @server_method
    def fetchMSB(self, key):
        '''The MSB with checksum key, wrapped in an <SpProg> document, or None.'''
        if not key:
            raise BadArgsError("No MSB checksum supplied")
        db = self._msbdb()
        found = db.fetch_msb(key)
        if found is None:
            log.info("fetchMSB: no MSB with checksum %s", key)
            return None

        sp, msb = found
        db.record_fetch(sp, msb)
        return sp.msb_xml(msb.checksum)


    @server_method
    def fetchCalProgram(self, telescope, rettype='XML'):
        '''The calibration program for a telescope (project <TELESCOPE>CAL).'''
        sp = self._msbdb().fetch_program(telescope.upper() + 'CAL')
        return convert_sciprog(sp, rettype, self.params.gzip_threshold)


    @server_method
    def queryMSB(self, xmlquery, maxCount=None):
        '''Summaries of the MSBs matching xmlquery as a <QueryResult> document.

           maxCount: 0 or None for the default limit, negative for no limit.
        '''
        query = MSBQuery(xmlquery, max_count=maxCount)
        infos = self._msbdb().query(query, visibility=self.visibility)
        return summaries_xml(infos, wrapper='QueryResult')


    @server_method
    def doneMSB(self, project, checksum, userid=None, reason=None, msbtid=None):
        author = self.author(userid, reason)
        db = self._msbdb()
        self._ignore_missing('doneMSB', project, checksum,
                             lambda: db.done_msb(project, checksum, author, reason, msbtid))


    @server_method
    def undoMSB(self, project, checksum, msbtid=None):
        db = self._msbdb()
        self._ignore_missing('undoMSB', project, checksum,
                             lambda: db.undo_msb(project, checksum, tid=msbtid))


    @server_method
    def unremoveMSB(self, project, checksum):
        db = self._msbdb()
        self._ignore_missing('unremoveMSB', project, checksum,
                             lambda: db.unremove_msb(project, checksum))


    @server_method
    def suspendMSB(self, project, checksum, label, userid=None, reason=None, msbtid=None):
        if not label:
            raise BadArgsError("An observation label is required to suspend an MSB")
        author = self.author(userid, reason)
        db = self._msbdb()
        try:
            self._ignore_missing('suspendMSB', project, checksum,
                                 lambda: db.suspend_msb(project, checksum, label, author, reason, msbtid))
        except InvalidTransitionError as e:
            log.warning("suspendMSB: ignoring %s in %s: %s", checksum, project, e)


    @server_method
    def alldoneMSB(self, project, checksum):
        db = self._msbdb()
        self._ignore_missing('alldoneMSB', project, checksum,
                             lambda: db.alldone_msb(project, checksum))


    @server_method
    def rejectMSB(self, project, checksum, userid=None, reason=None, msbtid=None):
        author = self.author(userid, reason)
        db = self._msbdb()
        self._ignore_missing('rejectMSB', project, checksum,
                             lambda: db.reject_msb(project, checksum, author, reason, msbtid))


    @server_method
    def addMSBcomment(self, project, checksum, comment):
        '''comment is a Comment or plain text.'''
        if not isinstance(comment, Comment):
            comment = Comment(comment, status=DONE_COMMENT)
        elif comment.author:
            self.author(comment.author)
        self._msbdb().add_comment(project, checksum, comment)


    @server_method
    def historyMSB(self, project=None, checksum=None, format='xml'):
        '''History as an <SpMSBSummaries> document, or as MSBInfo objects for
           format 'data' (a single object, or None, when a checksum is given).'''
        format = (format or 'xml').lower()
        if format not in ('xml', 'data'):
            raise BadArgsError("Unknown history format '{}'".format(format))

        infos = self._donedb().history(project, checksum)
        if format == 'xml':
            return summaries_xml(infos)
        if checksum:
            return infos[0] if infos else None
        return infos


    @server_method
    def historyMSBtid(self, msbtid):
        return self._donedb().history_for_transaction(msbtid)


    @server_method
    def titleMSB(self, checksum):
        if not checksum:
            raise BadArgsError("No checksum specified for titleMSB")
        title = self._donedb().title(checksum)
        if not title:
            found = self._msbdb().fetch_msb(checksum)
            if found is not None:
                title = found[1].title
        return title


    @server_method
    def observedMSBs(self, args):
        '''MSBs observed on a night and/or for a project.

           args: date, usenow, projectid (at least one is required), format
           ('xml' or 'data'), comments, transactions. returnall is accepted
           as an old name for comments.
        '''
        args = dict(args)
        if 'returnall' in args:
            args['comments'] = args.pop('returnall')
        format = (args.pop('format', None) or 'xml').lower()

        infos = self._donedb().observed_msbs(
            date         = args.get('date'),
            usenow       = to_bool(args.get('usenow', False)),
            projectid    = args.get('projectid'),
            comments     = to_bool(args.get('comments', True)),
            transactions = to_bool(args.get('transactions', False)))

        if format == 'xml':
            return summaries_xml(infos)
        return infos


    @server_method
    def observedDates(self, project, utdates=False):
        return self._donedb().observed_dates(project, as_dates=utdates)


    @server_method
    def queryMSBdone(self, xmlquery, comments=True, format='xml'):
        if isinstance(comments, dict):
            comments = comments.get('comments', True)
        query = MSBDoneQuery(xmlquery)
        infos = self._donedb().query(query, comments=to_bool(comments))
        if (format or 'xml').lower() == 'xml':
            return summaries_xml(infos)
        return infos


    @server_method
    def getMSBCount(self, projectids):
        '''{projectid: {'total': n, 'active': m}}. projectids may be a list
           or a comma separated string.'''
        return self._msbdb().msb_count(split_list(projectids))
