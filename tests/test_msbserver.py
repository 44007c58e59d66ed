'''
test_msbserver.py - Tests for the MSB server facade.
'''

import xml.etree.ElementTree as ET

import pytest
from mock import patch

from omp.comment    import Comment
from omp.constants  import (DONE_DONE, DONE_UNDONE, DONE_FETCH, DONE_COMMENT, DONE_ALLDONE,
                            DONE_SUSPENDED)
from omp.donedb     import DoneDB
from omp.msbdb      import MSBDB
from omp.msbinfo    import MSBInfo
from omp.msbserver  import MSBServer
from omp.sciprog    import ScienceProgram
from omp.exceptions import (InvalidUserError, BadArgsError, StorageFatalError,
                            MalformedQueryError, NotFoundError)

from helpers import PROGRAM, PROJECT, create_database, program_with, msb_element


def summaries(xml):
    return ET.fromstring(xml).findall('SpMSBSummary')


class TestMSBServer(object):

    def setup_method(self):
        self.engine, self.params = create_database()
        self.server = MSBServer(self.params, self.engine)
        self.donedb = DoneDB(self.engine, self.params)
        MSBDB(self.engine, self.params).store_program(ScienceProgram(PROGRAM))


    def remaining(self, checksum):
        return MSBDB(self.engine, self.params).fetch_msb(checksum)[1].remaining


    def test_done_done_undo(self):
        self.server.doneMSB(PROJECT, 'abc123')
        entries = self.donedb.entries(PROJECT, 'abc123')
        assert [e.status for e in entries] == [DONE_DONE]
        assert self.remaining('abc123') == 1

        self.server.doneMSB(PROJECT, 'abc123')
        assert self.remaining('abc123') == 0

        self.server.undoMSB(PROJECT, 'abc123')
        assert self.remaining('abc123') == 1
        assert len(self.donedb.entries(PROJECT, 'abc123')) == 3
        assert self.donedb.entries(PROJECT, 'abc123')[-1].status == DONE_UNDONE


    def test_mutators_ignore_missing_msbs(self):
        self.server.doneMSB(PROJECT, 'nope')
        self.server.undoMSB(PROJECT, 'nope')
        self.server.suspendMSB(PROJECT, 'nope', 'obs1')
        self.server.alldoneMSB(PROJECT, 'nope')
        self.server.rejectMSB(PROJECT, 'nope')
        self.server.unremoveMSB('NOPROJ', 'abc123')

        assert self.donedb.history(projectid=PROJECT) == []


    def test_invalid_user(self):
        with pytest.raises(InvalidUserError):
            self.server.doneMSB(PROJECT, 'abc123', userid='NOBODY')
        assert self.remaining('abc123') == 2


    def test_reason_needs_a_user(self):
        with pytest.raises(BadArgsError):
            self.server.doneMSB(PROJECT, 'abc123', reason='because')


    def test_user_is_recorded(self):
        self.server.doneMSB(PROJECT, 'abc123', userid='fred', reason='All good')

        entry = self.donedb.entries(PROJECT, 'abc123')[-1]
        assert entry.userid == 'FRED'
        assert entry.commenttext == 'All good'


    def test_suspend_needs_a_label(self):
        with pytest.raises(BadArgsError):
            self.server.suspendMSB(PROJECT, 'abc123', '')


    def test_invalid_suspend_is_ignored(self):
        self.server.alldoneMSB(PROJECT, 'abc123')
        self.server.suspendMSB(PROJECT, 'abc123', 'obs1')

        assert [e.status for e in self.donedb.entries(PROJECT, 'abc123')] == [DONE_ALLDONE]


    def test_suspend_keeps_the_first_label(self):
        self.server.suspendMSB(PROJECT, 'abc123', 'obs1')
        self.server.suspendMSB(PROJECT, 'abc123', 'obs2')

        assert MSBDB(self.engine, self.params).fetch_msb('abc123')[1].suspended == 'obs1'
        assert [e.status for e in self.donedb.entries(PROJECT, 'abc123')] == [DONE_SUSPENDED]


    def test_unexpected_errors_become_storage_errors(self):
        with patch.object(MSBDB, 'done_msb', side_effect=RuntimeError('disk on fire')):
            with pytest.raises(StorageFatalError):
                self.server.doneMSB(PROJECT, 'abc123')


    def test_fetch_msb(self):
        xml = self.server.fetchMSB('abc123')

        sp = ScienceProgram(xml)
        assert sp.projectid == PROJECT
        assert [m.checksum for m in sp.msbs] == ['abc123']
        assert [e.status for e in self.donedb.entries(PROJECT, 'abc123')] == [DONE_FETCH]


    def test_fetch_missing_msb_returns_none(self):
        assert self.server.fetchMSB('nope') is None


    def test_fetch_needs_a_key(self):
        with pytest.raises(BadArgsError):
            self.server.fetchMSB('')


    def test_query(self):
        result = self.server.queryMSB('<MSBQuery><instrument>SCUBA</instrument></MSBQuery>')

        root = ET.fromstring(result)
        assert root.tag == 'QueryResult'
        assert [s.get('id') for s in root.findall('SpMSBSummary')] == ['abc123']
        assert root.find('SpMSBSummary/title').text == 'Orion map'


    def test_query_max_count(self):
        msbs = [msb_element('m%02d' % i, 'MSB %d' % i) for i in range(120)]
        MSBDB(self.engine, self.params).store_program(ScienceProgram(program_with(msbs)), force=True)

        assert len(summaries(self.server.queryMSB('<MSBQuery/>', 0))) == 100
        assert len(summaries(self.server.queryMSB('<MSBQuery/>', -1))) == 120
        assert len(summaries(self.server.queryMSB('<MSBQuery/>', 5))) == 5


    def test_bad_query(self):
        with pytest.raises(MalformedQueryError):
            self.server.queryMSB('<MSBQuery><tau>')


    def test_history_xml(self):
        self.server.doneMSB(PROJECT, 'abc123')

        result = ET.fromstring(self.server.historyMSB(PROJECT, 'abc123'))
        assert result.tag == 'SpMSBSummaries'
        assert result.find('SpMSBSummary/comment/status').text == 'DONE'


    def test_history_data(self):
        self.server.doneMSB(PROJECT, 'abc123')
        self.server.doneMSB(PROJECT, 'optaO')

        info = self.server.historyMSB(PROJECT, 'abc123', 'data')
        assert isinstance(info, MSBInfo)
        assert info.nrepeats == 1
        assert len(self.server.historyMSB(PROJECT, None, 'data')) == 3
        assert self.server.historyMSB(PROJECT, 'nope', 'data') is None


    def test_history_bad_format(self):
        with pytest.raises(BadArgsError):
            self.server.historyMSB(PROJECT, 'abc123', 'yaml')


    def test_history_tid(self):
        self.server.doneMSB(PROJECT, 'abc123', msbtid='tid7')

        assert self.server.historyMSBtid('tid7').checksum == 'abc123'


    def test_title(self):
        assert self.server.titleMSB('abc123') == 'Orion map'
        assert self.server.titleMSB('nope') is None


    def test_add_comment(self):
        self.server.addMSBcomment(PROJECT, 'abc123', 'A plain comment')
        self.server.addMSBcomment(PROJECT, 'abc123', Comment('By Fred', author='FRED'))

        entries = self.donedb.entries(PROJECT, 'abc123')
        assert [e.status for e in entries] == [DONE_COMMENT, DONE_COMMENT]
        assert entries[1].userid == 'FRED'


    def test_comment_by_unknown_user(self):
        with pytest.raises(InvalidUserError):
            self.server.addMSBcomment(PROJECT, 'abc123', Comment('text', author='NOBODY'))


    def test_empty_comment_is_a_bad_argument(self):
        with pytest.raises(BadArgsError):
            self.server.addMSBcomment(PROJECT, 'abc123', '')
        assert self.donedb.entries(PROJECT, 'abc123') == []


    def test_observed(self):
        self.server.doneMSB(PROJECT, 'abc123')

        infos = self.server.observedMSBs({'usenow': True, 'format': 'data', 'returnall': False})
        assert [i.checksum for i in infos] == ['abc123']
        assert len(summaries(self.server.observedMSBs({'projectid': PROJECT}))) == 1


    def test_observed_needs_a_restriction(self):
        with pytest.raises(MalformedQueryError):
            self.server.observedMSBs({'format': 'data'})


    def test_observed_dates(self):
        self.server.doneMSB(PROJECT, 'abc123')

        assert len(self.server.observedDates(PROJECT)) == 1


    def test_query_done(self):
        self.server.doneMSB(PROJECT, 'abc123')
        self.server.rejectMSB(PROJECT, 'optaO')

        result = self.server.queryMSBdone('<MSBDoneQuery><status>REJECTED</status></MSBDoneQuery>')
        assert [s.get('id') for s in summaries(result)] == ['optaO']


    def test_msb_count(self):
        self.server.doneMSB(PROJECT, 'optaO')

        assert self.server.getMSBCount('M01BU53,OTHER') == {PROJECT: {'total': 3, 'active': 1}}


    def test_cal_program(self):
        with pytest.raises(NotFoundError):
            self.server.fetchCalProgram('jcmt')

        MSBDB(self.engine, self.params).store_program(
            ScienceProgram(program_with([msb_element('cal1', 'Pointing')], projectid='JCMTCAL')))
        assert ScienceProgram(self.server.fetchCalProgram('jcmt')).projectid == 'JCMTCAL'


    def test_visibility(self):
        server = MSBServer(self.params, self.engine, visibility=lambda info, query: info.priority > 1)
        result = server.queryMSB('<MSBQuery/>')

        assert [s.get('id') for s in summaries(result)] == ['optaO', 'optbO']


    def test_test_server(self):
        assert self.server.testServer()
