'''
test_sciprog.py - Tests for science program parsing, MSB state and OR-group
logic.
'''

import gzip

import pytest

from omp.msb        import MSB, Observation, ACTIVE, SUSPENDED, EXHAUSTED, REMOVED
from omp.sciprog    import ScienceProgram, compute_checksum, VERIFY_OK, VERIFY_WARN, VERIFY_FATAL
from omp.range      import Range
from omp.exceptions import (SpStoreFailError, MSBNotFoundError, InvalidTransitionError,
                            BadArgsError)

from helpers import PROGRAM, program_with, msb_element


class TestMSB(object):

    def setup_method(self):
        self.msb = MSB('abc123', 'M01BU53', remaining=1,
                       observations=[Observation('obs1', 'SCUBA'), Observation('obs2', 'SCUBA')])


    def test_done_floors_at_zero(self):
        self.msb.mark_done()
        assert self.msb.remaining == 0
        assert self.msb.state == EXHAUSTED

        self.msb.mark_done()
        assert self.msb.remaining == 0


    def test_done_then_undo_restores_remaining(self):
        self.msb.remaining = 3
        self.msb.mark_done()
        self.msb.mark_undo()

        assert self.msb.remaining == 3


    def test_suspend(self):
        self.msb.mark_suspended('obs2')

        assert self.msb.state == SUSPENDED
        assert self.msb.remaining == 1
        assert self.msb.is_schedulable()


    def test_done_clears_suspension(self):
        self.msb.remaining = 2
        self.msb.mark_suspended('obs2')
        self.msb.mark_done()

        assert self.msb.suspended is None
        assert self.msb.state == ACTIVE


    def test_suspend_unknown_label(self):
        with pytest.raises(BadArgsError):
            self.msb.mark_suspended('obs9')


    def test_suspend_requires_an_active_msb(self):
        self.msb.mark_all_done()

        with pytest.raises(InvalidTransitionError):
            self.msb.mark_suspended('obs1')


    def test_suspended_msb_cannot_be_suspended_again(self):
        self.msb.mark_suspended('obs1')

        with pytest.raises(InvalidTransitionError):
            self.msb.mark_suspended('obs2')
        assert self.msb.suspended == 'obs1'


    def test_removed_keeps_remaining(self):
        self.msb.mark_removed()

        assert self.msb.state == REMOVED
        assert self.msb.remaining == 1
        assert not self.msb.is_schedulable()

        self.msb.mark_unremoved()
        assert self.msb.state == ACTIVE


    def test_negative_remaining_is_rejected(self):
        with pytest.raises(BadArgsError):
            MSB('x', 'P', remaining=-1)


    def test_unroll_obs(self):
        assert [label for label, obs in self.msb.unroll_obs()] == ['obs1', 'obs2']
        assert self.msb.instruments() == ['SCUBA']



class TestScienceProgramParsing(object):

    def setup_method(self):
        self.sp = ScienceProgram(PROGRAM)


    def test_metadata(self):
        assert self.sp.projectid == 'M01BU53'
        assert self.sp.ot_version == 20240101
        assert self.sp.telescope == 'JCMT'
        assert self.sp.timestamp is None


    def test_msbs_in_document_order(self):
        assert [m.checksum for m in self.sp.msbs] == ['abc123', 'optaO', 'optbO']


    def test_msb_fields(self):
        msb = self.sp.get_msb('abc123')

        assert msb.title == 'Orion map'
        assert msb.remaining == 2
        assert msb.priority == 1
        assert msb.tau == Range(0.0, 0.1)
        assert msb.seeing == Range(None, 1.5)
        assert msb.labels() == ['obs1', 'obs2']
        assert msb.observations[0].instrument == 'SCUBA'
        assert msb.observations[0].target == 'ORION'
        assert msb.or_group is None


    def test_or_group(self):
        assert self.sp.get_msb('optaO').or_group == 'or1'
        assert self.sp.or_groups['or1'].number_of_items == 1
        assert [m.checksum for m in self.sp.siblings('optaO')] == ['optbO']


    def test_contains(self):
        assert 'abc123' in self.sp
        assert 'nope' not in self.sp
        assert self.sp.fetch_msb('nope') is None
        with pytest.raises(MSBNotFoundError):
            self.sp.get_msb('nope')


    def test_gzipped_program(self):
        sp = ScienceProgram(gzip.compress(PROGRAM.encode('utf-8')))

        assert sp.projectid == 'M01BU53'


    def test_corrupt_gzip(self):
        with pytest.raises(SpStoreFailError):
            ScienceProgram(b'\x1f\x8bnot really gzip')


    def test_not_xml(self):
        with pytest.raises(SpStoreFailError):
            ScienceProgram('<SpProg>')


    def test_wrong_root(self):
        with pytest.raises(SpStoreFailError):
            ScienceProgram('<Program><projectID>X</projectID></Program>')


    def test_missing_project(self):
        with pytest.raises(SpStoreFailError):
            ScienceProgram('<SpProg><SpMSB/></SpProg>')


    def test_round_trip_keeps_state(self):
        self.sp.msb_done('abc123')
        sp = ScienceProgram(self.sp.to_xml())

        assert sp.get_msb('abc123').remaining == 1


    def test_msb_xml(self):
        sp = ScienceProgram(self.sp.msb_xml('optaO'))

        assert sp.projectid == 'M01BU53'
        assert [m.checksum for m in sp.msbs] == ['optaO']


    def test_instruments(self):
        assert self.sp.instruments() == ['SCUBA', 'ACSIS']


    def test_summary(self):
        text = self.sp.summary()

        assert 'Project: M01BU53' in text
        assert 'Contains 3 MSBs, 3 active' in text
        assert len(self.sp.summary('data')) == 3



class TestChecksum(object):

    def test_state_attributes_do_not_change_checksum(self):
        sp1 = ScienceProgram(program_with(['<SpMSB remaining="1"><title>A</title><SpObs/></SpMSB>']))
        sp2 = ScienceProgram(program_with(['<SpMSB remaining="5" suspended="obs1"><title>A</title><SpObs/></SpMSB>']))

        assert sp1.msbs[0].checksum == sp2.msbs[0].checksum


    def test_content_changes_checksum(self):
        sp1 = ScienceProgram(program_with(['<SpMSB><title>A</title></SpMSB>']))
        sp2 = ScienceProgram(program_with(['<SpMSB><title>B</title></SpMSB>']))

        assert sp1.msbs[0].checksum != sp2.msbs[0].checksum


    def test_folder_suffix(self):
        sp = ScienceProgram(program_with(['<SpOR><SpMSB><title>A</title></SpMSB></SpOR>',
                                          '<SpAND><SpMSB><title>B</title></SpMSB></SpAND>']))

        assert sp.msbs[0].checksum.endswith('O')
        assert sp.msbs[1].checksum.endswith('A')
        assert len(sp.msbs[0].checksum) == 33


    def test_compute_checksum_is_md5(self):
        sp = ScienceProgram(program_with(['<SpMSB><title>A</title></SpMSB>']))

        assert sp.msbs[0].checksum == compute_checksum(sp.root.find('SpMSB'))



class TestORGroup(object):

    def setup_method(self):
        self.sp = ScienceProgram(PROGRAM)


    def test_done_removes_siblings(self):
        removed = self.sp.msb_done('optaO')

        assert removed == ['optbO']
        assert self.sp.get_msb('optbO').state == REMOVED
        assert self.sp.get_msb('optaO').state == EXHAUSTED


    def test_done_outside_group_touches_nothing_else(self):
        assert self.sp.msb_done('abc123') == []
        assert all(m.state == ACTIVE for m in self.sp.msbs)


    def test_reorganization_is_idempotent(self):
        self.sp.msb_done('optaO')

        assert self.sp.msb_done('optaO') == []
        assert self.sp.get_msb('optbO').state == REMOVED


    def test_undo_restores_the_removed_siblings(self):
        removed = self.sp.msb_done('optaO')
        restored = self.sp.msb_undo('optaO', removed)

        assert restored == ['optbO']
        assert self.sp.get_msb('optaO').state == ACTIVE
        assert self.sp.get_msb('optbO').state == ACTIVE


    def test_undo_leaves_other_or_groups_alone(self):
        sp = ScienceProgram(program_with([
            '<SpOR numberOfItems="1">', msb_element('aaO', 'A'), msb_element('abO', 'B'), '</SpOR>',
            '<SpOR numberOfItems="1">', msb_element('caO', 'C'), msb_element('cbO', 'D'), '</SpOR>']))
        removed = sp.msb_done('aaO') + sp.msb_done('caO')

        assert sp.msb_undo('aaO', removed) == ['abO']
        assert sp.get_msb('cbO').state == REMOVED


    def test_number_of_items(self):
        sp = ScienceProgram(program_with(['<SpOR numberOfItems="2">',
                                          msb_element('aO', 'A'), msb_element('bO', 'B'),
                                          msb_element('cO', 'C'), '</SpOR>']))

        assert sp.msb_done('aO') == []
        assert sp.msb_done('bO') == ['cO']


    def test_all_done_does_not_reorganize(self):
        self.sp.msb_all_done('optaO')

        assert self.sp.get_msb('optaO').remaining == 0
        assert self.sp.get_msb('optbO').state == ACTIVE



class TestVerify(object):

    def test_ok(self):
        assert ScienceProgram(PROGRAM).verify_msbs() == (VERIFY_OK, '')


    def test_duplicates_are_fatal(self):
        sp = ScienceProgram(program_with([msb_element('dup', 'A'), msb_element('dup', 'A')]))

        assert sp.verify_msbs()[0] == VERIFY_FATAL


    def test_msb_without_observations_warns(self):
        sp = ScienceProgram(program_with(['<SpMSB checksum="x"><title>Empty</title></SpMSB>']))

        status, message = sp.verify_msbs()
        assert status == VERIFY_WARN
        assert 'no observations' in message


    def test_empty_program_warns(self):
        assert ScienceProgram(program_with([])).verify_msbs()[0] == VERIFY_WARN
