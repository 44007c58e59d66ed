'''
test_comment.py - Tests for MSB comments.
'''

from datetime import datetime

import pytest

from omp.comment    import Comment
from omp.constants  import DONE_DONE, DONE_COMMENT, DONE_REJECTED
from omp.exceptions import BadArgsError


class TestComment(object):

    def setup_method(self):
        self.date = datetime(2024, 1, 8, 12, 30, 0)
        self.comment = Comment('Looked fine', author='FRED', date=self.date, status=DONE_DONE)


    def test_requires_text(self):
        with pytest.raises(BadArgsError):
            Comment('')


    def test_date_defaults_to_now(self):
        before = datetime.utcnow().replace(microsecond=0)
        comment = Comment('text')

        assert comment.date >= before


    def test_date_string_is_parsed(self):
        comment = Comment('text', date='2024-01-08T12:30:00')

        assert comment.date == self.date


    def test_status_can_be_patched_once(self):
        self.comment.patch_status(DONE_REJECTED)

        assert self.comment.status == DONE_REJECTED
        with pytest.raises(BadArgsError):
            self.comment.patch_status(DONE_COMMENT)


    def test_with_tid_copies(self):
        copied = self.comment.with_tid('tid1')

        assert copied.tid == 'tid1'
        assert copied.text == self.comment.text
        assert self.comment.tid is None


    def test_display_string(self):
        assert self.comment.display_string() == '2024-01-08 12:30:00 [DONE] FRED: Looked fine'


    def test_anonymous_display_string(self):
        comment = Comment('hello', date=self.date, status=DONE_COMMENT)

        assert comment.display_string() == '2024-01-08 12:30:00 [COMMENT] anonymous: hello'


    def test_equality(self):
        other = Comment('Looked fine', author='FRED', date=self.date, status=DONE_DONE)

        assert other == self.comment
        assert other.with_tid('x') != self.comment
