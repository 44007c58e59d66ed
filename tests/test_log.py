'''
test_log.py - Tests for the per-project log handler.
'''

import logging
import os

from omp.log import ProjectHandler, ProjectLogger


class TestProjectLogging(object):

    def setup_method(self):
        self.logger = logging.getLogger('omp_project_test')
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False
        self.project_log = ProjectLogger(self.logger)

    def teardown_method(self):
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)

    def add_handler(self, logdir):
        handler = ProjectHandler(logdir=str(logdir))
        handler.setFormatter(logging.Formatter('%(levelname)s %(message)s'))
        self.logger.addHandler(handler)
        return handler

    def test_messages_go_to_the_project_file(self, tmp_path):
        self.add_handler(tmp_path)

        self.project_log.info('info Message!', 'm01bu53')
        self.project_log.warning('Warning, stuff is broke', 'M01BU53')

        with open(os.path.join(str(tmp_path), 'M01BU53.log')) as fh:
            lines = fh.read().splitlines()
        assert lines == ['INFO info Message!', 'WARNING Warning, stuff is broke']

    def test_projects_get_separate_files(self, tmp_path):
        self.add_handler(tmp_path)

        self.project_log.error('one', 'M01BU53')
        self.project_log.error('two', 'u24a1')

        assert sorted(os.listdir(str(tmp_path))) == ['M01BU53.log', 'U24A1.log']

    def test_records_without_a_project(self, tmp_path):
        self.add_handler(tmp_path)

        self.logger.info('general')

        assert os.listdir(str(tmp_path)) == ['omp.log']

    def test_creates_the_log_directory(self, tmp_path):
        logdir = tmp_path / 'logs' / 'projects'
        self.add_handler(logdir)

        assert os.path.isdir(str(logdir))
