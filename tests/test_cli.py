'''
test_cli.py - Tests for the omp command line.
'''

import logging

from mock import patch

from omp import cli
from omp.log import PROJECT_LOGGER_NAME

from helpers import PROGRAM, PASSWORD


class TestParseArgs(object):

    def test_defaults_come_from_the_parameters(self):
        args, params = cli.parse_args(['initdb'])

        assert args.command == 'initdb'
        assert params.db_url == args.db_url
        assert not args.debug

    def test_command_options(self):
        args, params = cli.parse_args(['--db-url', 'sqlite:///omp.db', 'done', 'M01BU53', 'abc123',
                                       '--user', 'FRED', '--reason', 'fine'])

        assert params.db_url == 'sqlite:///omp.db'
        assert (args.projectid, args.checksum, args.user, args.reason) == ('M01BU53', 'abc123', 'FRED', 'fine')

    def test_query_max(self):
        args, _ = cli.parse_args(['query', '-', '--max', '-1'])

        assert args.max_count == -1



class TestMain(object):

    def setup_method(self):
        self.project_logger = logging.getLogger(PROJECT_LOGGER_NAME)
        self.omp_logger = logging.getLogger('omp')

    def teardown_method(self):
        for logger in (self.project_logger, self.omp_logger):
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)
        self.project_logger.disabled = False

    def run(self, db_url, *argv):
        return cli.main(['--db-url', db_url] + list(argv))

    def test_store_and_mark_done(self, tmp_path, capsys):
        db_url = 'sqlite:///' + str(tmp_path / 'omp.db')
        program = tmp_path / 'program.xml'
        program.write_text(PROGRAM)

        assert self.run(db_url, 'initdb') == 0
        assert self.run(db_url, 'addproject', 'M01BU53', '--telescope', 'JCMT', '--password', PASSWORD) == 0
        assert self.run(db_url, 'adduser', 'FRED') == 0
        assert self.run(db_url, 'store', str(program), '--password', PASSWORD) == 0
        assert 'Project: M01BU53' in capsys.readouterr().out

        assert self.run(db_url, 'done', 'M01BU53', 'abc123', '--user', 'FRED', '--reason', 'fine') == 0
        assert self.run(db_url, 'history', '--checksum', 'abc123') == 0
        assert '[DONE] FRED: fine' in capsys.readouterr().out

    def test_errors_give_a_non_zero_status(self, tmp_path):
        db_url = 'sqlite:///' + str(tmp_path / 'omp.db')
        self.run(db_url, 'initdb')

        with patch('omp.cli.log.error') as mock_error:
            assert self.run(db_url, 'fetch', 'M01BU53', '--password', 'x') == 1
        assert 'UnknownProjectError' in mock_error.call_args[0][1]

    def test_project_logs(self, tmp_path):
        db_url = 'sqlite:///' + str(tmp_path / 'omp.db')
        logdir = tmp_path / 'logs'

        assert self.run(db_url, '--project_logs', '--project_logs_dir', str(logdir), 'initdb') == 0
        assert not self.project_logger.disabled
        assert logdir.is_dir()
