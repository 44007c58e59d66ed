'''
Command line access to the OMP servers.

    omp initdb
    omp addproject M01BU53 --telescope JCMT --password secret
    omp store program.xml --password secret
    omp query query.xml --max 10
    omp done M01BU53 abc123 --user FRED --reason "Looked fine"
'''

import argparse
import logging
import os
import sys

from lcogt_logging import LCOGTFormatter

from omp.backend    import make_engine, init_db
from omp.log        import ProjectHandler, PROJECT_LOGGER_NAME
from omp.msbserver  import MSBServer
from omp.params     import OMPParameters
from omp.printing   import print_history
from omp.projdb     import ProjDB
from omp.spserver   import SpServer
from omp.userdb     import UserDB
from omp.exceptions import OMPError

VERSION = '1.0.0'

log = logging.getLogger('omp')
project_logger = logging.getLogger(PROJECT_LOGGER_NAME)


def parse_args(argv):
    defaults = OMPParameters()
    arg_parser = argparse.ArgumentParser(
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description=__doc__)

    arg_parser.add_argument("--db-url", type=str, dest='db_url', default=defaults.db_url,
                            help="sqlalchemy URL of the OMP database")
    arg_parser.add_argument("--project_logs", action='store_true', default=defaults.project_logs,
                            dest='project_logs', help="Enable saving the per-project log files")
    arg_parser.add_argument("--project_logs_dir", type=str, default=defaults.project_logs_dir,
                            dest='project_logs_dir', help="Where to save the per-project log files")
    arg_parser.add_argument("--debug", action='store_true', default=False,
                            help="Log at DEBUG level")

    commands = arg_parser.add_subparsers(dest='command')
    commands.required = True

    commands.add_parser('initdb', help="Create the OMP tables")

    p = commands.add_parser('addproject', help="Register a project")
    p.add_argument('projectid')
    p.add_argument('--telescope')
    p.add_argument('--title')
    p.add_argument('--pi')
    p.add_argument('--password', required=True)

    p = commands.add_parser('adduser', help="Register a user")
    p.add_argument('userid')
    p.add_argument('--name')
    p.add_argument('--email')

    p = commands.add_parser('store', help="Store a science program")
    p.add_argument('filename')
    p.add_argument('--password', required=True)
    p.add_argument('--force', action='store_true', default=False)
    p.add_argument('--timestamp', type=int, default=None,
                   help="Timestamp the program was fetched with")

    p = commands.add_parser('fetch', help="Retrieve a science program")
    p.add_argument('projectid')
    p.add_argument('--password', required=True)
    p.add_argument('-o', '--output', help="Write to this file instead of stdout")

    p = commands.add_parser('dump', help="Summarise a stored science program")
    p.add_argument('projectid')
    p.add_argument('--password', required=True)

    p = commands.add_parser('query', help="Query MSBs with an MSBQuery document")
    p.add_argument('filename', help="Query file, or - for stdin")
    p.add_argument('--max', type=int, default=0, dest='max_count',
                   help="Maximum number of results; 0 for the default, negative for all")

    for name in ('done', 'undo'):
        p = commands.add_parser(name, help="Mark an MSB as %s" % name)
        p.add_argument('projectid')
        p.add_argument('checksum')
        p.add_argument('--tid')
        if name == 'done':
            p.add_argument('--user')
            p.add_argument('--reason')

    p = commands.add_parser('history', help="Show MSB history")
    p.add_argument('--project')
    p.add_argument('--checksum')

    p = commands.add_parser('observed', help="Show MSBs observed on a night")
    p.add_argument('--date')
    p.add_argument('--usenow', action='store_true', default=False)
    p.add_argument('--project')

    args = arg_parser.parse_args(argv)

    params = OMPParameters(db_url=args.db_url, project_logs=args.project_logs,
                           project_logs_dir=args.project_logs_dir)
    return args, params


def setup_logging(params, debug=False):
    log = logging.getLogger('omp')
    log.setLevel(logging.DEBUG if debug else logging.INFO)
    log.propagate = False

    sh = logging.StreamHandler()
    sh.setLevel(logging.DEBUG)

    formatter = LCOGTFormatter()

    sh.setFormatter(formatter)
    log.addHandler(sh)

    project_logger.setLevel(logging.DEBUG)
    project_logger.propagate = False
    project_logger.disabled = not params.project_logs
    if params.project_logs:
        os.makedirs(params.project_logs_dir, exist_ok=True)

        ph = ProjectHandler(logdir=params.project_logs_dir)
        ph.setLevel(logging.DEBUG)

        ph.setFormatter(formatter)
        project_logger.addHandler(ph)


def _read(filename):
    if filename == '-':
        return sys.stdin.read()
    with open(filename, 'rb') as fh:
        return fh.read()


def run_command(args, params):
    engine = make_engine(params.db_url)

    if args.command == 'initdb':
        init_db(engine)
    elif args.command == 'addproject':
        ProjDB(engine, params).add_project(args.projectid, telescope=args.telescope, title=args.title,
                                           pi=args.pi, password=args.password)
    elif args.command == 'adduser':
        UserDB(engine).add_user(args.userid, name=args.name, email=args.email)
    elif args.command == 'store':
        summary, timestamp = SpServer(params, engine).storeProgram(
            _read(args.filename), args.password, force=args.force, timestamp=args.timestamp)
        print(summary)
        print("Stored with timestamp %d" % timestamp)
    elif args.command == 'fetch':
        xml = SpServer(params, engine).fetchProgram(args.projectid, args.password)
        if args.output:
            with open(args.output, 'w') as fh:
                fh.write(xml)
        else:
            print(xml)
    elif args.command == 'dump':
        print(SpServer(params, engine).programDetails(args.projectid, args.password))
    elif args.command == 'query':
        print(MSBServer(params, engine).queryMSB(_read(args.filename), args.max_count))
    elif args.command == 'done':
        MSBServer(params, engine).doneMSB(args.projectid, args.checksum, args.user, args.reason, args.tid)
    elif args.command == 'undo':
        MSBServer(params, engine).undoMSB(args.projectid, args.checksum, args.tid)
    elif args.command == 'history':
        history = MSBServer(params, engine).historyMSB(args.project, args.checksum, 'data')
        if args.checksum:
            history = [history] if history else []
        print(print_history(history))
    elif args.command == 'observed':
        print(print_history(MSBServer(params, engine).observedMSBs(
            {'date': args.date, 'usenow': args.usenow, 'projectid': args.project, 'format': 'data'})))


def main(argv=None):
    args, params = parse_args(argv)

    setup_logging(params, args.debug)

    log.info("Starting OMP command '{c}', version {v}".format(c=args.command, v=VERSION))

    try:
        run_command(args, params)
    except OMPError as e:
        log.error("%s: %s", e.__class__.__name__, e)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv[1:]))
