'''
log.py - OMP-specific logging classes

This module provides
    * MultiFileHandler - write to multiple files using a single logger
    * ProjectHandler   - write messages about a project to its own file
    * ProjectLogger    - convenience wrapper for logging against a project
'''

import logging
import os
import os.path

PROJECT_LOGGER_NAME = 'omp_project'


class MultiFileHandler(logging.FileHandler):

    def __init__(self, filename, mode='a', encoding=None, delay=False):
        logging.FileHandler.__init__(self, filename, mode, encoding, delay)

    def emit(self, record):
        if self.should_change_file(record):
            self.change_file(record.file_id)
        logging.FileHandler.emit(self, record)

    def should_change_file(self, record):
        if not hasattr(record, 'file_id') or record.file_id == self.baseFilename:
            return False
        return True

    def change_file(self, file_id):
        if self.stream is not None:
            self.stream.close()

        self.baseFilename = os.path.abspath(file_id)
        self.stream = self._open()


class ProjectHandler(MultiFileHandler):
    '''Records carrying a projectid go to <logdir>/<PROJECTID>.log; anything
       else goes to <logdir>/omp.log.'''

    def __init__(self, logdir='.', mode='a', encoding=None, delay=True):
        if not os.path.isdir(logdir):
            os.makedirs(logdir)
        self.logdir = logdir
        MultiFileHandler.__init__(self, self.filename_for(None), mode, encoding, delay)

    def filename_for(self, projectid):
        name = projectid.upper() if projectid else 'omp'
        return os.path.abspath(os.path.join(self.logdir, name + '.log'))

    def emit(self, record):
        record.file_id = self.filename_for(getattr(record, 'projectid', None))
        MultiFileHandler.emit(self, record)


class ProjectLogger(object):

    def __init__(self, logger):
        self.logger = logger

    def debug(self, msg, projectid):
        self.logger.debug(msg, extra={'projectid': projectid})

    def info(self, msg, projectid):
        self.logger.info(msg, extra={'projectid': projectid})

    def warning(self, msg, projectid):
        self.logger.warning(msg, extra={'projectid': projectid})

    def error(self, msg, projectid):
        self.logger.error(msg, extra={'projectid': projectid})

    def critical(self, msg, projectid):
        self.logger.critical(msg, extra={'projectid': projectid})


def get_project_logger():
    return ProjectLogger(logging.getLogger(PROJECT_LOGGER_NAME))
