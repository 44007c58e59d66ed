'''
spserver.py - The science program server: storing and retrieving whole
science programs.
'''

import logging

from omp.msbdb      import MSBDB
from omp.projdb     import ProjDB
from omp.sciprog    import ScienceProgram, VERIFY_WARN, VERIFY_FATAL
from omp.server     import OMPServer, server_method, convert_sciprog
from omp.utils      import gunzip_if_needed, to_bool, split_list
from omp.exceptions import SpStoreFailError, NotFoundError

log = logging.getLogger(__name__)


class SpServer(OMPServer):

    def _msbdb(self):
        return MSBDB(self.engine, self.params)


    def _verify(self, projectid, credentials):
        ProjDB(self.engine, self.params).verify_password(projectid, credentials)


    def _check_ot_version(self, sp):
        '''Raises if the program came from a too old OT; returns a warning if
           a newer OT than the one used is available.'''
        minimum = self.params.ot_min_version
        if minimum is not None and (sp.ot_version is None or sp.ot_version < minimum):
            raise SpStoreFailError(
                "This science program was generated by a version of the OT (ver. {})\n"
                "that is too old for submitting programmes.\n"
                "Please upgrade to at least version {}.".format(sp.ot_version or 0, minimum))

        current = self.params.ot_cur_version
        if current is not None and sp.ot_version is not None and sp.ot_version < current:
            return "Warning: a newer version of the OT ({}) is available.".format(current)
        return None


    @server_method
    def storeProgram(self, xml, credentials, force=False, timestamp=None):
        '''Store a science program. Returns [summary text, new timestamp].

           timestamp is the version token the program was fetched with; it
           must match the stored program unless force is true.
        '''
        if not xml:
            raise SpStoreFailError("No science program supplied")
        sp = ScienceProgram(gunzip_if_needed(xml))
        log.info("storeProgram: project %s, OT version %s", sp.projectid, sp.ot_version)

        warnings = []
        ot_warning = self._check_ot_version(sp)
        if ot_warning:
            warnings.append(ot_warning)

        self._verify(sp.projectid, credentials)

        status, reason = sp.verify_msbs()
        if status == VERIFY_FATAL:
            raise SpStoreFailError("Error verifying science program: {}".format(reason))
        if status == VERIFY_WARN:
            warnings.append(reason)

        new_timestamp = self._msbdb().store_program(sp, expected_timestamp=timestamp,
                                                    force=to_bool(force))

        summary = sp.summary()
        if warnings:
            summary = '\n'.join(warnings) + '\n' + summary
        return [summary, new_timestamp]


    @server_method
    def fetchProgram(self, project, credentials, rettype='XML'):
        self._verify(project, credentials)
        sp = self._msbdb().fetch_program(project)
        return convert_sciprog(sp, rettype, self.params.gzip_threshold)


    @server_method
    def fetchProgramWithTimestamp(self, project, credentials, rettype='XML'):
        '''[program, version token]; the token is what storeProgram expects back.'''
        self._verify(project, credentials)
        sp = self._msbdb().fetch_program(project)
        return [convert_sciprog(sp, rettype, self.params.gzip_threshold), sp.timestamp]


    @server_method
    def programDetails(self, project, credentials, mode='ascii'):
        '''Summary of the stored program: text for mode 'ascii', a list of
           dicts for 'data', the ScienceProgram itself for 'object'.'''
        self._verify(project, credentials)
        sp = self._msbdb().fetch_program(project)
        mode = (mode or 'ascii').lower()
        if mode == 'object':
            return sp
        return sp.summary('data' if mode == 'data' else 'ascii')


    @server_method
    def programInstruments(self, projectids):
        '''{projectid: [instruments]}; projects with no stored program are omitted.'''
        db = self._msbdb()
        result = {}
        for projectid in split_list(projectids):
            try:
                result[projectid.upper()] = db.fetch_program(projectid).instruments()
            except NotFoundError:
                log.info("programInstruments: no science program for %s", projectid)
        return result


    @server_method
    def getOTVersionInfo(self):
        '''(current version, minimum version) of the OT.'''
        return (self.params.ot_cur_version, self.params.ot_min_version)


    @server_method
    def compressReturnedItem(self, item, rettype='XML'):
        '''Render a ScienceProgram (or program XML) in the requested form.'''
        if not isinstance(item, ScienceProgram):
            item = ScienceProgram(item)
        return convert_sciprog(item, rettype, self.params.gzip_threshold)
