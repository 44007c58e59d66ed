'''
projdb.py - Projects and project credentials.
'''

import hashlib
import hmac
import logging

from sqlalchemy import select

from omp.backend    import proj_table, transaction
from omp.exceptions import UnknownProjectError, AuthenticationError

log = logging.getLogger(__name__)


def encrypt_password(password):
    return hashlib.sha256(password.encode('utf-8')).hexdigest()


class ProjDB(object):

    def __init__(self, engine, params=None):
        self.engine = engine
        self.staff_password = params.staff_password if params is not None else None


    def add_project(self, projectid, telescope=None, title=None, pi=None, password=None, conn=None):
        with transaction(self.engine, conn) as c:
            c.execute(proj_table.insert().values(
                projectid = projectid.upper(),
                telescope = telescope.upper() if telescope else None,
                title     = title,
                pi        = pi.upper() if pi else None,
                encrypted = encrypt_password(password) if password else None,
                state     = True))
        log.info("Added project %s", projectid.upper())


    def project(self, projectid):
        '''Project details as a dict, or None.'''
        if not projectid:
            return None
        with self.engine.connect() as c:
            row = c.execute(select(proj_table)
                            .where(proj_table.c.projectid == projectid.upper())).first()
        return dict(row._mapping) if row is not None else None


    def verify_project(self, projectid):
        return self.project(projectid) is not None


    def require_project(self, projectid):
        details = self.project(projectid)
        if details is None:
            raise UnknownProjectError("Project {} is not known to the OMP".format(projectid))
        return details


    def verify_password(self, projectid, password):
        '''Accept the project password or the staff password. The project
           must exist either way.'''
        details = self.require_project(projectid)
        if password is None:
            raise AuthenticationError("No password supplied for project {}".format(projectid))

        if self.staff_password and hmac.compare_digest(password, self.staff_password):
            return True
        encrypted = details['encrypted']
        if encrypted and hmac.compare_digest(encrypt_password(password), encrypted):
            return True

        log.warning("Failed password for project %s", projectid.upper())
        raise AuthenticationError("Incorrect password for project {}".format(projectid.upper()))


    def telescope(self, projectid):
        details = self.project(projectid)
        return details['telescope'] if details else None
