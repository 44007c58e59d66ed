'''
userdb.py - OMP users.
'''

import logging

from sqlalchemy import select

from omp.backend    import user_table, transaction
from omp.exceptions import InvalidUserError

log = logging.getLogger(__name__)


class UserDB(object):

    def __init__(self, engine):
        self.engine = engine


    def add_user(self, userid, name=None, email=None, conn=None):
        with transaction(self.engine, conn) as c:
            c.execute(user_table.insert().values(userid=userid.upper(), uname=name, email=email))


    def get_user(self, userid):
        if not userid:
            return None
        with self.engine.connect() as c:
            row = c.execute(select(user_table)
                            .where(user_table.c.userid == userid.upper())).first()
        return dict(row._mapping) if row is not None else None


    def verify_user(self, userid):
        return self.get_user(userid) is not None


    def require_user(self, userid):
        user = self.get_user(userid)
        if user is None:
            raise InvalidUserError("The user ID '{}' is not recognised by the OMP".format(userid))
        return user
