'''
params.py - Configuration for the OMP servers and databases.

Every default can be overridden from the environment, so a deployment is
configured without code changes. An OMPParameters instance is handed to each
server and database constructor.
'''

import os

from omp.utils import to_bool, split_list


class OMPParameters(object):

    def __init__(self,
                 db_url=os.getenv('OMP_DB_URL', 'sqlite://'),
                 msb_query_default_max=int(os.getenv('MSB_QUERY_DEFAULT_MAX', 100)),
                 gzip_threshold=int(os.getenv('SCIPROG_GZIP_THRESHOLD', 30000)),
                 ot_min_version=os.getenv('OT_MIN_VERSION', None),
                 ot_cur_version=os.getenv('OT_CUR_VERSION', None),
                 staff_password=os.getenv('OMP_STAFF_PASSWORD', None),
                 first_accept_telescopes=os.getenv('FIRST_ACCEPT_TELESCOPES', 'JCMT'),
                 project_logs=to_bool(os.getenv('SAVE_PER_PROJECT_LOGS', 'False')),
                 project_logs_dir=os.getenv('SAVE_PER_PROJECT_LOGS_DIR', 'logs'),
                 status_cache_expiration=int(os.getenv('STATUS_CACHE_EXPIRATION', 3600))):
        self.db_url = db_url
        self.msb_query_default_max = msb_query_default_max
        self.gzip_threshold = gzip_threshold
        self.ot_min_version = int(ot_min_version) if ot_min_version else None
        self.ot_cur_version = int(ot_cur_version) if ot_cur_version else None
        self.staff_password = staff_password
        self.first_accept_telescopes = [t.upper() for t in split_list(first_accept_telescopes)]
        self.project_logs = project_logs
        self.project_logs_dir = project_logs_dir
        self.status_cache_expiration = status_cache_expiration

    def __repr__(self):
        return "OMPParameters(db_url=%s)" % self.db_url
