from omp.backend  import make_engine, init_db
from omp.params   import OMPParameters
from omp.projdb   import ProjDB
from omp.userdb   import UserDB

PROJECT  = 'M01BU53'
PASSWORD = 'sekrit'
STAFF    = 'staffpass'

PROGRAM = '''<SpProg>
  <projectID>M01BU53</projectID>
  <ot_version>20240101</ot_version>
  <telescope>JCMT</telescope>
  <title>Star formation in Orion</title>
  <SpMSB checksum="abc123" remaining="2" priority="1">
    <title>Orion map</title>
    <tau><min>0.0</min><max>0.1</max></tau>
    <seeing><max>1.5</max></seeing>
    <SpObs>
      <instrument>scuba</instrument>
      <target>ORION</target>
      <waveband>850</waveband>
      <coordstype>RADEC</coordstype>
    </SpObs>
    <SpObs>
      <instrument>SCUBA</instrument>
      <target>ORION-N</target>
      <waveband>450</waveband>
    </SpObs>
  </SpMSB>
  <SpOR numberOfItems="1">
    <SpMSB checksum="optaO" remaining="1" priority="2">
      <title>Option A</title>
      <SpObs><instrument>ACSIS</instrument><target>M31</target></SpObs>
    </SpMSB>
    <SpMSB checksum="optbO" remaining="1" priority="2">
      <title>Option B</title>
      <SpObs><instrument>ACSIS</instrument><target>M33</target></SpObs>
    </SpMSB>
  </SpOR>
</SpProg>
'''


def msb_element(checksum, title, remaining=1, priority=5, instrument='SCUBA'):
    return '''  <SpMSB checksum="%s" remaining="%d" priority="%d">
    <title>%s</title>
    <SpObs><instrument>%s</instrument><target>T%s</target></SpObs>
  </SpMSB>
''' % (checksum, remaining, priority, title, instrument, checksum)


def program_with(msbs, projectid=PROJECT, telescope='JCMT'):
    '''A program whose MSBs are given as element text.'''
    return ('<SpProg>\n  <projectID>%s</projectID>\n  <telescope>%s</telescope>\n' % (projectid, telescope)
            + ''.join(msbs) + '</SpProg>\n')


def create_params(**kwargs):
    defaults = dict(db_url='sqlite://', staff_password=STAFF, ot_min_version=None,
                    ot_cur_version=None, first_accept_telescopes='JCMT', project_logs=False)
    defaults.update(kwargs)
    return OMPParameters(**defaults)


def create_database(params=None, projects=(PROJECT,), users=('FRED',)):
    '''A fresh in-memory database holding the given projects and users.'''
    params = params or create_params()
    engine = make_engine(params.db_url)
    init_db(engine)

    projdb = ProjDB(engine, params)
    for projectid in projects:
        projdb.add_project(projectid, telescope='JCMT', title='Test project', pi='PI',
                           password=PASSWORD)

    userdb = UserDB(engine)
    for userid in users:
        userdb.add_user(userid, name='Fred Bloggs', email='fred@example.org')

    return engine, params
