'''
msb.py - The Minimum Schedulable Block and its observations.

An MSB is identified by its checksum within a project. Its state is derived
from the remaining count and the removed/suspended markers:

    Active     remaining > 0, not removed, not suspended
    Suspended  remaining > 0, not removed, suspended at an observation label
    Exhausted  remaining == 0
    Removed    administratively removed (OR-group reorganization or staff)

Transitions that touch OR-group siblings live on ScienceProgram.
'''

import logging

from omp.range      import Range
from omp.utils      import EqualityMixin, parse_date
from omp.exceptions import InvalidTransitionError, BadArgsError, SpStoreFailError

log = logging.getLogger(__name__)

ACTIVE    = 'Active'
SUSPENDED = 'Suspended'
EXHAUSTED = 'Exhausted'
REMOVED   = 'Removed'

OBS_FIELDS = ('instrument', 'target', 'waveband', 'coordstype', 'ra', 'dec')


class Observation(EqualityMixin):

    def __init__(self, label, instrument=None, target=None, waveband=None,
                 coordstype=None, ra=None, dec=None):
        self.label      = label
        self.instrument = instrument
        self.target     = target
        self.waveband   = waveband
        self.coordstype = coordstype
        self.ra         = ra
        self.dec        = dec


    @classmethod
    def from_element(cls, label, element):
        values = {}
        for field in OBS_FIELDS:
            text = element.findtext(field)
            values[field] = text.strip() if text is not None else None
        if values['instrument']:
            values['instrument'] = values['instrument'].upper()
        return cls(label, **values)


    def as_dict(self):
        d = {'label' : self.label}
        for field in OBS_FIELDS:
            d[field] = getattr(self, field)
        return d


    def __repr__(self):
        return "Observation(%s, %s, %s)" % (self.label, self.instrument, self.target)



class MSB(object):

    def __init__(self, checksum, projectid, title=None, remaining=1, priority=99,
                 tau=None, seeing=None, datemin=None, datemax=None,
                 observations=None, or_group=None, suspended=None, removed=False):
        if remaining < 0:
            raise BadArgsError("MSB %s: remaining must not be negative" % checksum)
        self.checksum     = checksum
        self.projectid    = projectid
        self.title        = title
        self.remaining    = remaining
        self.priority     = priority
        self.tau          = tau if tau is not None else Range()
        self.seeing       = seeing if seeing is not None else Range()
        self.datemin      = datemin
        self.datemax      = datemax
        self.observations = observations or []
        self.or_group     = or_group
        self.suspended    = suspended
        self.removed      = removed


    @property
    def state(self):
        if self.removed:
            return REMOVED
        if self.remaining == 0:
            return EXHAUSTED
        if self.suspended is not None:
            return SUSPENDED
        return ACTIVE


    def is_schedulable(self):
        return self.state in (ACTIVE, SUSPENDED)


    def labels(self):
        return [obs.label for obs in self.observations]


    def instruments(self):
        seen = []
        for obs in self.observations:
            if obs.instrument and obs.instrument not in seen:
                seen.append(obs.instrument)
        return seen


    def date_range(self):
        return Range(self.datemin, self.datemax)


    def mark_done(self):
        if self.remaining > 0:
            self.remaining -= 1
        else:
            log.warning("MSB %s already has no repeats remaining", self.checksum)
        self.suspended = None


    def mark_undo(self):
        self.remaining += 1


    def mark_suspended(self, label):
        if self.state != ACTIVE:
            raise InvalidTransitionError(
                "MSB %s is %s and cannot be suspended" % (self.checksum, self.state))
        if label not in self.labels():
            raise BadArgsError(
                "MSB %s has no observation labelled '%s'" % (self.checksum, label))
        self.suspended = label


    def mark_all_done(self):
        self.remaining = 0
        self.suspended = None


    def mark_removed(self):
        self.removed = True


    def mark_unremoved(self):
        self.removed = False


    def unroll_obs(self):
        '''Observations in execution order, keyed by label.'''
        return [(obs.label, obs) for obs in self.observations]


    def summary_data(self):
        return {
                 'checksum'     : self.checksum,
                 'projectid'    : self.projectid,
                 'title'        : self.title,
                 'remaining'    : self.remaining,
                 'priority'     : self.priority,
                 'state'        : self.state,
                 'or_group'     : self.or_group,
                 'suspended'    : self.suspended,
                 'tau'          : str(self.tau),
                 'seeing'       : str(self.seeing),
                 'observations' : [obs.as_dict() for obs in self.observations],
               }


    def __repr__(self):
        return "MSB(%s, %s, remaining=%d, %s)" % (self.projectid, self.checksum,
                                                  self.remaining, self.state)


def _range_from_element(element):
    if element is None:
        return Range()
    return Range(_float_or_none(element.findtext('min')),
                 _float_or_none(element.findtext('max')))


def _float_or_none(text):
    if text is None or not text.strip():
        return None
    try:
        return float(text)
    except ValueError:
        raise SpStoreFailError("Constraint value '%s' is not a number" % text)


def _int_attribute(element, name, default):
    value = element.get(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise SpStoreFailError("SpMSB attribute %s='%s' is not an integer" % (name, value))


def msb_from_element(element, checksum, projectid, or_group=None):
    '''Build an MSB from an <SpMSB> element whose checksum is already known.'''
    remaining = _int_attribute(element, 'remaining', 1)
    if remaining < 0:
        log.warning("MSB %s has negative remaining count %d; using 0", checksum, remaining)
        remaining = 0

    observations = []
    for i, obs_el in enumerate(element.findall('SpObs'), 1):
        observations.append(Observation.from_element('obs%d' % i, obs_el))

    title = element.findtext('title')
    datemin = element.findtext('datemin')
    datemax = element.findtext('datemax')
    suspended = element.get('suspended') or None

    return MSB(checksum, projectid,
               title        = title.strip() if title else None,
               remaining    = remaining,
               priority     = _int_attribute(element, 'priority', 99),
               tau          = _range_from_element(element.find('tau')),
               seeing       = _range_from_element(element.find('seeing')),
               datemin      = parse_date(datemin.strip()) if datemin and datemin.strip() else None,
               datemax      = parse_date(datemax.strip()) if datemax and datemax.strip() else None,
               observations = observations,
               or_group     = or_group,
               suspended    = suspended,
               removed      = element.get('removed', '').lower() in ('1', 'true'))


def update_element(msb, element):
    '''Write the mutable state of msb back onto its <SpMSB> element.'''
    element.set('checksum', msb.checksum)
    element.set('remaining', str(msb.remaining))
    if msb.suspended is not None:
        element.set('suspended', msb.suspended)
    elif 'suspended' in element.attrib:
        del element.attrib['suspended']
    if msb.removed:
        element.set('removed', 'true')
    elif 'removed' in element.attrib:
        del element.attrib['removed']
