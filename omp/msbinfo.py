'''
msbinfo.py - Summary information about an MSB, as returned by queries and
history lookups.
'''

import xml.etree.ElementTree as ET

from omp.constants import status_name
from omp.utils     import safe_unidecode

SUMMARY_FIELDS = ('checksum', 'projectid', 'title', 'remaining', 'nrepeats',
                  'priority', 'instrument', 'target', 'waveband', 'tau', 'seeing',
                  'datemin', 'datemax', 'telescope')


class MSBInfo(object):

    def __init__(self, checksum, projectid, title=None, target=None, instrument=None,
                 waveband=None, remaining=None, nrepeats=0, priority=None, tau=None,
                 seeing=None, datemin=None, datemax=None, telescope=None, comments=None):
        self.checksum   = checksum
        self.projectid  = projectid
        self.title      = title
        self.target     = target
        self.instrument = instrument
        self.waveband   = waveband
        self.remaining  = remaining
        self.nrepeats   = nrepeats
        self.priority   = priority
        self.tau        = tau
        self.seeing     = seeing
        self.datemin    = datemin
        self.datemax    = datemax
        self.telescope  = telescope
        self.comments   = comments or []
        self.relevance  = 0


    @classmethod
    def from_msb(cls, msb, telescope=None):
        return cls(msb.checksum, msb.projectid,
                   title      = msb.title,
                   target     = _joined(obs.target for obs in msb.observations),
                   instrument = _joined(msb.instruments()),
                   waveband   = _joined(obs.waveband for obs in msb.observations),
                   remaining  = msb.remaining,
                   priority   = msb.priority,
                   tau        = str(msb.tau),
                   seeing     = str(msb.seeing),
                   datemin    = msb.datemin,
                   datemax    = msb.datemax,
                   telescope  = telescope)


    def add_comment(self, comment):
        self.comments.append(comment)


    def set_status(self, status):
        '''Propagate a status onto the most recently added comment.'''
        if self.comments:
            self.comments[-1].patch_status(status)


    @property
    def last_comment(self):
        return self.comments[-1] if self.comments else None


    def summary_data(self):
        d = {}
        for field in SUMMARY_FIELDS:
            d[field] = getattr(self, field)
        d['comments'] = [_comment_data(c) for c in self.comments]
        return d


    def summary_element(self, element_id=None):
        el = ET.Element('SpMSBSummary', id=element_id or self.checksum)
        for field in SUMMARY_FIELDS:
            value = getattr(self, field)
            if value is None or value == '':
                continue
            if hasattr(value, 'isoformat'):
                value = value.isoformat()
            ET.SubElement(el, field).text = safe_unidecode(value, 4096)
        if self.relevance:
            ET.SubElement(el, 'score').text = '%g' % self.relevance

        for comment in self.comments:
            c_el = ET.SubElement(el, 'comment')
            for key, value in _comment_data(comment).items():
                if value is None:
                    continue
                ET.SubElement(c_el, key).text = str(value)

        return el


    def summary_xml(self, element_id=None):
        return ET.tostring(self.summary_element(element_id), encoding='unicode')


    def __repr__(self):
        return "MSBInfo(%s, %s, %d comments)" % (self.projectid, self.checksum, len(self.comments))


def _comment_data(comment):
    return {
             'text'   : comment.text,
             'author' : comment.author,
             'date'   : comment.date.isoformat(),
             'status' : status_name(comment.status),
             'tid'    : comment.tid,
           }


def _joined(values):
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return '/'.join(seen) or None


def summaries_xml(infos, wrapper='SpMSBSummaries'):
    root = ET.Element(wrapper)
    for info in infos:
        root.append(info.summary_element())
    return ET.tostring(root, encoding='unicode')
