'''
sciprog.py - The science program: an ordered tree of MSBs for one project.

The document is held as an ElementTree so that it can be written back out
unchanged apart from the MSB state attributes (remaining, suspended,
removed) which are kept in step with the MSB objects.

OR-group logic lives here rather than on the MSB because a transition on one
member of an <SpOR> folder can alter its siblings.
'''

import copy
import hashlib
import logging
import xml.etree.ElementTree as ET

from omp.msb         import msb_from_element, update_element
from omp.tree_walker import MSBCollector
from omp.printing    import program_summary
from omp.utils       import gunzip_if_needed
from omp.exceptions  import SpStoreFailError, MSBNotFoundError

log = logging.getLogger(__name__)

# Attributes that carry state rather than content, excluded from checksums
STATE_ATTRIBUTES = ('checksum', 'remaining', 'suspended', 'removed')

VERIFY_OK = 0
VERIFY_WARN = 1
VERIFY_FATAL = 2


def compute_checksum(element, folder_tag=None):
    '''MD5 of the canonical content of an <SpMSB> element. MSBs inside an OR
       folder get an "O" suffix and those inside an AND folder an "A".'''
    content = copy.deepcopy(element)
    content.tail = None
    for name in STATE_ATTRIBUTES:
        content.attrib.pop(name, None)

    checksum = hashlib.md5(ET.tostring(content, encoding='utf-8')).hexdigest()
    if folder_tag == 'SpOR':
        checksum += 'O'
    elif folder_tag == 'SpAND':
        checksum += 'A'
    return checksum


class ORGroup(object):

    def __init__(self, name, number_of_items=1):
        self.name = name
        self.number_of_items = number_of_items
        self.checksums = []

    def __repr__(self):
        return "ORGroup(%s, choose %d of %s)" % (self.name, self.number_of_items, self.checksums)


class ScienceProgram(object):

    def __init__(self, xml):
        xml = gunzip_if_needed(xml)
        try:
            root = ET.fromstring(xml)
        except ET.ParseError as e:
            raise SpStoreFailError("Science program is not well formed XML: {}".format(e))

        if root.tag != 'SpProg':
            raise SpStoreFailError("Science program root element is <{}>, not <SpProg>".format(root.tag))

        projectid = root.findtext('projectID')
        if not projectid or not projectid.strip():
            raise SpStoreFailError("Science program has no <projectID>")

        self.root = root
        self.projectid = projectid.strip().upper()
        self.ot_version = _int_or_none(root.findtext('ot_version'))
        self.telescope = _stripped(root.findtext('telescope'))
        if self.telescope:
            self.telescope = self.telescope.upper()
        self.title = _stripped(root.findtext('title'))

        # Version token; set by the store, never part of the document
        self.timestamp = None

        self.msbs = []
        self.or_groups = {}
        self.duplicates = []
        self._by_checksum = {}
        self._elements = {}
        self._parse_msbs()


    def _parse_msbs(self):
        or_names = {}
        for i, or_el in enumerate(self.root.iter('SpOR'), 1):
            name = 'or%d' % i
            or_names[id(or_el)] = name
            n_items = _int_or_none(or_el.get('numberOfItems'))
            self.or_groups[name] = ORGroup(name, n_items if n_items else 1)

        collector = MSBCollector(self.root)
        collector.walk()

        for element, or_el, folder in collector.found:
            checksum = element.get('checksum') or compute_checksum(element, folder.tag)
            or_group = or_names[id(or_el)] if or_el is not None else None
            msb = msb_from_element(element, checksum, self.projectid, or_group)

            if checksum in self._by_checksum:
                log.warning("Science program %s contains MSB %s more than once",
                            self.projectid, checksum)
                self.duplicates.append(checksum)
                continue

            self.msbs.append(msb)
            self._by_checksum[checksum] = msb
            self._elements[checksum] = element
            if or_group:
                self.or_groups[or_group].checksums.append(checksum)

        log.debug("Parsed science program %s with %d MSBs", self.projectid, len(self.msbs))


    def __contains__(self, checksum):
        return checksum in self._by_checksum


    def fetch_msb(self, checksum):
        '''Return the MSB with this checksum, or None.'''
        return self._by_checksum.get(checksum)


    def get_msb(self, checksum):
        msb = self.fetch_msb(checksum)
        if msb is None:
            raise MSBNotFoundError(
                "MSB {} is not present in the science program for {}".format(checksum, self.projectid))
        return msb


    def siblings(self, checksum):
        '''The other members of the OR group containing this MSB.'''
        msb = self.get_msb(checksum)
        if msb.or_group is None:
            return []
        return [self._by_checksum[c] for c in self.or_groups[msb.or_group].checksums
                if c != checksum]


    def msb_done(self, checksum):
        '''Decrement the remaining count. Returns the checksums of any OR
           group siblings removed as a consequence.'''
        msb = self.get_msb(checksum)
        msb.mark_done()
        return self._reorganize_or(msb)


    def _reorganize_or(self, msb):
        if msb.or_group is None or msb.remaining > 0:
            return []

        group = self.or_groups[msb.or_group]
        members = [self._by_checksum[c] for c in group.checksums]
        satisfied = [m for m in members if m.remaining == 0 and not m.removed]
        if len(satisfied) < group.number_of_items:
            return []

        removed = []
        for member in members:
            if member.remaining > 0 and not member.removed:
                member.mark_removed()
                removed.append(member.checksum)

        if removed:
            log.info("OR group %s of %s satisfied by %s; removed %s",
                     group.name, self.projectid, msb.checksum, removed)
        return removed


    def msb_undo(self, checksum, restore=()):
        '''Increment the remaining count and reinstate the listed siblings
           that were removed by the matching msb_done. Checksums outside
           this MSB's OR group are left alone.'''
        msb = self.get_msb(checksum)
        msb.mark_undo()
        siblings = [m.checksum for m in self.siblings(checksum)]

        restored = []
        for other in restore:
            sibling = self._by_checksum.get(other)
            if sibling is None:
                log.warning("Cannot reinstate %s in %s: no longer in the program", other, self.projectid)
                continue
            if other not in siblings:
                log.debug("Not reinstating %s: not in the OR group of %s", other, checksum)
                continue
            if sibling.removed:
                sibling.mark_unremoved()
                restored.append(other)
        return restored


    def msb_all_done(self, checksum):
        self.get_msb(checksum).mark_all_done()


    def msb_suspend(self, checksum, label):
        self.get_msb(checksum).mark_suspended(label)


    def msb_remove(self, checksum):
        self.get_msb(checksum).mark_removed()


    def msb_unremove(self, checksum):
        self.get_msb(checksum).mark_unremoved()


    def sync(self):
        for msb in self.msbs:
            update_element(msb, self._elements[msb.checksum])


    def to_xml(self):
        self.sync()
        return ET.tostring(self.root, encoding='unicode')


    def msb_xml(self, checksum):
        '''A standalone <SpProg> document holding just this MSB.'''
        msb = self.get_msb(checksum)
        self.sync()

        root = ET.Element('SpProg')
        ET.SubElement(root, 'projectID').text = self.projectid
        if self.telescope:
            ET.SubElement(root, 'telescope').text = self.telescope
        element = copy.deepcopy(self._elements[msb.checksum])
        element.tail = None
        root.append(element)
        return ET.tostring(root, encoding='unicode')


    def instruments(self):
        seen = []
        for msb in self.msbs:
            for inst in msb.instruments():
                if inst not in seen:
                    seen.append(inst)
        return seen


    def summary(self, mode='ascii'):
        if mode == 'data':
            return [msb.summary_data() for msb in self.msbs]
        return program_summary(self)


    def verify_msbs(self):
        '''Sanity check the MSBs. Returns (status, message) where status is
           VERIFY_OK, VERIFY_WARN or VERIFY_FATAL.'''
        if self.duplicates:
            return (VERIFY_FATAL,
                    "Science program contains duplicate MSBs: {}".format(', '.join(sorted(set(self.duplicates)))))

        warnings = []
        if not self.msbs:
            warnings.append("Science program contains no MSBs")
        for msb in self.msbs:
            if not msb.observations:
                warnings.append("MSB '{}' ({}) contains no observations".format(msb.title, msb.checksum))

        for group in self.or_groups.values():
            if group.number_of_items > len(group.checksums):
                warnings.append("OR group {} asks for {} MSBs but contains {}".format(
                    group.name, group.number_of_items, len(group.checksums)))

        if warnings:
            return (VERIFY_WARN, '\n'.join(warnings))
        return (VERIFY_OK, '')


    def __repr__(self):
        return "ScienceProgram(%s, %d MSBs)" % (self.projectid, len(self.msbs))


def _stripped(text):
    if text is None:
        return None
    text = text.strip()
    return text or None


def _int_or_none(text):
    text = _stripped(text)
    if text is None:
        return None
    try:
        return int(text)
    except ValueError:
        raise SpStoreFailError("Expected an integer but found '{}'".format(text))
