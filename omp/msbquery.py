'''
msbquery.py - Queries of the MSB table and of the MSB history table.

MSBQuery separates the observing conditions from the plain field
constraints:

    tau, seeing   - the current conditions. An MSB matches if its own allowed
                    range for the condition contains the value.
    date          - the reference date (default now). An MSB matches if the
                    date lies within its scheduling window.
    elevation,    - can not be evaluated by the database since they need an
    airmass         ephemeris. They are kept on the query for the caller.
    disableconstraint - remaining, tau, seeing, schedule or observability.

By default only MSBs with observations remaining are returned.
'''

import logging

from omp.constants import status_code
from omp.exceptions import MalformedQueryError
from omp.query import DBQuery, Equals, InRange, RangeContains, And
from omp.range import Range
from omp.utils import utcnow

log = logging.getLogger(__name__)

DISABLEABLE = ('remaining', 'tau', 'seeing', 'schedule', 'observability')


class MSBQuery(DBQuery):
    root_element = 'MSBQuery'
    text_field = 'title'
    numeric_fields = ('tau', 'seeing', 'priority', 'elevation', 'airmass', 'moon', 'cloud')
    integer_fields = ('remaining',)
    date_fields = ('date', 'datemin', 'datemax')
    upper_fields = ('projectid', 'instrument', 'telescope')

    CONDITIONS = ('tau', 'seeing')
    CALLER_EVALUATED = ('elevation', 'airmass')

    def __init__(self, xml, max_count=None):
        DBQuery.__init__(self, xml, max_count=max_count)
        if self._extra:
            self.predicate = And([self.predicate] + self._extra) \
                if not _is_empty_and(self.predicate) else And(self._extra)

    def _post_process(self, top):
        # "project" is accepted as a synonym of the column name
        if 'project' in top.values:
            for value in top.values.pop('project'):
                top.add_value('projectid', value.upper())

        self.disabled = set(v.lower() for v in top.values.pop('disableconstraint', []))
        unknown = self.disabled - set(DISABLEABLE)
        if unknown:
            raise MalformedQueryError('Unknown constraint(s) to disable: {}'.format(', '.join(sorted(unknown))))

        self.elevation = top.ranges.pop('elevation', None)
        self.airmass = top.ranges.pop('airmass', None)
        for field in self.CALLER_EVALUATED:
            if field in top.values:
                value = top.values.pop(field)[-1]
                setattr(self, field, Range(min=value, max=value))

        self.conditions = {}
        for field in self.CONDITIONS:
            if field in top.ranges:
                raise MalformedQueryError('<{}> must be a single value, not a range'.format(field))
            if field in top.values:
                values = top.values.pop(field)
                if len(values) > 1:
                    log.warning('Query has %d values for <%s>; using the last', len(values), field)
                self.conditions[field] = values[-1]

        dates = top.values.pop('date', [])
        self.reference_date = dates[-1] if dates else utcnow()

        extra = []
        if 'remaining' not in self.disabled and 'remaining' not in top.ranges \
                and 'remaining' not in top.values:
            extra.append(InRange('remaining', Range(min=1)))
            extra.append(Equals('removed', [False]))
        for field, value in self.conditions.items():
            if field not in self.disabled:
                extra.append(RangeContains(field, value))
        if 'schedule' not in self.disabled:
            extra.append(RangeContains('date', self.reference_date))

        self._extra = extra

    @property
    def observability_disabled(self):
        return 'observability' in self.disabled


class MSBDoneQuery(DBQuery):
    '''Query of the MSB history table.'''
    root_element = 'MSBDoneQuery'
    text_field = 'commenttext'
    date_fields = ('date',)
    upper_fields = ('projectid', 'userid')

    def _post_process(self, top):
        if 'status' in top.values:
            top.values['status'] = [status_code(v) for v in top.values['status']]
        if 'msbtid' in top.values:
            top.values['tid'] = top.values.pop('msbtid')
        if 'project' in top.values:
            top.values['projectid'] = [v.upper() for v in top.values.pop('project')]


def _is_empty_and(predicate):
    return isinstance(predicate, And) and not predicate.children
