'''
query.py - Structured OMP queries.

A query arrives as an XML document. It is parsed into a predicate tree that
does not assume any storage technology; the database classes translate the
tree (via Predicate.expression()) into their own query mechanism.

Query XML
    Elements containing only text are required values:
        <instrument>SCUBA</instrument>
    Repeated elements of the same name at the same level are alternatives
    (OR'ed). Plural container elements are ignored so that
        <instrument>SCUBA</instrument>
        <instruments><instrument>CGS4</instrument></instruments>
    selects SCUBA or CGS4.
    Elements containing <min> and/or <max> are inclusive ranges. Neither may
    appear more than once (the last value wins, and a warning is logged) and
    ranges may not be used inside a plural element.
    A date-like element may carry a delta attribute (in days):
        <date delta="-7">2024-01-08</date>
    <or>, <and> and <not> wrap groups of constraints explicitly.
    <text> is a free-text search; <text mode="boolean"> enables AND, OR and
    NOT (and +word/-word) in the search text itself.
'''

import logging
import re
import xml.etree.ElementTree as ET
from collections import OrderedDict
from datetime import timedelta

from omp.exceptions import MalformedQueryError
from omp.range import Range
from omp.utils import parse_date

log = logging.getLogger(__name__)

RANGE_TAGS = ('min', 'max')
GROUP_TAGS = ('and', 'or', 'not')


class Predicate(object):

    def expression(self):
        '''Render this predicate as a nested tuple tree.'''
        raise NotImplementedError

    def text_terms(self):
        '''Positive free-text terms, used for relevance scoring.'''
        return []


class Equals(Predicate):
    '''field matches any one of the supplied values.'''

    def __init__(self, field, values):
        self.field = field
        self.values = list(values)

    def expression(self):
        if len(self.values) == 1:
            return ('eq', self.field, self.values[0])
        return ('or', [('eq', self.field, v) for v in self.values])

    def __repr__(self):
        return 'Equals(%s in %r)' % (self.field, self.values)


class InRange(Predicate):

    def __init__(self, field, range_):
        self.field = field
        self.range = range_

    def expression(self):
        return ('range', self.field, self.range)

    def __repr__(self):
        return 'InRange(%s %s)' % (self.field, self.range)


class TextTerm(Predicate):

    def __init__(self, field, term):
        self.field = field
        self.term = term

    def expression(self):
        return ('text', self.field, self.term)

    def text_terms(self):
        return [(self.field, self.term)]

    def __repr__(self):
        return 'TextTerm(%s ~ %r)' % (self.field, self.term)


class _Composite(Predicate):
    operator = None

    def __init__(self, children):
        self.children = list(children)

    def expression(self):
        return (self.operator, [c.expression() for c in self.children])

    def text_terms(self):
        terms = []
        for child in self.children:
            terms.extend(child.text_terms())
        return terms

    def __repr__(self):
        return '%s(%r)' % (self.__class__.__name__, self.children)


class And(_Composite):
    operator = 'and'


class Or(_Composite):
    operator = 'or'


class Not(Predicate):

    def __init__(self, child):
        self.child = child

    def expression(self):
        return ('not', self.child.expression())

    def __repr__(self):
        return 'Not(%r)' % self.child


def simplify(predicate):
    '''Collapse single-child AND/OR nodes.'''
    if isinstance(predicate, _Composite):
        children = [simplify(c) for c in predicate.children]
        if len(children) == 1:
            return children[0]
        return predicate.__class__(children)
    if isinstance(predicate, Not):
        return Not(simplify(predicate.child))
    return predicate


_TOKEN_RE = re.compile(r'([+-]?)"([^"]*)"|(\S+)')


def _tokenize(text):
    tokens = []
    for match in _TOKEN_RE.finditer(text):
        if match.group(3) is not None:
            tokens.append(match.group(3))
        elif match.group(2):
            tokens.append(match.group(1) + match.group(2))
    return tokens


def parse_text_search(field, text, boolean=False):
    '''Turn a free-text search string into a predicate over TextTerms.

       In natural mode any word may match. In boolean mode, juxtaposed words
       are alternatives, AND binds tighter than OR, NOT negates the following
       term, +word is required and -word is excluded.
    '''
    tokens = _tokenize(text)
    if not tokens:
        raise MalformedQueryError('Empty text search')

    if not boolean:
        return simplify(Or([TextTerm(field, t) for t in tokens]))

    required = []
    excluded = []
    rest = []
    for token in tokens:
        if len(token) > 1 and token[0] == '+':
            required.append(TextTerm(field, token[1:]))
        elif len(token) > 1 and token[0] == '-':
            excluded.append(Not(TextTerm(field, token[1:])))
        else:
            rest.append(token)

    clauses = required + excluded
    if rest:
        clauses.append(_BooleanParser(field, rest).parse())
    return simplify(And(clauses))


class _BooleanParser(object):

    def __init__(self, field, tokens):
        self.field = field
        self.tokens = tokens
        self.pos = 0

    def _peek(self):
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def _next(self):
        token = self._peek()
        self.pos += 1
        return token

    def parse(self):
        result = self._or_expr()
        if self._peek() is not None:
            raise MalformedQueryError("Unexpected '{}' in text search".format(self._peek()))
        return result

    def _or_expr(self):
        terms = [self._and_expr()]
        while self._peek() is not None:
            if self._peek() == 'OR':
                self._next()
            terms.append(self._and_expr())
        return simplify(Or(terms))

    def _and_expr(self):
        terms = [self._unary()]
        while self._peek() == 'AND':
            self._next()
            terms.append(self._unary())
        return simplify(And(terms))

    def _unary(self):
        token = self._next()
        if token is None or token in ('AND', 'OR'):
            raise MalformedQueryError('Dangling operator in text search')
        if token == 'NOT':
            return Not(self._unary())
        return TextTerm(self.field, token)


class QueryGroup(object):
    '''Constraints collected at one level of the query document.'''

    def __init__(self, operator='and'):
        self.operator = operator
        self.values = OrderedDict()
        self.ranges = OrderedDict()
        self.texts = []
        self.groups = []
        self.attributes = {}

    def add_value(self, field, value):
        self.values.setdefault(field, []).append(value)

    def add_range(self, field, range_):
        if field in self.ranges:
            self.ranges[field].intersection(range_)
        else:
            self.ranges[field] = range_

    def is_empty(self):
        return not (self.values or self.ranges or self.texts or self.groups)

    def predicate(self):
        children = []
        for field, values in self.values.items():
            children.append(Equals(field, values))
        for field, range_ in self.ranges.items():
            children.append(InRange(field, range_))
        children.extend(self.texts)
        children.extend(g.predicate() for g in self.groups)

        if self.operator == 'or':
            return Or(children)
        if self.operator == 'not':
            return Not(simplify(And(children)))
        return And(children)


class DBQuery(object):
    '''Base class for OMP XML queries.

       Subclasses set root_element, text_field and the typed field lists, and
       may override _post_process() to pull special constraints out of the
       top level of the query before the predicate is built.
    '''
    root_element = 'Query'
    text_field = 'text'
    numeric_fields = ()
    integer_fields = ()
    date_fields = ('date',)
    upper_fields = ()

    def __init__(self, xml, max_count=None):
        self.xml = xml
        self.max_count = max_count
        self.root = self._parse_xml(xml)
        self.top = QueryGroup('and')
        self._parse_children(self.root, self.top, in_plural=False)
        self._post_process(self.top)
        self.predicate = simplify(self.top.predicate())

    def expression(self):
        return self.predicate.expression()

    def has_text(self):
        return bool(self.predicate.text_terms())

    def relevance(self, record):
        '''Score a record (mapping of field to text) against the free-text terms.

           Records score 0 when the query has no text constraint.
        '''
        score = 0
        for field, term in self.predicate.text_terms():
            value = record.get(field)
            if value:
                score += value.lower().count(term.lower())
        return score

    def effective_max(self, default):
        '''None means unlimited.'''
        if self.max_count is None or int(self.max_count) == 0:
            return default
        if int(self.max_count) < 0:
            return None
        return int(self.max_count)

    def _parse_xml(self, xml):
        if xml is None or (isinstance(xml, (str, bytes)) and not xml.strip()):
            raise MalformedQueryError('No query XML supplied')
        try:
            root = ET.fromstring(xml)
        except ET.ParseError as e:
            raise MalformedQueryError('Unable to parse query XML: {}'.format(e))

        if root.tag != self.root_element:
            raise MalformedQueryError(
                "Query root element is <{}> but expected <{}>".format(root.tag, self.root_element))
        return root

    def _parse_children(self, element, group, in_plural):
        for child in element:
            tag = child.tag.lower()
            kids = list(child)

            if tag in GROUP_TAGS:
                if in_plural:
                    raise MalformedQueryError('<{}> may not appear inside a plural element'.format(tag))
                subgroup = QueryGroup(tag)
                self._parse_children(child, subgroup, in_plural=False)
                if not subgroup.is_empty():
                    group.groups.append(subgroup)

            elif tag == 'text':
                text = (child.text or '').strip()
                if not text:
                    continue
                boolean = child.get('mode', '').lower() == 'boolean'
                group.texts.append(parse_text_search(self.text_field, text, boolean))

            elif kids and any(k.tag.lower() in RANGE_TAGS for k in kids):
                if in_plural:
                    raise MalformedQueryError(
                        'Range <{}> may not be used inside a plural element'.format(tag))
                group.add_range(tag, self._parse_range(tag, kids))

            elif kids:
                self._parse_children(child, group, in_plural=True)

            else:
                value = (child.text or '').strip()
                if child.get('delta') is not None:
                    group.add_range(tag, self._delta_range(tag, value, child.get('delta')))
                elif value:
                    group.add_value(tag, self._convert(tag, value))
                group.attributes[tag] = dict(child.attrib)

    def _parse_range(self, field, kids):
        bounds = {}
        for kid in kids:
            name = kid.tag.lower()
            if name not in RANGE_TAGS:
                raise MalformedQueryError(
                    'Element <{}> mixes range bounds with <{}>'.format(field, kid.tag))
            if name in bounds:
                log.warning('Query element <%s> has more than one <%s>; using the last value',
                            field, name)
            value = (kid.text or '').strip()
            bounds[name] = self._convert(field, value) if value else None
        return Range(min=bounds.get('min'), max=bounds.get('max'))

    def _delta_range(self, field, value, delta):
        try:
            delta = float(delta)
        except ValueError:
            raise MalformedQueryError("Bad delta '{}' for <{}>".format(delta, field))
        reference = self._convert(field, value)
        if field in self.date_fields:
            other = reference + timedelta(days=delta)
        else:
            other = reference + delta
        if delta < 0:
            return Range(min=other, max=reference)
        return Range(min=reference, max=other)

    def _convert(self, field, value):
        try:
            if field in self.date_fields:
                return parse_date(value)
            if field in self.integer_fields:
                return int(value)
            if field in self.numeric_fields:
                return float(value)
        except ValueError:
            raise MalformedQueryError("Value '{}' for <{}> is not valid".format(value, field))
        if field in self.upper_fields:
            return value.upper()
        return value

    def _post_process(self, top):
        pass


class RangeContains(Predicate):
    '''The record's own range for field (stored as a min/max pair) contains value.'''

    def __init__(self, field, value):
        self.field = field
        self.value = value

    def expression(self):
        return ('contains', self.field, self.value)

    def __repr__(self):
        return 'RangeContains(%s contains %r)' % (self.field, self.value)
