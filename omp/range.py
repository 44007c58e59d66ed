'''
range.py - Numeric ranges used for observing constraints (tau, seeing,
elevation, airmass, priority, dates).

A range has an optional lower bound (min) and an optional upper bound (max).
Both bounds are inclusive. If both are set and min > max the range is
"inverted": a value is contained if it is <= max OR >= min. This describes
constraints such as "tau outside the normal band".

Methods that alter self:
intersection()

Methods that return a new Range:
intersect(), copy()
'''

import copy

from omp.exceptions import RangeConflictError


class Range(object):

    def __init__(self, min=None, max=None):
        self.min = min
        self.max = max

    @property
    def inverted(self):
        return self.min is not None and self.max is not None and self.min > self.max

    def is_open(self):
        return self.min is None and self.max is None

    def minmax(self):
        return (self.min, self.max)

    def contains(self, value):
        if self.inverted:
            return value <= self.max or value >= self.min

        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True

    def copy(self):
        return copy.copy(self)

    def intersect(self, other):
        '''Return the intersection as a new Range, leaving self untouched.'''
        result = self.copy()
        result.intersection(other)
        return result

    def intersection(self, other):
        '''Replace self with the tightest range contained in both self and other.

           Two inverted ranges combine by keeping the lowest max and the
           highest min, so the excluded zone covers both of the original ones.
           Combinations that would describe two separate regions, or no values
           at all, raise RangeConflictError and leave self unchanged.
        '''
        if self.inverted and other.inverted:
            self.min, self.max = (_max(self.min, other.min),
                                  _min(self.max, other.max))
        elif self.inverted or other.inverted:
            inv, normal = (self, other) if self.inverted else (other, self)
            self.min, self.max = _intersect_mixed(inv, normal)
        else:
            new_min = _max(self.min, other.min)
            new_max = _min(self.max, other.max)
            if new_min is not None and new_max is not None and new_min > new_max:
                raise RangeConflictError(
                    "Ranges {} and {} do not overlap".format(self, other))
            self.min, self.max = new_min, new_max

        return self

    def __eq__(self, other):
        if type(other) is type(self):
            return self.minmax() == other.minmax()
        return False

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash(self.minmax())

    def __repr__(self):
        return "Range(min=%r, max=%r)" % (self.min, self.max)

    def __str__(self):
        if self.inverted:
            return "<=%s or >=%s" % (self.max, self.min)
        if self.min is not None and self.max is not None:
            return "%s-%s" % (self.min, self.max)
        if self.min is not None:
            return ">=%s" % self.min
        if self.max is not None:
            return "<=%s" % self.max
        return ""


def _min(a, b):
    if a is None:
        return b
    if b is None:
        return a
    return min(a, b)


def _max(a, b):
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def _intersect_mixed(inv, normal):
    '''Intersect an inverted range with a normal (possibly open) one.'''
    low_edge, high_edge = inv.max, inv.min
    lower, upper = normal.min, normal.max

    if normal.is_open():
        return inv.min, inv.max

    # Entirely inside one of the two allowed regions
    if upper is not None and upper <= low_edge:
        return lower, upper
    if lower is not None and lower >= high_edge:
        return lower, upper

    reaches_low = lower is None or lower <= low_edge
    reaches_high = upper is None or upper >= high_edge

    if reaches_low and reaches_high:
        raise RangeConflictError(
            "Range {} spans the excluded zone of {} giving two separate regions".format(normal, inv))
    if reaches_low:
        return lower, low_edge
    if reaches_high:
        return high_edge, upper

    raise RangeConflictError(
        "Range {} lies inside the excluded zone of {}".format(normal, inv))
