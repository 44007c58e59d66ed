'''
printing.py - Functions to pretty-print science programs, MSBs and history.
'''

import logging

log = logging.getLogger(__name__)

INDENT = "    "


def plural_str(n, string):
    n, string = pluralise(n, string)
    return "%d %s" % (n, string)


def pluralise(n, string):
    if n != 1:
        string += 's'

    return n, string


def msb_summary_line(msb):
    instruments = '/'.join(msb.instruments()) or 'none'
    title = msb.title or '<untitled>'
    flags = ''
    if msb.removed:
        flags = ' (removed)'
    elif msb.suspended:
        flags = ' (suspended at %s)' % msb.suspended
    return "%-10d %-34s %s [%s]%s" % (msb.remaining, msb.checksum, title, instruments, flags)


def program_summary(sp):
    lines = []
    lines.append("Project: %s" % sp.projectid)
    if sp.title:
        lines.append("Title: %s" % sp.title)
    if sp.telescope:
        lines.append("Telescope: %s" % sp.telescope)
    n_active = len([m for m in sp.msbs if m.is_schedulable()])
    lines.append("Contains %s, %d active" % (plural_str(len(sp.msbs), 'MSB'), n_active))
    lines.append("%-10s %-34s %s" % ('Remaining', 'Checksum', 'Title [Instruments]'))
    for msb in sp.msbs:
        lines.append(msb_summary_line(msb))

    return '\n'.join(lines) + '\n'


def print_history(msbs):
    '''Render MSBInfo objects and their comment timelines as text.'''
    lines = []
    for info in msbs:
        lines.append("%s %s: %s" % (info.projectid, info.checksum, info.title or '<untitled>'))
        for comment in info.comments:
            lines.append(INDENT + comment.display_string())

    return '\n'.join(lines)
