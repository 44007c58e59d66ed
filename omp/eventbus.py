'''
eventbus.py - Application level events for MSB activity.

The database layer fires an event whenever an MSB changes state, a program
is stored or a comment is added; listeners (see feedback.py) turn those
events into log entries and feedback comments. Each named bus is a single
instance obtained through get_eventbus().
'''

import abc
import weakref
from collections import OrderedDict


_buses = {}

def get_eventbus(name='omp'):
    ''' Return the event bus registered under name, creating it if needed. '''
    return _buses.setdefault(name, _EventBus())


class BaseListener(metaclass=abc.ABCMeta):
    ''' Listener superclass.

        Listeners define an _Event inner class and the update method that
        the event's dispatch() calls.
    '''

    @classmethod
    def event_type(cls):
        return cls._Event

    def is_update_required(self, last_event, event):
        return True


class OnChangeListener(BaseListener):
    ''' Only updated when the event differs from the previous one with the
        same key (for MSB activity, the previous event for the same MSB). '''

    def is_update_required(self, last_event, event):
        return last_event != event


class Event(metaclass=abc.ABCMeta):

    def key(self):
        ''' Events sharing a key are compared by OnChangeListener. '''
        return None

    @abc.abstractmethod
    def dispatch(self, listener):
        ''' Call the event-specific update method on listener. '''


class _EventBus(object):
    ''' Listeners registered per event type.

        Listeners are held through weak references unless added with
        persist=True; references to collected listeners are dropped the next
        time an event of their type is fired or counted.
    '''

    def __init__(self, max_last_events=1000):
        self.listeners_by_type = {}
        self.last_events = OrderedDict()
        self.max_last_events = max_last_events

    def _refs(self, event_type):
        return self.listeners_by_type.setdefault(event_type, [])

    def add_listener(self, listener, persist=False, event_type=None):
        event_type = event_type or listener.event_type()
        ref = _strongref(listener) if persist else weakref.ref(listener)
        self._refs(event_type).append(ref)

    def remove_listener(self, listener, event_type=None):
        event_type = event_type or listener.event_type()
        self.listeners_by_type[event_type] = [ref for ref in self._refs(event_type)
                                              if ref() is not listener]

    def live_listeners(self, listener_class):
        found = []
        for refs in self.listeners_by_type.values():
            for ref in refs:
                listener = ref()
                if isinstance(listener, listener_class) and listener not in found:
                    found.append(listener)
        return found

    def has_listener(self, listener_class):
        return bool(self.live_listeners(listener_class))

    def number_of_listeners(self, event_type):
        return len(self._prune(event_type))

    def clear(self):
        self.listeners_by_type.clear()
        self.last_events.clear()

    def fire_event(self, event):
        ''' Dispatch event to every live listener of its type.

            The previous event with the same type and key is handed to each
            listener's is_update_required() so repeats can be skipped.
        '''
        event_type = event.__class__
        last_key = (event_type, event.key())
        last_event = self.last_events.get(last_key)

        dead = False
        for ref in list(self._refs(event_type)):
            listener = ref()
            if listener is None:
                dead = True
            elif listener.is_update_required(last_event, event):
                event.dispatch(listener)

        if dead:
            self._prune(event_type)
        self._remember(last_key, event)

    def _remember(self, last_key, event):
        ''' Keep the event as the latest for its key, forgetting the least
            recently fired keys beyond max_last_events. '''
        self.last_events[last_key] = event
        self.last_events.move_to_end(last_key)
        while len(self.last_events) > self.max_last_events:
            self.last_events.popitem(last=False)

    def _prune(self, event_type):
        live = [ref for ref in self._refs(event_type) if ref() is not None]
        self.listeners_by_type[event_type] = live
        return live


def _strongref(x):
    ''' Mimic weakref.ref for listeners that must stay alive. '''
    return lambda: x
