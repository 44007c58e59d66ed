'''
test_eventbus.py - Tests for the MSB activity event bus.
'''

import gc

from omp import eventbus


class RemainingListener(eventbus.BaseListener):
    ''' Records the remaining counts it is told about. '''

    class _Event(eventbus.Event):
        def __init__(self, checksum, remaining):
            self.checksum  = checksum
            self.remaining = remaining

        def key(self):
            return self.checksum

        def dispatch(self, listener):
            listener.on_remaining(self.checksum, self.remaining)

        def __eq__(self, other):
            return (isinstance(other, self.__class__) and
                    (self.checksum, self.remaining) == (other.checksum, other.remaining))

    def __init__(self):
        self.seen = []

    @classmethod
    def create_event(cls, checksum, remaining):
        return cls._Event(checksum, remaining)

    def on_remaining(self, checksum, remaining):
        self.seen.append((checksum, remaining))


class RemainingChangeListener(RemainingListener, eventbus.OnChangeListener):
    pass


event_type = RemainingListener.event_type()


class TestEventBus(object):

    def setup_method(self):
        self.bus = eventbus._EventBus()
        self.listener = RemainingListener()

    def test_get_eventbus_is_a_singleton_per_name(self):
        assert eventbus.get_eventbus() is eventbus.get_eventbus('omp')
        assert eventbus.get_eventbus('other') is not eventbus.get_eventbus()

    def test_add_and_remove(self):
        self.bus.add_listener(self.listener)
        assert self.bus.number_of_listeners(event_type) == 1

        self.bus.remove_listener(self.listener)
        assert self.bus.number_of_listeners(event_type) == 0

    def test_events_reach_every_listener(self):
        other = RemainingListener()
        self.bus.add_listener(self.listener)
        self.bus.add_listener(other)

        self.bus.fire_event(RemainingListener.create_event('abc123', 1))

        assert self.listener.seen == [('abc123', 1)]
        assert other.seen == [('abc123', 1)]

    def test_collected_listeners_are_dropped(self):
        transient = RemainingListener()
        self.bus.add_listener(transient)

        del transient
        gc.collect()
        self.bus.fire_event(RemainingListener.create_event('abc123', 1))

        assert self.bus.number_of_listeners(event_type) == 0

    def test_persistent_listeners_survive_collection(self):
        transient = RemainingListener()
        self.bus.add_listener(transient, persist=True)

        del transient
        gc.collect()

        assert self.bus.number_of_listeners(event_type) == 1

    def test_live_listeners(self):
        self.bus.add_listener(self.listener)

        assert self.bus.live_listeners(RemainingListener) == [self.listener]
        assert not self.bus.has_listener(RemainingChangeListener)

    def test_clear(self):
        self.bus.add_listener(self.listener, persist=True)
        self.bus.clear()

        assert self.bus.number_of_listeners(event_type) == 0

    def test_on_change_listener_compares_events_with_the_same_key(self):
        listener = RemainingChangeListener()
        self.bus.add_listener(listener)

        for checksum, remaining in [('abc123', 1), ('optaO', 1), ('abc123', 1), ('abc123', 0)]:
            self.bus.fire_event(RemainingListener.create_event(checksum, remaining))

        assert listener.seen == [('abc123', 1), ('optaO', 1), ('abc123', 0)]

    def test_only_recent_keys_are_remembered(self):
        bus = eventbus._EventBus(max_last_events=2)
        listener = RemainingChangeListener()
        bus.add_listener(listener)

        for checksum in ['aaO', 'abO', 'caO', 'aaO']:
            bus.fire_event(RemainingListener.create_event(checksum, 1))

        assert len(bus.last_events) == 2
        assert listener.seen == [('aaO', 1), ('abO', 1), ('caO', 1), ('aaO', 1)]
