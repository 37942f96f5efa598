class UnknownEventError(KeyError):
    """ Raised when subscribing to or firing an event kind the registry does not declare. """


class EventSource(object):
    """ An ordered list of handlers that are all called when the source fires. """

    def __init__(self):
        self._handlers = []

    def __iadd__(self, handler):
        return self.add(handler)

    def __isub__(self, handler):
        return self.remove(handler)

    def add(self, handler):
        self._handlers.append(handler)
        return self

    def remove(self, handler):
        if handler in self._handlers:
            self._handlers.remove(handler)
        return self

    def handlers(self):
        return tuple(self._handlers)

    def fire(self, *args, **kwargs):
        # iterate a snapshot so handlers may detach themselves while being notified
        for handler in self.handlers():
            handler(*args, **kwargs)


class EventRegistry:
    """
    Keeps an EventSource per event kind. Observers subscribe and unsubscribe by kind,
    and firing a kind notifies only the handlers registered for that kind.

    The set of kinds is fixed at construction so that a misspelled kind fails loudly
    rather than silently never firing.
    """

    def __init__(self, kinds):
        self._sources = {kind: EventSource() for kind in kinds}

    @property
    def kinds(self):
        return tuple(self._sources)

    def source(self, kind) -> EventSource:
        try:
            return self._sources[kind]
        except KeyError:
            raise UnknownEventError("unknown event kind '%s', expected one of %s" % (kind, self.kinds)) from None

    def add(self, kind, handler):
        self.source(kind).add(handler)
        return self

    def remove(self, kind, handler):
        self.source(kind).remove(handler)
        return self

    def handlers(self, kind):
        return self.source(kind).handlers()

    def fire(self, kind, *args, **kwargs):
        self.source(kind).fire(*args, **kwargs)
