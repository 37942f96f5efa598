from abc import abstractmethod

from livefeed.support.events import EventRegistry

OPENED = 'opened'
CLOSED = 'closed'
MESSAGE = 'message'


class TransportError(Exception):
    """ Indicates an error condition with a transport. """


class TransportNotOpenError(TransportError):
    """ The transport is not open when an open transport is required. """


class TransportHandle:
    """
    A single connection to an endpoint. A handle is opened at most once; reconnecting
    means creating a new handle.

    Signals are fired through `events`:
    - opened(handle): the connection is established
    - closed(handle, error): the connection failed to open, was closed by the server, or errored.
      error is the cause, or None for a clean close.
    - message(handle, payload): a message arrived. Messages are signalled in arrival order.
    """

    def __init__(self, endpoint):
        self._endpoint = endpoint
        self.events = EventRegistry((OPENED, CLOSED, MESSAGE))

    @property
    def endpoint(self):
        return self._endpoint

    @property
    @abstractmethod
    def opened(self) -> bool:
        """ True while the connection is established and payloads can be sent. """
        raise NotImplementedError

    @abstractmethod
    def open(self):
        """
        Starts opening the connection. The outcome is signalled with opened or closed,
        possibly before this method returns.
        Raises TransportError if the attempt cannot even be started.
        """
        raise NotImplementedError

    @abstractmethod
    def send(self, payload):
        """ Sends a payload. Raises TransportNotOpenError when not open. """
        raise NotImplementedError

    @abstractmethod
    def close(self):
        """ Closes the connection. Closing a closed handle does nothing. """
        raise NotImplementedError

    def _fire_opened(self):
        self.events.fire(OPENED, self)

    def _fire_closed(self, error=None):
        self.events.fire(CLOSED, self, error)

    def _fire_message(self, payload):
        self.events.fire(MESSAGE, self, payload)

    def __repr__(self):
        return "%s(%r)" % (type(self).__name__, self._endpoint)
