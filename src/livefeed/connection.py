"""
Maintains the connection of a single channel to its endpoint.

The ConnectionManager owns at most one TransportHandle at a time. When the handle
closes or errors, the retry strategy decides whether to schedule a new attempt or to
give up. Client-initiated close() never retries.

    idle --connect()--> connecting --opened--> open --closed/errored--> reconnecting
    reconnecting --delay, retry allowed--> connecting
    reconnecting --delay, aborted--> errored
    open --closed/errored, budget spent--> errored
    any --close()--> closed

abort() only sets a flag. It is observed the next time a retry is considered.
closed and errored are terminal: connect() does nothing once either is reached.
"""
import logging
import threading
from enum import Enum
from functools import partial

from livefeed.support.events import EventRegistry
from livefeed.support.retry_strategy import RetryStrategy
from livefeed.transport.base import TransportError, TransportNotOpenError, OPENED, CLOSED, MESSAGE

logger = logging.getLogger(__name__)

ERROR = 'error'


class ConnectionState(Enum):
    IDLE = 'idle'
    CONNECTING = 'connecting'
    OPEN = 'open'
    RECONNECTING = 'reconnecting'
    CLOSED = 'closed'
    ABORTED = 'aborted'
    ERRORED = 'errored'


ACTIVE_STATES = (ConnectionState.CONNECTING, ConnectionState.OPEN, ConnectionState.RECONNECTING)
TERMINAL_STATES = (ConnectionState.CLOSED, ConnectionState.ERRORED)


class ChannelConnectionError(TransportError):
    """ No connection could be established to the endpoint within the retry budget. """

    def __init__(self, endpoint, retries):
        super().__init__("unable to connect to %s after %d retries" % (endpoint, retries))
        self.endpoint = endpoint
        self.retries = retries


def timer_scheduler(delay, fn):
    """ runs fn after delay seconds on a daemon timer thread. """
    timer = threading.Timer(delay, fn)
    timer.daemon = True
    timer.start()
    return timer


class ConnectionManager:
    """
    Drives the open/reconnect cycle for one endpoint.

    Fires through `events`:
    - opened(): a transport opened. Fired again after each successful reconnect.
    - closed(): the client closed the connection. Terminal.
    - error(ChannelConnectionError): retries were exhausted or aborted. Terminal.
    - message(payload): a payload arrived on the open transport.

    All state is guarded by `lock`, which is re-entrant so handlers may call back into
    the manager.

    :param endpoint: the address passed to the transport factory
    :param transport_factory: creates a new unopened TransportHandle for an endpoint
    :param retry_strategy: decides if and when to reconnect
    :param scheduler: called as scheduler(delay_seconds, fn) to run fn later
    """

    def __init__(self, endpoint, transport_factory, retry_strategy: RetryStrategy,
                 scheduler=timer_scheduler, log=logger):
        self.endpoint = endpoint
        self.transport_factory = transport_factory
        self.retry_strategy = retry_strategy
        self.scheduler = scheduler
        self.logger = log
        self.events = EventRegistry((OPENED, CLOSED, ERROR, MESSAGE))
        self.lock = threading.RLock()
        self.retries_done = 0
        self.aborted = False
        self._state = ConnectionState.IDLE
        self._handle = None
        self._retry_token = None

    @property
    def state(self) -> ConnectionState:
        """ ABORTED while a scheduled retry is pending that abort() will suppress. """
        state = self._state
        if self.aborted and state is ConnectionState.RECONNECTING:
            return ConnectionState.ABORTED
        return state

    def is_opened(self) -> bool:
        with self.lock:
            return self._state is ConnectionState.OPEN and self._handle is not None and self._handle.opened

    def connect(self):
        """
        Starts connecting, unless a connection is already open or being established.
        Clears any earlier abort. Does nothing once the connection is closed or errored.
        """
        with self.lock:
            if self._state in TERMINAL_STATES:
                self.logger.warning("connect() ignored, %s is %s" % (self.endpoint, self._state.value))
                return
            self.aborted = False
            if self._state in ACTIVE_STATES:
                self.logger.debug("connect() ignored, %s is %s" % (self.endpoint, self._state.value))
                return
            self.retries_done = 0
            self._open()

    def close(self):
        """ Closes the connection for good. Fires closed, never retries. """
        with self.lock:
            if self._state in TERMINAL_STATES:
                return
            handle = self._detach()
            self._retry_token = None
            self._state = ConnectionState.CLOSED
            self.logger.info("channel to %s closed by client" % self.endpoint)
            self.events.fire(CLOSED)
        # the handle may need its reader thread, which can be waiting on the lock, to finish closing
        if handle is not None:
            handle.close()

    def abort(self):
        """ Stops further reconnection. Takes effect when the next retry is considered. """
        with self.lock:
            self.aborted = True

    def send(self, payload):
        with self.lock:
            if not self.is_opened():
                raise TransportNotOpenError(self.endpoint)
            self._handle.send(payload)

    def _open(self):
        self._state = ConnectionState.CONNECTING
        try:
            handle = self.transport_factory(self.endpoint)
        except TransportError as e:
            self.logger.warning("unable to create transport to %s: %s" % (self.endpoint, e))
            self._retry_or_fail()
            return
        self._handle = handle
        handle.events.add(OPENED, self._transport_opened)
        handle.events.add(CLOSED, self._transport_closed)
        handle.events.add(MESSAGE, self._transport_message)
        try:
            handle.open()
        except TransportError as e:
            if handle is self._handle:
                self.logger.warning("unable to open transport to %s: %s" % (self.endpoint, e))
                self._teardown()
                self._retry_or_fail()

    def _detach(self):
        """ releases the current handle so it can signal nothing more. """
        handle = self._handle
        self._handle = None
        if handle is not None:
            handle.events.remove(OPENED, self._transport_opened)
            handle.events.remove(CLOSED, self._transport_closed)
            handle.events.remove(MESSAGE, self._transport_message)
        return handle

    def _teardown(self):
        handle = self._detach()
        if handle is not None:
            handle.close()

    def _transport_opened(self, handle):
        with self.lock:
            if handle is not self._handle:
                self.logger.debug("ignoring opened signal from superseded %r" % handle)
                return
            self._state = ConnectionState.OPEN
            self.retries_done = 0
            self.logger.info("channel connected to %s" % self.endpoint)
            self.events.fire(OPENED)

    def _transport_closed(self, handle, error=None):
        # a server close and a network error are handled alike
        with self.lock:
            if handle is not self._handle:
                self.logger.debug("ignoring closed signal from superseded %r" % handle)
                return
            self.logger.info("channel to %s lost%s" % (self.endpoint, ": %s" % error if error else ""))
            self._teardown()
            self._retry_or_fail()

    def _transport_message(self, handle, payload):
        with self.lock:
            if handle is not self._handle:
                return
            self.events.fire(MESSAGE, payload)

    def _retry_or_fail(self):
        delay = self.retry_strategy(self.retries_done, self.aborted)
        if delay is None:
            self._fail()
            return
        self.retries_done += 1
        self._state = ConnectionState.RECONNECTING
        token = self._retry_token = object()
        self.logger.info("reconnecting to %s in %ss (retry %d)" % (self.endpoint, delay, self.retries_done))
        self.scheduler(delay, partial(self._retry, token))

    def _retry(self, token):
        with self.lock:
            if token is not self._retry_token or self._state is not ConnectionState.RECONNECTING:
                return      # superseded by close()
            self._retry_token = None
            if self.aborted:
                self._fail()
                return
            self._open()

    def _fail(self):
        self._teardown()
        self._retry_token = None
        self._state = ConnectionState.ERRORED
        error = ChannelConnectionError(self.endpoint, self.retries_done)
        self.logger.error(str(error))
        self.events.fire(ERROR, error)
