from collections import namedtuple

from livefeed.codecs import JsonChannelCodec
from livefeed.connection import ConnectionManager, ConnectionState, ERROR, timer_scheduler
from livefeed.session import SubscriptionSession, NEW_ITEMS
from livefeed.support.events import EventRegistry
from livefeed.support.retry_strategy import BudgetRetryStrategy, INFINITE_RETRIES, DEFAULT_RETRY_INTERVAL
from livefeed.transport.base import OPENED, CLOSED
from livefeed.transport.websocket import WebSocketTransport

CHANNEL_EVENTS = (OPENED, CLOSED, ERROR, NEW_ITEMS)


class ChannelConfig(namedtuple('ChannelConfig', 'endpoint type stream filter max_retries retry_interval')):
    """
    The immutable settings of a channel.

    :param endpoint: the address of the server, e.g. ws://example.com/socket
    :param type: the channel type announced to the server
    :param stream: an optional stream identifier
    :param filter: the initial content filter, if any
    :param max_retries: reconnect attempts allowed after a failure. INFINITE_RETRIES (0) means unlimited.
    :param retry_interval: milliseconds to wait before each reconnect attempt
    """
    __slots__ = ()

    def __new__(cls, endpoint, type, stream=None, filter=None, max_retries=INFINITE_RETRIES,
                retry_interval=DEFAULT_RETRY_INTERVAL):
        if not endpoint or not isinstance(endpoint, str):
            raise ValueError("endpoint must be a non-empty string, got %r" % (endpoint,))
        if not type or not isinstance(type, str):
            raise ValueError("type must be a non-empty string, got %r" % (type,))
        # also validates max_retries and retry_interval
        BudgetRetryStrategy(max_retries, retry_interval)
        return super().__new__(cls, endpoint, type, stream, filter, max_retries, retry_interval)

    def retry_strategy(self):
        return BudgetRetryStrategy(self.max_retries, self.retry_interval)


class Channel:
    """
    A resilient subscription to a real-time feed.

    The channel reconnects on its own after the transport fails, and replays its scope
    (bounding box and filter) after every reconnect. Callers subscribe to events by kind:

    - opened(): the connection opened, including after each reconnect
    - closed(): close() was called
    - error(ChannelConnectionError): the connection could not be re-established
    - new_items(batch): a batch of records arrived, once listen() or
      initialize_bounding_box() has been called

    :param config: the ChannelConfig
    :param transport_factory: creates a TransportHandle for the endpoint. Defaults to websockets.
    :param codec: converts envelopes and batches to and from the wire. Defaults to JSON.
    :param scheduler: runs reconnect attempts after a delay. Defaults to a timer thread.
    """

    def __init__(self, config: ChannelConfig, transport_factory=None, codec=None, scheduler=timer_scheduler):
        self.config = config
        self.events = EventRegistry(CHANNEL_EVENTS)
        self.connection = ConnectionManager(config.endpoint, transport_factory or WebSocketTransport,
                                            config.retry_strategy(), scheduler)
        self.session = SubscriptionSession(config.type, self.connection, self.events,
                                           codec or JsonChannelCodec(), config.stream, config.filter)
        self.connection.events.add(OPENED, self._connection_opened)
        self.connection.events.add(CLOSED, self._connection_closed)
        self.connection.events.add(ERROR, self._connection_error)

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    @property
    def retries_done(self):
        return self.connection.retries_done

    @property
    def bounding_box(self):
        return self.session.bounding_box

    @property
    def filter(self):
        return self.session.filter

    def connect(self):
        self.connection.connect()

    def is_opened(self):
        return self.connection.is_opened()

    def close(self):
        self.connection.close()

    def abort(self):
        self.connection.abort()

    def listen(self):
        self.session.listen()

    def initialize_bounding_box(self, bounding_box):
        self.session.initialize_bounding_box(bounding_box)

    def change_filter(self, filter):
        self.session.change_filter(filter)

    def _connection_opened(self):
        self.session.on_reconnect()
        self.events.fire(OPENED)

    def _connection_closed(self):
        self.events.fire(CLOSED)

    def _connection_error(self, error):
        self.events.fire(ERROR, error)

    def __repr__(self):
        return "Channel(%r, %r, %s)" % (self.config.endpoint, self.config.type, self.state.value)
