import logging
import threading

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import connect

from livefeed.transport.base import TransportHandle, TransportError, TransportNotOpenError

logger = logging.getLogger(__name__)


class WebSocketTransport(TransportHandle):
    """
    A transport over a websocket. Opening, receiving and signalling all happen on a
    daemon background thread, so signals from one handle arrive in order on that thread.

    :param endpoint: the ws:// or wss:// URI to connect to
    :param open_timeout: seconds allowed for the opening handshake
    :param report_errors: log failed connection attempts as warnings rather than debug
    :param connect_args: further keyword arguments for websockets.sync.client.connect()
    """

    def __init__(self, endpoint, open_timeout=5, report_errors=True, **connect_args):
        super().__init__(endpoint)
        self._open_timeout = open_timeout
        self._report_errors = report_errors
        self._connect_args = connect_args
        self._connection = None
        self._closing = False
        self._thread = None
        self._lock = threading.Lock()

    @property
    def opened(self):
        return self._connection is not None and not self._closing

    def open(self):
        if self._thread is not None:
            raise TransportError("%r has already been opened" % self)
        t = threading.Thread(target=self._run, name="websocket %s" % self.endpoint)
        t.daemon = True
        self._thread = t
        t.start()

    def _run(self):
        """ connects, then pumps messages until the connection ends. """
        opened = False
        error = None
        try:
            with connect(self.endpoint, open_timeout=self._open_timeout, **self._connect_args) as connection:
                with self._lock:
                    if self._closing:
                        return
                    self._connection = connection
                opened = True
                logger.info("opened websocket to %s" % self.endpoint)
                self._do(self._fire_opened)
                for message in connection:
                    # after close() the queue is still drained so the closing handshake can be read
                    if not self._closing:
                        self._do(self._fire_message, message)
        except ConnectionClosed as e:
            error = e
        except (OSError, WebSocketException) as e:
            if not opened:
                method = logger.warning if self._report_errors else logger.debug
                method("error opening websocket to %s: %s" % (self.endpoint, e))
            error = e
        finally:
            with self._lock:
                self._connection = None
        if opened:
            logger.info("websocket to %s closed%s" % (self.endpoint, ": %s" % error if error else ""))
        if not self._closing:
            self._do(self._fire_closed, error)

    def _do(self, fire, *args):
        """ signals handlers, logging anything they raise so the reader thread survives. """
        try:
            fire(*args)
        except Exception as e:
            logger.exception("handler failed for websocket %s: %s" % (self.endpoint, e))

    def send(self, payload):
        connection = self._connection
        if connection is None or self._closing:
            raise TransportNotOpenError(self.endpoint)
        try:
            connection.send(payload)
        except ConnectionClosed as e:
            raise TransportError("websocket to %s closed while sending" % self.endpoint) from e

    def close(self):
        """ closes the websocket. Nothing is signalled after a client close. """
        with self._lock:
            if self._closing:
                return
            self._closing = True
            connection = self._connection
        if connection is None:
            return
        if threading.current_thread() is self._thread:
            # the reader thread must return to reading for the handshake to complete
            threading.Thread(target=connection.close, name="websocket close %s" % self.endpoint,
                             daemon=True).start()
        else:
            connection.close()
