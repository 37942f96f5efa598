"""
An in-process transport. A MemoryServer stands in for the remote end so channels can
be driven without a network: it can refuse connections, answer control messages,
push batches and drop the connection from the server side.

Everything happens synchronously on the calling thread.
"""
import logging

from livefeed.transport.base import TransportHandle, TransportError, TransportNotOpenError

logger = logging.getLogger(__name__)


class MemoryServer:
    """
    :param responder: called as responder(connection, payload) for each payload a client sends.
        Use connection.deliver() to answer.
    :param reachable: when False, connection attempts fail.
    """

    def __init__(self, responder=None, reachable=True):
        self.responder = responder
        self.reachable = reachable
        self.connections = []       # every handle that tried to open, in order
        self.received = []          # every payload sent by a client, in order

    def transport_factory(self, endpoint):
        return MemoryTransport(endpoint, self)

    @property
    def attempts(self):
        return len(self.connections)

    @property
    def current(self):
        """ the most recent connection if it is open, otherwise None """
        if self.connections and self.connections[-1].opened:
            return self.connections[-1]
        return None

    def push(self, payload):
        """ sends a payload to the currently open connection. """
        connection = self.current
        if connection is None:
            raise TransportNotOpenError("no open connection to push to")
        connection.deliver(payload)

    def drop(self):
        """ closes the currently open connection from the server side. """
        connection = self.current
        if connection is not None:
            connection.drop()

    def _accept(self, connection):
        self.connections.append(connection)
        return self.reachable

    def _receive(self, connection, payload):
        self.received.append(payload)
        if self.responder:
            self.responder(connection, payload)


class MemoryTransport(TransportHandle):

    def __init__(self, endpoint, server: MemoryServer):
        super().__init__(endpoint)
        self.server = server
        self._opened = False
        self._used = False

    @property
    def opened(self):
        return self._opened

    def open(self):
        if self._used:
            raise TransportError("%r has already been opened" % self)
        self._used = True
        if self.server._accept(self):
            self._opened = True
            self._fire_opened()
        else:
            logger.debug("memory server refused connection to %s" % self.endpoint)
            self._fire_closed(TransportError("%s is unreachable" % self.endpoint))

    def send(self, payload):
        if not self._opened:
            raise TransportNotOpenError(self.endpoint)
        self.server._receive(self, payload)

    def close(self):
        self._opened = False

    def deliver(self, payload):
        """ signals a message arriving from the server. """
        if self._opened:
            self._fire_message(payload)

    def drop(self):
        """ signals the server closing the connection. """
        if self._opened:
            self._opened = False
            self._fire_closed(None)
