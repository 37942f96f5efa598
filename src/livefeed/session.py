import logging

from livefeed.codecs import ChannelCodec, ControlEnvelope, CodecError, READY, BOUNDING_BOX_INITIALIZED, \
    FILTER_CHANGED
from livefeed.geometry import BoundingBox
from livefeed.transport.base import TransportError, MESSAGE

logger = logging.getLogger(__name__)

NEW_ITEMS = 'new_items'

_CURRENT = object()


class SubscriptionSession:
    """
    Holds the scope of a channel - bounding box, filter, stream and type - and announces
    it to the server. After each successful (re)connection the scope is replayed, so the
    caller never has to subscribe again.

    A session runs either unscoped (listen()) or in bounding box mode
    (initialize_bounding_box()). Once a bounding box is set it never changes.

    Control actions issued while the connection is down are recorded and announced
    when the connection opens.

    :param connection: the ConnectionManager that carries the envelopes
    :param events: receives new_items(batch) for each inbound message once listening
    :raises CodecError: when the initial filter cannot be encoded
    """

    def __init__(self, channel_type, connection, events, codec: ChannelCodec, stream=None, filter=None):
        self.channel_type = channel_type
        self.stream = stream
        self.filter = filter
        self.bounding_box = None
        self.listening = False
        self.connection = connection
        self.events = events
        self.codec = codec
        self._consuming = False
        # announcements run on the transport's thread, where an encoding error would go unseen
        codec.encode(self.envelope(READY))

    def listen(self):
        """ Requests unscoped delivery of items. Does nothing if already listening. """
        with self.connection.lock:
            if not self.listening:
                self._listen()

    def initialize_bounding_box(self, bounding_box):
        """
        Requests delivery of the items within a bounding box. Only the first box is
        used; later calls do nothing.
        :raises BoundingBoxError: when bounding_box is malformed
        """
        with self.connection.lock:
            if self.bounding_box is not None:
                logger.debug("bounding box already set to %r, ignoring %r" % (self.bounding_box, bounding_box))
                return
            self.bounding_box = BoundingBox.check(bounding_box)
            self._initialize_bounding_box()

    def change_filter(self, filter):
        """
        Replaces the filter and announces it. The new filter is carried by every
        envelope sent from now on, including those replayed on reconnect.
        :raises CodecError: when the filter cannot be encoded
        """
        with self.connection.lock:
            payload = self.codec.encode(self.envelope(FILTER_CHANGED, filter))
            self.filter = filter
            self._send(FILTER_CHANGED, payload)

    def on_reconnect(self):
        """ Replays the scope after the connection opens. """
        with self.connection.lock:
            if not self.listening:
                return
            if self.bounding_box is not None:
                # the stored box was validated when first set
                self._initialize_bounding_box()
            else:
                self._listen()

    def envelope(self, event, filter=_CURRENT) -> ControlEnvelope:
        return ControlEnvelope(event, self.channel_type, self.stream, self.bounding_box,
                               self.filter if filter is _CURRENT else filter)

    def _listen(self):
        self._consume()
        self._announce(READY)

    def _initialize_bounding_box(self):
        self._consume()
        self._announce(BOUNDING_BOX_INITIALIZED)

    def _consume(self):
        if not self._consuming:
            self.connection.events.add(MESSAGE, self._message_received)
            self._consuming = True
        self.listening = True

    def _announce(self, event):
        self._send(event, self.codec.encode(self.envelope(event)))

    def _send(self, event, payload):
        if not self.connection.is_opened():
            logger.debug("not connected, %s will be announced on connection" % event)
            return
        try:
            self.connection.send(payload)
        except TransportError as e:
            logger.warning("unable to send %s to %s: %s" % (event, self.connection.endpoint, e))

    def _message_received(self, payload):
        try:
            batch = self.codec.decode(payload)
        except CodecError as e:
            logger.warning("discarding message from %s: %s" % (self.connection.endpoint, e))
            return
        self.events.fire(NEW_ITEMS, batch)
