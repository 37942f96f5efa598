import json
from abc import abstractmethod
from collections import namedtuple

READY = 'ready'
BOUNDING_BOX_INITIALIZED = 'bounding_box_initialized'
FILTER_CHANGED = 'filter_changed'


class CodecError(ValueError):
    """ A message could not be converted to or from the on-wire format. """


class ControlEnvelope(namedtuple('ControlEnvelope', 'event type stream bounding_box filter')):
    """
    A control action sent from the client to the server. The bounding box and filter
    are None when not set.
    """

    def as_dict(self):
        bounding_box = self.bounding_box
        return {
            'event': self.event,
            'type': self.type,
            'stream': self.stream,
            'bounding_box': list(bounding_box) if bounding_box is not None else None,
            'filter': self.filter,
        }


class ChannelCodec:
    """
    Knows how to convert control envelopes to the on-wire format, and inbound
    messages to item batches.
    """

    @abstractmethod
    def encode(self, envelope: ControlEnvelope):
        """ returns the payload to send for the given envelope. """
        raise NotImplementedError()

    @abstractmethod
    def decode(self, payload):
        """
        decodes one inbound message into one batch of records. The records
        are passed through as they are; their shape is up to the caller.
        """
        raise NotImplementedError()


class JsonChannelCodec(ChannelCodec):
    """ Envelopes and batches are JSON text, one per transport message. """

    def encode(self, envelope: ControlEnvelope):
        try:
            return json.dumps(envelope.as_dict())
        except (TypeError, ValueError) as e:
            raise CodecError("cannot encode %s envelope: %s" % (envelope.event, e)) from e

    def decode(self, payload):
        try:
            if isinstance(payload, (bytes, bytearray)):
                payload = payload.decode('utf-8')
            return json.loads(payload)
        except (UnicodeDecodeError, ValueError) as e:
            raise CodecError("cannot decode message: %s" % e) from e
