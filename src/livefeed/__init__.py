"""


Resilient real-time feed channels

- Channel: one logical subscription to a real-time feed, bound to a ChannelConfig for its whole
  lifetime. Callers subscribe to opened, closed, error and new_items events by kind.
- ConnectionManager: owns the current transport handle. When the handle closes or errors
  the retry strategy decides whether to reconnect after a delay or give up with an error event.
  A close requested by the client never reconnects.
- SubscriptionSession: remembers what the channel asked for - unscoped listening or a bounding box,
  plus the content filter - and announces it again after every reconnect, so callers never
  re-subscribe.
- ChannelCodec: turns control envelopes into payloads and payloads into item batches. One
  transport message is one batch.
- Transports: a transport factory creates a fresh TransportHandle for each attempt.
  WebSocketTransport is the default; MemoryServer provides an in-process stand-in.


## Threading

Each channel has a single re-entrant lock, held by the connection manager. Signals from the
transport reader thread, reconnect timers and calls from the application all take it, so a
channel behaves as if driven by one thread.

Reconnect timers are never cancelled. A timer checks, when it fires, whether it is still the
current one and whether abort() was called; if not it does nothing.

Event handlers run with the lock held, on whichever thread produced the event. They may call
back into the channel, but should not block waiting on another thread that uses it.


A channel has one lifetime. Once closed or errored, connect() does nothing; create a new Channel
instead.
"""
