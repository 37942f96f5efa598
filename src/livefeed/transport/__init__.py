"""
Transports carry raw payloads between a channel and its server.

- TransportHandle: one connection attempt to an endpoint. Signals opened, closed and message.
- transport factory: any callable taking an endpoint and returning a new, unopened TransportHandle.
  WebSocketTransport and MemoryServer.transport_factory are both factories.
"""
