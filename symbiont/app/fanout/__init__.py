from .hub import EventFanoutHub, Listener, ListenerClosed

__all__ = ["EventFanoutHub", "Listener", "ListenerClosed"]
