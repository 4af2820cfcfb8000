from arbcore.events.channel import EventChannel, Handler

__all__ = ["EventChannel", "Handler"]
