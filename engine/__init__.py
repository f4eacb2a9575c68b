from .session import GridSession
from .sinks import LoggingProgressSink, EditEvent, EditJournal

__all__ = [
    "GridSession",
    "LoggingProgressSink",
    "EditEvent",
    "EditJournal",
]
