"""
Default collaborators for progress messages and edit journaling.
"""

import logging
from dataclasses import dataclass
from typing import List

logger = logging.getLogger(__name__)


class LoggingProgressSink:
    """Progress sink that forwards messages to the log."""

    def __init__(self, level: int = logging.INFO):
        self.level = level
        self.active = False
        self.last_message = None

    def message_on(self, text: str):
        self.active = True
        self.last_message = text
        logger.log(self.level, text)

    def message_off(self):
        self.active = False


@dataclass
class EditEvent:
    """A sounding flag change."""
    file_index: int
    ping_index: int
    beam_index: int
    new_flag: int


class EditJournal:
    """
    In-memory journal of sounding flag changes.

    Persisting the journal is left to the caller.
    """

    def __init__(self):
        self.events: List[EditEvent] = []

    def record_edit(self, file_index: int, ping_index: int, beam_index: int, new_flag: int):
        self.events.append(EditEvent(
            file_index=int(file_index),
            ping_index=int(ping_index),
            beam_index=int(beam_index),
            new_flag=int(new_flag),
        ))

    def __len__(self) -> int:
        return len(self.events)

    def for_file(self, file_index: int) -> List[EditEvent]:
        return [e for e in self.events if e.file_index == file_index]

    def clear(self):
        self.events = []
