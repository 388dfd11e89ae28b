"""Per-archive upload state, multiplexed over the single upload stream consumer."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from common.types import ArchiveKey


class UploadState(str, Enum):
    IDLE = "idle"
    STARTED = "started"
    RECEIVING = "receiving"
    FINISHED = "finished"
    ABORTED = "aborted"
    FAILED = "failed"


ACTIVE_STATES = (UploadState.STARTED, UploadState.RECEIVING)


@dataclass
class UploadSession:
    """
    State machine instance of one archive upload.
    """
    key: ArchiveKey
    state: UploadState = UploadState.IDLE
    last_activity: float = field(default_factory=time.monotonic)

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    def touch(self, now: Optional[float] = None) -> None:
        self.last_activity = time.monotonic() if now is None else now


class UploadSessionRegistry:
    """
    Map from archive key to its live upload session. Sessions in a terminal
    state other than FAILED are dropped; FAILED sessions stay so that late
    data and finish messages of that upload are ignored.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._sessions: Dict[ArchiveKey, UploadSession] = {}
        self._clock = clock

    def get(self, key: ArchiveKey) -> Optional[UploadSession]:
        return self._sessions.get(key)

    def open(self, key: ArchiveKey, state: UploadState = UploadState.STARTED) -> UploadSession:
        """Register a session, replacing any previous one for the same key."""
        session = UploadSession(key=key, state=state, last_activity=self._clock())
        self._sessions[key] = session
        return session

    def transition(self, session: UploadSession, state: UploadState) -> None:
        session.state = state
        session.touch(self._clock())
        if state in (UploadState.FINISHED, UploadState.ABORTED):
            self._sessions.pop(session.key, None)

    def idle_sessions(self, max_idle_seconds: float) -> List[UploadSession]:
        """
        Active sessions without activity for longer than max_idle_seconds.
        Only registered sessions are considered; uploads from before a restart
        appear here once UploadIngestion.recover_sessions has run.
        """
        now = self._clock()
        return [
            session for session in self._sessions.values()
            if session.is_active and now - session.last_activity > max_idle_seconds
        ]

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, key: ArchiveKey) -> bool:
        return key in self._sessions
