from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class RawEvent:
    """One decoded SSE event: optional event label plus its joined data lines"""

    data: str
    event: Optional[str] = None


@dataclass(frozen=True)
class Delta:
    """A single unit of output text from a provider"""

    text: str
    is_done: bool = False
    provider: str = ""
    finish_reason: Optional[str] = None


@dataclass(frozen=True)
class Skip:
    """Event carried nothing to emit (heartbeat, role-only delta, metadata)"""


@dataclass(frozen=True)
class End:
    """Provider signaled the end of the stream"""

    reason: Optional[str] = None


@dataclass(frozen=True)
class ErrorSignal:
    """Event carried an error frame, or a payload that could not be parsed"""

    message: str
    code: Optional[str] = None
    malformed: bool = False
    payload: str = ""


SKIP = Skip()

DecodeResult = Union[Delta, Skip, End, ErrorSignal]
