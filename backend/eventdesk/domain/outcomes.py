"""Typed results returned by the admission controller and the verifier."""

from dataclasses import dataclass, field
from typing import Optional

from eventdesk.domain.errors import CancelOutcome, CheckInOutcome, JoinOutcome
from eventdesk.domain.models import Event, Person, Registration


@dataclass(frozen=True)
class JoinResult:
    outcome: JoinOutcome
    message: str
    registration: Optional[Registration] = None


@dataclass(frozen=True)
class CancelResult:
    outcome: CancelOutcome
    message: str
    registration: Optional[Registration] = None
    promoted: list[Registration] = field(default_factory=list)


@dataclass(frozen=True)
class VerifyResult:
    outcome: CheckInOutcome
    message: str
    registration: Optional[Registration] = None
    event: Optional[Event] = None
    person: Optional[Person] = None

    @property
    def ok(self) -> bool:
        return self.outcome == CheckInOutcome.SUCCESS
