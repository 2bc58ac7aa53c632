from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# Comparison-month stage labels that start with this marker count as Closed Won
# in pipeline movement.
WON_STAGE_PREFIX = "Stage 7"


class StageKind(str, Enum):
    PROSPECTING = "Prospecting"
    QUALIFICATION = "Qualification"
    DISCOVERY = "Discovery"
    PROPOSAL = "Proposal"
    NEGOTIATION = "Negotiation"
    CLOSED_WON = "Closed Won"
    CLOSED_LOST = "Closed Lost"
    CLOSED_DEAD = "Closed Dead"
    CLOSED_DECLINED = "Closed Declined"
    STALLED = "Stalled"
    OTHER = "Other"


class DealStatus(str, Enum):
    ACTIVE = "Active"
    WON = "Won"
    LOST = "Lost"
    STALLED = "Stalled"


LOST_KINDS = frozenset({StageKind.CLOSED_LOST, StageKind.CLOSED_DEAD, StageKind.CLOSED_DECLINED})
CLOSED_KINDS = LOST_KINDS | {StageKind.CLOSED_WON}

# Checked in order; the first marker found in the label wins.
_MARKERS = [
    ("Closed Won", StageKind.CLOSED_WON),
    ("Closed Lost", StageKind.CLOSED_LOST),
    ("Closed Dead", StageKind.CLOSED_DEAD),
    ("Closed Declined", StageKind.CLOSED_DECLINED),
    ("Stalled", StageKind.STALLED),
    ("Negotiation", StageKind.NEGOTIATION),
    ("Proposal", StageKind.PROPOSAL),
    ("Discovery", StageKind.DISCOVERY),
    ("Qualification", StageKind.QUALIFICATION),
    ("Prospecting", StageKind.PROSPECTING),
]


@dataclass(frozen=True)
class ParsedStage:
    label: str
    kind: StageKind

    @property
    def is_closed(self) -> bool:
        return self.kind in CLOSED_KINDS or "Closed" in self.label

    @property
    def is_lost(self) -> bool:
        return self.kind in LOST_KINDS

    @property
    def is_lost_or_stalled(self) -> bool:
        return self.kind in LOST_KINDS or self.kind is StageKind.STALLED

    @property
    def is_terminal(self) -> bool:
        return self.kind in CLOSED_KINDS or self.kind is StageKind.STALLED

    @property
    def has_won_marker(self) -> bool:
        return self.label.startswith(WON_STAGE_PREFIX)

    @property
    def status(self) -> DealStatus:
        if self.kind is StageKind.CLOSED_WON:
            return DealStatus.WON
        if self.kind in LOST_KINDS:
            return DealStatus.LOST
        if self.kind is StageKind.STALLED:
            return DealStatus.STALLED
        return DealStatus.ACTIVE


def parse_stage(label: str | None) -> ParsedStage:
    text = (label or "").strip()
    for marker, kind in _MARKERS:
        if marker in text:
            return ParsedStage(label=text, kind=kind)
    return ParsedStage(label=text, kind=StageKind.OTHER)
