"""
Concentration Risk Analyzer (``referral_kernel.domain.concentration``).

Responsibility
--------------
Flag attorneys whose referral flow is dangerously concentrated on a single
counterpart -- an ethics / compliance signal.

* Incoming: is a receiving attorney over-reliant on one source?  Alert
  above 30%; HIGH above 50%, MEDIUM otherwise.
* Outgoing: is a referring attorney funnelling too much to one
  destination?  Alert only above 50%, always HIGH.  There is no medium
  tier for outgoing concentration.

Architecture position
---------------------
**Kernel domain layer** -- a pure function over a snapshot.  ZERO I/O,
no module state, never mutates its input.  Callers take the snapshot
(``ReferralSelector.snapshot``) inside their own transaction.

Invariants enforced
-------------------
* Thresholds are strict: exactly 30% incoming or exactly 50% outgoing
  does not alert.
* Percentages are compared unrounded and reported rounded half-up to one
  decimal place.
* Output order is deterministic: incoming alerts, then outgoing; within a
  pass by attorney id, then counterpart.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from referral_kernel.domain.referral import Referral

INCOMING_ALERT_ABOVE = Decimal("30")
INCOMING_HIGH_ABOVE = Decimal("50")
OUTGOING_ALERT_ABOVE = Decimal("50")

_ONE_PLACE = Decimal("0.1")
_HUNDRED = Decimal("100")


class AlertType(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class AlertSeverity(str, Enum):
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class ConcentrationAlert:
    """One concentrated attorney/counterpart pair.

    Incoming alerts carry ``source``; outgoing alerts carry ``destination``.
    """

    alert_type: AlertType
    attorney_id: str
    percentage: Decimal
    count: int
    severity: AlertSeverity
    source: str | None = None
    destination: str | None = None

    @property
    def counterpart(self) -> str:
        return self.source if self.alert_type == AlertType.INCOMING else self.destination

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.alert_type.value,
            "attorney_id": self.attorney_id,
            "percentage": str(self.percentage),
            "count": self.count,
            "severity": self.severity.value,
        }
        if self.alert_type == AlertType.INCOMING:
            data["source"] = self.source
        else:
            data["destination"] = self.destination
        return data


def _incoming_source(referral: Referral) -> str | None:
    if referral.external_source_name:
        return referral.external_source_name
    if referral.referring_actor_id is not None:
        return str(referral.referring_actor_id)
    return None


def _outgoing_destination(referral: Referral) -> str | None:
    if referral.external_source_name:
        return referral.external_source_name
    if referral.referred_to_actor_id is not None:
        return str(referral.referred_to_actor_id)
    return None


def _group(pairs: Iterable[tuple[str, str]]) -> dict[str, Counter[str]]:
    grouped: dict[str, Counter[str]] = defaultdict(Counter)
    for attorney, counterpart in pairs:
        grouped[attorney][counterpart] += 1
    return grouped


def _percentages(
    grouped: dict[str, Counter[str]],
) -> Iterable[tuple[str, str, int, Decimal]]:
    for attorney in sorted(grouped):
        counts = grouped[attorney]
        total = sum(counts.values())
        for counterpart in sorted(counts):
            count = counts[counterpart]
            yield attorney, counterpart, count, Decimal(count) * _HUNDRED / Decimal(total)


def _round(pct: Decimal) -> Decimal:
    return pct.quantize(_ONE_PLACE, rounding=ROUND_HALF_UP)


def incoming_alerts(referrals: Iterable[Referral]) -> list[ConcentrationAlert]:
    pairs = []
    for r in referrals:
        if r.referred_to_actor_id is None:
            continue
        source = _incoming_source(r)
        if source is not None:
            pairs.append((str(r.referred_to_actor_id), source))

    alerts = []
    for attorney, source, count, pct in _percentages(_group(pairs)):
        if pct > INCOMING_ALERT_ABOVE:
            alerts.append(
                ConcentrationAlert(
                    alert_type=AlertType.INCOMING,
                    attorney_id=attorney,
                    source=source,
                    percentage=_round(pct),
                    count=count,
                    severity=(
                        AlertSeverity.HIGH if pct > INCOMING_HIGH_ABOVE
                        else AlertSeverity.MEDIUM
                    ),
                )
            )
    return alerts


def outgoing_alerts(referrals: Iterable[Referral]) -> list[ConcentrationAlert]:
    pairs = []
    for r in referrals:
        if r.referring_actor_id is None:
            continue
        destination = _outgoing_destination(r)
        if destination is not None:
            pairs.append((str(r.referring_actor_id), destination))

    alerts = []
    for attorney, destination, count, pct in _percentages(_group(pairs)):
        if pct > OUTGOING_ALERT_ABOVE:
            alerts.append(
                ConcentrationAlert(
                    alert_type=AlertType.OUTGOING,
                    attorney_id=attorney,
                    destination=destination,
                    percentage=_round(pct),
                    count=count,
                    severity=AlertSeverity.HIGH,
                )
            )
    return alerts


def compute_alerts(referrals: Iterable[Referral]) -> list[ConcentrationAlert]:
    """Run both passes over one snapshot.  Empty input yields no alerts."""
    snapshot = tuple(referrals)
    return incoming_alerts(snapshot) + outgoing_alerts(snapshot)
