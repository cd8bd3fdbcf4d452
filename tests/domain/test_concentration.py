"""
Tests for the Concentration Risk Analyzer.

Covers:
- incoming thresholds (alert above 30%, high above 50%)
- outgoing threshold (alert above 50%, always high)
- strict boundaries, rounding, ordering, empty input
"""

from decimal import Decimal
from uuid import uuid4

from referral_kernel.domain.concentration import (
    AlertSeverity,
    AlertType,
    compute_alerts,
    incoming_alerts,
    outgoing_alerts,
)
from referral_kernel.domain.referral import (
    Priority,
    Referral,
    ReferralStatus,
    SourceCategory,
)


def referral(referring=None, to=None, external=None):
    return Referral(
        referral_id=uuid4(),
        case_id=uuid4(),
        referring_actor_id=referring,
        referred_to_actor_id=to,
        external_source_name=external,
        source_category=SourceCategory.INTERNAL if to else SourceCategory.EXTERNAL,
        referral_fee=Decimal("0"),
        reason="r",
        client_consent_obtained=True,
        priority=Priority.NORMAL,
        status=ReferralStatus.PENDING,
        workflow_stage="pending_case_manager",
    )


def many(n, **kwargs):
    return [referral(**kwargs) for _ in range(n)]


class TestIncoming:

    def test_dominant_source_is_high_and_minor_source_absent(self):
        x, a, b = uuid4(), uuid4(), uuid4()
        snapshot = many(10, referring=a, to=x) + many(2, referring=b, to=x)

        alerts = incoming_alerts(snapshot)

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.alert_type == AlertType.INCOMING
        assert alert.attorney_id == str(x)
        assert alert.source == str(a)
        assert alert.percentage == Decimal("83.3")
        assert alert.count == 10
        assert alert.severity == AlertSeverity.HIGH

    def test_between_thirty_and_fifty_is_medium(self):
        x, a, b, c = uuid4(), uuid4(), uuid4(), uuid4()
        snapshot = (
            many(4, referring=a, to=x)
            + many(3, referring=b, to=x)
            + many(3, referring=c, to=x)
        )

        alerts = incoming_alerts(snapshot)

        # b and c sit at exactly 30%, which does not alert
        assert [(al.source, al.severity) for al in alerts] == [
            (str(a), AlertSeverity.MEDIUM),
        ]
        assert alerts[0].percentage == Decimal("40.0")

    def test_exactly_fifty_is_medium(self):
        x, a, b = uuid4(), uuid4(), uuid4()
        snapshot = many(1, referring=a, to=x) + many(1, referring=b, to=x)

        alerts = incoming_alerts(snapshot)

        assert len(alerts) == 2
        assert all(al.severity == AlertSeverity.MEDIUM for al in alerts)
        assert all(al.percentage == Decimal("50.0") for al in alerts)

    def test_external_destinations_are_not_incoming(self):
        a = uuid4()
        snapshot = many(5, referring=a, external="Smith & Partners LLP")
        assert incoming_alerts(snapshot) == []

    def test_percentage_rounds_half_up(self):
        x, a, b = uuid4(), uuid4(), uuid4()
        snapshot = many(13, referring=a, to=x) + many(3, referring=b, to=x)

        alerts = incoming_alerts(snapshot)

        assert [al.percentage for al in alerts] == [Decimal("81.3")]


class TestOutgoing:

    def test_exactly_fifty_does_not_alert(self):
        a, x, y = uuid4(), uuid4(), uuid4()
        snapshot = many(2, referring=a, to=x) + many(2, referring=a, to=y)
        assert outgoing_alerts(snapshot) == []

    def test_above_fifty_is_always_high(self):
        a, x, y = uuid4(), uuid4(), uuid4()
        snapshot = many(3, referring=a, to=x) + many(2, referring=a, to=y)

        alerts = outgoing_alerts(snapshot)

        assert len(alerts) == 1
        assert alerts[0].destination == str(x)
        assert alerts[0].percentage == Decimal("60.0")
        assert alerts[0].severity == AlertSeverity.HIGH

    def test_external_destination_counted_by_name(self):
        a, x = uuid4(), uuid4()
        snapshot = many(4, referring=a, external="Acme Law") + many(1, referring=a, to=x)

        alerts = outgoing_alerts(snapshot)

        assert [(al.destination, al.percentage) for al in alerts] == [
            ("Acme Law", Decimal("80.0")),
        ]

    def test_referrals_without_referring_actor_are_skipped(self):
        x = uuid4()
        assert outgoing_alerts(many(3, to=x)) == []


class TestComputeAlerts:

    def test_empty_input(self):
        assert compute_alerts([]) == []

    def test_incoming_before_outgoing(self):
        a, x = uuid4(), uuid4()
        alerts = compute_alerts(many(3, referring=a, to=x))

        assert [al.alert_type for al in alerts] == [AlertType.INCOMING, AlertType.OUTGOING]
        assert alerts[0].counterpart == str(a)
        assert alerts[1].counterpart == str(x)

    def test_accepts_single_pass_iterable(self):
        a, x = uuid4(), uuid4()
        alerts = compute_alerts(iter(many(2, referring=a, to=x)))
        assert len(alerts) == 2

    def test_deterministic_order(self):
        x, y, a = uuid4(), uuid4(), uuid4()
        snapshot = many(2, referring=a, to=x) + many(2, referring=a, to=y)
        forward = compute_alerts(snapshot)
        backward = compute_alerts(list(reversed(snapshot)))
        assert forward == backward
        attorneys = [al.attorney_id for al in forward if al.alert_type == AlertType.INCOMING]
        assert attorneys == sorted(attorneys)

    def test_to_dict(self):
        a, x = uuid4(), uuid4()
        incoming, outgoing = compute_alerts(many(1, referring=a, to=x))
        assert incoming.to_dict() == {
            "type": "incoming",
            "attorney_id": str(x),
            "source": str(a),
            "percentage": "100.0",
            "count": 1,
            "severity": "high",
        }
        assert outgoing.to_dict()["destination"] == str(x)
