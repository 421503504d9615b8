"""Unit tests for staff alerts."""

import pytest

from rental_core.core.exceptions import ConflictError, NotAuthenticatedError
from rental_core.models.alert import AlertStatus, AlertType
from rental_core.services.alert_service import AlertService


@pytest.fixture
def alerts(test_session, clock):
    return AlertService(test_session, clock)


async def raise_alert(session, alerts, **kwargs):
    alert = await alerts.create_alert(AlertType.LATE_RETURN, title="Vehicle overdue", **kwargs)
    await session.commit()
    return alert


@pytest.mark.asyncio
async def test_alert_lifecycle(test_session, clock, alerts):
    alert = await raise_alert(test_session, alerts, message="RC-1001 is 2h late")
    assert alert.status == AlertStatus.PENDING.value

    clock.advance(minutes=5)
    acknowledged = await alerts.acknowledge(alert.id, "staff-1")
    assert acknowledged.status == AlertStatus.ACKNOWLEDGED.value
    assert acknowledged.acknowledged_at == clock.now

    clock.advance(minutes=30)
    resolved = await alerts.resolve(alert.id, "staff-2")
    assert resolved.status == AlertStatus.RESOLVED.value
    assert resolved.acknowledged_by == "staff-1"
    assert resolved.resolved_by == "staff-2"


@pytest.mark.asyncio
async def test_resolved_alert_cannot_be_acknowledged(test_session, alerts):
    alert = await raise_alert(test_session, alerts)
    await alerts.resolve(alert.id, "staff-1")

    with pytest.raises(ConflictError) as exc_info:
        await alerts.acknowledge(alert.id, "staff-1")

    assert exc_info.value.problem_details["code"] == "ALERT_RESOLVED"


@pytest.mark.asyncio
async def test_resolve_without_acknowledge_stamps_both(test_session, alerts):
    alert = await raise_alert(test_session, alerts)

    resolved = await alerts.resolve(alert.id, "staff-1")

    assert resolved.acknowledged_by == "staff-1"
    assert resolved.acknowledged_at == resolved.resolved_at


@pytest.mark.asyncio
async def test_actions_require_actor(test_session, alerts):
    alert = await raise_alert(test_session, alerts)

    with pytest.raises(NotAuthenticatedError):
        await alerts.acknowledge(alert.id, None)


@pytest.mark.asyncio
async def test_list_filters(test_session, alerts, pending_booking):
    await raise_alert(test_session, alerts, booking_id=pending_booking.id)
    other = await alerts.create_alert(AlertType.CLEANING_REQUIRED, title="Interior cleaning")
    await test_session.commit()
    await alerts.resolve(other.id, "staff-1")

    open_alerts = await alerts.list_alerts(status=AlertStatus.PENDING)
    for_booking = await alerts.list_alerts(booking_id=pending_booking.id)
    cleaning = await alerts.list_alerts(alert_type=AlertType.CLEANING_REQUIRED)

    assert [a.title for a in open_alerts] == ["Vehicle overdue"]
    assert [a.title for a in for_booking] == ["Vehicle overdue"]
    assert [a.status for a in cleaning] == [AlertStatus.RESOLVED.value]
