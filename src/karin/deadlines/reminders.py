"""Graduated reminder schedule and alert levels for deadlines."""

from __future__ import annotations

from datetime import datetime

from karin.core.types import AlertLevel, BusinessDayType
from karin.deadlines.business_days import BusinessDayCalculator
from karin.deadlines.models import DeadlineInstance, DeadlineReminder

# (business days before the end date, level, title prefix)
_REMINDER_STEPS: tuple[tuple[int, AlertLevel, str], ...] = (
    (10, AlertLevel.INFO, "Recordatorio"),
    (5, AlertLevel.WARNING, "Advertencia"),
    (2, AlertLevel.URGENT, "¡Urgente!"),
)


def alert_level(
    instance: DeadlineInstance,
    now: datetime,
    calculator: BusinessDayCalculator,
    calendar_type: BusinessDayType = BusinessDayType.ADMINISTRATIVE,
) -> AlertLevel:
    """Urgency of a deadline by the working days left, today included."""
    if instance.is_completed:
        return AlertLevel.NONE
    today = now.date()
    if today > instance.end_date:
        return AlertLevel.OVERDUE

    remaining = calculator.business_days_until(today, instance.end_date, calendar_type)
    if remaining < 2:
        return AlertLevel.CRITICAL
    if remaining < 5:
        return AlertLevel.URGENT
    if remaining < 10:
        return AlertLevel.WARNING
    return AlertLevel.INFO


def reminder_schedule(
    instance: DeadlineInstance,
    now: datetime,
    calculator: BusinessDayCalculator,
    calendar_type: BusinessDayType = BusinessDayType.ADMINISTRATIVE,
) -> list[DeadlineReminder]:
    """Reminders due ahead of ``instance``'s end date, earliest first.

    A step is scheduled only when more working days remain than its lead
    time. A last-day reminder is added while the deadline has not passed.
    """
    if instance.is_completed:
        return []

    today = now.date()
    if today > instance.end_date:
        return []

    remaining = calculator.business_days_until(today, instance.end_date, calendar_type)
    action = instance.next_action or "Completar la etapa"
    reminders: list[DeadlineReminder] = []

    for lead_days, level, prefix in _REMINDER_STEPS:
        if remaining <= lead_days:
            continue
        reminders.append(DeadlineReminder(
            deadline_id=instance.id,
            level=level,
            trigger_date=calculator.add_business_days(
                instance.end_date, -lead_days, calendar_type
            ),
            title=f"{prefix}: {instance.name}",
            message=(
                f'Quedan {lead_days} días hábiles para completar "{instance.name}". '
                f"Próxima acción: {action}"
            ),
        ))

    reminders.append(DeadlineReminder(
        deadline_id=instance.id,
        level=AlertLevel.CRITICAL,
        trigger_date=instance.end_date,
        title=f"¡ÚLTIMO DÍA! {instance.name}",
        message=f'Hoy vence el plazo "{instance.name}". {action} de inmediato.',
    ))
    return reminders
