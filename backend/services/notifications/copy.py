"""Localized notification copy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from .categories import NotificationCategory

DEFAULT_LOCALE = "en"
SUPPORTED_LOCALES = frozenset({"en", "uk"})


@dataclass(frozen=True)
class NotificationCopy:
    title: str
    body: str
    cta_label: str | None


class CopyResolver(Protocol):
    def __call__(
        self,
        locale: str,
        category: NotificationCategory | str,
        role: str | None = None,
        stage: str | None = None,
        delta: int | None = None,
    ) -> NotificationCopy: ...


_C = NotificationCategory

_BASE_COPY: dict[str, dict[NotificationCategory, NotificationCopy]] = {
    "en": {
        _C.INVITE: NotificationCopy(
            "New agreement invitation",
            "Confirm only if you're ready to take responsibility",
            "Review",
        ),
        _C.INVITE_FOLLOWUP: NotificationCopy(
            "Agreement confirmed", "Responsibility is now active", "Open"
        ),
        _C.DUE_SOON: NotificationCopy(
            "Deadline approaching",
            "Time is running out on a confirmed agreement",
            "View",
        ),
        _C.OVERDUE: NotificationCopy(
            "Agreement is overdue", "Update the status or mark it completed", "Open"
        ),
        _C.COMPLETION_WAITING: NotificationCopy(
            "Action needed", "Agreement marked completed. Confirm or dispute.", "Review"
        ),
        _C.COMPLETION_FOLLOWUP: NotificationCopy(
            "Confirmation pending",
            "Pending confirmation. Someone's reputation depends on it.",
            "Review",
        ),
        _C.DISPUTE: NotificationCopy(
            "Outcome disputed", "The agreement was disputed. Check details.", "View"
        ),
        _C.CONFIRMED: NotificationCopy("Outcome confirmed", "Reputation updated", "View"),
    },
    "uk": {
        _C.INVITE: NotificationCopy(
            "Запрошення до домовленості",
            "Підтверджуйте лише якщо готові взяти відповідальність",
            "Переглянути",
        ),
        _C.INVITE_FOLLOWUP: NotificationCopy(
            "Домовленість підтверджено", "Відповідальність активна", "Відкрити"
        ),
        _C.DUE_SOON: NotificationCopy(
            "Наближається дедлайн",
            "Час спливає для підтвердженої домовленості",
            "Переглянути",
        ),
        _C.OVERDUE: NotificationCopy(
            "Дедлайн минув", "Оновіть статус або позначте виконаною", "Відкрити"
        ),
        _C.COMPLETION_WAITING: NotificationCopy(
            "Потрібна дія",
            "Домовленість позначено виконаною. Підтвердіть або оскаржте.",
            "Перевірити",
        ),
        _C.COMPLETION_FOLLOWUP: NotificationCopy(
            "Очікує підтвердження",
            "Очікує підтвердження. Від цього залежить чиясь репутація.",
            "Перевірити",
        ),
        _C.DISPUTE: NotificationCopy(
            "Результат оскаржено",
            "Домовленість оскаржено. Перевірте деталі.",
            "Переглянути",
        ),
        _C.CONFIRMED: NotificationCopy(
            "Результат підтверджено", "Репутацію оновлено", "Переглянути"
        ),
    },
}

_ROLE_COPY: dict[str, dict[tuple[NotificationCategory, str], NotificationCopy]] = {
    "en": {
        (_C.INVITE_FOLLOWUP, "creator"): NotificationCopy(
            "Agreement accepted", "The other side confirmed the agreement", "Open"
        ),
        (_C.OVERDUE, "creator"): NotificationCopy(
            "Agreement overdue", "An agreement you're waiting for is overdue", "Open"
        ),
    },
    "uk": {
        (_C.INVITE_FOLLOWUP, "creator"): NotificationCopy(
            "Домовленість прийнято", "Інша сторона підтвердила домовленість", "Відкрити"
        ),
        (_C.OVERDUE, "creator"): NotificationCopy(
            "Домовленість прострочена",
            "Домовленість, на яку ви очікуєте, прострочена",
            "Відкрити",
        ),
    },
}

_STAGE_BODIES: dict[str, dict[tuple[NotificationCategory, str], str]] = {
    "en": {
        (_C.INVITE, "followup"): "Still pending. Confirm or decline.",
        (_C.COMPLETION_FOLLOWUP, "24h"): "Pending confirmation. Someone's reputation depends on it.",
        (_C.COMPLETION_FOLLOWUP, "72h"): "Still pending. Please confirm or dispute.",
    },
    "uk": {
        (_C.INVITE, "followup"): "Все ще очікує. Підтвердьте або відхиліть.",
        (_C.COMPLETION_FOLLOWUP, "24h"): "Очікує підтвердження. Від цього залежить чиясь репутація.",
        (_C.COMPLETION_FOLLOWUP, "72h"): "Все ще очікує. Підтвердіть або оскаржте.",
    },
}

_DELTA_BODIES = {
    "en": "Reputation updated: {delta}",
    "uk": "Репутацію оновлено: {delta}",
}


def normalize_locale(locale: str | None) -> str:
    if not locale:
        return DEFAULT_LOCALE
    candidate = locale.strip().lower().replace("_", "-").split("-", 1)[0]
    if candidate in SUPPORTED_LOCALES:
        return candidate
    return DEFAULT_LOCALE


def _strip_trailing_period(value: str) -> str:
    stripped = value.rstrip()
    if stripped.endswith(".") and not stripped.endswith(".."):
        return stripped[:-1]
    return stripped


def resolve_notification_copy(
    locale: str,
    category: NotificationCategory | str,
    role: str | None = None,
    stage: str | None = None,
    delta: int | None = None,
) -> NotificationCopy:
    resolved_locale = normalize_locale(locale)
    resolved_category = NotificationCategory(category)

    base = _BASE_COPY[resolved_locale][resolved_category]
    if role:
        base = _ROLE_COPY[resolved_locale].get((resolved_category, role), base)

    body = base.body
    if stage:
        body = _STAGE_BODIES[resolved_locale].get((resolved_category, stage), body)
    if resolved_category is NotificationCategory.CONFIRMED and delta is not None:
        formatted = f"+{delta}" if delta >= 0 else str(delta)
        body = _DELTA_BODIES[resolved_locale].format(delta=formatted)

    return NotificationCopy(
        title=_strip_trailing_period(base.title),
        body=_strip_trailing_period(body),
        cta_label=base.cta_label,
    )
