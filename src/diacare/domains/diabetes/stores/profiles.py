"""Diabetic profile and general settings, one row each per user."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from diacare.core.errors import NotFoundError, ValidationError
from diacare.core.storage.models import (
    DiabeticProfile,
    DiabeticType,
    GlucoseUnit,
    Locale,
    ThemeMode,
    TreatmentType,
    UserSettings,
)
from diacare.domains.diabetes.domain_logic.classifier import (
    GLUCOSE_CEILING_MGDL,
    GLUCOSE_FLOOR_MGDL,
)
from diacare.domains.diabetes.domain_logic.units import to_canonical
from diacare.domains.diabetes.stores.base import BaseStore

logger = logging.getLogger(__name__)

_PROFILE_FIELDS = {"diabetic_type", "treatment_type", "min_glucose", "max_glucose", "diagnosis_date"}
_SETTINGS_FIELDS = {"theme_mode", "units", "notifications_enabled", "locale", "onboarding_complete"}


def _reject_unknown(patch: dict[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(patch) - allowed)
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(unknown)}", field=unknown[0])


def _threshold(value: Any, unit: GlucoseUnit, field: str) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field) from None
    return int(round(to_canonical(number, unit)))


def _as_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValidationError(f"{field} must be true or false", field=field)


class ProfileStore(BaseStore):
    """Reads and validated upserts for ``diabetic_profiles`` and ``settings``."""

    # ------------------------------------------------------------------
    # Diabetic profile
    # ------------------------------------------------------------------

    def get_profile(self, user_id: str) -> DiabeticProfile:
        row = self._db.query_one(
            "SELECT * FROM diabetic_profiles WHERE user_id = ?", (user_id,)
        )
        if row is None:
            raise NotFoundError(f"No diabetic profile for user {user_id}")
        return DiabeticProfile(
            user_id=row["user_id"],
            diabetic_type=DiabeticType(row["diabetic_type"]),
            treatment_type=TreatmentType(row["treatment_type"]),
            min_glucose=row["min_glucose"],
            max_glucose=row["max_glucose"],
            diagnosis_date=row["diagnosis_date"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def update_profile(
        self,
        user_id: str,
        patch: dict[str, Any],
        *,
        unit: GlucoseUnit | str = GlucoseUnit.MG_DL,
    ) -> DiabeticProfile:
        """Merge ``patch`` onto the stored profile (or the defaults) and save it.

        Thresholds in ``patch`` are read in ``unit`` and stored as whole mg/dL.

        Raises:
            ValidationError: Unknown key, bad enum value, or thresholds that
                break ``20 <= min < max <= 600``. Nothing is written.
        """
        _reject_unknown(patch, _PROFILE_FIELDS)
        unit = GlucoseUnit.parse(unit)
        now = self._now_iso()
        try:
            profile = self.get_profile(user_id)
            is_new = False
        except NotFoundError:
            profile = DiabeticProfile(user_id=user_id, created_at=now)
            is_new = True

        if "diabetic_type" in patch:
            profile.diabetic_type = DiabeticType.parse(patch["diabetic_type"], "diabetic_type")
        if "treatment_type" in patch:
            profile.treatment_type = TreatmentType.parse(patch["treatment_type"], "treatment_type")
        if "min_glucose" in patch:
            profile.min_glucose = _threshold(patch["min_glucose"], unit, "min_glucose")
        if "max_glucose" in patch:
            profile.max_glucose = _threshold(patch["max_glucose"], unit, "max_glucose")
        if "diagnosis_date" in patch:
            profile.diagnosis_date = self._diagnosis_date(patch["diagnosis_date"])

        for name in ("min_glucose", "max_glucose"):
            value = getattr(profile, name)
            if not GLUCOSE_FLOOR_MGDL <= value <= GLUCOSE_CEILING_MGDL:
                raise ValidationError(
                    f"{name} must be between {GLUCOSE_FLOOR_MGDL} and "
                    f"{GLUCOSE_CEILING_MGDL} mg/dL",
                    field=name,
                )
        if profile.min_glucose >= profile.max_glucose:
            raise ValidationError(
                "Minimum glucose must be lower than maximum glucose", field="min_glucose"
            )

        profile.updated_at = now
        with self._db.transaction() as conn:
            if conn.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone() is None:
                raise NotFoundError(f"User {user_id} not found")
            conn.execute(
                """INSERT INTO diabetic_profiles (
                    user_id, diabetic_type, treatment_type, min_glucose, max_glucose,
                    diagnosis_date, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    diabetic_type = excluded.diabetic_type,
                    treatment_type = excluded.treatment_type,
                    min_glucose = excluded.min_glucose,
                    max_glucose = excluded.max_glucose,
                    diagnosis_date = excluded.diagnosis_date,
                    updated_at = excluded.updated_at""",
                (
                    user_id,
                    profile.diabetic_type.value,
                    profile.treatment_type.value,
                    profile.min_glucose,
                    profile.max_glucose,
                    profile.diagnosis_date,
                    profile.created_at,
                    profile.updated_at,
                ),
            )
        logger.info("%s diabetic profile for user %s", "Created" if is_new else "Updated", user_id)
        return profile

    def _diagnosis_date(self, value: Any) -> str | None:
        if value in (None, ""):
            return None
        try:
            parsed = date.fromisoformat(str(value))
        except ValueError:
            raise ValidationError(
                "Diagnosis date must be YYYY-MM-DD", field="diagnosis_date"
            ) from None
        if parsed > self._now().date():
            raise ValidationError("Diagnosis date cannot be in the future", field="diagnosis_date")
        return parsed.isoformat()

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings(self, user_id: str) -> UserSettings:
        row = self._db.query_one("SELECT * FROM settings WHERE user_id = ?", (user_id,))
        if row is None:
            raise NotFoundError(f"No settings for user {user_id}")
        return UserSettings(
            user_id=row["user_id"],
            theme_mode=ThemeMode(row["theme_mode"]),
            units=GlucoseUnit(row["units"]),
            notifications_enabled=bool(row["notifications_enabled"]),
            locale=Locale(row["locale"]),
            onboarding_complete=bool(row["onboarding_complete"]),
            updated_at=row["updated_at"],
        )

    def update_settings(self, user_id: str, patch: dict[str, Any]) -> UserSettings:
        """Update any subset of settings. Stored glucose values are never rewritten."""
        _reject_unknown(patch, _SETTINGS_FIELDS)
        settings = self.get_settings(user_id)

        if "theme_mode" in patch:
            settings.theme_mode = ThemeMode.parse(patch["theme_mode"], "theme_mode")
        if "units" in patch:
            settings.units = GlucoseUnit.parse(patch["units"], "units")
        if "notifications_enabled" in patch:
            settings.notifications_enabled = _as_bool(
                patch["notifications_enabled"], "notifications_enabled"
            )
        if "locale" in patch:
            settings.locale = Locale.parse(patch["locale"], "locale")
        if "onboarding_complete" in patch:
            settings.onboarding_complete = _as_bool(
                patch["onboarding_complete"], "onboarding_complete"
            )

        settings.updated_at = self._now_iso()
        with self._db.transaction() as conn:
            conn.execute(
                """UPDATE settings SET theme_mode = ?, units = ?, notifications_enabled = ?,
                   locale = ?, onboarding_complete = ?, updated_at = ?
                   WHERE user_id = ?""",
                (
                    settings.theme_mode.value,
                    settings.units.value,
                    int(settings.notifications_enabled),
                    settings.locale.value,
                    int(settings.onboarding_complete),
                    settings.updated_at,
                    user_id,
                ),
            )
        logger.info("Updated settings for user %s (%s)", user_id, ", ".join(sorted(patch)))
        return settings
