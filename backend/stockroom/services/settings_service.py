from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..models import OrganizationSetting
from ..money import round2
from ..permissions import Permission, check_permission
from ..validation import parse_amount

PACKAGING_COST_KEY = "packagingCostTotal"

# Per-organization numeric settings and their defaults
KNOWN_SETTINGS = {
    "packagingCostPlastic": "1.50",
    "packagingCostCarton": "6.00",
    "packagingCostStickers": "0.50",
    PACKAGING_COST_KEY: "8.00",
    "adsCostMonthly": "150.00",
    "exchangeRateEurToMad": "10.85",
}


def _default_for(key: str) -> str:
    # Deployment config can move the two defaults the cost math depends on
    if key == PACKAGING_COST_KEY:
        return str(current_app.config.get("DEFAULT_PACKAGING_COST", KNOWN_SETTINGS[key]))
    if key == "exchangeRateEurToMad":
        return str(current_app.config.get("DEFAULT_EXCHANGE_RATE", KNOWN_SETTINGS[key]))
    return KNOWN_SETTINGS[key]


def _require_known(key: str) -> None:
    if key not in KNOWN_SETTINGS:
        raise NotFoundError(f"Unknown setting: {key}", details={"key": key})


class SettingsService:
    def __init__(self, session):
        self.session = session

    def _row(self, org_id: int, key: str) -> OrganizationSetting | None:
        return self.session.query(OrganizationSetting).filter_by(org_id=org_id, key=key).first()

    def get_value(self, org_id: int, key: str) -> Decimal:
        _require_known(key)
        row = self._row(org_id, key)
        raw = row.value if row is not None and row.value is not None else _default_for(key)
        return round2(raw)

    def packaging_cost(self, org_id: int) -> Decimal:
        return self.get_value(org_id, PACKAGING_COST_KEY)

    def get_all(self, org_id: int) -> dict[str, float]:
        return {key: float(self.get_value(org_id, key)) for key in KNOWN_SETTINGS}

    def set_value(self, actor, key: str, value) -> Decimal:
        """Store a numeric setting for the actor's organization."""
        check_permission(actor.role, Permission.SETTINGS_UPDATE)
        _require_known(key)
        amount = parse_amount(value, key)
        if key == "exchangeRateEurToMad" and amount <= 0:
            raise ValidationError("exchangeRateEurToMad must be > 0")

        row = self._row(actor.org_id, key)
        if row is None:
            row = OrganizationSetting(org_id=actor.org_id, key=key)
            self.session.add(row)
        row.value = str(amount)
        row.updated_by_user_id = actor.id
        self.session.commit()
        return amount
