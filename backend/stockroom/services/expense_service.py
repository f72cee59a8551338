# Overview: Expense bookkeeping; linked expenses feed their arrivage's total cost.

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..models import EXPENSE_TYPES, Arrivage, Expense
from ..money import round2, to_decimal
from ..permissions import Permission, check_permission
from ..validation import ModelValidationPolicy, enforce_rules_expense, parse_datetime, validate_payload
from .concurrency import run_with_retry
from .cost_aggregator import ArrivageCostAggregator

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={"date", "amount_eur", "amount_dh", "description", "type", "arrivage_id"},
    required_on_create={"description"},
)

MAX_LIST_LIMIT = 200


class ExpenseService:
    """
    Expenses with optional arrivage link.

    Any change that touches a linked arrivage (create, amount edit, relink,
    delete) recalculates every affected arrivage in the same transaction;
    moving an expense from A to B recalculates both.
    """

    def __init__(self, session):
        self.session = session
        self.aggregator = ArrivageCostAggregator(session)

    def get_expense(self, org_id: int, expense_id: int) -> Expense:
        expense = self.session.query(Expense).filter_by(id=expense_id, org_id=org_id).first()
        if expense is None:
            raise NotFoundError("Expense not found", details={"expense_id": expense_id})
        return expense

    def _arrivage(self, org_id: int, arrivage_id: int | None) -> Arrivage | None:
        if arrivage_id is None:
            return None
        arrivage = self.session.query(Arrivage).filter_by(id=arrivage_id, org_id=org_id).first()
        if arrivage is None:
            raise NotFoundError("Arrivage not found", details={"arrivage_id": arrivage_id})
        return arrivage

    def _fill_amounts(self, expense: Expense, patch: dict) -> None:
        # One currency given: derive the other from the arrivage rate or the default rate
        if "amount_eur" in patch and "amount_dh" not in patch:
            expense.amount_dh = round2(to_decimal(expense.amount_eur) * self._rate(expense))
        elif "amount_dh" in patch and "amount_eur" not in patch:
            expense.amount_eur = round2(to_decimal(expense.amount_dh) / self._rate(expense))

    def _rate(self, expense: Expense):
        if expense.arrivage_id is not None:
            arrivage = self.session.get(Arrivage, expense.arrivage_id)
            if arrivage is not None:
                return to_decimal(arrivage.exchange_rate)
        return to_decimal(current_app.config.get("DEFAULT_EXCHANGE_RATE", "10.85"))

    def list_expenses(
        self,
        org_id: int,
        *,
        arrivage_id: int | None = None,
        type: str | None = None,
        start=None,
        end=None,
        limit: int = 100,
    ) -> list[Expense]:
        query = self.session.query(Expense).filter_by(org_id=org_id)
        if arrivage_id is not None:
            query = query.filter_by(arrivage_id=arrivage_id)
        if type:
            query = query.filter_by(type=type)
        start = parse_datetime(start, "start_date")
        end = parse_datetime(end, "end_date")
        if start is not None:
            query = query.filter(Expense.date >= start)
        if end is not None:
            query = query.filter(Expense.date <= end)
        limit = min(max(int(limit), 1), MAX_LIST_LIMIT)
        return query.order_by(Expense.date.desc(), Expense.id.desc()).limit(limit).all()

    def create_expense(self, actor, payload: dict) -> Expense:
        check_permission(actor.role, Permission.EXPENSES_CREATE)
        patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
        enforce_rules_expense(patch, EXPENSE_TYPES)
        if "amount_eur" not in patch and "amount_dh" not in patch:
            raise ValidationError("amount_eur or amount_dh is required")
        self._arrivage(actor.org_id, patch.get("arrivage_id"))

        def _op():
            expense = Expense(org_id=actor.org_id, created_by_user_id=actor.id, **patch)
            self.session.add(expense)
            self._fill_amounts(expense, patch)
            self.aggregator.recalculate_many([expense.arrivage_id], org_id=actor.org_id)
            self.session.commit()
            return expense

        return run_with_retry(self.session, _op)

    def update_expense(self, actor, expense_id: int, payload: dict) -> Expense:
        check_permission(actor.role, Permission.EXPENSES_UPDATE)
        patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=True)
        enforce_rules_expense(patch, EXPENSE_TYPES)
        if "arrivage_id" in patch:
            self._arrivage(actor.org_id, patch["arrivage_id"])

        def _op():
            expense = self.get_expense(actor.org_id, expense_id)
            previous_arrivage_id = expense.arrivage_id
            for key, value in patch.items():
                setattr(expense, key, value)
            self._fill_amounts(expense, patch)
            self.aggregator.recalculate_many([previous_arrivage_id, expense.arrivage_id], org_id=actor.org_id)
            self.session.commit()
            return expense

        return run_with_retry(self.session, _op)

    def delete_expense(self, actor, expense_id: int) -> None:
        check_permission(actor.role, Permission.EXPENSES_DELETE)

        def _op():
            expense = self.get_expense(actor.org_id, expense_id)
            arrivage_id = expense.arrivage_id
            self.session.delete(expense)
            self.aggregator.recalculate_many([arrivage_id], org_id=actor.org_id)
            self.session.commit()

        run_with_retry(self.session, _op)
