# Overview: Flask API routes for expenses.

from flask import Blueprint, request, g

from ..extensions import db
from ..permissions import Permission
from ..decorators import require_auth, require_permission
from ..services.expense_service import ExpenseService
from ..validation import json_object

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@require_auth
@require_permission(Permission.EXPENSES_READ)
def list_expenses():
    """
    Query params: arrivage_id, type, start_date, end_date (ISO-8601), limit (1-200, default 100).
    """
    expenses = ExpenseService(db.session).list_expenses(
        g.org_id,
        arrivage_id=request.args.get("arrivage_id", type=int),
        type=request.args.get("type"),
        start=request.args.get("start_date"),
        end=request.args.get("end_date"),
        limit=request.args.get("limit", default=100, type=int),
    )
    return {"items": [e.to_dict() for e in expenses], "count": len(expenses)}


@expenses_bp.post("")
@require_auth
@require_permission(Permission.EXPENSES_CREATE)
def create_expense():
    data = json_object(request.get_json(silent=True))
    expense = ExpenseService(db.session).create_expense(g.current_user, data)
    return {"expense": expense.to_dict()}, 201


@expenses_bp.patch("/<int:expense_id>")
@require_auth
@require_permission(Permission.EXPENSES_UPDATE)
def update_expense(expense_id: int):
    data = json_object(request.get_json(silent=True))
    expense = ExpenseService(db.session).update_expense(g.current_user, expense_id, data)
    return {"expense": expense.to_dict()}


@expenses_bp.delete("/<int:expense_id>")
@require_auth
@require_permission(Permission.EXPENSES_DELETE)
def delete_expense(expense_id: int):
    ExpenseService(db.session).delete_expense(g.current_user, expense_id)
    return {"deleted": True, "expense_id": expense_id}
