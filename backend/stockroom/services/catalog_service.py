# Overview: Brands, categories and suppliers that products and arrivages point at.

"""
Catalog reference data, one table per kind, each scoped by org_id.

- names are unique within an organization (ConflictError on a duplicate)
- an id owned by another organization is reported as not found
- a row still referenced by a product (brands, categories) or an arrivage
  (suppliers) cannot be deleted
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Arrivage, Brand, Category, Product, Supplier
from ..permissions import Permission, check_permission
from ..validation import ModelValidationPolicy, validate_payload


@dataclass(frozen=True)
class CatalogKind:
    model: type
    label: str
    policy: ModelValidationPolicy
    read: Permission
    create: Permission
    update: Permission
    delete: Permission
    # (model, foreign key column) rows that block a delete
    referenced_by: tuple


KINDS = {
    "brands": CatalogKind(
        model=Brand,
        label="Brand",
        policy=ModelValidationPolicy(writable_fields={"name", "description"}, required_on_create={"name"}),
        read=Permission.PRODUCTS_READ,
        create=Permission.PRODUCTS_CREATE,
        update=Permission.PRODUCTS_UPDATE,
        delete=Permission.PRODUCTS_DELETE,
        referenced_by=((Product, Product.brand_id),),
    ),
    "categories": CatalogKind(
        model=Category,
        label="Category",
        policy=ModelValidationPolicy(writable_fields={"name", "description"}, required_on_create={"name"}),
        read=Permission.PRODUCTS_READ,
        create=Permission.PRODUCTS_CREATE,
        update=Permission.PRODUCTS_UPDATE,
        delete=Permission.PRODUCTS_DELETE,
        referenced_by=((Product, Product.category_id),),
    ),
    "suppliers": CatalogKind(
        model=Supplier,
        label="Supplier",
        policy=ModelValidationPolicy(writable_fields={"name", "contact_info"}, required_on_create={"name"}),
        read=Permission.ARRIVAGES_READ,
        create=Permission.ARRIVAGES_CREATE,
        update=Permission.ARRIVAGES_UPDATE,
        delete=Permission.ARRIVAGES_DELETE,
        referenced_by=((Arrivage, Arrivage.supplier_id),),
    ),
}


class CatalogService:
    def __init__(self, session, kind: str):
        if kind not in KINDS:
            raise ValidationError(f"Unknown catalog kind: {kind}")
        self.session = session
        self.kind = KINDS[kind]

    def _not_found(self, entry_id: int) -> NotFoundError:
        return NotFoundError(f"{self.kind.label} not found", details={"id": entry_id})

    def _duplicate(self) -> ConflictError:
        return ConflictError(f"{self.kind.label} with this name already exists")

    def _name_taken(self, org_id: int, name: str, *, exclude_id: int | None = None) -> bool:
        model = self.kind.model
        query = self.session.query(model.id).filter(model.org_id == org_id, model.name == name)
        if exclude_id is not None:
            query = query.filter(model.id != exclude_id)
        return query.first() is not None

    def list_entries(self, org_id: int, *, search: str | None = None) -> list:
        model = self.kind.model
        query = self.session.query(model).filter(model.org_id == org_id)
        if search:
            query = query.filter(model.name.ilike(f"%{search.strip()}%"))
        return query.order_by(model.name.asc(), model.id.asc()).all()

    def get_entry(self, org_id: int, entry_id: int):
        model = self.kind.model
        entry = self.session.query(model).filter_by(id=entry_id, org_id=org_id).first()
        if entry is None:
            raise self._not_found(entry_id)
        return entry

    def usage_count(self, entry) -> int:
        return sum(
            self.session.query(ref_model).filter(column == entry.id, ref_model.org_id == entry.org_id).count()
            for ref_model, column in self.kind.referenced_by
        )

    def create_entry(self, actor, payload: dict):
        check_permission(actor.role, self.kind.create)
        patch = validate_payload(model=self.kind.model, payload=payload, policy=self.kind.policy, partial=False)
        if self._name_taken(actor.org_id, patch["name"]):
            raise self._duplicate()

        entry = self.kind.model(org_id=actor.org_id, **patch)
        self.session.add(entry)
        try:
            self.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent create of the same name
            self.session.rollback()
            raise self._duplicate()
        return entry

    def update_entry(self, actor, entry_id: int, payload: dict):
        check_permission(actor.role, self.kind.update)
        patch = validate_payload(model=self.kind.model, payload=payload, policy=self.kind.policy, partial=True)
        entry = self.get_entry(actor.org_id, entry_id)
        if "name" in patch and self._name_taken(actor.org_id, patch["name"], exclude_id=entry.id):
            raise self._duplicate()

        for key, value in patch.items():
            setattr(entry, key, value)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise self._duplicate()
        return entry

    def delete_entry(self, actor, entry_id: int) -> None:
        check_permission(actor.role, self.kind.delete)
        entry = self.get_entry(actor.org_id, entry_id)
        in_use = self.usage_count(entry)
        if in_use:
            raise ConflictError(
                f"Cannot delete a {self.kind.label.lower()} that is still in use",
                details={"in_use": in_use},
            )
        self.session.delete(entry)
        self.session.commit()
