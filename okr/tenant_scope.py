"""Centralized tenant and role visibility policy.

All reads of OKR entities go through `TenantScope`. The company filter is applied
first and unconditionally; the role filter narrows further:

- corporativo: every row of the company
- gerente: rows whose objective sits in its department, plus rows it owns
- empleado: rows it owns, plus children of rows it owns

Rows outside the scope are reported as missing (404), never as forbidden, so
ids from other tenants are not confirmed to exist.
"""
from __future__ import annotations

from sqlalchemy import false, or_
from sqlalchemy.orm import Query, Session

from .app_authz import AuthzError, ProfileContext
from .errors import NotFoundError, ValidationError
from .models import Activity, Initiative, KeyResult, Objective, Profile


class TenantScope:
    def __init__(self, profile: ProfileContext):
        self.profile = profile

    @property
    def company_id(self) -> str:
        return self.profile.company_id

    def _department_clause(self):  # type: ignore[no-untyped-def]
        dept = self.profile.department
        if not dept:
            return false()
        return Objective.department == dept

    # ---- Visibility filters -------------------------------------------------

    def objectives(self, q: Query) -> Query:
        q = q.filter(Objective.company_id == self.company_id)
        me = self.profile.id
        if self.profile.role == "corporativo":
            return q
        if self.profile.role == "gerente":
            return q.filter(or_(self._department_clause(), Objective.owner_id == me))
        return q.filter(Objective.owner_id == me)

    def key_results(self, q: Query) -> Query:
        q = q.join(Objective, Objective.id == KeyResult.objective_id).filter(
            KeyResult.company_id == self.company_id
        )
        return self.objectives(q)

    def initiatives(self, q: Query) -> Query:
        q = q.join(Objective, Objective.id == Initiative.objective_id).filter(
            Initiative.company_id == self.company_id,
            Objective.company_id == self.company_id,
        )
        me = self.profile.id
        if self.profile.role == "corporativo":
            return q
        if self.profile.role == "gerente":
            return q.filter(or_(self._department_clause(), Initiative.owner_id == me))
        return q.filter(or_(Initiative.owner_id == me, Objective.owner_id == me))

    def activities(self, q: Query) -> Query:
        q = (
            q.join(Initiative, Initiative.id == Activity.initiative_id)
            .join(Objective, Objective.id == Initiative.objective_id)
            .filter(Activity.company_id == self.company_id, Initiative.company_id == self.company_id)
        )
        me = self.profile.id
        if self.profile.role == "corporativo":
            return q
        if self.profile.role == "gerente":
            return q.filter(
                or_(self._department_clause(), Activity.owner_id == me, Initiative.owner_id == me)
            )
        return q.filter(or_(Activity.owner_id == me, Initiative.owner_id == me))

    # ---- Single-row lookups ---------------------------------------------------

    def get_objective(self, db: Session, objective_id: str) -> Objective:
        obj = self.objectives(db.query(Objective)).filter(Objective.id == objective_id).first()
        if obj is None:
            raise NotFoundError("objective not found")
        return obj

    def get_key_result(self, db: Session, key_result_id: str) -> KeyResult:
        kr = self.key_results(db.query(KeyResult)).filter(KeyResult.id == key_result_id).first()
        if kr is None:
            raise NotFoundError("key result not found")
        return kr

    def get_initiative(self, db: Session, initiative_id: str) -> Initiative:
        ini = self.initiatives(db.query(Initiative)).filter(Initiative.id == initiative_id).first()
        if ini is None:
            raise NotFoundError("initiative not found")
        return ini

    def get_activity(self, db: Session, activity_id: str) -> Activity:
        act = self.activities(db.query(Activity)).filter(Activity.id == activity_id).first()
        if act is None:
            raise NotFoundError("activity not found")
        return act

    # ---- Write checks -----------------------------------------------------------

    def can_edit(self, department: str | None, *owner_ids: str | None) -> bool:
        if self.profile.role == "corporativo":
            return True
        if self.profile.id in owner_ids:
            return True
        if self.profile.role == "gerente":
            return bool(self.profile.department) and department == self.profile.department
        return False

    def require_edit(self, department: str | None, *owner_ids: str | None) -> None:
        if not self.can_edit(department, *owner_ids):
            raise AuthzError("insufficient permissions for this record")

    def assert_owner_in_company(self, db: Session, owner_id: object) -> str:
        if not isinstance(owner_id, str) or not owner_id.strip():
            raise ValidationError("owner_id must be a profile id")
        found = (
            db.query(Profile.id)
            .filter(Profile.id == owner_id, Profile.company_id == self.company_id)
            .first()
        )
        if found is None:
            raise ValidationError("owner_id is not a member of this company")
        return owner_id

    def objective_meta(self, db: Session, objective_id: str) -> tuple[str | None, str | None]:
        """(department, owner_id) of an objective in this company."""
        row = (
            db.query(Objective.department, Objective.owner_id)
            .filter(Objective.id == objective_id, Objective.company_id == self.company_id)
            .first()
        )
        return (row[0], row[1]) if row else (None, None)


__all__ = ["TenantScope"]
