"""Seed a demo company with one profile per role and a small OKR tree.

Run: python scripts/seed_demo.py

Creates rows only if they are absent. Safe for repeats. Pair with
scripts/mint_dev_token.py to call the API as one of the seeded users.
"""
from __future__ import annotations

import sys
from datetime import date, timedelta
from pathlib import Path

# Ensure project root (parent of scripts/) is on sys.path when run as a file.
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from okr.app_factory import create_app  # noqa: E402
from okr.models import Activity, Company, Initiative, Objective, Profile, ProfilePermission  # noqa: E402
from okr.rls import system_session  # noqa: E402
from okr.roles import MEMBER_PERMISSION  # noqa: E402

COMPANY_SLUG = "demo-co"
USERS = (
    ("demo-corporativo", "ceo@demo.example", "Carla Corporativo", "corporativo", None),
    ("demo-gerente", "sales.lead@demo.example", "Gabriel Gerente", "gerente", "Sales"),
    ("demo-empleado", "rep@demo.example", "Elena Empleado", "empleado", "Sales"),
)


def main() -> None:
    app = create_app()
    with app.app_context():
        db = system_session()
        try:
            company = db.query(Company).filter(Company.slug == COMPANY_SLUG).first()
            if company is None:
                company = Company(name="Demo Co", slug=COMPANY_SLUG, settings={})
                db.add(company)
                db.flush()
            for uid, email, name, role, dept in USERS:
                if db.get(Profile, uid) is None:
                    db.add(Profile(id=uid, company_id=company.id, email=email, full_name=name, role_type=role, department=dept))
                    db.flush()
                    db.add(ProfilePermission(profile_id=uid, permission=MEMBER_PERMISSION))
            if db.query(Objective).filter(Objective.company_id == company.id).first() is None:
                today = date.today()
                obj = Objective(
                    company_id=company.id,
                    owner_id="demo-gerente",
                    title="Grow recurring revenue",
                    department="Sales",
                    status="in_progress",
                    progress=20,
                    start_date=today - timedelta(days=45),
                    end_date=today + timedelta(days=45),
                )
                db.add(obj)
                db.flush()
                ini = Initiative(
                    company_id=company.id,
                    objective_id=obj.id,
                    owner_id="demo-empleado",
                    title="Launch referral program",
                    status="in_progress",
                )
                db.add(ini)
                db.flush()
                db.add(
                    Activity(
                        company_id=company.id,
                        initiative_id=ini.id,
                        owner_id="demo-empleado",
                        title="Draft referral terms",
                        due_date=today + timedelta(days=7),
                    )
                )
            db.commit()
            print("Demo seed complete. Company:", company.slug)
            print("Users:", ", ".join(u[0] for u in USERS))
        finally:
            db.close()


if __name__ == "__main__":
    main()
