"""Row-level security policies (Postgres only)

Revision ID: 0002_rls_policies
Revises: 0001_init
Create Date: 2026-10-16
"""
from __future__ import annotations

import os
import sys

from alembic import op

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..")))
from okr.rls import drop_policy_statements, policy_statements  # noqa: E402

# revision identifiers, used by Alembic.
revision = "0002_rls_policies"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade() -> None:
    if op.get_bind().dialect.name != "postgresql":
        return
    for stmt in policy_statements():
        op.execute(stmt)


def downgrade() -> None:
    if op.get_bind().dialect.name != "postgresql":
        return
    for stmt in drop_policy_statements():
        op.execute(stmt)
