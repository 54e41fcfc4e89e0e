"""append_only_decision_tables

Revision ID: 9e3c5a7f1b24
Revises: 4b7d2e91c0a1
Create Date: 2026-10-12 09:31:05.118406

Enforce append-only semantics at the DB level for the two tables that
record human decisions on validation flags:
- audit_logs
- validation_overrides
UPDATE and DELETE are revoked from PUBLIC; SELECT and INSERT stay granted.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '9e3c5a7f1b24'
down_revision: Union[str, None] = '4b7d2e91c0a1'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

APPEND_ONLY_TABLES = ("audit_logs", "validation_overrides")


def upgrade() -> None:
    for table in APPEND_ONLY_TABLES:
        op.execute(f"REVOKE UPDATE, DELETE ON {table} FROM PUBLIC;")
        op.execute(f"GRANT SELECT, INSERT ON {table} TO PUBLIC;")


def downgrade() -> None:
    # Restore full DML access (only for disaster-recovery; normally never run)
    for table in APPEND_ONLY_TABLES:
        op.execute(f"GRANT UPDATE, DELETE ON {table} TO PUBLIC;")
