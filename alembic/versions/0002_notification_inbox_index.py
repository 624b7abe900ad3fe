"""Notification inbox index

Revision ID: 0002_notification_inbox_index
Revises: 0001_initial_schema
Create Date: 2026-10-17

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0002_notification_inbox_index"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None

INDEX_NAME = "ix_notifications_user_id_is_read"


def _has_table(insp: sa.Inspector, table: str) -> bool:
    return table in insp.get_table_names()


def _index_names(insp: sa.Inspector, table: str) -> set[str]:
    return {idx["name"] for idx in insp.get_indexes(table)}


def upgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)
    if _has_table(insp, "notifications") and INDEX_NAME not in _index_names(insp, "notifications"):
        op.create_index(INDEX_NAME, "notifications", ["user_id", "is_read"], unique=False)


def downgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)
    if _has_table(insp, "notifications") and INDEX_NAME in _index_names(insp, "notifications"):
        op.drop_index(INDEX_NAME, table_name="notifications")
