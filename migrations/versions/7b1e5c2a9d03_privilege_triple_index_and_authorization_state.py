"""unique privilege triples without area, authorization state version

Revision ID: 7b1e5c2a9d03
Revises: 3f2a9c1d7e40
Create Date: 2026-10-19 15:40:07.902114

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7b1e5c2a9d03'
down_revision: Union[str, Sequence[str], None] = '3f2a9c1d7e40'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_DUPLICATE_NULL_AREA = (
    "SELECT p.id FROM privileges p WHERE p.area IS NULL AND EXISTS ("
    "SELECT 1 FROM privileges q WHERE q.area IS NULL"
    " AND q.controller = p.controller AND q.action = p.action AND q.id < p.id)"
)


def upgrade() -> None:
    """Index (coalesce(area, ''), controller, action) and add the authorization_state row."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    existing_indexes = {ix["name"] for ix in inspector.get_indexes("privileges")}
    if "ux_privileges_triple" not in existing_indexes:
        # Keep the oldest of each duplicated area-less triple.
        op.execute(sa.text(f"DELETE FROM role_privileges WHERE privilege_id IN ({_DUPLICATE_NULL_AREA})"))
        op.execute(sa.text(f"DELETE FROM privileges WHERE id IN ({_DUPLICATE_NULL_AREA})"))
        op.create_index(
            "ux_privileges_triple",
            "privileges",
            [sa.text("coalesce(area, '')"), "controller", "action"],
            unique=True,
        )

    if "authorization_state" not in existing_tables:
        state = op.create_table(
            "authorization_state",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        )
        op.bulk_insert(state, [{"id": 1, "version": 0}])


def downgrade() -> None:
    op.drop_table("authorization_state")
    op.drop_index("ux_privileges_triple", table_name="privileges")
