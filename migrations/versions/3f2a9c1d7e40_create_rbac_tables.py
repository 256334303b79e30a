"""create accounts, roles, privileges and audit tables

Revision ID: 3f2a9c1d7e40
Revises:
Create Date: 2026-10-19 09:12:44.318027

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7e40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create privileges, roles, role_privileges, accounts and audit_events."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    if "privileges" not in existing_tables:
        op.create_table(
            "privileges",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("area", sa.String(128), nullable=True),
            sa.Column("controller", sa.String(128), nullable=False),
            sa.Column("action", sa.String(128), nullable=False),
            sa.UniqueConstraint("area", "controller", "action", name="uq_privileges_area_controller_action"),
        )

    if "roles" not in existing_tables:
        op.create_table(
            "roles",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(128), nullable=False, unique=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "role_privileges" not in existing_tables:
        op.create_table(
            "role_privileges",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
            sa.Column("privilege_id", sa.Integer(), sa.ForeignKey("privileges.id", ondelete="CASCADE"), nullable=False),
            sa.UniqueConstraint("role_id", "privilege_id", name="uq_role_privileges_role_privilege"),
        )
        op.create_index("ix_role_privileges_role_id", "role_privileges", ["role_id"])

    if "accounts" not in existing_tables:
        op.create_table(
            "accounts",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("username", sa.String(64), nullable=False, unique=True),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("passhash", sa.String(255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="SET NULL"), nullable=True),
        )
        op.create_index("ix_accounts_role_id", "accounts", ["role_id"])

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("actor_account_id", sa.Integer(), sa.ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_username", sa.String(64), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
        )


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_index("ix_accounts_role_id", table_name="accounts")
    op.drop_table("accounts")
    op.drop_index("ix_role_privileges_role_id", table_name="role_privileges")
    op.drop_table("role_privileges")
    op.drop_table("roles")
    op.drop_table("privileges")
