from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Privilege(Base):
    __tablename__ = "privileges"
    __table_args__ = (
        UniqueConstraint("area", "controller", "action", name="uq_privileges_area_controller_action"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    area: Mapped[str | None] = mapped_column(String(128), nullable=True)  # None = global controller
    controller: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "roles"
    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "edit"

    role_privileges: Mapped[list["RolePrivilege"]] = relationship(
        back_populates="privilege",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def triple(self) -> tuple[str | None, str, str]:
        return (self.area, self.controller, self.action)

    def __repr__(self) -> str:
        return f"<Privilege {self.id} {self.area}/{self.controller}/{self.action}>"


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    role_privileges: Mapped[list["RolePrivilege"]] = relationship(
        back_populates="role",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )
    accounts: Mapped[list["Account"]] = relationship(back_populates="role")


class RolePrivilege(Base):
    __tablename__ = "role_privileges"
    __table_args__ = (
        UniqueConstraint("role_id", "privilege_id", name="uq_role_privileges_role_privilege"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    privilege_id: Mapped[int] = mapped_column(ForeignKey("privileges.id", ondelete="CASCADE"), nullable=False)

    role: Mapped[Role] = relationship(back_populates="role_privileges")
    privilege: Mapped[Privilege] = relationship(back_populates="role_privileges", lazy="joined")


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)  # stored lower-case
    passhash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    role_id: Mapped[int | None] = mapped_column(ForeignKey("roles.id", ondelete="SET NULL"), nullable=True, index=True)
    role: Mapped[Role | None] = relationship(back_populates="accounts", lazy="joined")


class AuditEvent(Base):
    """
    Append-only audit trail event.
    Written in the same transaction as the change it describes.
    """

    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_account_id: Mapped[int | None] = mapped_column(ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    actor_username: Mapped[str | None] = mapped_column(String(64), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "role.edit"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Role"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string


# NULL areas compare distinct in plain unique constraints; the index folds them to ''.
Index(
    "ux_privileges_triple",
    func.coalesce(Privilege.area, ""),
    Privilege.controller,
    Privilege.action,
    unique=True,
)


class AuthorizationState(Base):
    """
    Single row whose version is bumped by every write that changes who may do
    what. Each process compares it with its cached snapshot's version.
    """

    __tablename__ = "authorization_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
