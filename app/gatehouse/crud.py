"""
Generic persistence helpers: repositories, a unit of work, and a CRUD service
that is configured with a view mapper and per-entity hook functions.
"""
from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.gatehouse.models import Base

M = TypeVar("M", bound=Base)
V = TypeVar("V")


class Repository(Generic[M]):
    def __init__(self, s: Session, model: type[M]) -> None:
        self.s = s
        self.model = model

    def get(self, entity_id: Any) -> M | None:
        return self.s.get(self.model, entity_id)

    def query(self, *criteria: Any, order_by: Any = None) -> list[M]:
        stmt = select(self.model).where(*criteria)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        return list(self.s.scalars(stmt).all())

    def insert(self, obj: M) -> M:
        self.s.add(obj)
        return obj

    def update(self, obj: M) -> M:
        return self.s.merge(obj)

    def delete(self, entity_id: Any) -> None:
        obj = self.get(entity_id)
        if obj is not None:
            self.s.delete(obj)


class UnitOfWork:
    """One session, one transaction: repositories share it, commit() applies everything."""

    def __init__(self, s: Session) -> None:
        self.s = s

    def repository(self, model: type[M]) -> Repository[M]:
        return Repository(self.s, model)

    def flush(self) -> None:
        self.s.flush()

    def commit(self) -> None:
        try:
            self.s.commit()
        except Exception:
            self.s.rollback()
            raise

    def rollback(self) -> None:
        self.s.rollback()


@dataclass(frozen=True)
class ViewMapper(Generic[M, V]):
    """to_model(view, None) builds a new model; to_model(view, model) copies view fields onto it."""

    to_view: Callable[[M], V]
    to_model: Callable[[V, M | None], M]


PersistHook = Callable[[UnitOfWork, Any, Any], None]
DeleteHook = Callable[[UnitOfWork, Any], None]


class CrudService(Generic[M, V]):
    """
    Create/edit/delete for one model type. Extra persistence steps are passed in
    as hook functions and run inside the same transaction, before commit.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        model: type[M],
        mapper: ViewMapper[M, V],
        *,
        view_id: Callable[[V], Any] = lambda view: getattr(view, "id"),
        on_create: Sequence[PersistHook] = (),
        on_edit: Sequence[PersistHook] = (),
        before_delete: Sequence[DeleteHook] = (),
        order_by: Any = None,
    ) -> None:
        self.uow = uow
        self.model = model
        self.mapper = mapper
        self.view_id = view_id
        self.on_create = tuple(on_create)
        self.on_edit = tuple(on_edit)
        self.before_delete = tuple(before_delete)
        self.order_by = order_by

    @property
    def repository(self) -> Repository[M]:
        return self.uow.repository(self.model)

    def get(self, entity_id: Any) -> M | None:
        return self.repository.get(entity_id)

    def get_view(self, entity_id: Any) -> V | None:
        model = self.get(entity_id)
        return self.mapper.to_view(model) if model is not None else None

    def get_views(self) -> list[V]:
        return [self.mapper.to_view(m) for m in self.repository.query(order_by=self.order_by)]

    def create(self, view: V) -> M:
        model = self.repository.insert(self.mapper.to_model(view, None))
        self.uow.flush()
        for hook in self.on_create:
            hook(self.uow, model, view)
        self.uow.commit()
        return model

    def edit(self, view: V) -> M:
        model = self.get(self.view_id(view))
        if model is None:
            raise LookupError(f"{self.model.__name__} {self.view_id(view)} not found")
        model = self.repository.update(self.mapper.to_model(view, model))
        for hook in self.on_edit:
            hook(self.uow, model, view)
        self.uow.commit()
        return model

    def delete(self, entity_id: Any) -> None:
        model = self.get(entity_id)
        if model is None:
            raise LookupError(f"{self.model.__name__} {entity_id} not found")
        for hook in self.before_delete:
            hook(self.uow, model)
        self.uow.flush()
        self.repository.delete(entity_id)
        self.uow.commit()
