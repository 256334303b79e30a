"""
Privilege tree for the role editor.

    All
    ├── Administration            (area)
    │   └── Roles                 (controller)
    │       ├── Create            (action, leaf = privilege id)
    │       └── Edit
    └── Home                      (controller of a privilege without area)
        └── View list
"""
from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TypeVar

from app.gatehouse import titles
from app.gatehouse.models import Privilege

T = TypeVar("T")


@dataclass
class TreeNode:
    name: str | None = None
    id: int | None = None  # set on leaves only
    nodes: list["TreeNode"] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return self.id is not None

    def leaves(self) -> list["TreeNode"]:
        if self.is_leaf:
            return [self]
        found: list[TreeNode] = []
        for node in self.nodes:
            found.extend(node.leaves())
        return found


@dataclass
class Tree:
    nodes: list[TreeNode] = field(default_factory=list)
    selected_ids: list[int] = field(default_factory=list)

    def leaf_ids(self) -> list[int]:
        return [leaf.id for node in self.nodes for leaf in node.leaves()]  # type: ignore[misc]


@dataclass(frozen=True)
class TitledPrivilege:
    id: int
    area: str | None
    controller: str
    action: str


@dataclass(frozen=True)
class TitleLookup:
    area: Callable[[str | None], str | None] = titles.area_title
    controller: Callable[[str], str] = titles.controller_title
    action: Callable[[str], str] = titles.action_title
    root: str = titles.ALL_PRIVILEGES_TITLE


def group_by(items: Iterable[T], key: Callable[[T], object]) -> dict[object, list[T]]:
    """Group preserving first-seen order of keys and of members."""
    groups: dict[object, list[T]] = {}
    for item in items:
        groups.setdefault(key(item), []).append(item)
    return groups


def _area_sort_key(group: tuple[object, list[TitledPrivilege]]) -> str:
    area, members = group
    # Area-less privileges hang directly under the root, so they sort among
    # the areas by their first controller's title.
    return area if area is not None else members[0].controller  # type: ignore[return-value]


def build_privilege_tree(
    privileges: Iterable[Privilege],
    selected_ids: Iterable[int],
    lookup: TitleLookup | None = None,
) -> Tree:
    lookup = lookup or TitleLookup()
    root = TreeNode(name=lookup.root)
    tree = Tree(nodes=[root], selected_ids=list(selected_ids))

    titled = [
        TitledPrivilege(
            id=p.id,
            area=lookup.area(p.area),
            controller=lookup.controller(p.controller),
            action=lookup.action(p.action),
        )
        for p in privileges
    ]

    for area, area_members in sorted(group_by(titled, lambda p: p.area).items(), key=_area_sort_key):
        area_node = TreeNode(name=area)  # type: ignore[arg-type]
        for controller, controller_members in sorted(group_by(area_members, lambda p: p.controller).items()):
            controller_node = TreeNode(name=controller)  # type: ignore[arg-type]
            for action, action_members in sorted(group_by(controller_members, lambda p: p.action).items()):
                controller_node.nodes.append(TreeNode(name=action, id=action_members[0].id))  # type: ignore[arg-type]

            if area_node.name is None:
                root.nodes.append(controller_node)
            else:
                area_node.nodes.append(controller_node)

        if area_node.name is not None:
            root.nodes.append(area_node)

    return tree
