import json

import pytest
from sqlalchemy import select

from app.gatehouse.db import session_scope
from app.gatehouse.models import Account, AuditEvent, Privilege, Role, RolePrivilege
from app.gatehouse.modules.roles.service import RoleService, RoleView, parse_selected_ids, validate_role_payload
from app.gatehouse.modules.roles.tree import Tree
from app.gatehouse.rbac import AuthorizationProvider


@pytest.fixture()
def store(app):
    """Privilege store of three entries: two in an area, one without."""
    with session_scope(app) as s:
        p1 = Privilege(area="admin", controller="users", action="create")
        p2 = Privilege(area="admin", controller="users", action="edit")
        p3 = Privilege(area=None, controller="home", action="index")
        s.add_all([p1, p2, p3])
        s.flush()
        ids = (p1.id, p2.id, p3.id)
    return ids


@pytest.fixture()
def provider(app):
    return AuthorizationProvider(app.extensions["sqlalchemy_sessionmaker"])


def _links(app, role_id):
    with session_scope(app) as s:
        return set(s.scalars(select(RolePrivilege.privilege_id).where(RolePrivilege.role_id == role_id)).all())


def _create(app, name, selected, provider=None):
    with session_scope(app) as s:
        view = RoleView(name=name, privilege_tree=Tree(selected_ids=list(selected)))
        return RoleService(s, provider).create(view).id


def test_create_persists_role_and_links(app, store, provider):
    id1, id2, id3 = store
    role_id = _create(app, "Editors", [id1, id3], provider)

    assert _links(app, role_id) == {id1, id3}
    with session_scope(app) as s:
        assert s.get(Role, role_id).name == "Editors"
        ev = s.scalars(select(AuditEvent).where(AuditEvent.action == "role.create")).one()
        assert ev.entity_id == str(role_id)
        assert json.loads(ev.metadata_json)["privilege_ids"] == sorted([id1, id3])


def test_create_ignores_duplicate_selection(app, store):
    id1, _, _ = store
    role_id = _create(app, "Dupes", [id1, id1])
    assert _links(app, role_id) == {id1}


def test_edit_replaces_selection(app, store, provider):
    id1, id2, id3 = store
    role_id = _create(app, "R", [id1])

    with session_scope(app) as s:
        view = RoleView(id=role_id, name="R", privilege_tree=Tree(selected_ids=[id2, id3]))
        RoleService(s, provider).edit(view)

    assert _links(app, role_id) == {id2, id3}

    with session_scope(app) as s:
        view = RoleService(s).get_view(role_id)
    assert sorted(view.privilege_tree.selected_ids) == [id2, id3]
    assert sorted(view.privilege_tree.leaf_ids()) == sorted(_all_privilege_ids(app))


def test_edit_keeps_overlapping_privileges(app, store):
    id1, id2, id3 = store
    role_id = _create(app, "R", [id1, id2])

    with session_scope(app) as s:
        RoleService(s).edit(RoleView(id=role_id, name="R", privilege_tree=Tree(selected_ids=[id1, id3])))

    assert _links(app, role_id) == {id1, id3}


def test_edit_renames_and_can_clear_selection(app, store):
    id1, _, _ = store
    role_id = _create(app, "Old", [id1])

    with session_scope(app) as s:
        RoleService(s).edit(RoleView(id=role_id, name="New", privilege_tree=Tree(selected_ids=[])))

    assert _links(app, role_id) == set()
    with session_scope(app) as s:
        assert s.get(Role, role_id).name == "New"


def test_edit_missing_role_raises(app, store):
    with session_scope(app) as s:
        with pytest.raises(LookupError):
            RoleService(s).edit(RoleView(id=424242, name="Ghost"))


def test_edit_refreshes_provider(app, store, provider):
    id1, id2, _ = store
    role_id = _create(app, "R", [id1])
    with session_scope(app) as s:
        account = Account(username="ed", email="ed@example.com", passhash="x", role_id=role_id)
        s.add(account)
        s.flush()
        account_id = account.id

    assert provider.is_authorized_for(account_id, "admin", "users", "edit") is False
    with session_scope(app) as s:
        RoleService(s, provider).edit(RoleView(id=role_id, name="R", privilege_tree=Tree(selected_ids=[id2])))
    assert provider.is_authorized_for(account_id, "admin", "users", "edit") is True
    assert provider.is_authorized_for(account_id, "admin", "users", "create") is False


def test_delete_detaches_accounts_and_links(app, store, provider):
    id1, id2, _ = store
    role_id = _create(app, "Doomed", [id1, id2])
    with session_scope(app) as s:
        s.add_all(
            [
                Account(username="a1", email="a1@example.com", passhash="x", role_id=role_id),
                Account(username="a2", email="a2@example.com", passhash="x", role_id=role_id),
            ]
        )
    assert provider.is_authorized_for(_account_id(app, "a1"), "admin", "users", "create") is True

    with session_scope(app) as s:
        RoleService(s, provider).delete(role_id)

    with session_scope(app) as s:
        assert s.get(Role, role_id) is None
        assert s.scalars(select(Account).where(Account.role_id == role_id)).all() == []
        assert s.scalars(select(Account).where(Account.username.in_(["a1", "a2"]))).all() != []
        assert s.scalars(select(AuditEvent).where(AuditEvent.action == "role.delete")).one().entity_id == str(role_id)
    assert _links(app, role_id) == set()
    assert provider.is_authorized_for(_account_id(app, "a1"), "admin", "users", "create") is False


def test_delete_missing_role_raises(app):
    with session_scope(app) as s:
        with pytest.raises(LookupError):
            RoleService(s).delete(424242)


def test_seed_tree_for_new_role_selects_nothing(app, store):
    with session_scope(app) as s:
        view = RoleView()
        tree = RoleService(s).seed_privileges_tree(view)
    assert view.privilege_tree is tree
    assert tree.selected_ids == []
    assert sorted(tree.leaf_ids()) == sorted(_all_privilege_ids(app))


def test_get_views_sorted_by_name(app, store):
    _create(app, "Zeta", [])
    _create(app, "Alpha", [])
    with session_scope(app) as s:
        assert [v.name for v in RoleService(s).get_views()] == ["Alpha", "Zeta"]


def test_validate_role_payload(app):
    _create(app, "Auditors", [])
    with session_scope(app) as s:
        assert validate_role_payload(s, {"name": ""}) == ["Name is required."]
        assert validate_role_payload(s, {"name": "x" * 129}) != []
        assert validate_role_payload(s, {"name": "auditors"}) == ["A role with this name already exists."]
        role_id = s.scalars(select(Role.id).where(Role.name == "Auditors")).one()
        assert validate_role_payload(s, {"name": "AUDITORS"}, role_id=role_id) == []


def test_validate_role_payload_rejects_unknown_privileges(app, store):
    id1, _, _ = store
    with session_scope(app) as s:
        assert validate_role_payload(s, {"name": "Clerks", "selected_ids": [id1]}) == []
        assert validate_role_payload(s, {"name": "Clerks", "selected_ids": [id1, 999_999]}) == [
            "Unknown privilege selected."
        ]


def test_parse_selected_ids():
    assert parse_selected_ids(["3", " 1", "3", "x", "", "-2"]) == [3, 1]


def _account_id(app, username):
    with session_scope(app) as s:
        return s.scalars(select(Account.id).where(Account.username == username)).one()


def _all_privilege_ids(app):
    with session_scope(app) as s:
        return s.scalars(select(Privilege.id)).all()


# ---------- Views ----------
@pytest.fixture()
def client(app, make_account, login):
    make_account(app, "admin", "all", role_name="Administrator")
    c = app.test_client()
    login(c, "admin")
    return c


def test_create_view_renders_tree(client):
    r = client.get("/administration/roles/create")
    assert r.status_code == 200
    assert b'name="selected_ids"' in r.data
    assert b"Administration" in r.data


def test_create_edit_delete_through_views(client, app, store):
    id1, id2, id3 = store
    r = client.post(
        "/administration/roles/create",
        data={"name": "Support", "selected_ids": [str(id1), str(id2)]},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/administration/roles/")

    with session_scope(app) as s:
        role_id = s.scalars(select(Role.id).where(Role.name == "Support")).one()
    assert _links(app, role_id) == {id1, id2}

    r = client.get(f"/administration/roles/{role_id}")
    assert r.status_code == 200
    assert b"Support" in r.data

    r = client.post(
        f"/administration/roles/{role_id}/edit",
        data={"name": "Support", "selected_ids": [str(id3)]},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert _links(app, role_id) == {id3}

    r = client.get(f"/administration/roles/{role_id}/delete")
    assert r.status_code == 200

    r = client.post(f"/administration/roles/{role_id}/delete", follow_redirects=False)
    assert r.status_code == 302
    with session_scope(app) as s:
        assert s.get(Role, role_id) is None


def test_create_view_rejects_duplicate_name(client, app):
    r = client.post("/administration/roles/create", data={"name": "administrator"})
    assert r.status_code == 400
    assert b"already exists" in r.data


def test_create_view_rejects_unknown_privilege(client, app):
    r = client.post("/administration/roles/create", data={"name": "Ghosts", "selected_ids": ["999999"]})
    assert r.status_code == 400
    assert b"Unknown privilege selected." in r.data
    with session_scope(app) as s:
        assert s.scalars(select(Role).where(Role.name == "Ghosts")).first() is None

    # The request session is still usable afterwards.
    assert client.get("/administration/roles/").status_code == 200


def test_edit_view_rejects_unknown_privilege(client, app, store):
    id1, _, _ = store
    role_id = _create(app, "Support", [id1])
    r = client.post(
        f"/administration/roles/{role_id}/edit", data={"name": "Support", "selected_ids": [str(id1), "999999"]}
    )
    assert r.status_code == 400
    assert _links(app, role_id) == {id1}


def test_missing_role_is_404(client):
    assert client.get("/administration/roles/999999").status_code == 404
    assert client.get("/administration/roles/999999/edit").status_code == 404
    assert client.post("/administration/roles/999999/edit", data={"name": "x"}).status_code == 404
    assert client.post("/administration/roles/999999/delete").status_code == 404


def test_own_role_change_applies_immediately(client, app):
    # Admin strips their own role down to roles/index.
    with session_scope(app) as s:
        role = s.scalars(select(Role).where(Role.name == "Administrator")).one()
        keep = s.scalars(
            select(Privilege.id).where(
                Privilege.area == "administration", Privilege.controller == "roles", Privilege.action == "index"
            )
        ).one()
        role_id = role.id

    r = client.post(
        f"/administration/roles/{role_id}/edit",
        data={"name": "Administrator", "selected_ids": [str(keep)]},
        follow_redirects=False,
    )
    assert r.status_code == 302
    # The list stays reachable, the edit page no longer is.
    assert client.get("/administration/roles/").status_code == 200
    r = client.get(f"/administration/roles/{role_id}/edit", follow_redirects=False)
    assert r.headers["Location"].endswith("/unauthorized")
