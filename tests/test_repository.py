"""
Repository operations end to end against the user/role/group fixture.
"""

import json
import sqlite3
from dataclasses import dataclass
from typing import Optional

import pytest

from rowmap import (
    CancellationToken,
    ExecutionContext,
    QueryCancelledError,
    Repository,
    RowDecodeError,
    Transaction,
    TransactionClosedError,
    column,
    to_dict,
)
from tests.entities import Group, Role, User


@dataclass
class Ghost:
    id: Optional[int] = column("id")
    name: str = column("name", default="")


@dataclass
class NumericRole:
    id: Optional[int] = column("id", table="roles")
    name: int = column("name", default=0)


class CancelAfter(CancellationToken):
    """Token that lets ``allowed`` statements through, then cancels."""

    def __init__(self, allowed: int):
        super().__init__()
        self.allowed = allowed

    def check(self) -> None:
        if self.allowed <= 0:
            self.cancel()
        self.allowed -= 1
        super().check()


class TestRead:

    def test_get_all(self, database, pool):
        users = Repository(User, database).set_depth(2).get_all()
        assert [u.first_name for u in users] == ["admin", "user"]
        assert users[1].roles == [Role(id=2, name="user")]
        assert len(Repository(Role, database).get_all()) == 2
        assert pool.open == 0

    def test_get_by_id_serializes_exact_fields(self, database):
        user = Repository(User, database).set_depth(2).get_by_id(1)
        assert user.user_id == 1
        assert user.first_name == "admin"
        assert json.dumps(to_dict(user), separators=(",", ":")) == (
            '{"id":1,"first_name":"admin","email":"admin@admin.com",'
            '"roles":[{"id":1,"name":"admin"}],"group":{"id":1,"name":"group1"}}'
        )

        role = Repository(Role, database).get_by_id(1)
        assert (role.id, role.name) == (1, "admin")

    def test_get_by_id_not_found(self, database):
        assert Repository(User, database).get_by_id(404) is None

    def test_depth_one(self, database):
        user = Repository(User, database, depth=1).get_by_id(1)
        assert user.roles is None
        assert user.my_group is None
        assert to_dict(user) == {"id": 1, "first_name": "admin", "email": "admin@admin.com"}

    def test_get_by_criteria(self, database):
        users = Repository(User, database)
        assert [u.user_id for u in users.get_by_criteria("first_name = ?", "admin")] == [1]
        assert [u.user_id for u in users.get_by_criteria("WHERE email = ?", "user@user.com")] == [2]
        assert [u.user_id for u in users.get_by_criteria("ORDER BY id DESC")] == [2, 1]
        assert users.get_by_criteria("first_name = ?", "nobody") == []
        roles = Repository(Role, database).get_by_criteria("name = ?", "admin")
        assert [r.name for r in roles] == ["admin"]

    def test_query_error_propagates(self, database):
        with pytest.raises(sqlite3.OperationalError):
            Repository(User, database).get_by_criteria("no_such_column = ?", 1)

    def test_decode_error_aborts_the_list(self, database):
        with pytest.raises(RowDecodeError):
            Repository(NumericRole, database).get_all()

    def test_cancellation_reaches_relation_queries(self, database, pool):
        users = Repository(User, database)
        with pytest.raises(QueryCancelledError):
            users.get_by_id(1, ctx=ExecutionContext(database, token=CancelAfter(1)))
        assert pool.open == 0


class TestWrite:

    def test_create_then_fetch(self, database):
        users = Repository(User, database)
        first = User(first_name="neo", email="neo@zion.io", group_id=2)
        second = User(first_name="trinity", email="trinity@zion.io", group_id=1)
        first_id = users.create(first)
        second_id = users.create(second)

        assert first_id > 0 and second_id > 0
        assert len({1, 2, first_id, second_id}) == 4
        assert first.user_id == first_id

        fetched = users.get_by_id(first_id)
        assert (fetched.first_name, fetched.email, fetched.group_id) == ("neo", "neo@zion.io", 2)
        assert fetched.my_group == Group(id=2, name="group2")
        assert fetched.roles == []

    def test_create_derives_foreign_key_from_related_entity(self, database, raw):
        users = Repository(User, database)
        new_id = users.create(User(first_name="morpheus", my_group=Group(id=2, name="group2")))
        assert raw.execute("SELECT group_id FROM user WHERE id = ?", (new_id,)).fetchone() == (2,)

    def test_create_with_explicit_key(self, database):
        roles = Repository(Role, database)
        assert roles.create(Role(id=10, name="auditor")) == 10
        assert roles.get_by_id(10).name == "auditor"

    def test_update_keeps_group_through_reference_value(self, database, raw):
        users = Repository(User, database)
        user = users.get_by_id(1)
        user.first_name = "admin2"
        user.group_id = None
        assert users.update(user) is True

        again = users.get_by_id(1)
        assert again.first_name == "admin2"
        assert again.my_group.id == 1
        assert raw.execute("SELECT group_id FROM user WHERE id = 1").fetchone() == (1,)

    def test_update_missing_row(self, database):
        assert Repository(Role, database).update(Role(id=99, name="x")) is False

    def test_delete_then_fetch_is_not_found(self, database):
        users = Repository(User, database)
        assert users.delete(1) is True
        assert users.get_by_id(1) is None
        assert users.delete(1) is False


class TestTransactions:

    def test_failed_write_leaves_store_unchanged(self, database, pool):
        users = Repository(User, database).begin()
        ghosts = Repository(Ghost, database).set_execution_context(users.get_execution_context())

        user = users.get_by_id(1)
        user.first_name = "changed"
        assert users.update(user)
        with pytest.raises(sqlite3.OperationalError):
            ghosts.create(Ghost(name="boo"))

        assert not users.get_transaction().active
        users.rollback()
        assert users.get_transaction() is None
        assert pool.open == 0
        assert Repository(User, database).get_by_id(1).first_name == "admin"

    def test_rollback(self, database):
        roles = Repository(Role, database).begin()
        roles.delete(2)
        roles.rollback()
        assert roles.get_by_id(2).name == "user"

    def test_shared_transaction_commit(self, database, raw):
        users = Repository(User, database)
        roles = Repository(Role, database)
        ctx = ExecutionContext(database).begin_shared(users, roles)
        assert users.get_transaction() is roles.get_transaction() is ctx.transaction

        role_id = roles.create(Role(name="ops"))
        user_id = users.create(User(first_name="tank", email="tank@zion.io", group_id=1))
        ctx.commit()

        assert raw.execute("SELECT name FROM roles WHERE id = ?", (role_id,)).fetchone() == ("ops",)
        assert raw.execute("SELECT first_name FROM user WHERE id = ?", (user_id,)).fetchone() == ("tank",)
        with pytest.raises(TransactionClosedError):
            users.get_all()

    def test_repository_commit_unbinds(self, database, raw):
        roles = Repository(Role, database).begin()
        roles.create(Role(name="ops"))
        roles.commit()
        assert roles.get_transaction() is None
        assert [r.name for r in roles.get_all()] == ["admin", "user", "ops"]

    def test_per_call_context_leaves_repository_untouched(self, database, raw):
        roles = Repository(Role, database)
        ctx = ExecutionContext(database).begin()
        roles.delete(2, ctx=ctx)
        assert roles.get_by_id(2, ctx=ctx) is None
        ctx.rollback()
        assert roles.get_transaction() is None
        assert roles.get_by_id(2).name == "user"


class TestMetadata:

    def test_table_and_columns(self, database):
        users = Repository(User, database)
        assert users.get_table_name() == "user"
        assert users.get_columns() == ["id", "first_name", "email", "group_id"]
        assert Repository(Role, database, table="roles_v2").get_table_name() == "roles_v2"

    def test_depth(self, database):
        users = Repository(User, database)
        assert users.get_depth() == 2
        assert users.set_depth(4) is users
        assert users.get_depth() == 4
        for bad in (-1, 1.5, True):
            with pytest.raises(ValueError):
                users.set_depth(bad)

    def test_set_transaction(self, database, raw):
        roles = Repository(Role, database)
        tx = Transaction(database).begin()
        assert roles.set_transaction(tx) is roles
        assert roles.get_transaction() is tx
        roles.delete(2)
        tx.rollback()
        roles.set_transaction(None)
        assert roles.get_transaction() is None
        assert raw.execute("SELECT COUNT(*) FROM roles").fetchone() == (2,)
