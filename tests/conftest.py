import sqlite3

import pytest

from rowmap import Database

SCHEMA = """
CREATE TABLE user (id INTEGER PRIMARY KEY, first_name TEXT, email TEXT, group_id INTEGER);
CREATE TABLE roles (id INTEGER PRIMARY KEY, name TEXT);
CREATE TABLE user_roles (id INTEGER PRIMARY KEY, user_id INTEGER, role_id INTEGER);
CREATE TABLE groups (id INTEGER PRIMARY KEY, name TEXT);

INSERT INTO roles (name) VALUES ('admin');
INSERT INTO roles (name) VALUES ('user');
INSERT INTO groups (name) VALUES ('group1');
INSERT INTO groups (name) VALUES ('group2');
INSERT INTO user (first_name, email, group_id) VALUES ('admin', 'admin@admin.com', 1);
INSERT INTO user (first_name, email, group_id) VALUES ('user', 'user@user.com', 1);
INSERT INTO user_roles (user_id, role_id) VALUES (1, 1);
INSERT INTO user_roles (user_id, role_id) VALUES (2, 2);
"""


class SqlitePool:
    """getconn/putconn over one SQLite file, shaped like psycopg2's pools."""

    def __init__(self, path: str):
        self.path = path
        self.open = 0

    def getconn(self):
        conn = sqlite3.connect(self.path)
        self.open += 1
        return conn

    def putconn(self, conn) -> None:
        conn.close()
        self.open -= 1

    def closeall(self) -> None:
        pass


@pytest.fixture()
def db_path(tmp_path):
    path = tmp_path / "rowmap_test.db"
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()
    return str(path)


@pytest.fixture()
def pool(db_path):
    return SqlitePool(db_path)


@pytest.fixture()
def database(pool):
    db = Database(pool, placeholder="?")
    yield db
    db.close()


@pytest.fixture()
def raw(db_path):
    """Direct sqlite connection for checking what actually got stored."""
    conn = sqlite3.connect(db_path)
    yield conn
    conn.close()
