"""
Row scanning into entities.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import pytest

from rowmap import RowDecodeError, column, describe
from rowmap.mapping.scanner import scan_row
from tests.entities import Group, Role, User


@dataclass
class Flags:
    id: Optional[int] = column("id")
    enabled: bool = column("enabled", default=False)
    ratio: float = column("ratio", default=0.0)


@dataclass
class Measure:
    id: Optional[int] = column("id")
    count: int = column("count", default=0)
    unit: str = column("unit", default="")


class TestScanner:

    def test_scan_binds_in_descriptor_order(self):
        user = scan_row(describe(User), (1, "admin", "admin@admin.com", 1))
        assert user == User(user_id=1, first_name="admin", email="admin@admin.com", group_id=1)
        assert user.roles is None
        assert user.my_group is None

    def test_scan_accepts_sqlite_rows(self, raw):
        import sqlite3

        raw.row_factory = sqlite3.Row
        row = raw.execute("SELECT id, name FROM groups WHERE id = 1").fetchone()
        assert scan_row(describe(Group), row) == Group(id=1, name="group1")

    def test_each_scan_allocates_a_new_entity(self):
        d = describe(Role)
        first = scan_row(d, (1, "admin"))
        second = scan_row(d, (1, "admin"))
        assert first == second
        assert first is not second

    def test_column_count_mismatch(self):
        with pytest.raises(RowDecodeError, match="expected 2 columns, got 3"):
            scan_row(describe(Role), (1, "admin", "extra"))

    def test_scalar_coercion(self):
        flags = scan_row(describe(Flags), (1, 1, "0.5"))
        assert flags.enabled is True
        assert flags.ratio == 0.5
        assert scan_row(describe(Flags), (2, "false", None)).enabled is False

    def test_bad_scalar_value(self):
        with pytest.raises(RowDecodeError, match="ratio"):
            scan_row(describe(Flags), (1, 0, "not a number"))

    def test_fractional_value_for_int_field(self):
        with pytest.raises(RowDecodeError, match="Measure.count"):
            scan_row(describe(Measure), (1, 2.7, "m"))
        with pytest.raises(RowDecodeError):
            scan_row(describe(Measure), (1, Decimal("2.5"), "m"))
        assert scan_row(describe(Measure), (1, 3.0, "m")).count == 3
        assert scan_row(describe(Measure), (1, Decimal("4"), "m")).count == 4

    def test_non_text_value_for_str_field(self):
        with pytest.raises(RowDecodeError, match="Measure.unit"):
            scan_row(describe(Measure), (1, 1, b"m"))
        with pytest.raises(RowDecodeError):
            scan_row(describe(Measure), (1, 1, 5))
