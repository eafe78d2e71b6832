from __future__ import annotations

import re
from types import SimpleNamespace

import pytest

from app.models import User
from app.services.identifiers import auto_id_prefix, generate_auto_id, parse_sequence, timestamp_suffix


class _QueryStub:
    def __init__(self, last):
        self._last = last
        self.filters = 0

    def filter(self, *_args, **_kwargs):
        self.filters += 1
        return self

    def order_by(self, *_args, **_kwargs):
        return self

    def first(self):
        return self._last


class _SessionStub:
    def __init__(self, last=None):
        self.query_stub = _QueryStub(last)

    def query(self, model):
        assert model is User
        return self.query_stub


@pytest.mark.parametrize(
    ("role", "prefix"),
    [("employee", "EMP"), ("supervisor", "SUP"), ("factory_admin", "ADM"), ("super_admin", "ADM")],
)
def test_role_prefixes(role: str, prefix: str) -> None:
    assert auto_id_prefix(role) == prefix


@pytest.mark.parametrize(
    ("auto_id", "expected"),
    [("EMP004-8127", 4), ("EMP012", 12), ("SUP1000-0001", 1000), (None, 0), ("garbage", 0)],
)
def test_parse_sequence(auto_id, expected: int) -> None:
    assert parse_sequence(auto_id) == expected


def test_timestamp_suffix_is_four_digits() -> None:
    assert timestamp_suffix(1_700_000_000_042) == "0042"
    assert re.fullmatch(r"\d{4}", timestamp_suffix())


def test_first_identifier_for_a_role() -> None:
    assert generate_auto_id(_SessionStub(), role="employee", now_ms=12345) == "EMP001-2345"


def test_next_identifier_follows_the_highest_sequence() -> None:
    db = _SessionStub(last=SimpleNamespace(auto_id="SUP007-9911"))
    assert generate_auto_id(db, role="supervisor", now_ms=10003) == "SUP008-0003"


def test_tenant_scope_adds_a_filter() -> None:
    db = _SessionStub()
    generate_auto_id(db, role="employee", tenant_id="t-1", now_ms=0)
    assert db.query_stub.filters == 2


def test_generated_ids_are_distinct_in_the_store(db, make) -> None:
    tenant = make.tenant()
    first = generate_auto_id(db, role="employee", tenant_id=tenant.id, now_ms=1)
    assert first == "EMP001-0001"

    existing = make.user(tenant, "employee")
    second = generate_auto_id(db, role="employee", tenant_id=tenant.id, now_ms=2)
    assert second != existing.auto_id
    assert parse_sequence(second) == parse_sequence(existing.auto_id) + 1
