from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import pytest

from app.context import CallerContext
from app.domain_errors import AuthorizationFailure, NotFound
from app.models import Task
from app.security import (
    assert_tenant_access,
    require_tenant_entity,
    resolve_tenant_scope,
    stamp_tenant,
)


class _QueryStub:
    def __init__(self, *, first_result=None):
        self._first_result = first_result

    def filter(self, *_args, **_kwargs):
        return self

    def first(self):
        return self._first_result


class _SessionStub:
    def __init__(self, row=None):
        self._row = row

    def query(self, model):
        if model is Task:
            return _QueryStub(first_result=self._row)
        raise AssertionError(f"Unexpected query model: {model}")


def _caller(role: str = "supervisor", tenant_id=None) -> CallerContext:
    return CallerContext(user_id=uuid4(), role=role, tenant_id=tenant_id)


def test_scope_is_the_callers_tenant() -> None:
    tenant_id = uuid4()
    assert resolve_tenant_scope(_caller(tenant_id=tenant_id)) == tenant_id
    assert resolve_tenant_scope(_caller(tenant_id=tenant_id), tenant_id) == tenant_id


def test_scope_rejects_a_foreign_tenant_request() -> None:
    with pytest.raises(AuthorizationFailure) as exc:
        resolve_tenant_scope(_caller(tenant_id=uuid4()), uuid4())
    assert exc.value.code == "CROSS_TENANT_ACCESS_DENIED"


def test_scope_requires_a_tenant_for_non_super_admin() -> None:
    with pytest.raises(AuthorizationFailure) as exc:
        resolve_tenant_scope(_caller(tenant_id=None))
    assert exc.value.code == "TENANT_REQUIRED"


def test_super_admin_scope_is_optional() -> None:
    requested = uuid4()
    admin = _caller(role="super_admin")
    assert resolve_tenant_scope(admin) is None
    assert resolve_tenant_scope(admin, requested) == requested


def test_stamp_tenant_ignores_anything_but_the_caller() -> None:
    tenant_id = uuid4()
    assert stamp_tenant(_caller(tenant_id=tenant_id)) == tenant_id
    with pytest.raises(AuthorizationFailure):
        stamp_tenant(_caller(role="super_admin"))


def test_assert_tenant_access() -> None:
    tenant_id = uuid4()
    assert_tenant_access(_caller(tenant_id=tenant_id), tenant_id)
    assert_tenant_access(_caller(role="super_admin"), uuid4())
    with pytest.raises(AuthorizationFailure):
        assert_tenant_access(_caller(tenant_id=tenant_id), uuid4())


def test_require_tenant_entity_distinguishes_missing_from_foreign() -> None:
    tenant_id = uuid4()
    row = SimpleNamespace(id=uuid4(), tenant_id=uuid4())

    with pytest.raises(NotFound) as missing:
        require_tenant_entity(
            _SessionStub(None),
            Task,
            entity_id=row.id,
            caller=_caller(tenant_id=tenant_id),
            code="TASK_NOT_FOUND",
            not_found="Task not found",
        )
    assert missing.value.http_status == 404

    with pytest.raises(AuthorizationFailure) as foreign:
        require_tenant_entity(
            _SessionStub(row),
            Task,
            entity_id=row.id,
            caller=_caller(tenant_id=tenant_id),
            code="TASK_NOT_FOUND",
            not_found="Task not found",
        )
    assert foreign.value.http_status == 403
