from __future__ import annotations

import os

# Settings are read at import time; keep tests off real services and cheap to hash.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ENV"] = "development"

from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from app.auth import get_password_hash  # noqa: E402
from app.context import CallerContext  # noqa: E402
from app.database import init_db  # noqa: E402
from app.models import ProcessStage, Product, Tenant, User  # noqa: E402

PASSWORD = "secret-pass-123"


@pytest.fixture()
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


class _Factory:
    """Persists tenants, users and catalog rows for integration tests."""

    def __init__(self, db):
        self.db = db
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def tenant(self, *, status: str = "active", name: str | None = None) -> Tenant:
        n = self._next()
        tenant = Tenant(
            id=uuid4(),
            factory_name=name or f"Factory {n}",
            address="Plot 1, Industrial Estate",
            workers_count=10,
            owner_email=f"owner{n}@factory.local",
            phone="+910000000000",
            status=status,
        )
        self.db.add(tenant)
        self.db.commit()
        return tenant

    def user(self, tenant: Tenant | None, role: str, *, is_active: bool = True) -> User:
        n = self._next()
        prefix = {"employee": "EMP", "supervisor": "SUP"}.get(role, "ADM")
        user = User(
            id=uuid4(),
            tenant_id=tenant.id if tenant else None,
            auto_id=f"{prefix}{n:03d}-{n:04d}",
            name=f"{role} {n}",
            email=f"{role}{n}@factory.local",
            mobile="+910000000000",
            password_hash=get_password_hash(PASSWORD),
            role=role,
            is_active=is_active,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def catalog(self, tenant: Tenant) -> tuple[Product, ProcessStage]:
        product = Product(id=uuid4(), tenant_id=tenant.id, name=f"Product {self._next()}", description="")
        stage = ProcessStage(
            id=uuid4(),
            tenant_id=tenant.id,
            product_id=product.id,
            name="Stitching",
            description="",
            order=1,
        )
        self.db.add_all([product, stage])
        self.db.commit()
        return product, stage

    @staticmethod
    def caller(user: User) -> CallerContext:
        return CallerContext.from_user(user)


@pytest.fixture()
def make(db):
    return _Factory(db)


class FakeRedis:
    """In-memory subset of the redis client used by the login throttle."""

    def __init__(self) -> None:
        self.values: dict[str, object] = {}
        self.ttls: dict[str, int] = {}

    def incr(self, key: str) -> int:
        self.values[key] = int(self.values.get(key, 0)) + 1
        return self.values[key]

    def expire(self, key: str, seconds: int) -> None:
        self.ttls[key] = seconds

    def ttl(self, key: str) -> int:
        if key not in self.values:
            return -2
        return self.ttls.get(key, -1)

    def set(self, key: str, value, ex: int | None = None) -> None:
        self.values[key] = value
        if ex:
            self.ttls[key] = ex

    def delete(self, key: str) -> None:
        self.values.pop(key, None)
        self.ttls.pop(key, None)


@pytest.fixture()
def fake_redis():
    return FakeRedis()
