import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from inventaris.auth import create_token_for_user, get_password_hash
from inventaris.database import Base, get_db
from inventaris.main import app
from inventaris.models import Category, Item, ItemCondition, User, UserRole, UserStatus
from inventaris.utils import utcnow


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role=UserRole.USER, status=UserStatus.ACTIVE, password="rahasia123", email=None):
        counter["n"] += 1
        user = User(
            name=f"{role.value.title()} {counter['n']}",
            email=email or f"{role.value}{counter['n']}@sekolah.sch.id",
            hashed_password=get_password_hash(password),
            role=role,
            status=status,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN)


@pytest.fixture
def petugas(make_user):
    return make_user(UserRole.PETUGAS)


@pytest.fixture
def borrower(make_user):
    return make_user(UserRole.USER)


@pytest.fixture
def other_borrower(make_user):
    return make_user(UserRole.USER)


@pytest.fixture
def category(db):
    category = Category(name="Elektronik", description="Peralatan elektronik")
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


@pytest.fixture
def make_item(db, category):
    counter = {"n": 0}

    def _make(quantity=5, condition=ItemCondition.GOOD, available=None):
        counter["n"] += 1
        item = Item(
            code=f"BRG-{counter['n']:03d}",
            name=f"Proyektor {counter['n']}",
            category_id=category.id,
            quantity_total=quantity,
            quantity_available=quantity if available is None else available,
            condition=condition,
            location="Ruang TU",
        )
        db.add(item)
        db.commit()
        db.refresh(item)
        return item

    return _make


@pytest.fixture
def loan_dates():
    start = utcnow() + timedelta(days=1)
    return start, start + timedelta(days=7)


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_header():
    def _header(user):
        return {"Authorization": f"Bearer {create_token_for_user(user)}"}

    return _header
