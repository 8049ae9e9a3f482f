import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite://"
# Never talk to Telegram from the test suite, whatever a local .env says.
os.environ["TOKEN"] = ""
os.environ["CHAT_ID"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from flowershop import auth, crud, models, schemas
from flowershop.database import Base, enable_sqlite_foreign_keys, get_db
from flowershop.main import app


@pytest.fixture
def engine():
    engine = enable_sqlite_foreign_keys(create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    ))
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def supplier(db):
    return crud.create_supplier(
        db, schemas.SupplierCreate(name="Dutch Bulbs", contact_name="Anna", phone="555-0100")
    )


@pytest.fixture
def make_flower(db, supplier):
    def _make_flower(name="Rose", quantity=10, price=2.5, color="red"):
        return crud.create_flower(
            db,
            schemas.FlowerCreate(
                name=name,
                color=color,
                supplier_id=supplier.id,
                price=price,
                quantity_in_stock=quantity,
            ),
        )
    return _make_flower


@pytest.fixture
def flower(make_flower):
    return make_flower()


@pytest.fixture
def customer(db):
    return crud.create_customer(
        db,
        schemas.CustomerCreate(
            first_name="Maria",
            last_name="Lopez",
            email="maria@example.com",
            address="12 Garden Road",
        ),
    )


@pytest.fixture
def manager(db):
    return crud.create_employee(
        db,
        schemas.EmployeeCreate(
            first_name="Ivan",
            last_name="Petrov",
            role="Manager",
            username="manager",
            password="secret",
        ),
    )


@pytest.fixture
def florist(db):
    return crud.create_employee(
        db,
        schemas.EmployeeCreate(
            first_name="Lena",
            last_name="Kim",
            role="Florist",
            username="florist",
            password="petals",
        ),
    )


def auth_headers(employee):
    token = auth.create_access_token(data={"sub": employee.username})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def manager_headers(manager):
    return auth_headers(manager)


@pytest.fixture
def florist_headers(florist):
    return auth_headers(florist)


@pytest.fixture
def order(db, customer, manager):
    """An order holding nothing yet, for exercising single line-item inserts."""
    db_order = models.Order(customer_id=customer.id, employee_id=manager.id)
    db.add(db_order)
    db.commit()
    db.refresh(db_order)
    return db_order
