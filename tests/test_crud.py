import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError

from flowershop import crud, models, schemas
from flowershop.exceptions import InsufficientStock, UnknownFlower


def stock_of(db, flower_id):
    db.expire_all()
    return crud.get_flower(db, flower_id).quantity_in_stock


def line(flower_id, quantity, unit_price=None):
    return schemas.OrderFlowerCreate(flower_id=flower_id, quantity=quantity, unit_price=unit_price)


def test_insert_within_stock_decrements(db, order, flower):
    item = crud.add_order_flower(db, order.id, line(flower.id, 3))

    assert item.quantity == 3
    assert stock_of(db, flower.id) == 7


def test_insert_entire_stock_leaves_zero(db, order, flower):
    crud.add_order_flower(db, order.id, line(flower.id, 10))

    assert stock_of(db, flower.id) == 0


def test_insert_above_stock_is_rejected_and_stock_unchanged(db, order, flower):
    with pytest.raises(InsufficientStock) as excinfo:
        crud.add_order_flower(db, order.id, line(flower.id, 11))

    assert excinfo.value.requested == 11
    assert excinfo.value.available == 10
    assert stock_of(db, flower.id) == 10
    assert crud.get_order_flowers(db, order.id) == []


def test_stock_ten_sell_three_then_eight(db, order, make_flower):
    flower = make_flower(quantity=10)
    other_order = models.Order(customer_id=order.customer_id, employee_id=order.employee_id)
    db.add(other_order)
    db.commit()

    crud.add_order_flower(db, order.id, line(flower.id, 3))
    assert stock_of(db, flower.id) == 7

    with pytest.raises(InsufficientStock):
        crud.add_order_flower(db, other_order.id, line(flower.id, 8))
    assert stock_of(db, flower.id) == 7


def test_unknown_flower_is_rejected(db, order):
    with pytest.raises(UnknownFlower) as excinfo:
        crud.add_order_flower(db, order.id, line(9999, 1))

    assert excinfo.value.flower_id == 9999


def test_unit_price_defaults_to_current_flower_price(db, order, make_flower):
    flower = make_flower(price=4.0)

    item = crud.add_order_flower(db, order.id, line(flower.id, 2))

    assert item.unit_price == 4.0


def test_explicit_unit_price_is_kept(db, order, flower):
    item = crud.add_order_flower(db, order.id, line(flower.id, 2, unit_price=1.75))

    assert item.unit_price == 1.75


def test_same_flower_twice_in_one_order_fails_and_keeps_stock(db, order, flower):
    crud.add_order_flower(db, order.id, line(flower.id, 2))

    with pytest.raises(IntegrityError):
        crud.add_order_flower(db, order.id, line(flower.id, 2))

    assert stock_of(db, flower.id) == 8


def test_insert_for_missing_order_fails_and_keeps_stock(db, flower):
    with pytest.raises(IntegrityError):
        crud.add_order_flower(db, 4242, line(flower.id, 2))

    assert stock_of(db, flower.id) == 10


def test_lock_statement_selects_for_update():
    sql = str(crud.flower_lock_statement(1).compile(dialect=postgresql.dialect()))

    assert "FOR UPDATE" in sql
    assert "flowers.id" in sql


def test_locked_read_refreshes_stale_identity_map(db, order, flower, session_factory):
    crud.get_flower(db, flower.id)  # loads flower into the identity map
    other = session_factory()
    try:
        crud.restock_flower(other, flower.id, 5)
    finally:
        other.close()

    # 12 <= 15 only if the locked read saw the restock
    crud.add_order_flower(db, order.id, line(flower.id, 12))
    assert stock_of(db, flower.id) == 3


def test_create_order_inserts_all_items(db, customer, manager, make_flower):
    rose = make_flower(name="Rose", quantity=10, price=2.5)
    tulip = make_flower(name="Tulip", quantity=5, price=1.0)
    order_in = schemas.OrderCreate(
        customer_id=customer.id,
        comment="Leave at the door",
        items=[line(rose.id, 4), line(tulip.id, 5)],
    )

    db_order = crud.create_order(db, order_in, employee_id=manager.id)

    assert db_order.status == models.OrderStatus.PENDING
    assert db_order.employee_id == manager.id
    assert len(db_order.items) == 2
    assert db_order.total == pytest.approx(4 * 2.5 + 5 * 1.0)
    assert stock_of(db, rose.id) == 6
    assert stock_of(db, tulip.id) == 0


def test_create_order_is_all_or_nothing(db, customer, manager, make_flower):
    rose = make_flower(name="Rose", quantity=10)
    tulip = make_flower(name="Tulip", quantity=1)
    order_in = schemas.OrderCreate(
        customer_id=customer.id,
        items=[line(rose.id, 4), line(tulip.id, 2)],
    )

    with pytest.raises(InsufficientStock):
        crud.create_order(db, order_in, employee_id=manager.id)

    assert stock_of(db, rose.id) == 10
    assert stock_of(db, tulip.id) == 1
    assert crud.get_orders(db) == []


def test_create_order_with_unknown_flower_writes_nothing(db, customer, manager, flower):
    order_in = schemas.OrderCreate(
        customer_id=customer.id,
        items=[line(flower.id, 1), line(777, 1)],
    )

    with pytest.raises(UnknownFlower):
        crud.create_order(db, order_in, employee_id=manager.id)

    assert stock_of(db, flower.id) == 10
    assert crud.get_orders(db) == []


def test_delete_order_cascades_items_but_not_stock(db, customer, manager, flower):
    order_in = schemas.OrderCreate(customer_id=customer.id, items=[line(flower.id, 3)])
    db_order = crud.create_order(db, order_in, employee_id=manager.id)
    crud.create_payment(db, db_order.id, schemas.PaymentCreate(method="Card", amount=7.5))
    order_id = db_order.id

    crud.delete_order(db, order_id)

    assert crud.get_order(db, order_id) is None
    assert crud.get_order_flowers(db, order_id) == []
    assert crud.get_payment_by_order(db, order_id) is None
    assert stock_of(db, flower.id) == 7


def test_second_payment_for_order_fails(db, order):
    payment = crud.create_payment(db, order.id, schemas.PaymentCreate(method="Cash", amount=10))
    assert payment.method == models.PaymentMethod.CASH

    with pytest.raises(IntegrityError):
        crud.create_payment(db, order.id, schemas.PaymentCreate(method="Online", amount=10))

    assert crud.get_payment_by_order(db, order.id).id == payment.id


def test_update_order_status(db, order):
    updated = crud.update_order_status(db, order.id, models.OrderStatus.DELIVERED)

    assert updated.status == models.OrderStatus.DELIVERED
    assert crud.update_order_status(db, 999, models.OrderStatus.CANCELLED) is None


def test_cancelling_order_keeps_stock(db, order, flower):
    crud.add_order_flower(db, order.id, line(flower.id, 4))

    crud.update_order_status(db, order.id, models.OrderStatus.CANCELLED)

    assert stock_of(db, flower.id) == 6


def test_restock_adds_quantity(db, flower):
    restocked = crud.restock_flower(db, flower.id, 15)

    assert restocked.quantity_in_stock == 25
    assert crud.restock_flower(db, 999, 1) is None


def test_low_stock_flowers(db, make_flower):
    make_flower(name="Rose", quantity=10)
    peony = make_flower(name="Peony", quantity=2)
    lily = make_flower(name="Lily", quantity=0)

    low = crud.get_low_stock_flowers(db, threshold=3)

    assert [f.id for f in low] == [lily.id, peony.id]


def test_flowers_filtered_by_supplier(db, supplier, make_flower):
    rose = make_flower(name="Rose")
    other_supplier = crud.create_supplier(db, schemas.SupplierCreate(name="Local Farm"))
    crud.create_flower(
        db,
        schemas.FlowerCreate(name="Daisy", supplier_id=other_supplier.id, price=0.5, quantity_in_stock=3),
    )

    assert [f.id for f in crud.get_flowers(db, supplier_id=supplier.id)] == [rose.id]
    assert len(crud.get_flowers(db)) == 2


def test_delete_referenced_flower_fails(db, order, flower):
    crud.add_order_flower(db, order.id, line(flower.id, 1))

    with pytest.raises(IntegrityError):
        crud.delete_flower(db, flower.id)

    assert crud.get_flower(db, flower.id) is not None


def test_delete_unreferenced_flower(db, flower):
    crud.delete_flower(db, flower.id)

    assert crud.get_flower(db, flower.id) is None


def test_delete_supplier_with_flowers_fails(db, supplier, flower):
    with pytest.raises(IntegrityError):
        crud.delete_supplier(db, supplier.id)

    assert crud.get_supplier(db, supplier.id) is not None


def test_orders_by_customer(db, customer, manager, make_flower):
    rose = make_flower(name="Rose")
    other = crud.create_customer(
        db, schemas.CustomerCreate(first_name="Tom", last_name="Hill", email="tom@example.com")
    )
    mine = crud.create_order(
        db, schemas.OrderCreate(customer_id=customer.id, items=[line(rose.id, 1)]), employee_id=manager.id
    )
    crud.create_order(
        db, schemas.OrderCreate(customer_id=other.id, items=[line(rose.id, 1)]), employee_id=manager.id
    )

    assert [o.id for o in crud.get_orders_by_customer(db, customer.id)] == [mine.id]


def test_update_employee_rehashes_password(db, florist):
    from flowershop.auth import verify_password

    updated = crud.update_employee(db, florist.id, schemas.EmployeeUpdate(password="new-pass", phone="555"))

    assert updated.phone == "555"
    assert verify_password("new-pass", updated.hashed_password)
    assert not verify_password("petals", updated.hashed_password)
