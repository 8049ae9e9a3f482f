import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas
from .exceptions import FlowerShopError, InsufficientStock, UnknownFlower

logger = logging.getLogger(__name__)


def _commit(db: Session):
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise


def _apply_update(db_obj, update_data: dict):
    for key, value in update_data.items():
        setattr(db_obj, key, value)

# --- Customer CRUD ---

def get_customer(db: Session, customer_id: int):
    return db.query(models.Customer).filter(models.Customer.id == customer_id).first()

def get_customer_by_email(db: Session, email: str):
    return db.query(models.Customer).filter(models.Customer.email == email).first()

def get_customers(db: Session, skip: int = 0, limit: int = 100):
    return db.query(models.Customer).offset(skip).limit(limit).all()

def create_customer(db: Session, customer: schemas.CustomerCreate):
    db_customer = models.Customer(**customer.model_dump())
    db.add(db_customer)
    _commit(db)
    db.refresh(db_customer)
    return db_customer

def update_customer(db: Session, customer_id: int, customer_update: schemas.CustomerUpdate):
    db_customer = get_customer(db, customer_id)
    if not db_customer:
        return None
    _apply_update(db_customer, customer_update.model_dump(exclude_unset=True))
    _commit(db)
    db.refresh(db_customer)
    return db_customer

def delete_customer(db: Session, customer_id: int):
    db_customer = get_customer(db, customer_id)
    if db_customer:
        db.delete(db_customer)
        _commit(db)
    return db_customer

# --- Employee CRUD ---

def get_employee(db: Session, employee_id: int):
    return db.query(models.Employee).filter(models.Employee.id == employee_id).first()

def get_employee_by_username(db: Session, username: str):
    return db.query(models.Employee).filter(models.Employee.username == username).first()

def get_employees(db: Session, skip: int = 0, limit: int = 100):
    return db.query(models.Employee).offset(skip).limit(limit).all()

def create_employee(db: Session, employee: schemas.EmployeeCreate):
    from .auth import get_password_hash
    hashed_password = None
    if employee.password:
        hashed_password = get_password_hash(employee.password)
    db_employee = models.Employee(
        first_name=employee.first_name,
        last_name=employee.last_name,
        role=employee.role,
        phone=employee.phone,
        username=employee.username,
        hashed_password=hashed_password,
    )
    db.add(db_employee)
    _commit(db)
    db.refresh(db_employee)
    return db_employee

def update_employee(db: Session, employee_id: int, employee_update: schemas.EmployeeUpdate):
    db_employee = get_employee(db, employee_id)
    if not db_employee:
        return None

    update_data = employee_update.model_dump(exclude_unset=True)
    password = update_data.pop("password", None)
    if password:
        from .auth import get_password_hash
        db_employee.hashed_password = get_password_hash(password)
    _apply_update(db_employee, update_data)

    _commit(db)
    db.refresh(db_employee)
    return db_employee

def delete_employee(db: Session, employee_id: int):
    db_employee = get_employee(db, employee_id)
    if db_employee:
        db.delete(db_employee)
        _commit(db)
    return db_employee

# --- Supplier CRUD ---

def get_supplier(db: Session, supplier_id: int):
    return db.query(models.Supplier).filter(models.Supplier.id == supplier_id).first()

def get_suppliers(db: Session, skip: int = 0, limit: int = 100):
    return db.query(models.Supplier).offset(skip).limit(limit).all()

def create_supplier(db: Session, supplier: schemas.SupplierCreate):
    db_supplier = models.Supplier(**supplier.model_dump())
    db.add(db_supplier)
    _commit(db)
    db.refresh(db_supplier)
    return db_supplier

def update_supplier(db: Session, supplier_id: int, supplier_update: schemas.SupplierUpdate):
    db_supplier = get_supplier(db, supplier_id)
    if not db_supplier:
        return None
    _apply_update(db_supplier, supplier_update.model_dump(exclude_unset=True))
    _commit(db)
    db.refresh(db_supplier)
    return db_supplier

def delete_supplier(db: Session, supplier_id: int):
    """Fails with IntegrityError while the supplier still owns flowers."""
    db_supplier = get_supplier(db, supplier_id)
    if db_supplier:
        db.delete(db_supplier)
        _commit(db)
    return db_supplier

# --- Flower CRUD ---

def get_flower(db: Session, flower_id: int):
    return db.query(models.Flower).filter(models.Flower.id == flower_id).first()

def get_flowers(db: Session, skip: int = 0, limit: int = 100, supplier_id: Optional[int] = None):
    query = db.query(models.Flower)
    if supplier_id is not None:
        query = query.filter(models.Flower.supplier_id == supplier_id)
    return query.order_by(models.Flower.id).offset(skip).limit(limit).all()

def get_low_stock_flowers(db: Session, threshold: int):
    return (
        db.query(models.Flower)
        .filter(models.Flower.quantity_in_stock <= threshold)
        .order_by(models.Flower.quantity_in_stock, models.Flower.id)
        .all()
    )

def create_flower(db: Session, flower: schemas.FlowerCreate):
    db_flower = models.Flower(**flower.model_dump())
    db.add(db_flower)
    _commit(db)
    db.refresh(db_flower)
    return db_flower

def update_flower(db: Session, flower_id: int, flower_update: schemas.FlowerUpdate):
    db_flower = get_flower(db, flower_id)
    if not db_flower:
        return None
    _apply_update(db_flower, flower_update.model_dump(exclude_unset=True))
    _commit(db)
    db.refresh(db_flower)
    return db_flower

def delete_flower(db: Session, flower_id: int):
    """Fails with IntegrityError while any order line still references the flower."""
    db_flower = get_flower(db, flower_id)
    if db_flower:
        db.delete(db_flower)
        _commit(db)
    return db_flower

def flower_lock_statement(flower_id: int):
    """SELECT ... FOR UPDATE on one flower row.

    populate_existing makes the locked read overwrite any copy of the flower
    already sitting in the session's identity map.
    """
    return (
        select(models.Flower)
        .where(models.Flower.id == flower_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )

def restock_flower(db: Session, flower_id: int, quantity_to_add: int):
    db_flower = db.execute(flower_lock_statement(flower_id)).scalar_one_or_none()
    if db_flower:
        db.execute(
            update(models.Flower)
            .where(models.Flower.id == flower_id)
            .values(quantity_in_stock=models.Flower.quantity_in_stock + quantity_to_add)
            .execution_options(synchronize_session=False)
        )
        _commit(db)
        db.refresh(db_flower)
        logger.info(f"Restocked flower {flower_id} by {quantity_to_add}, now {db_flower.quantity_in_stock}")
    return db_flower

# --- Order CRUD ---

def get_order(db: Session, order_id: int):
    return db.query(models.Order).filter(models.Order.id == order_id).first()

def get_orders(db: Session, skip: int = 0, limit: int = 100):
    return (
        db.query(models.Order)
        .order_by(models.Order.order_date.desc(), models.Order.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )

def get_orders_by_customer(db: Session, customer_id: int):
    return (
        db.query(models.Order)
        .filter(models.Order.customer_id == customer_id)
        .order_by(models.Order.order_date.desc(), models.Order.id.desc())
        .all()
    )

def _insert_order_flower(db: Session, order_id: int, flower_id: int, quantity: int, unit_price: Optional[float] = None):
    """Lock the flower row, check stock, write the line item, then decrement stock.

    Does not commit: the caller owns the transaction, so the row lock is held
    until the caller commits or rolls back. The decrement itself is a
    conditional UPDATE, which keeps backends without row locks from
    overselling.
    """
    flower = db.execute(flower_lock_statement(flower_id)).scalar_one_or_none()
    if flower is None:
        logger.warning(f"Rejected line item for order {order_id}: flower {flower_id} does not exist")
        raise UnknownFlower(flower_id)
    if quantity > flower.quantity_in_stock:
        logger.warning(
            f"Rejected line item for order {order_id}: flower {flower_id} "
            f"requested {quantity}, in stock {flower.quantity_in_stock}"
        )
        raise InsufficientStock(flower_id, quantity, flower.quantity_in_stock)

    db_item = models.OrderFlower(
        order_id=order_id,
        flower_id=flower_id,
        quantity=quantity,
        unit_price=flower.price if unit_price is None else unit_price,
    )
    db.add(db_item)
    db.flush()

    # Check and decrement in one statement, so a sale committed since the read
    # above is never overwritten (SQLite drops FOR UPDATE).
    result = db.execute(
        update(models.Flower)
        .where(
            models.Flower.id == flower_id,
            models.Flower.quantity_in_stock >= quantity,
        )
        .values(quantity_in_stock=models.Flower.quantity_in_stock - quantity)
        .execution_options(synchronize_session=False)
    )
    db.refresh(flower)
    if result.rowcount == 0:
        logger.warning(
            f"Rejected line item for order {order_id}: flower {flower_id} "
            f"requested {quantity}, in stock {flower.quantity_in_stock}"
        )
        raise InsufficientStock(flower_id, quantity, flower.quantity_in_stock)
    logger.info(f"Flower {flower_id} stock decremented by {quantity}, now {flower.quantity_in_stock}")
    return db_item

def add_order_flower(db: Session, order_id: int, item: schemas.OrderFlowerCreate):
    """Add one line item to an existing order as a single transaction.

    Raises UnknownFlower or InsufficientStock (stock untouched), or
    IntegrityError for storage-level violations such as a flower already
    present in the order.
    """
    try:
        db_item = _insert_order_flower(
            db, order_id, item.flower_id, item.quantity, item.unit_price
        )
        db.commit()
    except (FlowerShopError, IntegrityError):
        db.rollback()
        raise
    db.refresh(db_item)
    return db_item

def get_order_flowers(db: Session, order_id: int):
    return (
        db.query(models.OrderFlower)
        .filter(models.OrderFlower.order_id == order_id)
        .order_by(models.OrderFlower.flower_id)
        .all()
    )

def create_order(db: Session, order: schemas.OrderCreate, employee_id: int):
    """Create an order with all its items; nothing is written if any item is rejected."""
    db_order = models.Order(
        customer_id=order.customer_id,
        employee_id=employee_id,
        comment=order.comment,
    )
    try:
        db.add(db_order)
        db.flush()
        for item in order.items:
            _insert_order_flower(
                db, db_order.id, item.flower_id, item.quantity, item.unit_price
            )
        db.commit()
    except (FlowerShopError, IntegrityError):
        db.rollback()
        raise
    db.refresh(db_order)
    logger.info(f"Order {db_order.id} created with {len(order.items)} item(s)")
    return db_order

def update_order_status(db: Session, order_id: int, status: models.OrderStatus):
    db_order = get_order(db, order_id)
    if not db_order:
        return None
    db_order.status = status
    _commit(db)
    db.refresh(db_order)
    return db_order

def delete_order(db: Session, order_id: int):
    """Line items and the payment go with the order; flower stock is left as is."""
    db_order = get_order(db, order_id)
    if db_order:
        db.delete(db_order)
        _commit(db)
    return db_order

# --- Payment CRUD ---

def get_payment_by_order(db: Session, order_id: int):
    return db.query(models.Payment).filter(models.Payment.order_id == order_id).first()

def create_payment(db: Session, order_id: int, payment: schemas.PaymentCreate):
    """Fails with IntegrityError if the order already has a payment."""
    db_payment = models.Payment(
        order_id=order_id,
        method=payment.method,
        amount=payment.amount,
    )
    db.add(db_payment)
    _commit(db)
    db.refresh(db_payment)
    return db_payment
