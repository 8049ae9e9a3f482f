import datetime
import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from .database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "Pending"
    PREPARED = "Prepared"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentMethod(str, enum.Enum):
    CASH = "Cash"
    CARD = "Card"
    ONLINE = "Online"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    phone = Column(String, nullable=True)
    address = Column(String, nullable=True)

    orders = relationship("Order", back_populates="customer", passive_deletes="all")


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    role = Column(String, nullable=False)  # e.g. 'Manager', 'Florist', 'Courier'
    phone = Column(String, nullable=True)

    # Only employees that log in to the API have these set
    username = Column(String, unique=True, index=True, nullable=True)
    hashed_password = Column(String, nullable=True)

    orders = relationship("Order", back_populates="employee", passive_deletes="all")


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    contact_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)

    flowers = relationship("Flower", back_populates="supplier", passive_deletes="all")


class Flower(Base):
    __tablename__ = "flowers"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_flowers_price_non_negative"),
        CheckConstraint("quantity_in_stock >= 0", name="ck_flowers_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, index=True, nullable=False)
    color = Column(String, nullable=True)
    supplier_id = Column(
        Integer, ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False
    )
    price = Column(Float, nullable=False)
    quantity_in_stock = Column(Integer, nullable=False, default=0)

    supplier = relationship("Supplier", back_populates="flowers")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(
        Integer, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False
    )
    employee_id = Column(
        Integer, ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False
    )
    order_date = Column(DateTime, default=datetime.datetime.utcnow)
    status = Column(
        Enum(
            OrderStatus,
            name="order_status",
            values_callable=_enum_values,
            create_constraint=True,
        ),
        default=OrderStatus.PENDING,
        nullable=False,
    )
    comment = Column(String, nullable=True)

    customer = relationship("Customer", back_populates="orders")
    employee = relationship("Employee", back_populates="orders")
    items = relationship(
        "OrderFlower",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    payment = relationship(
        "Payment",
        back_populates="order",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def total(self):
        return sum(item.quantity * item.unit_price for item in self.items)


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payments_amount_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    # unique: at most one payment per order
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    payment_date = Column(DateTime, default=datetime.datetime.utcnow)
    method = Column(
        Enum(
            PaymentMethod,
            name="payment_method",
            values_callable=_enum_values,
            create_constraint=True,
        ),
        nullable=False,
    )
    amount = Column(Float, nullable=False)

    order = relationship("Order", back_populates="payment")


class OrderFlower(Base):
    """One flower type within an order, priced at the time it was sold."""

    __tablename__ = "order_flowers"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_flowers_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_order_flowers_unit_price_non_negative"),
    )

    order_id = Column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), primary_key=True
    )
    flower_id = Column(
        Integer, ForeignKey("flowers.id", ondelete="RESTRICT"), primary_key=True
    )
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)

    order = relationship("Order", back_populates="items")
    # No back-reference on Flower: deleting a referenced flower must hit the RESTRICT.
    flower = relationship("Flower")
