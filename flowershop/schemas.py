from pydantic import BaseModel, Field
from typing import Optional, List
import datetime

from .models import OrderStatus, PaymentMethod

# --- Customer Schemas ---
class CustomerBase(BaseModel):
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None

class CustomerCreate(CustomerBase):
    pass

class CustomerUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

class Customer(CustomerBase):
    id: int

    class Config:
        from_attributes = True

# --- Employee Schemas ---
class EmployeeBase(BaseModel):
    first_name: str
    last_name: str
    role: str
    phone: Optional[str] = None
    username: Optional[str] = None

class EmployeeCreate(EmployeeBase):
    password: Optional[str] = None

class EmployeeUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = None

class Employee(EmployeeBase):
    id: int

    class Config:
        from_attributes = True

# --- Supplier Schemas ---
class SupplierBase(BaseModel):
    name: str
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

class SupplierCreate(SupplierBase):
    pass

class SupplierUpdate(BaseModel):
    name: Optional[str] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

class Supplier(SupplierBase):
    id: int

    class Config:
        from_attributes = True

# --- Flower Schemas ---
class FlowerBase(BaseModel):
    name: str
    color: Optional[str] = None
    supplier_id: int
    price: float = Field(ge=0)

class FlowerCreate(FlowerBase):
    quantity_in_stock: int = Field(default=0, ge=0)

class FlowerUpdate(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)

class Flower(FlowerBase):
    id: int
    quantity_in_stock: int

    class Config:
        from_attributes = True

class RestockRequest(BaseModel):
    quantity: int = Field(gt=0)

# --- Order Schemas ---
class OrderFlowerBase(BaseModel):
    flower_id: int
    quantity: int = Field(gt=0)

class OrderFlowerCreate(OrderFlowerBase):
    # Defaults to the flower's current price
    unit_price: Optional[float] = Field(default=None, ge=0)

class OrderFlower(OrderFlowerBase):
    order_id: int
    unit_price: float

    class Config:
        from_attributes = True

class OrderBase(BaseModel):
    customer_id: int
    comment: Optional[str] = None

class OrderCreate(OrderBase):
    items: List[OrderFlowerCreate] = Field(min_length=1)

class OrderStatusUpdate(BaseModel):
    status: OrderStatus

class Order(OrderBase):
    id: int
    employee_id: int
    order_date: datetime.datetime
    status: OrderStatus
    total: float
    items: List[OrderFlower] = []

    class Config:
        from_attributes = True

# --- Payment Schemas ---
class PaymentCreate(BaseModel):
    method: PaymentMethod
    amount: float = Field(ge=0)

class Payment(PaymentCreate):
    id: int
    order_id: int
    payment_date: datetime.datetime

    class Config:
        from_attributes = True

# --- Auth Schemas ---
class Token(BaseModel):
    access_token: str
    token_type: str

class TokenData(BaseModel):
    username: Optional[str] = None
