import logging
from datetime import timedelta
from typing import List, Optional

from fastapi import FastAPI, Depends, HTTPException, status, BackgroundTasks, Response
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import crud, models, schemas, auth, notifications
from .config import settings
from .database import engine, get_db
from .exceptions import InsufficientStock, UnknownFlower

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=settings.LOG_LEVEL
)
logger = logging.getLogger(__name__)

models.Base.metadata.create_all(bind=engine)

app = FastAPI(title="Flower Shop")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")

MANAGER_ROLE = "Manager"
CLOSED_ORDER_STATUSES = (models.OrderStatus.DELIVERED, models.OrderStatus.CANCELLED)


async def get_current_employee(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, auth.SECRET_KEY, algorithms=[auth.ALGORITHM])
        username: str = payload.get("sub")
        if username is None:
            raise credentials_exception
        token_data = schemas.TokenData(username=username)
    except JWTError:
        raise credentials_exception
    employee = crud.get_employee_by_username(db, username=token_data.username)
    if employee is None:
        raise credentials_exception
    return employee

async def get_current_manager(current_employee: models.Employee = Depends(get_current_employee)):
    if current_employee.role != MANAGER_ROLE:
        raise HTTPException(status_code=403, detail="Not enough permissions")
    return current_employee


def conflict(detail: str, e: IntegrityError):
    logger.info(f"{detail}: {e.orig}")
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)

def insufficient_stock(e: InsufficientStock):
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "message": str(e),
            "flower_id": e.flower_id,
            "requested": e.requested,
            "available": e.available,
        },
    )

def unknown_flower(e: UnknownFlower):
    return HTTPException(status_code=404, detail=str(e))


def schedule_low_stock_check(background_tasks: BackgroundTasks, db: Session, flower_ids):
    low = []
    for flower_id in flower_ids:
        flower = crud.get_flower(db, flower_id)
        if flower and flower.quantity_in_stock <= settings.LOW_STOCK_THRESHOLD:
            low.append({"id": flower.id, "name": flower.name, "quantity_in_stock": flower.quantity_in_stock})
    if low:
        background_tasks.add_task(notifications.send_low_stock_notification, flowers=low)


@app.post("/token", response_model=schemas.Token)
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    employee = crud.get_employee_by_username(db, username=form_data.username)
    if not employee or not employee.hashed_password or not auth.verify_password(form_data.password, employee.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token_expires = timedelta(minutes=auth.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = auth.create_access_token(
        data={"sub": employee.username}, expires_delta=access_token_expires
    )
    return {"access_token": access_token, "token_type": "bearer"}

# --- Customer Endpoints ---

@app.post("/customers/", response_model=schemas.Customer)
def create_customer(customer: schemas.CustomerCreate, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    try:
        return crud.create_customer(db, customer=customer)
    except IntegrityError as e:
        raise conflict("Email already registered", e)

@app.get("/customers/", response_model=List[schemas.Customer])
def read_customers(skip: int = 0, limit: int = 100, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    return crud.get_customers(db, skip=skip, limit=limit)

@app.get("/customers/{customer_id}", response_model=schemas.Customer)
def read_customer(customer_id: int, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    db_customer = crud.get_customer(db, customer_id=customer_id)
    if db_customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    return db_customer

@app.put("/customers/{customer_id}", response_model=schemas.Customer)
def update_customer(customer_id: int, customer_update: schemas.CustomerUpdate, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    try:
        db_customer = crud.update_customer(db, customer_id=customer_id, customer_update=customer_update)
    except IntegrityError as e:
        raise conflict("Email already registered", e)
    if db_customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    return db_customer

@app.delete("/customers/{customer_id}", response_model=schemas.Customer)
def delete_customer(customer_id: int, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    try:
        db_customer = crud.delete_customer(db, customer_id=customer_id)
    except IntegrityError as e:
        raise conflict("Customer still has orders", e)
    if db_customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    return db_customer

@app.get("/customers/{customer_id}/orders", response_model=List[schemas.Order])
def read_customer_orders(customer_id: int, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    if crud.get_customer(db, customer_id=customer_id) is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    return crud.get_orders_by_customer(db, customer_id=customer_id)

# --- Employee Endpoints ---

@app.get("/employees/me/", response_model=schemas.Employee)
async def read_employees_me(current_employee: models.Employee = Depends(get_current_employee)):
    return current_employee

@app.post("/employees/", response_model=schemas.Employee)
def create_employee(employee: schemas.EmployeeCreate, db: Session = Depends(get_db), manager: models.Employee = Depends(get_current_manager)):
    try:
        return crud.create_employee(db, employee=employee)
    except IntegrityError as e:
        raise conflict("Username already registered", e)

@app.get("/employees/", response_model=List[schemas.Employee])
def read_employees(skip: int = 0, limit: int = 100, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    return crud.get_employees(db, skip=skip, limit=limit)

@app.get("/employees/{employee_id}", response_model=schemas.Employee)
def read_employee(employee_id: int, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    db_employee = crud.get_employee(db, employee_id=employee_id)
    if db_employee is None:
        raise HTTPException(status_code=404, detail="Employee not found")
    return db_employee

@app.put("/employees/{employee_id}", response_model=schemas.Employee)
def update_employee(employee_id: int, employee_update: schemas.EmployeeUpdate, db: Session = Depends(get_db), manager: models.Employee = Depends(get_current_manager)):
    db_employee = crud.update_employee(db, employee_id=employee_id, employee_update=employee_update)
    if db_employee is None:
        raise HTTPException(status_code=404, detail="Employee not found")
    return db_employee

@app.delete("/employees/{employee_id}", response_model=schemas.Employee)
def delete_employee(employee_id: int, db: Session = Depends(get_db), manager: models.Employee = Depends(get_current_manager)):
    try:
        db_employee = crud.delete_employee(db, employee_id=employee_id)
    except IntegrityError as e:
        raise conflict("Employee still has orders", e)
    if db_employee is None:
        raise HTTPException(status_code=404, detail="Employee not found")
    return db_employee

# --- Supplier Endpoints ---

@app.post("/suppliers/", response_model=schemas.Supplier)
def create_supplier(supplier: schemas.SupplierCreate, db: Session = Depends(get_db), manager: models.Employee = Depends(get_current_manager)):
    return crud.create_supplier(db, supplier=supplier)

@app.get("/suppliers/", response_model=List[schemas.Supplier])
def read_suppliers(skip: int = 0, limit: int = 100, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    return crud.get_suppliers(db, skip=skip, limit=limit)

@app.get("/suppliers/{supplier_id}", response_model=schemas.Supplier)
def read_supplier(supplier_id: int, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    db_supplier = crud.get_supplier(db, supplier_id=supplier_id)
    if db_supplier is None:
        raise HTTPException(status_code=404, detail="Supplier not found")
    return db_supplier

@app.put("/suppliers/{supplier_id}", response_model=schemas.Supplier)
def update_supplier(supplier_id: int, supplier_update: schemas.SupplierUpdate, db: Session = Depends(get_db), manager: models.Employee = Depends(get_current_manager)):
    db_supplier = crud.update_supplier(db, supplier_id=supplier_id, supplier_update=supplier_update)
    if db_supplier is None:
        raise HTTPException(status_code=404, detail="Supplier not found")
    return db_supplier

@app.delete("/suppliers/{supplier_id}", response_model=schemas.Supplier)
def delete_supplier(supplier_id: int, db: Session = Depends(get_db), manager: models.Employee = Depends(get_current_manager)):
    try:
        db_supplier = crud.delete_supplier(db, supplier_id=supplier_id)
    except IntegrityError as e:
        raise conflict("Supplier still has flowers", e)
    if db_supplier is None:
        raise HTTPException(status_code=404, detail="Supplier not found")
    return db_supplier

# --- Flower Endpoints ---

@app.post("/flowers/", response_model=schemas.Flower)
def create_flower(flower: schemas.FlowerCreate, db: Session = Depends(get_db), manager: models.Employee = Depends(get_current_manager)):
    if crud.get_supplier(db, supplier_id=flower.supplier_id) is None:
        raise HTTPException(status_code=404, detail="Supplier not found")
    return crud.create_flower(db, flower=flower)

@app.get("/flowers/", response_model=List[schemas.Flower])
def read_flowers(skip: int = 0, limit: int = 100, supplier_id: Optional[int] = None, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    return crud.get_flowers(db, skip=skip, limit=limit, supplier_id=supplier_id)

@app.get("/flowers/low-stock/", response_model=List[schemas.Flower])
def read_low_stock_flowers(threshold: Optional[int] = None, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    if threshold is None:
        threshold = settings.LOW_STOCK_THRESHOLD
    return crud.get_low_stock_flowers(db, threshold=threshold)

@app.get("/flowers/{flower_id}", response_model=schemas.Flower)
def read_flower(flower_id: int, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    db_flower = crud.get_flower(db, flower_id=flower_id)
    if db_flower is None:
        raise HTTPException(status_code=404, detail="Flower not found")
    return db_flower

@app.put("/flowers/{flower_id}", response_model=schemas.Flower)
def update_flower(flower_id: int, flower_update: schemas.FlowerUpdate, db: Session = Depends(get_db), manager: models.Employee = Depends(get_current_manager)):
    db_flower = crud.update_flower(db, flower_id=flower_id, flower_update=flower_update)
    if db_flower is None:
        raise HTTPException(status_code=404, detail="Flower not found")
    return db_flower

@app.patch("/flowers/{flower_id}/restock", response_model=schemas.Flower)
def restock_flower(flower_id: int, restock_request: schemas.RestockRequest, db: Session = Depends(get_db), manager: models.Employee = Depends(get_current_manager)):
    db_flower = crud.restock_flower(db, flower_id=flower_id, quantity_to_add=restock_request.quantity)
    if db_flower is None:
        raise HTTPException(status_code=404, detail="Flower not found")
    return db_flower

@app.delete("/flowers/{flower_id}", response_model=schemas.Flower)
def delete_flower(flower_id: int, db: Session = Depends(get_db), manager: models.Employee = Depends(get_current_manager)):
    try:
        db_flower = crud.delete_flower(db, flower_id=flower_id)
    except IntegrityError as e:
        raise conflict("Flower is referenced by orders", e)
    if db_flower is None:
        raise HTTPException(status_code=404, detail="Flower not found")
    return db_flower

# --- Order Management Endpoints ---

@app.post("/orders/", response_model=schemas.Order)
def create_order(
    order: schemas.OrderCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_employee: models.Employee = Depends(get_current_employee)
):
    customer = crud.get_customer(db, customer_id=order.customer_id)
    if customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")

    try:
        db_order = crud.create_order(db, order=order, employee_id=current_employee.id)
    except UnknownFlower as e:
        raise unknown_flower(e)
    except InsufficientStock as e:
        raise insufficient_stock(e)
    except IntegrityError as e:
        raise conflict("Order could not be stored", e)

    order_details = {
        "order_id": db_order.id,
        "customer_name": f"{customer.first_name} {customer.last_name}",
        "customer_email": customer.email,
        "customer_address": customer.address,
        "employee_name": f"{current_employee.first_name} {current_employee.last_name}",
        "comment": db_order.comment,
        "total": db_order.total,
        "items": [
            {"name": item.flower.name, "quantity": item.quantity, "unit_price": item.unit_price}
            for item in db_order.items
        ],
    }
    background_tasks.add_task(
        notifications.send_new_order_notification,
        order_details=order_details
    )
    schedule_low_stock_check(background_tasks, db, [item.flower_id for item in db_order.items])

    return db_order

@app.get("/orders/", response_model=List[schemas.Order])
def read_orders(skip: int = 0, limit: int = 100, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    return crud.get_orders(db, skip=skip, limit=limit)

@app.get("/orders/{order_id}", response_model=schemas.Order)
def read_order(order_id: int, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    db_order = crud.get_order(db, order_id=order_id)
    if db_order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return db_order

@app.patch("/orders/{order_id}/status", response_model=schemas.Order)
def update_order_status(order_id: int, status_update: schemas.OrderStatusUpdate, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    db_order = crud.update_order_status(db, order_id=order_id, status=status_update.status)
    if db_order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return db_order

@app.delete("/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_order(order_id: int, db: Session = Depends(get_db), manager: models.Employee = Depends(get_current_manager)):
    db_order = crud.delete_order(db, order_id=order_id)
    if db_order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@app.get("/orders/{order_id}/items", response_model=List[schemas.OrderFlower])
def read_order_items(order_id: int, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    if crud.get_order(db, order_id=order_id) is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return crud.get_order_flowers(db, order_id=order_id)

@app.post("/orders/{order_id}/items", response_model=schemas.OrderFlower)
def add_order_item(
    order_id: int,
    item: schemas.OrderFlowerCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_employee: models.Employee = Depends(get_current_employee)
):
    db_order = crud.get_order(db, order_id=order_id)
    if db_order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    if db_order.status in CLOSED_ORDER_STATUSES:
        raise HTTPException(status_code=409, detail=f"Order is {db_order.status.value}, items can no longer be added")
    try:
        db_item = crud.add_order_flower(db, order_id=order_id, item=item)
    except UnknownFlower as e:
        raise unknown_flower(e)
    except InsufficientStock as e:
        raise insufficient_stock(e)
    except IntegrityError as e:
        raise conflict("Flower is already part of this order", e)
    schedule_low_stock_check(background_tasks, db, [db_item.flower_id])
    return db_item

# --- Payment Endpoints ---

@app.post("/orders/{order_id}/payment", response_model=schemas.Payment)
def create_payment(order_id: int, payment: schemas.PaymentCreate, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    if crud.get_order(db, order_id=order_id) is None:
        raise HTTPException(status_code=404, detail="Order not found")
    try:
        return crud.create_payment(db, order_id=order_id, payment=payment)
    except IntegrityError as e:
        raise conflict("Order already has a payment", e)

@app.get("/orders/{order_id}/payment", response_model=schemas.Payment)
def read_payment(order_id: int, db: Session = Depends(get_db), current_employee: models.Employee = Depends(get_current_employee)):
    db_payment = crud.get_payment_by_order(db, order_id=order_id)
    if db_payment is None:
        raise HTTPException(status_code=404, detail="Payment not found")
    return db_payment
