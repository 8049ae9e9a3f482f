import argparse
from flowershop.database import SessionLocal, engine
from flowershop import models, schemas
from flowershop.crud import create_employee, get_employee_by_username

def main(argv=None):
    parser = argparse.ArgumentParser(description="Create an employee that can log in to the API.")
    parser.add_argument("username", type=str, help="The username for the employee.")
    parser.add_argument("password", type=str, help="The password for the employee.")
    parser.add_argument("--first-name", default="Shop", help="First name (default: Shop).")
    parser.add_argument("--last-name", default="Manager", help="Last name (default: Manager).")
    parser.add_argument("--role", default="Manager", help="Role (default: Manager).")
    parser.add_argument("--phone", default=None, help="Phone number.")
    args = parser.parse_args(argv)

    print("Creating database tables...")
    models.Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        if get_employee_by_username(db, args.username):
            print(f"Username '{args.username}' is already taken.")
            return 1
        print(f"Creating employee '{args.username}'...")
        employee_in = schemas.EmployeeCreate(
            username=args.username,
            password=args.password,
            first_name=args.first_name,
            last_name=args.last_name,
            role=args.role,
            phone=args.phone,
        )
        employee = create_employee(db, employee=employee_in)
        print(f"Employee '{employee.username}' ({employee.role}) created successfully.")
        return 0
    finally:
        db.close()

if __name__ == "__main__":
    raise SystemExit(main())
