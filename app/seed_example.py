from sqlalchemy import select

from app.db import SessionLocal, engine
from app.models import Base, Employee, EmployeeRole, Item
from app.security.passwords import hash_pin
from app.services.id_utils import EMPLOYEE_PREFIX, ITEM_PREFIX, format_id
from app.services.stock_alert_service import get_low_stock_threshold, update_low_stock_threshold


DEMO_ITEMS = [
    ('Packing Tape', 'Supplies', 24),
    ('Shipping Box (M)', 'Packaging', 40),
    ('Label Roll', 'Supplies', 6),
]


def seed() -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        admin = db.execute(select(Employee).where(Employee.role == EmployeeRole.ADMIN)).scalars().first()
        if not admin:
            db.add(
                Employee(
                    id=format_id(EMPLOYEE_PREFIX, 1),
                    name='Administrator',
                    role=EmployeeRole.ADMIN,
                    email='admin@example.com',
                    pin_hash=hash_pin('9999'),
                )
            )

        worker = db.execute(select(Employee).where(Employee.name == 'Demo Employee')).scalar_one_or_none()
        if not worker:
            db.add(
                Employee(
                    id=format_id(EMPLOYEE_PREFIX, 2),
                    name='Demo Employee',
                    role=EmployeeRole.EMPLOYEE,
                    email=None,
                    pin_hash=hash_pin('1234'),
                )
            )

        if not db.execute(select(Item.id).limit(1)).first():
            for idx, (name, category, stock) in enumerate(DEMO_ITEMS, start=1):
                db.add(Item(id=format_id(ITEM_PREFIX, idx), name=name, category=category, stock=stock))

        db.flush()
        update_low_stock_threshold(db, get_low_stock_threshold(db))
        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
