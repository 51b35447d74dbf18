from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.models import HistoryAction, Item
from app.services.deduction_service import deduct_items
from app.services.history_service import record_history
from app.services.id_utils import ITEM_PREFIX, next_id

logger = structlog.get_logger(__name__)

ADMIN_ACTOR_ID = 'ADMIN'
ADMIN_ACTOR_NAME = 'Administrator'


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def serialize_item(item: Item) -> dict:
    return {
        'id': item.id,
        'name': item.name,
        'category': item.category,
        'stock': item.stock,
        'created_at': item.created_at.isoformat() if item.created_at else None,
        'updated_at': item.updated_at.isoformat() if item.updated_at else None,
    }


def get_item(db: Session, item_id: str, *, for_update: bool = False) -> Item:
    stmt = select(Item).where(Item.id == item_id)
    if for_update:
        stmt = stmt.with_for_update()
    item = db.execute(stmt).scalar_one_or_none()
    if not item:
        raise ValueError('Item not found')
    return item


def list_items(db: Session) -> list[Item]:
    return list(db.execute(select(Item).order_by(Item.id.asc())).scalars().all())


def search_items(db: Session, query: str) -> list[Item]:
    needle = (query or '').strip().lower()
    stmt = select(Item).order_by(Item.id.asc())
    if needle:
        pattern = f'%{needle}%'
        stmt = stmt.where(or_(func.lower(Item.name).like(pattern), func.lower(Item.category).like(pattern)))
    return list(db.execute(stmt).scalars().all())


def add_item(db: Session, *, name: str, category: str = '', stock: int = 0) -> Item:
    name = name.strip()
    if not name:
        raise ValueError('Item name cannot be empty')
    if stock < 0:
        raise ValueError('Stock cannot be negative')
    now = _now()
    item = Item(
        id=next_id(db, Item.id, ITEM_PREFIX),
        name=name,
        category=(category or '').strip(),
        stock=stock,
        created_at=now,
        updated_at=now,
    )
    db.add(item)
    db.flush()
    logger.info('item_added', item_id=item.id, stock=stock)
    return item


def restock_item(
    db: Session,
    *,
    item_id: str,
    qty: int,
    employee_id: str = ADMIN_ACTOR_ID,
    employee_name: str = ADMIN_ACTOR_NAME,
) -> Item:
    if qty <= 0:
        raise ValueError('Restock quantity must be positive')
    item = get_item(db, item_id, for_update=True)
    item.stock += qty
    item.updated_at = _now()
    record_history(
        db,
        employee_id=employee_id,
        employee_name=employee_name,
        item_id=item.id,
        item_name=item.name,
        qty=qty,
        action=HistoryAction.RESTOCK,
    )
    logger.info('stock_restocked', item_id=item.id, qty=qty, new_stock=item.stock)
    return item


def update_item(
    db: Session,
    *,
    item_id: str,
    name: str | None = None,
    category: str | None = None,
    stock: int | None = None,
) -> Item:
    """Edit an item. Stock changes never write the column blindly.

    A higher stock is recorded as a restock of the difference; a lower stock is
    routed through the deduction path so task credit and alerts still apply.
    """
    item = get_item(db, item_id, for_update=True)
    if name is not None:
        if not name.strip():
            raise ValueError('Item name cannot be empty')
        item.name = name.strip()
    if category is not None:
        item.category = category.strip()

    if stock is not None:
        if stock < 0:
            raise ValueError('Stock cannot be negative')
        delta = stock - item.stock
        if delta > 0:
            restock_item(db, item_id=item.id, qty=delta)
        elif delta < 0:
            deduct_items(
                db,
                employee_id=ADMIN_ACTOR_ID,
                employee_name=ADMIN_ACTOR_NAME,
                lines=[(item.id, -delta)],
            )

    item.updated_at = _now()
    db.flush()
    return item


def delete_item(db: Session, *, item_id: str) -> str:
    item = get_item(db, item_id)
    db.delete(item)
    db.flush()
    logger.info('item_deleted', item_id=item_id)
    return item_id
