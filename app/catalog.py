from typing import Optional

from sqlalchemy.orm import Session

from . import models


def get_restaurant(db: Session, restaurant_id: str) -> Optional[models.Restaurant]:
    return db.query(models.Restaurant).filter(models.Restaurant.id == restaurant_id).first()


def get_menu_item(db: Session, menu_item_id: str) -> Optional[models.MenuItem]:
    return db.query(models.MenuItem).filter(models.MenuItem.id == menu_item_id).first()
