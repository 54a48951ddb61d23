import logging
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from discount_sync.config import settings
from discount_sync.connectors.base import DiscountWindow, SourceProduct
from discount_sync.models.product import CachedProduct

log = logging.getLogger(__name__)


class ProductCache:
    """
    Per-store snapshot of the last source fetch.

    replace() swaps the whole set for a store inside one transaction, so a
    reader sees either the previous snapshot or the new one, never a mix.
    """

    def __init__(self, db: Session):
        self.db = db

    def replace(self, store_id: int, products: List[SourceProduct], window: DiscountWindow) -> int:
        # Duplicate codes in one fetch collapse to the last occurrence
        unique = {}
        for product in products:
            unique[product.code] = product

        rows = [
            CachedProduct(
                code=product.code,
                price=product.price,
                final_price=product.final_price,
                limit=product.limit or settings.default_product_limit,
                store_id=store_id,
                starts_at=window.start,
                expires_at=window.end,
            )
            for product in unique.values()
        ]

        try:
            deleted = self.db.query(CachedProduct).filter(
                CachedProduct.store_id == store_id
            ).delete(synchronize_session=False)
            self.db.add_all(rows)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error(f"Cache replace failed for store {store_id}: {e}")
            raise

        if len(unique) != len(products):
            log.warning(f"Store {store_id}: {len(products) - len(unique)} duplicate product codes collapsed")
        log.debug(f"Cache for store {store_id} replaced: {deleted} removed, {len(rows)} inserted")
        return len(rows)

    def read_active(self, store_id: int) -> List[CachedProduct]:
        return self.db.query(CachedProduct).filter(
            CachedProduct.store_id == store_id,
            CachedProduct.deleted_at.is_(None),
        ).order_by(CachedProduct.code).all()
