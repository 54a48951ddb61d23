import logging
from decimal import Decimal
from typing import Dict, List, Sequence

from discount_sync.schemas.sync import (
    ComparisonDetails,
    ComparisonResult,
    DifferenceType,
    ProductComparison,
    ProductSnapshot,
)

log = logging.getLogger(__name__)

PRICE_TOLERANCE = Decimal("0.01")


def _differs(a: float, b: float) -> bool:
    # Decimal over the printed value so 10.00 vs 10.01 is exactly 0.01, not 0.009999...
    return abs(Decimal(str(a)) - Decimal(str(b))) > PRICE_TOLERANCE


def _snapshot(product) -> ProductSnapshot:
    return ProductSnapshot(price=product.price, final_price=product.final_price, active=True)


def _code_sort_key(code: str):
    return (0, int(code), "") if code.isdigit() else (1, 0, code)


def _price_key(product):
    return (product.final_price, product.price)


class ComparisonEngine:
    """
    Diffs a reference product set (what was pushed) against what the target reports active.

    Works on anything exposing code, price and final_price (cached rows, connector
    models). The result only depends on the contents of the two lists, never on
    their order.
    """

    def compare(
        self,
        reference: Sequence,
        target: Sequence,
        store_id: int = 0,
        store_name: str = "",
    ) -> ComparisonResult:
        target_by_code: Dict[str, List] = {}
        for product in target:
            target_by_code.setdefault(str(product.code), []).append(product)

        reference_by_code: Dict[str, object] = {}
        for product in sorted(reference, key=_price_key):
            reference_by_code[str(product.code)] = product

        missing: List[ProductComparison] = []
        price_diff: List[ProductComparison] = []

        for code in sorted(reference_by_code, key=_code_sort_key):
            product = reference_by_code[code]
            candidates = target_by_code.get(code)
            if not candidates:
                missing.append(ProductComparison(
                    product_code=code,
                    source_data=_snapshot(product),
                    difference_type=DifferenceType.MISSING,
                ))
                continue

            matching = [
                c for c in candidates
                if not _differs(product.final_price, c.final_price) and not _differs(product.price, c.price)
            ]
            if not matching:
                reported = sorted(candidates, key=_price_key)[0]
                price_diff.append(ProductComparison(
                    product_code=code,
                    source_data=_snapshot(product),
                    target_data=_snapshot(reported),
                    difference_type=DifferenceType.PRICE_DIFF,
                ))

        result = ComparisonResult(
            store_id=store_id,
            store_name=store_name,
            differences_found=len(missing) + len(price_diff),
            missing_products=len(missing),
            price_differences=len(price_diff),
            status_differences=0,
            details=ComparisonDetails(missing=missing, price_diff=price_diff, status_diff=[]),
        )
        log.debug(
            f"Comparison for store {store_id}: {len(reference_by_code)} reference, {len(target)} target, "
            f"{result.missing_products} missing, {result.price_differences} price differences"
        )
        return result

    @staticmethod
    def failed_result(store_id: int, store_name: str, error: str) -> ComparisonResult:
        """Zero-valued result for a store whose reconciliation could not run."""
        return ComparisonResult(store_id=store_id, store_name=store_name, error=error)
