"""
Identity Index Builder
Lookup maps that let sales be joined to orders, freight, accessories and
rebate claims without nested-loop scans.

Composite keys are ``"<salesOrder>-<mtm>"`` exactly as supplied (case
sensitive). Serial-number keys are always upper-cased. When two records share
a key the later one wins.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from .models import (
    AccessoryCost,
    Order,
    RebateSale,
    SerializedItem,
    Shipment,
)

logger = logging.getLogger(__name__)


def order_key(sales_order: Optional[str], mtm: Optional[str]) -> str:
    """Composite ``salesOrder-mtm`` key used by every order-level join."""
    return f"{sales_order}-{mtm}"


def normalize_serial(serial: Optional[str]) -> str:
    return (serial or "").strip().upper()


@dataclass
class SourceIndexes:
    """Keyed views over one snapshot of the source collections."""
    serial_index: Dict[str, SerializedItem] = field(default_factory=dict)
    order_index: Dict[str, Order] = field(default_factory=dict)
    shipping_cost_index: Dict[str, float] = field(default_factory=dict)
    accessory_index: Dict[str, float] = field(default_factory=dict)
    rebate_sale_index: Dict[str, RebateSale] = field(default_factory=dict)

    def find_serialized(self, serial: Optional[str]) -> Optional[SerializedItem]:
        return self.serial_index.get(normalize_serial(serial))

    def find_rebate_sale(self, serial: Optional[str]) -> Optional[RebateSale]:
        return self.rebate_sale_index.get(normalize_serial(serial))


def _count_duplicates(keys: Iterable[str]) -> int:
    seen = set()
    duplicates = 0
    for key in keys:
        if key in seen:
            duplicates += 1
        seen.add(key)
    return duplicates


def build_indexes(
    orders: Iterable[Order] = (),
    serialized_items: Iterable[SerializedItem] = (),
    shipments: Iterable[Shipment] = (),
    accessory_costs: Iterable[AccessoryCost] = (),
    rebate_sales: Iterable[RebateSale] = (),
) -> SourceIndexes:
    """
    Build all lookup maps for one computation pass.

    A serialized item is reachable under both its serial number and its full
    serialized string, since sales reference either form.
    """
    indexes = SourceIndexes()

    for item in serialized_items:
        for serial in (item.serial_number, item.full_serialized_string):
            key = normalize_serial(serial)
            if key:
                indexes.serial_index[key] = item

    orders = list(orders)
    for order in orders:
        indexes.order_index[order_key(order.sales_order, order.mtm)] = order

    duplicates = _count_duplicates(order_key(o.sales_order, o.mtm) for o in orders)
    if duplicates:
        logger.warning(
            "%d orders share a salesOrder-mtm key with an earlier order; keeping the last",
            duplicates,
        )

    for shipment in shipments:
        indexes.shipping_cost_index[order_key(shipment.sales_order, shipment.mtm)] = shipment.shipping_cost

    for cost in accessory_costs:
        indexes.accessory_index[order_key(cost.so, cost.mtm)] = cost.backpack_cost

    for rebate_sale in rebate_sales:
        key = normalize_serial(rebate_sale.serial_number)
        if key:
            indexes.rebate_sale_index[key] = rebate_sale

    logger.debug(
        "Indexes built: %d serials, %d orders, %d shipping costs, %d accessory costs, %d rebate sales",
        len(indexes.serial_index),
        len(indexes.order_index),
        len(indexes.shipping_cost_index),
        len(indexes.accessory_index),
        len(indexes.rebate_sale_index),
    )
    return indexes
