"""
Shipment Grouping & Progress Calculator
=======================================

Two legs are tracked:

    SG -> KH   actual Shipment lines, grouped by packing list
    CN -> SG   orders not yet arrived and not on any packing list,
               grouped by the forwarder's delivery number

Progress runs from the packing-list date to the arrival date (or ETA when
not yet arrived). ``eta_percentage`` places the scheduled ETA on the same
scale so late shipments can be drawn past their due point.
"""

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .dates import days_between, parse_date
from .indexes import order_key
from .models import (
    AugmentedShipmentGroup,
    Order,
    Shipment,
    ShipmentLine,
    ShipmentProgress,
    ShipmentStatus,
)

logger = logging.getLogger(__name__)

LEG_SG_KH = "SG→KH"
LEG_CN_SG = "CN→SG"

# Factory-side statuses meaning the goods have left the factory
FACTORY_SHIPPED = {"Shipped", "Delivered"}


def calculate_progress(
    start: Optional[datetime],
    end: Optional[datetime],
    eta: Optional[datetime],
    today: datetime,
) -> ShipmentProgress:
    """Elapsed share of the start -> end window, clamped to [0, 100]."""
    if start is None or end is None:
        return ShipmentProgress()

    total = days_between(start, end)
    elapsed = days_between(start, today)

    eta_percentage = None
    if eta is not None and total > 0:
        eta_percentage = days_between(start, eta) / total * 100

    return ShipmentProgress(
        percentage=min(100.0, max(0.0, elapsed / total * 100)) if total > 0 else 0.0,
        total_duration=total if total > 0 else 0.0,
        elapsed=max(0.0, elapsed),
        is_complete=today >= end,
        eta_percentage=eta_percentage,
    )


def _delay_days(eta: Optional[datetime], today: datetime) -> int:
    if eta is None or eta >= today:
        return 0
    return (today - eta).days


def _group_packing_lists(
    shipments: Iterable[Shipment],
    orders: Dict[str, Order],
    today: datetime,
) -> List[AugmentedShipmentGroup]:
    by_packing_list: Dict[str, List[Shipment]] = OrderedDict()
    for shipment in shipments:
        by_packing_list.setdefault(shipment.packing_list, []).append(shipment)

    groups = []
    for packing_list, lines in by_packing_list.items():
        # Dates are recorded per packing list; the first line carries them
        first = lines[0]
        packed = parse_date(first.packing_list_date) if first.packing_list_date else None
        eta = parse_date(first.eta) if first.eta else None
        arrived = parse_date(first.arrival_date) if first.arrival_date else None

        delay = 0
        if first.arrival_date:
            status = ShipmentStatus.ARRIVED
        elif eta is not None and eta < today:
            status = ShipmentStatus.DELAYED
            delay = _delay_days(eta, today)
        elif packed is not None and packed <= today:
            status = ShipmentStatus.TRANSIT_SG_KH
        else:
            status = ShipmentStatus.UPCOMING

        items = []
        total_fob = 0.0
        for line in lines:
            order = orders.get(order_key(line.sales_order, line.mtm))
            total_fob += ((order.fob_unit_price or 0.0) if order else 0.0) * line.quantity
            items.append(ShipmentLine(
                sales_order=line.sales_order,
                mtm=line.mtm,
                packing_list=packing_list,
                quantity=line.quantity,
                shipping_cost=line.shipping_cost,
                model_name=order.model_name if order and order.model_name else "Unknown",
                eta=line.eta,
                packing_list_date=line.packing_list_date,
                arrival_date=line.arrival_date,
            ))

        groups.append(AugmentedShipmentGroup(
            packing_list=packing_list,
            leg=LEG_SG_KH,
            source="shipment",
            items=items,
            packing_list_date=first.packing_list_date,
            eta=first.eta,
            arrival_date=first.arrival_date,
            total_quantity=sum(line.quantity for line in lines),
            total_cost=sum(line.shipping_cost * line.quantity for line in lines),
            total_fob_value=total_fob,
            total_kgs_on_date=first.total_kgs_on_date,
            status=status,
            progress=calculate_progress(packed, arrived or eta, eta, today),
            delay_days=delay,
        ))

    return groups


def _group_delivery_numbers(
    orders: Iterable[Order],
    already_shipped: set,
    today: datetime,
) -> List[AugmentedShipmentGroup]:
    by_delivery: Dict[str, List[Order]] = OrderedDict()
    for order in orders:
        if not order.delivery_number or order.actual_arrival:
            continue
        if order_key(order.sales_order, order.mtm) in already_shipped:
            continue
        by_delivery.setdefault(order.delivery_number, []).append(order)

    groups = []
    for delivery_number, members in by_delivery.items():
        earliest_text, earliest = None, None
        for order in members:
            eta = parse_date(order.eta) if order.eta else None
            if eta is not None and (earliest is None or eta < earliest):
                earliest_text, earliest = order.eta, eta

        delay = 0
        if earliest is not None and earliest < today:
            status = ShipmentStatus.DELAYED
            delay = _delay_days(earliest, today)
        elif any(o.factory_to_sgp in FACTORY_SHIPPED for o in members):
            status = ShipmentStatus.TRANSIT_CN_SG
        else:
            status = ShipmentStatus.UPCOMING

        groups.append(AugmentedShipmentGroup(
            packing_list=delivery_number,
            leg=LEG_CN_SG,
            source="order",
            items=[
                ShipmentLine(
                    sales_order=o.sales_order,
                    mtm=o.mtm,
                    packing_list=delivery_number,
                    quantity=o.qty,
                    shipping_cost=0.0,
                    model_name=o.model_name,
                    eta=o.eta,
                )
                for o in members
            ],
            packing_list_date=None,
            eta=earliest_text,
            arrival_date=None,
            total_quantity=sum(o.qty for o in members),
            total_cost=0.0,
            total_fob_value=sum(o.order_value for o in members),
            total_kgs_on_date=0.0,
            status=status,
            # No packing date yet, so no progress window
            progress=ShipmentProgress(),
            delay_days=delay,
        ))

    return groups


def build_shipment_groups(
    shipments: Iterable[Shipment],
    orders: Iterable[Order],
    today: datetime,
) -> List[AugmentedShipmentGroup]:
    """Packing-list groups first, then delivery-number groups."""
    orders = list(orders)
    order_lookup = {order_key(o.sales_order, o.mtm): o for o in orders}

    sg_groups = _group_packing_lists(shipments, order_lookup, today)
    shipped = {
        order_key(item.sales_order, item.mtm)
        for group in sg_groups
        for item in group.items
    }
    cn_groups = _group_delivery_numbers(orders, shipped, today)

    logger.debug("%d packing-list groups, %d delivery-number groups", len(sg_groups), len(cn_groups))
    return sg_groups + cn_groups


def summarize_transit(groups: Iterable[AugmentedShipmentGroup]) -> Dict[str, float]:
    """Counts and value for groups still moving or running late."""
    summary = {
        "in_transit_count": 0,
        "in_transit_value": 0.0,
        "in_transit_units": 0,
        "delayed_count": 0,
    }
    for group in groups:
        if group.status in (ShipmentStatus.TRANSIT_SG_KH, ShipmentStatus.TRANSIT_CN_SG):
            summary["in_transit_count"] += 1
            summary["in_transit_value"] += group.total_fob_value
            summary["in_transit_units"] += group.total_quantity
        elif group.status == ShipmentStatus.DELAYED:
            summary["delayed_count"] += 1
    return summary
