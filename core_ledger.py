# -*- coding: utf-8 -*-
"""
core_ledger.py — склад филамента и журнал списаний.

Инварианты:
- остаток материала (weight_on_hand, кг) никогда не отрицателен;
- журнал только дописывается: событие неизменяемо, id = max + 1;
- списание больше остатка -> InsufficientStock, состояние не меняется;
- остаток перечитывается из хранилища непосредственно перед записью, поэтому два
  независимых входа (ручное списание и авто-списание по заказу) не работают со
  «старым» остатком.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Iterator, List, Optional

from core_common import (
    InsufficientStock,
    MaterialNotFound,
    PersistenceError,
    ValidationError,
    is_finite_number,
    next_id,
    to_decimal,
)
from core_models import (
    DELETED_MATERIAL_LABEL,
    ConsumptionEvent,
    Material,
    StockStatus,
    now_local,
)

log = logging.getLogger(__name__)

# Пороговые значения статуса остатка, кг
STOCK_LOW_KG = Decimal("0.2")
STOCK_MEDIUM_KG = Decimal("0.5")


def material_label(material: Optional[Material]) -> str:
    """Подпись материала, вычисляется при чтении (в заказах не хранится)."""
    if material is None:
        return DELETED_MATERIAL_LABEL
    return f"{material.type} - {material.color}"


def stock_value(material: Material) -> Decimal:
    return material.weight_on_hand * material.unit_cost


def compute_stock_status(material: Material) -> StockStatus:
    w = material.weight_on_hand
    if w == 0:
        return StockStatus.DEPLETED
    if w < STOCK_LOW_KG:
        return StockStatus.LOW
    if w < STOCK_MEDIUM_KG:
        return StockStatus.MEDIUM
    return StockStatus.HIGH


def _local_midnight(now: datetime, year: int, month: int) -> datetime:
    tz = now.tzinfo
    if tz is None or (isinstance(tz, timezone) and tz is not timezone.utc):
        # фиксированное смещение из astimezone(): смещение берём на саму дату (летнее время)
        return datetime(year, month, 1).astimezone()
    return datetime(year, month, 1, tzinfo=tz)


def month_bounds(now: datetime) -> tuple[datetime, datetime]:
    """[1-е число 00:00, 1-е число следующего месяца) по местному времени."""
    if now.month == 12:
        year, month = now.year + 1, 1
    else:
        year, month = now.year, now.month + 1
    return _local_midnight(now, now.year, now.month), _local_midnight(now, year, month)


@dataclass(frozen=True)
class ConsumptionSummary:
    total_kg: Decimal
    total_cost: Decimal
    event_count: int
    low_stock_materials: int

    def to_dict(self) -> dict:
        return {
            "total_kg": float(self.total_kg),
            "total_cost": float(self.total_cost),
            "event_count": self.event_count,
            "low_stock_materials": self.low_stock_materials,
        }


@dataclass(frozen=True)
class ConsumptionEventView:
    event: ConsumptionEvent
    material_label: str
    order_label: Optional[str] = None

    def to_dict(self) -> dict:
        out = self.event.to_dict()
        out["material"] = self.material_label
        out["order"] = self.order_label
        return out


class ConsumptionListing:
    """
    Ленивая, конечная, перезапускаемая выборка журнала.
    Каждый iter() заново читает хранилище, фильтрует и сортирует (новые сверху, стабильно).
    """

    def __init__(self, store, material_id: Optional[int], window_days: Optional[int], clock) -> None:
        self._store = store
        self.material_id = material_id
        self.window_days = window_days
        self._clock = clock

    def __iter__(self) -> Iterator[ConsumptionEventView]:
        events = self._store.consumption()
        if self.material_id is not None:
            events = [e for e in events if e.material_id == self.material_id]
        if self.window_days is not None:
            limit = self._clock() - timedelta(days=self.window_days)
            events = [e for e in events if e.moment >= limit]
        # sort стабилен и при reverse=True: равные метки сохраняют порядок вставки
        events = sorted(events, key=lambda e: e.moment, reverse=True)

        materials = {m.id: m for m in self._store.materials()}
        orders = {o.id: o for o in self._store.orders()}
        for e in events:
            order = orders.get(e.order_id) if e.order_id is not None else None
            order_label = f"{order.customer} - {order.description}" if order is not None else None
            yield ConsumptionEventView(e, material_label(materials.get(e.material_id)), order_label)


class MaterialLedger:
    """Единственный «писатель» остатков материалов."""

    def __init__(self, store, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.store = store
        self.clock = clock or now_local

    def add_material(self, type: Optional[str], color: Optional[str], weight_kg=0, unit_cost=0) -> Material:
        materials = self.store.materials()
        material = Material.from_dict({
            "id": next_id(m.to_dict() for m in materials),
            "type": (type or "").strip(),
            "color": (color or "").strip(),
            "weightOnHand": weight_kg,
            "unitCost": unit_cost,
        })
        self.store.save_materials(materials + [material])
        log.debug("material #%s added: %s, %s kg", material.id, material_label(material), material.weight_on_hand)
        return material

    def update_material(self, material_id: int, type=None, color=None, weight_kg=None, unit_cost=None) -> Material:
        """Прямое редактирование (в т.ч. пополнение остатка). None: поле не меняется."""
        materials = self.store.materials()
        index = next((i for i, m in enumerate(materials) if m.id == material_id), None)
        if index is None:
            raise MaterialNotFound(material_id)
        data = materials[index].to_dict()
        if type is not None:
            data["type"] = type.strip()
        if color is not None:
            data["color"] = color.strip()
        if weight_kg is not None:
            data["weightOnHand"] = weight_kg
        if unit_cost is not None:
            data["unitCost"] = unit_cost
        materials[index] = Material.from_dict(data)
        self.store.save_materials(materials)
        log.debug("material #%s updated: %s kg", material_id, materials[index].weight_on_hand)
        return materials[index]

    def delete_material(self, material_id: int) -> None:
        """Журнал и заказы ссылаются по id и показывают «Material eliminado»."""
        materials = self.store.materials()
        rest = [m for m in materials if m.id != material_id]
        if len(rest) == len(materials):
            raise MaterialNotFound(material_id)
        self.store.save_materials(rest)

    def record_consumption(
        self,
        material_id: int,
        quantity_grams,
        reason: str,
        description: Optional[str] = None,
        order_id: Optional[int] = None,
    ) -> ConsumptionEvent:
        if not is_finite_number(quantity_grams) or to_decimal(quantity_grams) <= 0:
            raise ValidationError(["quantity_grams"], "quantity must be a positive number")
        grams = to_decimal(quantity_grams)
        requested_kg = grams / 1000

        # перечитываем непосредственно перед записью
        materials = self.store.materials()
        material = next((m for m in materials if m.id == material_id), None)
        if material is None:
            raise MaterialNotFound(material_id)
        if requested_kg > material.weight_on_hand:
            raise InsufficientStock(material_id, material.weight_on_hand, requested_kg)

        previous_events = self.store.load("consumption")
        event = ConsumptionEvent(
            id=next_id(previous_events),
            material_id=material_id,
            quantity_grams=grams,
            reason=reason,
            cost=requested_kg * material.unit_cost,
            timestamp=self.clock().isoformat(),
            description=description or None,
            order_id=order_id,
        )

        self.store.save_or_raise("consumption", previous_events + [event.to_dict()])
        material.weight_on_hand = max(Decimal(0), material.weight_on_hand - requested_kg)
        try:
            self.store.save_materials(materials)
        except PersistenceError:
            # журнал уже записан, откатываем его
            if not self.store.save("consumption", previous_events):
                log.error("rollback of consumption log failed after event %s", event.id)
            raise

        log.debug(
            "consumption #%s: %s g of material %s (%s), cost=%s, left=%s kg",
            event.id, grams, material_id, reason, event.cost, material.weight_on_hand,
        )
        return event

    def monthly_consumption_summary(self) -> ConsumptionSummary:
        start, end = month_bounds(self.clock())
        month = [e for e in self.store.consumption() if start <= e.moment < end]
        total_kg = sum((e.quantity_kg for e in month), Decimal(0))
        total_cost = sum((e.cost for e in month), Decimal(0))
        low = sum(1 for m in self.store.materials() if m.weight_on_hand < STOCK_MEDIUM_KG)
        return ConsumptionSummary(total_kg, total_cost, len(month), low)

    def list_consumption(
        self, material_id: Optional[int] = None, window_days: Optional[int] = None
    ) -> ConsumptionListing:
        if window_days is not None and window_days < 0:
            raise ValidationError(["window_days"], "window must be >= 0 days")
        return ConsumptionListing(self.store, material_id, window_days, self.clock)

    def stock_report(self) -> List[dict]:
        """Таблица склада: материал, остаток, стоимость остатка, статус."""
        rows = []
        for m in self.store.materials():
            rows.append({
                **m.to_dict(),
                "label": material_label(m),
                "stockValue": float(stock_value(m)),
                "status": compute_stock_status(m).value,
            })
        return rows
