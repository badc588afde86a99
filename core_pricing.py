# -*- coding: utf-8 -*-
"""
core_pricing.py — калькулятор себестоимости и цены печати.

Цели:
- Никакого UI и никакой записи в хранилище: расчёт — чистая функция от (материал, ввод).
- Один источник правды для формул: материал + труд + электричество + амортизация
  + упаковка/прочее -> наценка -> скидка -> налог -> цена за штуку.
- Типизированная граница: parse_calc_input() валидирует «сырой» ввод (форма/CLI/JSON)
  до того, как он попадёт в формулы.

Вся арифметика в Decimal. Порядок шагов фиксирован (см. compute_breakdown).
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from decimal import Decimal
from typing import Any, Mapping, Optional

from core_common import (
    InvalidInput,
    MaterialNotFound,
    ValidationError,
    hm,
    is_finite_number,
    money,
    to_decimal,
)
from core_models import Material

log = logging.getLogger(__name__)

# ---------- Дефолты (перекрываются pricing.json и --set) ----------
CALC_DEFAULTS = {
    "piece_count": 1,
    "waste_percent": 5,
    "failure_margin_percent": 5,
    "wattage": 120,
    "energy_cost_per_kwh": 110,
    "printer_cost": 250000,
    "amortization_years": 2,
    "daily_usage_hours": 6,
    "repair_percent": 5,
    "tax_percent": 13,
    "prep_minutes": 0,
    "post_minutes": 0,
    "prep_labor_rate": 0,
    "post_labor_rate": 0,
    "packaging_cost_per_piece": 0,
    "other_costs": 0,
    "discount_percent": 0,
    "include_tax": True,
}

REQUIRED_FIELDS = ("material_id", "weight_per_piece_grams", "print_hours", "margin_percent")

DAYS_PER_YEAR = 365


@dataclass(frozen=True)
class CalcInput:
    """Провалидированный ввод калькулятора. Все числа — Decimal."""
    material_id: int
    weight_per_piece_grams: Decimal
    print_hours: Decimal
    margin_percent: Decimal
    piece_count: int = 1
    waste_percent: Decimal = Decimal(5)
    prep_minutes: Decimal = Decimal(0)
    post_minutes: Decimal = Decimal(0)
    failure_margin_percent: Decimal = Decimal(5)
    wattage: Decimal = Decimal(120)
    energy_cost_per_kwh: Decimal = Decimal(110)
    prep_labor_rate: Decimal = Decimal(0)
    post_labor_rate: Decimal = Decimal(0)
    printer_cost: Decimal = Decimal(250000)
    amortization_years: Decimal = Decimal(2)
    daily_usage_hours: Decimal = Decimal(6)
    repair_percent: Decimal = Decimal(5)
    packaging_cost_per_piece: Decimal = Decimal(0)
    other_costs: Decimal = Decimal(0)
    discount_percent: Decimal = Decimal(0)
    tax_percent: Decimal = Decimal(13)
    include_tax: bool = True


_DECIMAL_FIELDS = tuple(
    f.name for f in fields(CalcInput) if f.name not in ("material_id", "piece_count", "include_tax")
)


def _coerce_bool(v) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "y", "si", "sí", "on")
    return bool(v)


def parse_calc_input(raw: Mapping[str, Any], defaults: Optional[Mapping[str, Any]] = None) -> CalcInput:
    """
    Сырой ввод -> CalcInput.

    - обязательные поля (REQUIRED_FIELDS) должны быть в raw: иначе ValidationError со списком;
    - остальные берутся из defaults (по умолчанию CALC_DEFAULTS);
    - нечисловые / бесконечные / отрицательные значения -> ValidationError;
    - piece_count < 1 -> InvalidInput.
    """
    raw = dict(raw or {})
    missing = [k for k in REQUIRED_FIELDS if raw.get(k) is None or raw.get(k) == ""]
    if missing:
        raise ValidationError(missing, "missing required fields")

    merged = dict(CALC_DEFAULTS)
    merged.update({k: v for k, v in (defaults or {}).items() if k in CALC_DEFAULTS})
    merged.update({k: v for k, v in raw.items() if v is not None})

    bad = []
    values: dict = {}
    for name in _DECIMAL_FIELDS:
        v = merged.get(name)
        if not is_finite_number(v):
            bad.append(name)
            continue
        d = to_decimal(v)
        if d < 0:
            bad.append(name)
            continue
        values[name] = d

    material_id = merged.get("material_id")
    if not is_finite_number(material_id) or to_decimal(material_id) != to_decimal(material_id).to_integral_value():
        bad.append("material_id")

    pieces = merged.get("piece_count")
    if not is_finite_number(pieces) or to_decimal(pieces) != to_decimal(pieces).to_integral_value():
        bad.append("piece_count")

    if bad:
        raise ValidationError(bad, "invalid numeric fields")

    piece_count = int(to_decimal(pieces))
    if piece_count < 1:
        raise InvalidInput(f"piece_count must be int >= 1, got: {pieces!r}")

    return CalcInput(
        material_id=int(to_decimal(material_id)),
        piece_count=piece_count,
        include_tax=_coerce_bool(merged.get("include_tax", True)),
        **values,
    )


@dataclass(frozen=True)
class CostBreakdown:
    """Полная разбивка расчёта: все промежуточные значения для показа и аудита."""
    material_id: int
    material_label: str
    unit_cost: Decimal
    piece_count: int
    weight_per_piece_grams: Decimal
    effective_weight_grams: Decimal
    material_cost: Decimal
    print_hours: Decimal
    total_hours: Decimal
    hours_with_failure_margin: Decimal
    labor_cost: Decimal
    energy_kwh: Decimal
    energy_cost: Decimal
    repair_cost: Decimal
    total_equipment_cost: Decimal
    lifetime_hours: Decimal
    cost_per_hour: Decimal
    depreciation_cost: Decimal
    packaging_cost: Decimal
    other_cost: Decimal
    subtotal: Decimal
    margin_percent: Decimal
    profit: Decimal
    price_with_margin: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    price_before_tax: Decimal
    include_tax: bool
    tax_percent: Decimal
    tax_amount: Decimal
    final_price: Decimal
    price_per_piece: Decimal

    def to_dict(self) -> dict:
        out = {}
        for k, v in asdict(self).items():
            out[k] = float(v) if isinstance(v, Decimal) else v
        return out


def compute_breakdown(material: Material, inp: CalcInput) -> CostBreakdown:
    """Чистый расчёт. Порядок шагов фиксирован; деление на ноль -> InvalidInput."""
    if inp.piece_count <= 0:
        raise InvalidInput(f"piece_count must be int >= 1, got: {inp.piece_count!r}")

    pieces = Decimal(inp.piece_count)
    hundred = Decimal(100)

    # 1-2. Материал (с учётом отхода)
    effective_weight = inp.weight_per_piece_grams * pieces * (1 + inp.waste_percent / hundred)
    material_cost = (effective_weight / 1000) * material.unit_cost

    # 3. Время: запас на брак только в отчёт, деньги за энергию считаем по print_hours
    total_hours = inp.print_hours + inp.prep_minutes / 60 + inp.post_minutes / 60
    hours_with_failure = total_hours * (1 + inp.failure_margin_percent / hundred)

    # 4. Труд
    labor_cost = (inp.prep_minutes / 60) * inp.prep_labor_rate + (inp.post_minutes / 60) * inp.post_labor_rate

    # 5. Электроэнергия
    energy_kwh = (inp.wattage / 1000) * inp.print_hours
    energy_cost = energy_kwh * inp.energy_cost_per_kwh

    # 6. Амортизация принтера
    repair_cost = inp.printer_cost * inp.repair_percent / hundred
    total_equipment = inp.printer_cost + repair_cost
    lifetime_hours = inp.amortization_years * DAYS_PER_YEAR * inp.daily_usage_hours
    if lifetime_hours == 0:
        raise InvalidInput("lifetime hours is zero (amortization_years * 365 * daily_usage_hours)")
    cost_per_hour = total_equipment / lifetime_hours
    depreciation_cost = cost_per_hour * inp.print_hours

    # 7. Упаковка и прочее
    packaging_cost = inp.packaging_cost_per_piece * pieces
    other_cost = inp.other_costs

    # 8-12. Итоговая цепочка
    subtotal = material_cost + labor_cost + energy_cost + depreciation_cost + packaging_cost + other_cost
    profit = subtotal * inp.margin_percent / hundred
    price_with_margin = subtotal + profit
    discount_amount = price_with_margin * inp.discount_percent / hundred
    price_before_tax = price_with_margin - discount_amount
    if inp.include_tax:
        tax_amount = price_before_tax * inp.tax_percent / hundred
    else:
        tax_amount = Decimal(0)
    final_price = price_before_tax + tax_amount
    price_per_piece = final_price / pieces

    return CostBreakdown(
        material_id=material.id,
        material_label=f"{material.type} - {material.color}",
        unit_cost=material.unit_cost,
        piece_count=inp.piece_count,
        weight_per_piece_grams=inp.weight_per_piece_grams,
        effective_weight_grams=effective_weight,
        material_cost=material_cost,
        print_hours=inp.print_hours,
        total_hours=total_hours,
        hours_with_failure_margin=hours_with_failure,
        labor_cost=labor_cost,
        energy_kwh=energy_kwh,
        energy_cost=energy_cost,
        repair_cost=repair_cost,
        total_equipment_cost=total_equipment,
        lifetime_hours=lifetime_hours,
        cost_per_hour=cost_per_hour,
        depreciation_cost=depreciation_cost,
        packaging_cost=packaging_cost,
        other_cost=other_cost,
        subtotal=subtotal,
        margin_percent=inp.margin_percent,
        profit=profit,
        price_with_margin=price_with_margin,
        discount_percent=inp.discount_percent,
        discount_amount=discount_amount,
        price_before_tax=price_before_tax,
        include_tax=inp.include_tax,
        tax_percent=inp.tax_percent,
        tax_amount=tax_amount,
        final_price=final_price,
        price_per_piece=price_per_piece,
    )


class CostCalculator:
    """
    Калькулятор поверх хранилища: находит материал и считает разбивку.
    last_calculation — последний результат (для «сохранить как товар/заказ»), в хранилище не пишется.
    """

    def __init__(self, store, defaults: Optional[Mapping[str, Any]] = None) -> None:
        self.store = store
        self.defaults = dict(defaults) if defaults is not None else dict(CALC_DEFAULTS)
        self.last_calculation: Optional[CostBreakdown] = None

    def calculate(self, inp) -> CostBreakdown:
        if not isinstance(inp, CalcInput):
            inp = parse_calc_input(inp, self.defaults)
        material = self.store.find_material(inp.material_id)
        if material is None:
            raise MaterialNotFound(inp.material_id)
        bd = compute_breakdown(material, inp)
        log.debug(
            "calc material=%s pieces=%s subtotal=%s final=%s",
            material.id, inp.piece_count, bd.subtotal, bd.final_price,
        )
        self.last_calculation = bd
        return bd


# ---------- Форматирование отчёта ----------
def _line(label: str, value, currency: str, width: int = 14) -> str:
    return f"  {label:<30}{money(value, currency):>{width}}\n"


def render_report(bd: CostBreakdown, *, currency: str = "₡", brief: bool = True) -> str:
    head = []
    head.append(f"Material: {bd.material_label} ({money(bd.unit_cost, currency)}/kg)\n")
    head.append(
        f"• Piezas: {bd.piece_count} × {float(bd.weight_per_piece_grams):.2f} g "
        f"→ {float(bd.effective_weight_grams):.2f} g con desperdicio\n"
    )
    head.append(
        f"• Impresión: {hm(bd.print_hours)} | Total con preparación: {hm(bd.total_hours)} "
        f"(con margen de fallo {hm(bd.hours_with_failure_margin)})\n"
    )
    head.append("-" * 46 + "\n")

    body = []
    body.append(_line("Material", bd.material_cost, currency))
    if brief:
        other = bd.labor_cost + bd.energy_cost + bd.depreciation_cost + bd.packaging_cost + bd.other_cost
        if other:
            body.append(_line("Otros (mano de obra, energía...)", other, currency))
    else:
        body.append(_line("Mano de obra", bd.labor_cost, currency))
        body.append(_line(f"Electricidad ({float(bd.energy_kwh):.2f} kWh)", bd.energy_cost, currency))
        body.append(_line("Depreciación del equipo", bd.depreciation_cost, currency))
        body.append(_line("Empaque", bd.packaging_cost, currency))
        body.append(_line("Otros costos", bd.other_cost, currency))
    body.append(_line("Subtotal", bd.subtotal, currency))
    body.append(_line(f"Margen {float(bd.margin_percent):g}%", bd.profit, currency))
    if bd.discount_amount:
        body.append(_line(f"Descuento {float(bd.discount_percent):g}%", -bd.discount_amount, currency))
    if bd.include_tax:
        body.append(_line(f"IVA {float(bd.tax_percent):g}%", bd.tax_amount, currency))
    body.append("-" * 46 + "\n")
    body.append(f"TOTAL: {money(bd.final_price, currency)} | Por pieza: {money(bd.price_per_piece, currency)}\n")
    if not brief:
        body.append(
            f"Amortización: {money(bd.cost_per_hour, currency)}/h sobre {float(bd.lifetime_hours):g} h de vida útil\n"
        )
    return "".join(head + body)
