# -*- coding: utf-8 -*-
"""
core_common.py — общие утилиты ядра: числа, деньги, форматирование, ошибки.

Здесь живёт то, что нужно и калькулятору, и складу:
- приведение «грязных» значений (формы, JSON) к числам;
- Decimal-арифметика денег и округление;
- таксономия ошибок ядра.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, List

import numpy as np


# ---------- Числа ----------
def nz(v, d=0.0) -> float:
    try:
        f = float(v)
        if np.isfinite(f):
            return f
    except Exception:
        pass
    return d


def is_finite_number(v) -> bool:
    if v is None or isinstance(v, bool):
        return False
    try:
        return bool(np.isfinite(float(v)))
    except (TypeError, ValueError):
        return False


def to_decimal(v, d: Decimal | int | str = 0) -> Decimal:
    """
    Значение -> Decimal. Всё, что не парсится в конечное число, даёт d.
    Float проходит через repr, чтобы 0.1 оставалось 0.1, а не 0.1000000000000000055...
    """
    if isinstance(v, Decimal):
        return v if v.is_finite() else Decimal(d)
    if not is_finite_number(v):
        return Decimal(d)
    if isinstance(v, (int, str)):
        try:
            out = Decimal(str(v).strip())
        except InvalidOperation:
            return Decimal(d)
        return out if out.is_finite() else Decimal(d)
    return Decimal(repr(float(v)))


def to_currency(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def round_whole(value: Decimal) -> Decimal:
    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def next_id(records: Iterable[dict], key: str = "id") -> int:
    """max(id) + 1, либо 1 для пустой коллекции. Нечисловые id игнорируются."""
    ids = [int(nz(r.get(key), 0)) for r in records if isinstance(r, dict)]
    return max(ids) + 1 if ids else 1


def deep_merge(dst: dict, src: dict) -> dict:
    """Глубокое слияние словарей src в dst (in-place). Возвращает dst."""
    for k, v in (src or {}).items():
        if isinstance(v, dict) and isinstance(dst.get(k), dict):
            deep_merge(dst[k], v)
        else:
            dst[k] = v
    return dst


# ---------- Форматирование ----------
def money(v, symbol: str = "₡") -> str:
    s = f"{nz(v):,.2f}"
    if s.endswith(".00"):
        s = s[:-3]
    return f"{symbol}{s}"


def hm(hours) -> str:
    hours = max(0.0, nz(hours))
    h = int(hours)
    m = int(round((hours - h) * 60))
    if m == 60:
        h, m = h + 1, 0
    return f"{h}h {m:02d}m"


def kg(v) -> str:
    return f"{nz(v):.2f} kg"


# ---------- Ошибки ----------
class ShopError(Exception):
    """Базовая ошибка ядра. Все наследники умеют отдавать себя в JSON."""

    kind = "ShopError"

    def to_dict(self) -> dict:
        return {"type": self.kind, "error": str(self)}


class ValidationError(ShopError):
    """Не хватает обязательных полей или они не числа."""

    kind = "ValidationError"

    def __init__(self, fields: Iterable[str], message: str = "missing or invalid fields"):
        self.fields: List[str] = list(fields)
        super().__init__(f"{message}: {', '.join(self.fields)}")

    def to_dict(self) -> dict:
        out = super().to_dict()
        out["fields"] = list(self.fields)
        return out


class MaterialNotFound(ShopError):
    kind = "MaterialNotFound"

    def __init__(self, material_id):
        self.material_id = material_id
        super().__init__(f"material not found: {material_id!r}")

    def to_dict(self) -> dict:
        out = super().to_dict()
        out["material_id"] = self.material_id
        return out


class InsufficientStock(ShopError):
    """Списание больше остатка. Количества в кг."""

    kind = "InsufficientStock"

    def __init__(self, material_id, available_kg: Decimal, requested_kg: Decimal):
        self.material_id = material_id
        self.available_kg = available_kg
        self.requested_kg = requested_kg
        super().__init__(
            f"insufficient stock for material {material_id}: "
            f"available {available_kg} kg, requested {requested_kg} kg"
        )

    def to_dict(self) -> dict:
        out = super().to_dict()
        out.update(
            material_id=self.material_id,
            available_kg=float(self.available_kg),
            requested_kg=float(self.requested_kg),
        )
        return out


class InvalidInput(ShopError):
    """Вырожденная арифметика: 0 штук, 0 часов ресурса принтера и т.п."""

    kind = "InvalidInput"


class PersistenceError(ShopError):
    kind = "PersistenceError"

    def __init__(self, key: str, message: str = "failed to save collection"):
        self.key = key
        super().__init__(f"{message}: {key}")


class ConfigError(ShopError):
    """Ошибка конфигурации (pricing.json, --set, config set)."""

    kind = "ConfigError"
