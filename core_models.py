# -*- coding: utf-8 -*-
"""
core_models.py — записи магазина (то, что лежит в коллекциях хранилища).

Формат хранения: плоские JSON-объекты с camelCase-ключами (как в браузерной версии).
Загрузка снисходительная: мусорные записи отбрасываются, числа приводятся к Decimal,
пропуски заполняются дефолтами. Запись обратно — to_dict() с float вместо Decimal.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from core_common import nz, to_decimal

DEFAULT_MATERIAL_TYPE = "Sin tipo"
DEFAULT_MATERIAL_COLOR = "Sin color"
DELETED_MATERIAL_LABEL = "Material eliminado"


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PRINTING = "Printing"
    READY = "Ready"
    DELIVERED = "Delivered"


# статусы заказов из старых выгрузок браузерной версии
LEGACY_ORDER_STATUS = {
    "Pendiente": OrderStatus.PENDING.value,
    "En impresión": OrderStatus.PRINTING.value,
    "Listo": OrderStatus.READY.value,
    "Entregado": OrderStatus.DELIVERED.value,
}


class StockStatus(str, Enum):
    DEPLETED = "Depleted"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


def _opt_int(v) -> Optional[int]:
    if v is None or v == "":
        return None
    f = nz(v, None)
    return None if f is None else int(f)


def _num(v: Decimal) -> float:
    return float(v)


def now_local() -> datetime:
    return datetime.now().astimezone()


def parse_timestamp(value) -> Optional[datetime]:
    """ISO-строка -> aware datetime. Наивное время считаем локальным."""
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except (TypeError, ValueError):
            return None
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return dt


@dataclass
class Material:
    """Катушка филамента: остаток в кг, цена за кг."""
    id: int
    type: str = DEFAULT_MATERIAL_TYPE
    color: str = DEFAULT_MATERIAL_COLOR
    weight_on_hand: Decimal = Decimal(0)
    unit_cost: Decimal = Decimal(0)

    @classmethod
    def from_dict(cls, data: dict) -> "Material":
        # peso/costo/tipo: ключи старых выгрузок из браузера
        weight = to_decimal(data.get("weightOnHand", data.get("peso")), 0)
        cost = to_decimal(data.get("unitCost", data.get("costo")), 0)
        return cls(
            id=int(nz(data["id"])),
            type=str(data.get("type") or data.get("tipo") or DEFAULT_MATERIAL_TYPE),
            color=str(data.get("color") or DEFAULT_MATERIAL_COLOR),
            weight_on_hand=max(Decimal(0), weight),
            unit_cost=max(Decimal(0), cost),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "color": self.color,
            "weightOnHand": _num(self.weight_on_hand),
            "unitCost": _num(self.unit_cost),
        }


@dataclass(frozen=True)
class ConsumptionEvent:
    """Запись журнала списаний. Неизменяемая."""
    id: int
    material_id: int
    quantity_grams: Decimal
    reason: str
    cost: Decimal
    timestamp: str
    description: Optional[str] = None
    order_id: Optional[int] = None

    @property
    def quantity_kg(self) -> Decimal:
        return self.quantity_grams / 1000

    @property
    def moment(self) -> Optional[datetime]:
        return parse_timestamp(self.timestamp)

    @classmethod
    def from_dict(cls, data: dict) -> "ConsumptionEvent":
        ts = data.get("timestamp", data.get("fecha"))
        if parse_timestamp(ts) is None:
            raise ValueError(f"consumption {data.get('id')!r}: bad timestamp {ts!r}")
        return cls(
            id=int(nz(data["id"])),
            material_id=int(nz(data["materialId"])),
            quantity_grams=to_decimal(data.get("quantityGrams", data.get("cantidad")), 0),
            reason=str(data.get("reason", data.get("motivo")) or ""),
            cost=to_decimal(data.get("cost", data.get("costo")), 0),
            timestamp=str(ts),
            description=data.get("description", data.get("descripcion")) or None,
            order_id=_opt_int(data.get("orderId", data.get("pedidoId"))),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "materialId": self.material_id,
            "quantityGrams": _num(self.quantity_grams),
            "reason": self.reason,
            "description": self.description,
            "orderId": self.order_id,
            "cost": _num(self.cost),
            "timestamp": self.timestamp,
        }


@dataclass
class Order:
    id: int
    customer: str
    description: str = ""
    material_id: Optional[int] = None
    weight_grams: Decimal = Decimal(0)
    price: Decimal = Decimal(0)
    status: str = OrderStatus.PENDING.value
    date: str = ""

    @property
    def is_active(self) -> bool:
        return self.status != OrderStatus.DELIVERED.value

    @classmethod
    def from_dict(cls, data: dict) -> "Order":
        status = str(data.get("status", data.get("estado")) or OrderStatus.PENDING.value)
        status = LEGACY_ORDER_STATUS.get(status, status)
        return cls(
            id=int(nz(data["id"])),
            customer=str(data.get("customer", data.get("cliente")) or ""),
            description=str(data.get("description", data.get("descripcion")) or ""),
            material_id=_opt_int(data.get("materialId")),
            weight_grams=to_decimal(data.get("weightGrams", data.get("peso")), 0),
            price=to_decimal(data.get("price", data.get("precio")), 0),
            status=status,
            date=str(data.get("date", data.get("fecha")) or ""),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer": self.customer,
            "description": self.description,
            "materialId": self.material_id,
            "weightGrams": _num(self.weight_grams),
            "price": _num(self.price),
            "status": self.status,
            "date": self.date,
        }


@dataclass
class Product:
    id: int
    name: str
    description: str = ""
    category: str = ""
    price: Decimal = Decimal(0)
    stock: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "Product":
        return cls(
            id=int(nz(data["id"])),
            name=str(data.get("name", data.get("nombre")) or ""),
            description=str(data.get("description", data.get("descripcion")) or ""),
            category=str(data.get("category", data.get("categoria")) or ""),
            price=to_decimal(data.get("price", data.get("precio")), 0),
            stock=int(nz(data.get("stock"), 0)),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price": _num(self.price),
            "stock": self.stock,
        }


@dataclass(frozen=True)
class InvoiceItem:
    description: str
    quantity: int
    price: Decimal

    @property
    def amount(self) -> Decimal:
        return self.price * self.quantity

    @classmethod
    def from_dict(cls, data: dict) -> "InvoiceItem":
        return cls(
            description=str(data.get("description", data.get("descripcion")) or ""),
            quantity=int(nz(data.get("quantity", data.get("cantidad")), 1)) or 1,
            price=to_decimal(data.get("price", data.get("precio")), 0),
        )

    def to_dict(self) -> dict:
        return {"description": self.description, "quantity": self.quantity, "price": _num(self.price)}


@dataclass
class Invoice:
    id: int
    number: int
    customer: str
    items: List[InvoiceItem] = field(default_factory=list)
    phone: str = ""
    subtotal: Decimal = Decimal(0)
    tax: Decimal = Decimal(0)
    total: Decimal = Decimal(0)
    date: str = ""
    time: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Invoice":
        return cls(
            id=int(nz(data["id"])),
            number=int(nz(data.get("number", data.get("numero")), 0)),
            customer=str(data.get("customer", data.get("cliente")) or ""),
            items=[InvoiceItem.from_dict(i) for i in data.get("items") or [] if isinstance(i, dict)],
            phone=str(data.get("phone", data.get("telefono")) or ""),
            subtotal=to_decimal(data.get("subtotal"), 0),
            tax=to_decimal(data.get("tax", data.get("iva")), 0),
            total=to_decimal(data.get("total"), 0),
            date=str(data.get("date", data.get("fecha")) or ""),
            time=str(data.get("time", data.get("hora")) or ""),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "customer": self.customer,
            "phone": self.phone,
            "items": [i.to_dict() for i in self.items],
            "subtotal": _num(self.subtotal),
            "tax": _num(self.tax),
            "total": _num(self.total),
            "date": self.date,
            "time": self.time,
        }


@dataclass
class Equipment:
    id: int
    name: str
    cost: Decimal = Decimal(0)
    status: str = "Operativo"
    last_maintenance: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Equipment":
        return cls(
            id=int(nz(data["id"])),
            name=str(data.get("name", data.get("nombre")) or ""),
            cost=to_decimal(data.get("cost", data.get("costo")), 0),
            status=str(data.get("status", data.get("estado")) or "Operativo"),
            last_maintenance=data.get("lastMaintenance") or None,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "cost": _num(self.cost),
            "status": self.status,
            "lastMaintenance": self.last_maintenance,
        }


@dataclass(frozen=True)
class Maintenance:
    id: int
    equipment_id: int
    date: str
    cost: Decimal = Decimal(0)
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Maintenance":
        return cls(
            id=int(nz(data["id"])),
            equipment_id=int(nz(data["equipmentId"])),
            date=str(data.get("date") or ""),
            cost=to_decimal(data.get("cost"), 0),
            description=str(data.get("description") or ""),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "equipmentId": self.equipment_id,
            "date": self.date,
            "cost": _num(self.cost),
            "description": self.description,
        }


@dataclass(frozen=True)
class LedgerEntry:
    """Доход или расход (коллекции income / expenses)."""
    id: int
    description: str
    amount: Decimal
    date: str
    category: str = ""

    @property
    def day(self) -> Optional[date]:
        moment = parse_timestamp(self.date)
        return moment.date() if moment is not None else None

    @classmethod
    def from_dict(cls, data: dict) -> "LedgerEntry":
        return cls(
            id=int(nz(data["id"])),
            description=str(data.get("description", data.get("descripcion")) or ""),
            amount=to_decimal(data.get("amount", data.get("monto")), 0),
            date=str(data.get("date", data.get("fecha")) or ""),
            category=str(data.get("category", data.get("categoria")) or ""),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "amount": _num(self.amount),
            "date": self.date,
            "category": self.category,
        }


QUOTE_STATUS_DRAFT = "Borrador"
QUOTE_STATUS_CONVERTED = "Convertida"


def _flag(v, d: bool = True) -> bool:
    if v is None or v == "":
        return d
    if isinstance(v, str):
        return v.strip().lower() not in ("false", "0", "no")
    return bool(v)


@dataclass
class Customer:
    """Клиент. orders/total_spent пересчитываются при выставлении счёта."""
    id: int
    name: str
    email: str = ""
    phone: str = ""
    orders: int = 0
    total_spent: Decimal = Decimal(0)
    last_order: Optional[str] = None
    registered: str = ""
    active: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "Customer":
        return cls(
            id=int(nz(data["id"])),
            name=str(data.get("name", data.get("nombre")) or ""),
            email=str(data.get("email") or ""),
            phone=str(data.get("phone", data.get("telefono")) or ""),
            orders=int(nz(data.get("orders", data.get("pedidos")), 0)),
            total_spent=to_decimal(data.get("totalSpent", data.get("totalGastado")), 0),
            last_order=data.get("lastOrder", data.get("ultimoPedido")) or None,
            registered=str(data.get("registered", data.get("fechaRegistro")) or ""),
            active=_flag(data.get("active", data.get("activo"))),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "orders": self.orders,
            "totalSpent": _num(self.total_spent),
            "lastOrder": self.last_order,
            "registered": self.registered,
            "active": self.active,
        }


@dataclass
class Supplier:
    id: int
    name: str
    contact: str = ""
    specialty: str = ""
    purchases: int = 0
    total_spent: Decimal = Decimal(0)
    registered: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Supplier":
        return cls(
            id=int(nz(data["id"])),
            name=str(data.get("name", data.get("nombre")) or ""),
            contact=str(data.get("contact", data.get("contacto")) or ""),
            specialty=str(data.get("specialty", data.get("especialidad")) or ""),
            purchases=int(nz(data.get("purchases", data.get("compras")), 0)),
            total_spent=to_decimal(data.get("totalSpent", data.get("totalGastado")), 0),
            registered=str(data.get("registered", data.get("fechaRegistro")) or ""),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact": self.contact,
            "specialty": self.specialty,
            "purchases": self.purchases,
            "totalSpent": _num(self.total_spent),
            "registered": self.registered,
        }


@dataclass(frozen=True)
class Purchase:
    """Закупка у поставщика (коллекция purchases)."""
    id: int
    supplier_id: int
    description: str
    quantity: int
    cost: Decimal
    date: str

    @classmethod
    def from_dict(cls, data: dict) -> "Purchase":
        return cls(
            id=int(nz(data["id"])),
            supplier_id=int(nz(data.get("supplierId", data.get("proveedor")))),
            description=str(data.get("description", data.get("descripcion")) or ""),
            quantity=int(nz(data.get("quantity", data.get("cantidad")), 1)),
            cost=to_decimal(data.get("cost", data.get("costo")), 0),
            date=str(data.get("date", data.get("fecha")) or ""),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplierId": self.supplier_id,
            "description": self.description,
            "quantity": self.quantity,
            "cost": _num(self.cost),
            "date": self.date,
        }


@dataclass
class Quote:
    """Коммерческое предложение: позиции, итог без налога, срок действия."""
    id: int
    number: str
    customer: str
    description: str = ""
    items: List[InvoiceItem] = field(default_factory=list)
    total: Decimal = Decimal(0)
    status: str = QUOTE_STATUS_DRAFT
    date: str = ""
    valid_days: int = 0
    expires: str = ""
    order_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Quote":
        return cls(
            id=int(nz(data["id"])),
            number=str(data.get("number", data.get("numero")) or ""),
            customer=str(data.get("customer", data.get("cliente")) or ""),
            description=str(data.get("description", data.get("descripcion")) or ""),
            items=[InvoiceItem.from_dict(i) for i in data.get("items") or [] if isinstance(i, dict)],
            total=to_decimal(data.get("total"), 0),
            status=str(data.get("status", data.get("estado")) or QUOTE_STATUS_DRAFT),
            date=str(data.get("date", data.get("fecha")) or ""),
            valid_days=int(nz(data.get("validDays", data.get("validez")), 0)),
            expires=str(data.get("expires", data.get("fechaVencimiento")) or ""),
            order_id=_opt_int(data.get("orderId", data.get("pedidoId"))),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "customer": self.customer,
            "description": self.description,
            "items": [i.to_dict() for i in self.items],
            "total": _num(self.total),
            "status": self.status,
            "date": self.date,
            "validDays": self.valid_days,
            "expires": self.expires,
            "orderId": self.order_id,
        }


@dataclass
class ShopConfig:
    business_name: str = "3D Control Center"
    phone: str = ""
    address: str = ""
    labor_rate_per_hour: Decimal = Decimal(1000)
    default_margin_percent: Decimal = Decimal(30)
    tax_percent: Decimal = Decimal(13)
    currency_symbol: str = "₡"

    # camelCase ключ хранения -> (атрибут, числовой ли)
    FIELDS = {
        "businessName": ("business_name", False),
        "phone": ("phone", False),
        "address": ("address", False),
        "laborRatePerHour": ("labor_rate_per_hour", True),
        "defaultMarginPercent": ("default_margin_percent", True),
        "taxPercent": ("tax_percent", True),
        "currencySymbol": ("currency_symbol", False),
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShopConfig":
        cfg = cls()
        for key, (attr, numeric) in cls.FIELDS.items():
            if key not in data or data[key] in (None, ""):
                continue
            if numeric:
                setattr(cfg, attr, to_decimal(data[key], getattr(cfg, attr)))
            else:
                setattr(cfg, attr, str(data[key]))
        return cfg

    def to_dict(self) -> dict:
        out = {}
        for key, (attr, numeric) in self.FIELDS.items():
            value = getattr(self, attr)
            out[key] = _num(value) if numeric else value
        return out
