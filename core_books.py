# -*- coding: utf-8 -*-
"""
core_books.py — счета, дашборд, доходы/расходы, обслуживание оборудования.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional

from core_common import ValidationError, next_id, to_currency, to_decimal
from core_crm import record_customer_sale
from core_ledger import MaterialLedger, month_bounds
from core_models import (
    Equipment,
    Invoice,
    InvoiceItem,
    LedgerEntry,
    Maintenance,
    OrderStatus,
    parse_timestamp,
)

log = logging.getLogger(__name__)


class Books:
    def __init__(self, store, ledger: MaterialLedger) -> None:
        self.store = store
        self.ledger = ledger

    # ---------- Счета ----------
    def create_invoice(self, customer: str, items: Iterable[InvoiceItem], phone: str = "") -> Invoice:
        items = list(items)
        if not (customer or "").strip():
            raise ValidationError(["customer"])
        if not items:
            raise ValidationError(["items"], "invoice needs at least one item")
        bad = [i.description or "?" for i in items if i.quantity < 1 or i.price < 0]
        if bad:
            raise ValidationError(bad, "invalid invoice items")

        cfg = self.store.config()
        invoices = self.store.invoices()
        subtotal = sum((i.amount for i in items), Decimal(0))
        tax = to_currency(subtotal * cfg.tax_percent / 100)
        now = self.ledger.clock()
        invoice = Invoice(
            id=next_id(i.to_dict() for i in invoices),
            number=next_id((i.to_dict() for i in invoices), key="number"),
            customer=customer.strip(),
            items=items,
            phone=phone,
            subtotal=subtotal,
            tax=tax,
            total=subtotal + tax,
            date=now.date().isoformat(),
            time=now.strftime("%H:%M:%S"),
        )
        self.store.save_invoices(invoices + [invoice])
        record_customer_sale(self.store, invoice.customer, invoice.total, invoice.date)
        log.debug("invoice #%s for %s: total=%s", invoice.number, invoice.customer, invoice.total)
        return invoice

    def invoice_from_order(self, order_id: int) -> Invoice:
        order = self.store.find_order(order_id)
        if order is None:
            raise ValidationError(["order_id"], f"order not found: {order_id}")
        item = InvoiceItem(description=order.description or f"Pedido #{order.id}", quantity=1, price=order.price)
        return self.create_invoice(order.customer, [item])

    # ---------- Дашборд ----------
    def dashboard_stats(self) -> dict:
        products = self.store.products()
        orders = self.store.orders()
        delivered = sum(
            (o.price for o in orders if o.status == OrderStatus.DELIVERED.value), Decimal(0)
        )
        stock_value = sum((p.price * p.stock for p in products), Decimal(0))
        return {
            "products": len(products),
            "materials": len(self.store.materials()),
            "active_orders": sum(1 for o in orders if o.is_active),
            "estimated_earnings": float(delivered + stock_value),
            "consumption_month": self.ledger.monthly_consumption_summary().to_dict(),
        }

    # ---------- Доходы и расходы ----------
    def _record_entry(self, key: str, description: str, amount, day: Optional[str], category: str) -> LedgerEntry:
        value = to_decimal(amount, -1)
        if value < 0:
            raise ValidationError(["amount"], "amount must be a non-negative number")
        if day is not None and parse_timestamp(day) is None:
            raise ValidationError(["date"], "date must be ISO formatted")
        entries = self.store.entries(key)
        entry = LedgerEntry(
            id=next_id(e.to_dict() for e in entries),
            description=description,
            amount=value,
            date=day or self.ledger.clock().date().isoformat(),
            category=category,
        )
        self.store.save_entries(key, entries + [entry])
        return entry

    def record_income(self, description: str, amount, day: Optional[str] = None, category: str = "") -> LedgerEntry:
        return self._record_entry("income", description, amount, day, category)

    def record_expense(self, description: str, amount, day: Optional[str] = None, category: str = "") -> LedgerEntry:
        return self._record_entry("expenses", description, amount, day, category)

    def monthly_balance(self) -> "MonthlyBalance":
        start, end = month_bounds(self.ledger.clock())

        def month_total(key: str) -> Decimal:
            total = Decimal(0)
            for e in self.store.entries(key):
                day = e.day
                if day is not None and start.date() <= day < end.date():
                    total += e.amount
            return total

        income = month_total("income")
        expenses = month_total("expenses")
        return MonthlyBalance(income, expenses, income - expenses)

    # ---------- Оборудование ----------
    def add_equipment(self, name: str, cost=0, status: str = "Operativo") -> Equipment:
        if not (name or "").strip():
            raise ValidationError(["name"])
        items = self.store.equipment()
        eq = Equipment(
            id=next_id(e.to_dict() for e in items),
            name=name.strip(),
            cost=max(Decimal(0), to_decimal(cost, 0)),
            status=status,
        )
        self.store.save_equipment(items + [eq])
        return eq

    def record_maintenance(self, equipment_id: int, day: str, cost=0, description: str = "") -> Maintenance:
        if parse_timestamp(day) is None:
            raise ValidationError(["date"], "date must be ISO formatted")
        equipment: List[Equipment] = self.store.equipment()
        target = next((e for e in equipment if e.id == equipment_id), None)
        if target is None:
            raise ValidationError(["equipment_id"], f"equipment not found: {equipment_id}")

        log_items = self.store.maintenances()
        record = Maintenance(
            id=next_id(m.to_dict() for m in log_items),
            equipment_id=equipment_id,
            date=day,
            cost=max(Decimal(0), to_decimal(cost, 0)),
            description=description,
        )
        self.store.save_maintenances(log_items + [record])
        target.last_maintenance = day
        self.store.save_equipment(equipment)
        return record


@dataclass(frozen=True)
class MonthlyBalance:
    income: Decimal
    expenses: Decimal
    balance: Decimal

    def to_dict(self) -> dict:
        return {"income": float(self.income), "expenses": float(self.expenses), "balance": float(self.balance)}
