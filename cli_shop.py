# -*- coding: utf-8 -*-
"""
CLI магазина 3D-печати: калькулятор себестоимости, склад филамента, заказы, счета.

Примеры:
  python cli_shop.py materials add --type PLA --color Negro --kg 1 --cost 10000
  python cli_shop.py calc --material 1 --weight 50 --pieces 2 --hours 3 --margin 30 --json
  python cli_shop.py consume --material 1 --grams 500 --reason Prueba
  python cli_shop.py history --material 1 --days 30 --json
  python cli_shop.py order add --customer Ana --material 1 --weight 120 --price 9000 --status Printing --yes
  python cli_shop.py materials edit --id 1 --kg 2
  python cli_shop.py quote add --customer Ana --item "Llavero:10:500" --days 15
  python cli_shop.py quote convert --id 1

Ключевые гарантии:
• Расчёт (calc) не меняет хранилище, если не заданы --save-product / --save-order.
• Списание (consume, авто-списание по заказу) никогда не уводит остаток в минус.
• Данные — папка с <коллекция>.json (по умолчанию ./shop-data), pricing.json в ней же — дефолты калькулятора.
• Точечные override'ы дефолтов калькулятора: --set key=val (например, --set wattage=200).

=============================
Стабильный JSON-контракт (--json)
=============================
  {
    "success": <bool>,
    "command": "<подкоманда>",
    "result": <объект | список | null>,
    "errors": [ {"type": "<ValidationError|MaterialNotFound|...>", "error": "<текст>", ...}, ... ]
  }

Коды возврата: 0 — успех; 1 — ошибка ядра (валидация, нет материала, нехватка, запись); 2 — аргументы/конфигурация.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from decimal import Decimal
from typing import List, Optional

import core_pricing as pricing
from core_books import Books
from core_common import ConfigError, ShopError, ValidationError, kg, money, to_decimal
from core_crm import DEFAULT_QUOTE_VALID_DAYS, Crm
from core_ledger import MaterialLedger, material_label
from core_models import InvoiceItem, OrderStatus, ShopConfig
from core_orders import (
    CallbackNotifier,
    OrderDraft,
    OrderManager,
    add_product,
    delete_product,
    order_draft_from_calculation,
    product_from_calculation,
    update_product,
)
from core_store import ShopStore, resolve_pricing

DEFAULT_DATA_DIR = "shop-data"


# ---------- Утилиты ----------
def parse_kv_override(pairs):
    """Парсит список key=val оверрайдов из CLI (--set). Пытается привести val к bool/int/float, иначе оставляет строкой. Ключи плоские."""
    out = {}
    for kv in pairs or []:
        if '=' not in kv:
            raise ValueError(f"Неверный формат override '{kv}', нужен key=val")
        k, v = kv.split('=', 1)
        vv = v
        try:
            if v.lower() in ('true', 'false'):
                vv = (v.lower() == 'true')
            elif '.' in v:
                vv = float(v)
            else:
                vv = int(v)
        except ValueError:
            pass
        out[k.strip()] = vv
    return out


def resolve_data_dir(data_dir: str | None = None) -> str:
    """Папка данных: явная --data-dir, иначе ./shop-data в cwd."""
    if data_dir:
        return os.path.abspath(os.path.expanduser(data_dir))
    return os.path.join(os.getcwd(), DEFAULT_DATA_DIR)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="[%(name)s] %(levelname)s: %(message)s",
    )


def finalize_json_payload(payload: dict, errors: List[dict]) -> dict:
    """Добавляет поля ошибок и итоговый флаг успеха для JSON-вывода."""
    payload["errors"] = list(errors)
    payload["success"] = len(errors) == 0
    return payload


def calc_defaults(store: ShopStore, cfg: ShopConfig, overrides: dict | None) -> dict:
    """CALC_DEFAULTS -> конфиг магазина (ставки, налог) -> pricing.json -> --set."""
    base = dict(pricing.CALC_DEFAULTS)
    base["prep_labor_rate"] = float(cfg.labor_rate_per_hour)
    base["post_labor_rate"] = float(cfg.labor_rate_per_hour)
    base["tax_percent"] = float(cfg.tax_percent)
    unknown = sorted(k for k in (overrides or {}) if k not in pricing.CALC_DEFAULTS)
    if unknown:
        raise ConfigError(f"unknown calculator defaults: {', '.join(unknown)}")
    return resolve_pricing(store, base, overrides)


class Shop:
    """Сборка компонентов ядра вокруг одного хранилища."""

    def __init__(self, store: ShopStore, overrides: dict | None = None, notifier=None) -> None:
        self.store = store
        self.config = store.config()
        self.ledger = MaterialLedger(store)
        self.calculator = pricing.CostCalculator(store, calc_defaults(store, self.config, overrides))
        self.orders = OrderManager(store, self.ledger, notifier)
        self.books = Books(store, self.ledger)
        self.crm = Crm(store, self.ledger.clock)


# ---------- Команды ----------
def cmd_calc(shop: Shop, args) -> tuple[dict, str]:
    raw = {
        "material_id": args.material,
        "weight_per_piece_grams": args.weight,
        "print_hours": args.hours,
        "margin_percent": args.margin if args.margin is not None else float(shop.config.default_margin_percent),
        "piece_count": args.pieces,
        "waste_percent": args.waste,
        "prep_minutes": args.prep_min,
        "post_minutes": args.post_min,
        "failure_margin_percent": args.failure_margin,
        "wattage": args.wattage,
        "energy_cost_per_kwh": args.kwh_cost,
        "prep_labor_rate": args.prep_rate,
        "post_labor_rate": args.post_rate,
        "printer_cost": args.printer_cost,
        "amortization_years": args.years,
        "daily_usage_hours": args.daily_hours,
        "repair_percent": args.repair,
        "packaging_cost_per_piece": args.packaging,
        "other_costs": args.other,
        "discount_percent": args.discount,
        "tax_percent": args.tax,
        "include_tax": False if args.no_tax else None,
    }
    bd = shop.calculator.calculate(raw)
    result = {"breakdown": bd.to_dict(), "product": None, "order": None}
    text = pricing.render_report(bd, currency=shop.config.currency_symbol, brief=args.brief)

    if args.save_product:
        product = product_from_calculation(shop.store, shop.calculator.last_calculation)
        result["product"] = product.to_dict()
        text += f"\nProducto guardado: #{product.id} {product.name}\n"
    if args.save_order:
        draft = order_draft_from_calculation(shop.calculator.last_calculation, args.save_order)
        res = shop.orders.create_order(draft)
        result["order"] = res.order.to_dict()
        text += f"\nPedido guardado: #{res.order.id} ({res.order.status})\n"
    return result, text


def cmd_materials(shop: Shop, args) -> tuple[object, str]:
    cur = shop.config.currency_symbol
    if args.action == "add":
        m = shop.ledger.add_material(args.type, args.color, args.kg, args.cost)
        return m.to_dict(), f"Material #{m.id}: {material_label(m)} ({kg(m.weight_on_hand)})"
    if args.action == "edit":
        m = shop.ledger.update_material(args.id, args.type, args.color, args.kg, args.cost)
        return m.to_dict(), f"Material #{m.id} actualizado: {material_label(m)} ({kg(m.weight_on_hand)})"
    if args.action == "delete":
        shop.ledger.delete_material(args.id)
        return {"id": args.id}, f"Material #{args.id} eliminado"
    rows = shop.ledger.stock_report()
    lines = [
        f"#{r['id']:<4}{r['label']:<32}{kg(r['weightOnHand']):>10}{money(r['unitCost'], cur) + '/kg':>14}"
        f"{money(r['stockValue'], cur):>14}  {r['status']}"
        for r in rows
    ]
    return rows, "\n".join(lines) or "No hay materiales registrados"


def cmd_consume(shop: Shop, args) -> tuple[dict, str]:
    e = shop.ledger.record_consumption(
        args.material, args.grams, args.reason, description=args.description, order_id=args.order
    )
    m = shop.store.find_material(args.material)
    text = (
        f"Consumo registrado: {args.grams}g de {material_label(m)} | "
        f"costo {money(e.cost, shop.config.currency_symbol)} | quedan {kg(m.weight_on_hand)}"
    )
    return e.to_dict(), text


def cmd_history(shop: Shop, args) -> tuple[list, str]:
    listing = shop.ledger.list_consumption(material_id=args.material, window_days=args.days)
    rows = [v.to_dict() for v in listing]
    cur = shop.config.currency_symbol
    lines = [
        f"{r['timestamp'][:19]}  {r['material']:<28}{float(r['quantityGrams']):>9.1f} g  "
        f"{money(r['cost'], cur):>12}  {r['reason']}" + (f"  [{r['order']}]" if r["order"] else "")
        for r in rows
    ]
    return rows, "\n".join(lines) or "No hay registros de consumo para los filtros seleccionados"


def cmd_summary(shop: Shop, args) -> tuple[dict, str]:
    s = shop.ledger.monthly_consumption_summary()
    text = (
        f"Consumo del mes: {kg(s.total_kg)} en {s.event_count} registros\n"
        f"Costo del consumo: {money(s.total_cost, shop.config.currency_symbol)}\n"
        f"Materiales con stock bajo: {s.low_stock_materials}"
    )
    return s.to_dict(), text


def _cli_notifier(args) -> CallbackNotifier:
    def confirm(message: str) -> bool:
        if args.yes:
            return True
        if args.no or not sys.stdin.isatty():
            return False
        answer = input(f"{message} [s/N] ").strip().lower()
        return answer in ("s", "si", "sí", "y", "yes")

    def warn(message: str) -> None:
        print(f"[cli] aviso: {message}", file=sys.stderr)

    return CallbackNotifier(confirm=confirm, warn=warn)


def cmd_order(shop: Shop, args) -> tuple[object, str]:
    if args.action == "status":
        o = shop.orders.update_order_status(args.id, args.status)
        return o.to_dict(), f"Pedido #{o.id}: {o.status}"
    if args.action == "edit":
        o = shop.orders.update_order(
            args.id, customer=args.customer, description=args.description, material_id=args.material,
            weight_grams=args.weight, price=args.price, status=args.status,
        )
        return o.to_dict(), f"Pedido #{o.id} actualizado ({o.status})"
    if args.action == "delete":
        shop.orders.delete_order(args.id)
        return {"id": args.id}, f"Pedido #{args.id} eliminado"
    if args.action == "list":
        rows = [shop.orders.order_view(o) for o in shop.store.orders()]
        cur = shop.config.currency_symbol
        lines = [
            f"#{r['id']:<4}{r['customer']:<20}{r['material']:<26}{money(r['price'], cur):>12}  {r['status']}"
            for r in rows
        ]
        return rows, "\n".join(lines) or "No hay pedidos registrados"

    draft = OrderDraft(
        customer=args.customer or "",
        description=args.description or "",
        material_id=args.material,
        weight_grams=to_decimal(0 if args.weight is None else args.weight, -1),
        price=to_decimal(0 if args.price is None else args.price, -1),
        status=args.status or OrderStatus.PENDING.value,
    )
    res = shop.orders.create_order(draft, notifier=_cli_notifier(args))
    text = f"Pedido #{res.order.id} de {res.order.customer} guardado ({res.order.status})"
    if res.consumption is not None:
        text += f"\nConsumo automático registrado: #{res.consumption.id}"
    return res.to_dict(), text


def parse_items(entries) -> List[InvoiceItem]:
    """Позиции 'описание:кол-во:цена' (описание может содержать двоеточия)."""
    items = []
    for entry in entries or []:
        parts = entry.rsplit(":", 2)
        if len(parts) != 3:
            raise ValidationError([entry], "item must be 'description:quantity:price'")
        desc, qty, price = parts
        items.append(InvoiceItem(desc, int(to_decimal(qty, 0)), to_decimal(price, -1)))
    return items


def cmd_invoice(shop: Shop, args) -> tuple[dict, str]:
    if args.order is not None:
        inv = shop.books.invoice_from_order(args.order)
    else:
        if not args.item:
            raise ValidationError(["item"], "use --order or at least one --item 'desc:qty:price'")
        items = parse_items(args.item)
        inv = shop.books.create_invoice(args.customer or "", items, phone=args.phone or "")
    cur = shop.config.currency_symbol
    text = (
        f"{shop.config.business_name} | Factura #{inv.number}\n"
        f"Cliente: {inv.customer} | {inv.date} {inv.time}\n"
        + "".join(f"  {i.quantity} x {i.description:<30}{money(i.amount, cur):>14}\n" for i in inv.items)
        + f"Subtotal: {money(inv.subtotal, cur)} | IVA: {money(inv.tax, cur)} | Total: {money(inv.total, cur)}"
    )
    return inv.to_dict(), text


def cmd_dashboard(shop: Shop, args) -> tuple[dict, str]:
    stats = shop.books.dashboard_stats()
    cur = shop.config.currency_symbol
    text = (
        f"Productos: {stats['products']} | Materiales: {stats['materials']} | "
        f"Pedidos activos: {stats['active_orders']}\n"
        f"Ganancia estimada: {money(stats['estimated_earnings'], cur)}\n"
        f"Consumo del mes: {kg(stats['consumption_month']['total_kg'])} "
        f"({money(stats['consumption_month']['total_cost'], cur)})"
    )
    return stats, text


def cmd_finance(shop: Shop, args) -> tuple[dict, str]:
    cur = shop.config.currency_symbol
    if args.action == "income":
        e = shop.books.record_income(args.description, args.amount, args.date, args.category)
        return e.to_dict(), f"Ingreso #{e.id}: {money(e.amount, cur)}"
    if args.action == "expense":
        e = shop.books.record_expense(args.description, args.amount, args.date, args.category)
        return e.to_dict(), f"Gasto #{e.id}: {money(e.amount, cur)}"
    b = shop.books.monthly_balance()
    return b.to_dict(), (
        f"Ingresos: {money(b.income, cur)} | Gastos: {money(b.expenses, cur)} | Balance: {money(b.balance, cur)}"
    )


def cmd_equipment(shop: Shop, args) -> tuple[dict, str]:
    if args.action == "add":
        eq = shop.books.add_equipment(args.name, args.cost)
        return eq.to_dict(), f"Equipo #{eq.id}: {eq.name}"
    m = shop.books.record_maintenance(args.equipment, args.date, args.cost, args.description)
    return m.to_dict(), f"Mantenimiento #{m.id} del equipo #{m.equipment_id} ({m.date})"


def cmd_product(shop: Shop, args) -> tuple[object, str]:
    cur = shop.config.currency_symbol
    if args.action == "add":
        p = add_product(shop.store, args.name or "", 0 if args.price is None else args.price,
                        args.stock or 0, args.description or "", args.category or "")
        return p.to_dict(), f"Producto #{p.id}: {p.name} ({money(p.price, cur)})"
    if args.action == "edit":
        p = update_product(shop.store, args.id, args.name, args.price, args.stock, args.description, args.category)
        return p.to_dict(), f"Producto #{p.id} actualizado: {p.name} ({money(p.price, cur)}, stock {p.stock})"
    if args.action == "delete":
        delete_product(shop.store, args.id)
        return {"id": args.id}, f"Producto #{args.id} eliminado"
    rows = [p.to_dict() for p in shop.store.products()]
    lines = [
        f"#{r['id']:<4}{r['name']:<30}{r['category']:<16}{money(r['price'], cur):>12}  stock {r['stock']}"
        for r in rows
    ]
    return rows, "\n".join(lines) or "No hay productos registrados"


def cmd_customer(shop: Shop, args) -> tuple[object, str]:
    cur = shop.config.currency_symbol
    if args.action == "add":
        c = shop.crm.add_customer(args.name or "", args.email or "", args.phone or "")
        return c.to_dict(), f"Cliente #{c.id}: {c.name}"
    if args.action == "stats":
        s = shop.crm.customer_stats()
        return s.to_dict(), (
            f"Clientes: {s.total} | Activos: {s.active} | Valor promedio: {money(s.average_spent, cur)}"
        )
    rows = [c.to_dict() for c in shop.store.customers()]
    lines = [
        f"#{r['id']:<4}{r['name']:<24}{r['phone']:<14}{r['orders']:>4}  {money(r['totalSpent'], cur):>12}"
        f"  {r['lastOrder'] or 'Sin pedidos'}"
        for r in rows
    ]
    return rows, "\n".join(lines) or "No hay clientes registrados"


def cmd_supplier(shop: Shop, args) -> tuple[object, str]:
    cur = shop.config.currency_symbol
    if args.action == "add":
        s = shop.crm.add_supplier(args.name or "", args.contact or "", args.specialty or "")
        return s.to_dict(), f"Proveedor #{s.id}: {s.name}"
    if args.action == "purchase":
        p = shop.crm.record_purchase(args.supplier, args.description or "", args.quantity, args.cost, args.date)
        return p.to_dict(), f"Compra #{p.id} al proveedor #{p.supplier_id}: {money(p.cost, cur)}"
    if args.action == "purchases":
        names = {s.id: s.name for s in shop.store.suppliers()}
        rows = [{**p.to_dict(), "supplier": names.get(p.supplier_id, "N/A")} for p in shop.store.purchases()]
        lines = [
            f"{r['date']:<12}{r['supplier']:<20}{r['description']:<26}{r['quantity']:>5}  {money(r['cost'], cur):>12}"
            for r in rows
        ]
        return rows, "\n".join(lines) or "No hay compras registradas"
    rows = [s.to_dict() for s in shop.store.suppliers()]
    lines = [
        f"#{r['id']:<4}{r['name']:<24}{r['specialty']:<18}{r['purchases']:>4}  {money(r['totalSpent'], cur):>12}"
        for r in rows
    ]
    return rows, "\n".join(lines) or "No hay proveedores registrados"


def cmd_quote(shop: Shop, args) -> tuple[object, str]:
    cur = shop.config.currency_symbol
    if args.action == "add":
        if not args.item:
            raise ValidationError(["item"], "at least one --item 'desc:qty:price' is required")
        q = shop.crm.create_quote(args.customer or "", parse_items(args.item), args.description or "", args.days)
        return q.to_dict(), f"Cotización {q.number} para {q.customer}: {money(q.total, cur)} (vence {q.expires})"
    if args.action == "convert":
        res = shop.crm.convert_quote(args.id, shop.orders)
        return res.to_dict(), f"Cotización #{args.id} convertida en pedido #{res.order.id}"
    rows = [q.to_dict() for q in shop.store.quotes()]
    lines = [
        f"{r['number']:<10}{r['customer']:<20}{money(r['total'], cur):>12}  {r['status']:<11}{r['date']}  {r['expires']}"
        for r in rows
    ]
    return rows, "\n".join(lines) or "No hay cotizaciones registradas"


def cmd_config(shop: Shop, args) -> tuple[dict, str]:
    cfg = shop.config
    if args.action == "set":
        values = dict(cfg.to_dict())
        for kv in args.pairs or []:
            if "=" not in kv:
                raise ConfigError(f"Неверный формат '{kv}', нужен key=val")
            k, v = kv.split("=", 1)
            if k not in ShopConfig.FIELDS:
                raise ConfigError(f"unknown config key: {k!r}")
            if ShopConfig.FIELDS[k][1] and to_decimal(v, -1) < 0:
                raise ConfigError(f"{k} must be a non-negative number, got {v!r}")
            values[k] = v
        cfg = ShopConfig.from_dict(values)
        if not shop.store.save_config(cfg):
            raise ConfigError("failed to save config")
    data = cfg.to_dict()
    return data, "\n".join(f"{k}: {v}" for k, v in data.items())


COMMANDS = {
    "calc": cmd_calc,
    "materials": cmd_materials,
    "consume": cmd_consume,
    "history": cmd_history,
    "summary": cmd_summary,
    "product": cmd_product,
    "order": cmd_order,
    "invoice": cmd_invoice,
    "dashboard": cmd_dashboard,
    "finance": cmd_finance,
    "equipment": cmd_equipment,
    "customer": cmd_customer,
    "supplier": cmd_supplier,
    "quote": cmd_quote,
    "config": cmd_config,
}


# (команда, действие) -> аргументы, без которых действие не выполнить
REQUIRED_ARGS = {
    ("materials", "edit"): ("id",),
    ("materials", "delete"): ("id",),
    ("product", "edit"): ("id",),
    ("product", "delete"): ("id",),
    ("order", "status"): ("id", "status"),
    ("order", "edit"): ("id",),
    ("order", "delete"): ("id",),
    ("finance", "income"): ("amount",),
    ("finance", "expense"): ("amount",),
    ("equipment", "maintain"): ("equipment", "date"),
    ("supplier", "purchase"): ("supplier", "cost"),
    ("quote", "convert"): ("id",),
}


# ---------- CLI ----------
def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--data-dir', default=None, help='Папка с коллекциями *.json и pricing.json (по умолчанию ./shop-data)')
    common.add_argument('--json', action='store_true', help='Вывод в JSON')
    common.add_argument('--verbose', action='store_true', help='Отладочные логи ядра в stderr')
    common.add_argument('--set', dest='overrides', action='append', help='Переопределить дефолты калькулятора (format: key=val, напр. wattage=200). Можно несколько раз.')

    ap = argparse.ArgumentParser(description="CLI магазина 3D-печати: себестоимость, склад филамента, заказы, счета")
    sub = ap.add_subparsers(dest='command', required=True)

    c = sub.add_parser('calc', parents=[common], help='Расчёт себестоимости и цены')
    c.add_argument('--material', type=int, default=None, help='id материала')
    c.add_argument('--weight', type=float, default=None, help='Вес одной детали (г)')
    c.add_argument('--hours', type=float, default=None, help='Время печати (ч)')
    c.add_argument('--margin', type=float, default=None, help='Наценка %% (по умолчанию из конфига)')
    c.add_argument('--pieces', type=int, default=None, help='Количество деталей')
    c.add_argument('--waste', type=float, default=None, help='Отход материала %%')
    c.add_argument('--prep-min', type=float, default=None, help='Подготовка (мин)')
    c.add_argument('--post-min', type=float, default=None, help='Постобработка (мин)')
    c.add_argument('--failure-margin', type=float, default=None, help='Запас времени на брак %%')
    c.add_argument('--wattage', type=float, default=None, help='Мощность принтера (Вт)')
    c.add_argument('--kwh-cost', type=float, default=None, help='Цена кВт·ч')
    c.add_argument('--prep-rate', type=float, default=None, help='Ставка подготовки в час (по умолчанию из конфига)')
    c.add_argument('--post-rate', type=float, default=None, help='Ставка постобработки в час (по умолчанию из конфига)')
    c.add_argument('--printer-cost', type=float, default=None, help='Стоимость принтера')
    c.add_argument('--years', type=float, default=None, help='Срок амортизации (лет)')
    c.add_argument('--daily-hours', type=float, default=None, help='Часов работы в день')
    c.add_argument('--repair', type=float, default=None, help='Ремонт %% от стоимости принтера')
    c.add_argument('--packaging', type=float, default=None, help='Упаковка на деталь')
    c.add_argument('--other', type=float, default=None, help='Прочие расходы')
    c.add_argument('--discount', type=float, default=None, help='Скидка %%')
    c.add_argument('--tax', type=float, default=None, help='Налог %%')
    c.add_argument('--no-tax', action='store_true', help='Не включать налог')
    c.add_argument('--full', dest='brief', action='store_false', help='Полный отчёт (иначе краткий)')
    c.add_argument('--save-product', action='store_true', help='Сохранить расчёт как товар')
    c.add_argument('--save-order', metavar='CUSTOMER', default=None, help='Создать заказ (Pending) для клиента')

    m = sub.add_parser('materials', parents=[common], help='Склад филамента')
    m.add_argument('action', choices=['list', 'add', 'edit', 'delete'], nargs='?', default='list')
    m.add_argument('--id', type=int, default=None, help='id материала (для edit/delete)')
    m.add_argument('--type', default=None)
    m.add_argument('--color', default=None)
    m.add_argument('--kg', type=float, default=None, help='Остаток (кг); для edit: новое значение (пополнение)')
    m.add_argument('--cost', type=float, default=None, help='Цена за кг')

    cs = sub.add_parser('consume', parents=[common], help='Списать материал')
    cs.add_argument('--material', type=int, required=True)
    cs.add_argument('--grams', type=float, required=True)
    cs.add_argument('--reason', required=True)
    cs.add_argument('--description', default=None)
    cs.add_argument('--order', type=int, default=None)

    h = sub.add_parser('history', parents=[common], help='Журнал списаний')
    h.add_argument('--material', type=int, default=None)
    h.add_argument('--days', type=int, default=None, help='Окно в днях (7/30/90...)')

    sub.add_parser('summary', parents=[common], help='Сводка потребления за текущий месяц')

    p = sub.add_parser('product', parents=[common], help='Товары')
    p.add_argument('action', choices=['list', 'add', 'edit', 'delete'], nargs='?', default='list')
    p.add_argument('--id', type=int, default=None, help='id товара (для edit/delete)')
    p.add_argument('--name', default=None)
    p.add_argument('--description', default=None)
    p.add_argument('--category', default=None)
    p.add_argument('--price', type=float, default=None)
    p.add_argument('--stock', type=int, default=None)

    o = sub.add_parser('order', parents=[common], help='Заказы')
    o.add_argument('action', choices=['add', 'status', 'edit', 'delete', 'list'])
    o.add_argument('--customer', default=None)
    o.add_argument('--description', default=None)
    o.add_argument('--material', type=int, default=None)
    o.add_argument('--weight', type=float, default=None, help='Вес (г)')
    o.add_argument('--price', type=float, default=None)
    o.add_argument('--status', default=None, help='Pending | Printing | Ready | Delivered (по умолчанию Pending)')
    o.add_argument('--id', type=int, default=None, help='id заказа (для status/edit/delete)')
    yn = o.add_mutually_exclusive_group()
    yn.add_argument('--yes', action='store_true', help='Подтвердить авто-списание без вопроса')
    yn.add_argument('--no', action='store_true', help='Отказаться от авто-списания')

    i = sub.add_parser('invoice', parents=[common], help='Счёт по заказу или по позициям')
    i.add_argument('--order', type=int, default=None)
    i.add_argument('--customer', default=None)
    i.add_argument('--phone', default=None)
    i.add_argument('--item', action='append', help="Позиция 'описание:кол-во:цена'. Можно несколько раз.")

    sub.add_parser('dashboard', parents=[common], help='Сводка по магазину')

    f = sub.add_parser('finance', parents=[common], help='Доходы и расходы')
    f.add_argument('action', choices=['income', 'expense', 'balance'])
    f.add_argument('--amount', type=float, default=None)
    f.add_argument('--description', default='')
    f.add_argument('--date', default=None, help='YYYY-MM-DD (по умолчанию сегодня)')
    f.add_argument('--category', default='')

    e = sub.add_parser('equipment', parents=[common], help='Оборудование и обслуживание')
    e.add_argument('action', choices=['add', 'maintain'])
    e.add_argument('--name', default='')
    e.add_argument('--equipment', type=int, default=None)
    e.add_argument('--date', default=None, help='YYYY-MM-DD')
    e.add_argument('--cost', type=float, default=0.0)
    e.add_argument('--description', default='')

    cu = sub.add_parser('customer', parents=[common], help='Клиенты')
    cu.add_argument('action', choices=['list', 'add', 'stats'], nargs='?', default='list')
    cu.add_argument('--name', default=None)
    cu.add_argument('--email', default=None)
    cu.add_argument('--phone', default=None)

    sp = sub.add_parser('supplier', parents=[common], help='Поставщики и закупки')
    sp.add_argument('action', choices=['list', 'add', 'purchase', 'purchases'], nargs='?', default='list')
    sp.add_argument('--name', default=None)
    sp.add_argument('--contact', default=None)
    sp.add_argument('--specialty', default=None)
    sp.add_argument('--supplier', type=int, default=None, help='id поставщика (для purchase)')
    sp.add_argument('--description', default=None)
    sp.add_argument('--quantity', type=int, default=1)
    sp.add_argument('--cost', type=float, default=None)
    sp.add_argument('--date', default=None, help='YYYY-MM-DD (по умолчанию сегодня)')

    q = sub.add_parser('quote', parents=[common], help='Коммерческие предложения')
    q.add_argument('action', choices=['list', 'add', 'convert'], nargs='?', default='list')
    q.add_argument('--id', type=int, default=None, help='id предложения (для convert)')
    q.add_argument('--customer', default=None)
    q.add_argument('--description', default=None)
    q.add_argument('--item', action='append', help="Позиция 'описание:кол-во:цена'. Можно несколько раз.")
    q.add_argument('--days', type=int, default=DEFAULT_QUOTE_VALID_DAYS, help='Срок действия (дней)')

    cf = sub.add_parser('config', parents=[common], help='Настройки магазина')
    cf.add_argument('action', choices=['show', 'set'], nargs='?', default='show')
    cf.add_argument('pairs', nargs='*', help='key=val (businessName, laborRatePerHour, taxPercent, ...)')
    return ap


def main(argv: Optional[List[str]] = None):
    """Точка входа CLI. Парсит аргументы, открывает хранилище, выполняет подкоманду и печатает результат."""
    if hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    if hasattr(sys.stderr, "reconfigure"):
        sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        overrides = parse_kv_override(args.overrides)
    except ValueError as e:
        print(f"Неверный формат --set: {e}", file=sys.stderr)
        sys.exit(2)

    data_dir = resolve_data_dir(args.data_dir)
    print(f"[cli] using data dir: {data_dir}", file=sys.stderr)

    payload = {"success": True, "command": args.command, "result": None}
    errors: List[dict] = []
    text = ""
    code = 0
    try:
        shop = Shop(ShopStore.open(data_dir), overrides)
        missing = [n for n in REQUIRED_ARGS.get((args.command, getattr(args, "action", None)), ())
                   if getattr(args, n) in (None, "")]
        if missing:
            raise ValidationError(missing)
        result, text = COMMANDS[args.command](shop, args)
        payload["result"] = result
    except ConfigError as e:
        errors.append(e.to_dict())
        code = 2
    except ShopError as e:
        errors.append(e.to_dict())
        code = 1

    if args.json:
        print(json.dumps(finalize_json_payload(payload, errors), ensure_ascii=False, indent=2, default=_json_default))
    elif errors:
        for err in errors:
            print(f"Error ({err['type']}): {err['error']}", file=sys.stderr)
    else:
        print(text)

    if code:
        sys.exit(code)


def _json_default(o):
    if isinstance(o, Decimal):
        return float(o)
    raise TypeError(f"not JSON serializable: {type(o).__name__}")


if __name__ == '__main__':
    main()
