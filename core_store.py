# -*- coding: utf-8 -*-
"""
core_store.py — хранилище коллекций магазина.

Контракт бэкенда хранения (аналог localStorage браузерной версии):
  load(key)  -> list[dict]  — никогда не бросает; нет данных / битый JSON -> []
  save(key, records) -> bool — False при ошибке записи

ShopStore — репозиторий поверх бэкенда: типизированные коллекции, снисходительная загрузка
(битые записи отбрасываются, остальные возвращаются), синглтон конфигурации.
Создаётся явно при старте и передаётся компонентам; глобального состояния нет.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from typing import Dict, List, Optional, Type, TypeVar

from core_common import ConfigError, PersistenceError, deep_merge
from core_models import (
    ConsumptionEvent,
    Customer,
    Equipment,
    Invoice,
    LedgerEntry,
    Maintenance,
    Material,
    Order,
    Product,
    Purchase,
    Quote,
    ShopConfig,
    Supplier,
)

log = logging.getLogger(__name__)

COLLECTION_KEYS = (
    "products",
    "materials",
    "orders",
    "invoices",
    "config",
    "customers",
    "quotes",
    "suppliers",
    "purchases",
    "equipment",
    "maintenances",
    "income",
    "expenses",
    "consumption",
)

PRICING_FILE = "pricing.json"

T = TypeVar("T")


def _check_key(key: str) -> None:
    if key not in COLLECTION_KEYS:
        raise KeyError(f"unknown collection: {key!r}")


class MemoryStorage:
    """Бэкенд в памяти (тесты, одноразовые расчёты). Хранит JSON-копии."""

    def __init__(self, initial: Optional[Dict[str, list]] = None) -> None:
        self._data: Dict[str, str] = {}
        for key, records in (initial or {}).items():
            self.save(key, records)

    def load(self, key: str) -> List[dict]:
        raw = self._data.get(key)
        if raw is None:
            return []
        data = json.loads(raw)
        return data if isinstance(data, list) else []

    def save(self, key: str, records: list) -> bool:
        try:
            self._data[key] = json.dumps(records, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            log.error("failed to save %s: %s", key, e)
            return False
        return True


class JsonDirStorage:
    """Папка с файлами <key>.json. Запись атомарная: temp-файл + os.replace."""

    def __init__(self, path: str) -> None:
        self.path = os.path.abspath(os.path.expanduser(path))

    def _file(self, key: str) -> str:
        return os.path.join(self.path, f"{key}.json")

    def load(self, key: str) -> List[dict]:
        path = self._file(key)
        if not os.path.exists(path):
            return []
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            log.error("failed to load %s: %s", path, e)
            return []
        if not isinstance(data, list):
            log.warning("%s: expected a JSON array, got %s", path, type(data).__name__)
            return []
        return data

    def save(self, key: str, records: list) -> bool:
        path = self._file(key)
        tmp_path = None
        try:
            os.makedirs(self.path, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.path)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, path)
            tmp_path = None
        except (OSError, TypeError, ValueError) as e:
            log.error("failed to save %s: %s", path, e)
            return False
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)
        log.debug("saved %d records to %s", len(records), path)
        return True


class ShopStore:
    """Репозиторий коллекций. Единственная точка чтения/записи для ядра."""

    def __init__(self, storage, data_dir: Optional[str] = None) -> None:
        self.storage = storage
        self.data_dir = data_dir

    @classmethod
    def open(cls, data_dir: str) -> "ShopStore":
        return cls(JsonDirStorage(data_dir), data_dir=os.path.abspath(os.path.expanduser(data_dir)))

    # --- сырой доступ ---
    def load(self, key: str) -> List[dict]:
        _check_key(key)
        try:
            records = self.storage.load(key)
        except Exception as e:
            # бэкенд нарушил контракт «никогда не бросает»: пустая коллекция
            log.error("storage backend failed on load(%s): %s", key, e)
            return []
        return [r for r in records if isinstance(r, dict)]

    def save(self, key: str, records: list) -> bool:
        _check_key(key)
        try:
            return bool(self.storage.save(key, records))
        except Exception as e:
            log.error("storage backend failed on save(%s): %s", key, e)
            return False

    def save_or_raise(self, key: str, records: list) -> None:
        if not self.save(key, records):
            raise PersistenceError(key)

    # --- типизированные коллекции ---
    def _load_typed(self, key: str, cls: Type[T]) -> List[T]:
        out: List[T] = []
        for raw in self.load(key):
            if raw.get("id") is None:
                log.warning("%s: dropping record without id: %r", key, raw)
                continue
            try:
                out.append(cls.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                log.warning("%s: dropping corrupt record %r (%s)", key, raw.get("id"), e)
        return out

    def _save_typed(self, key: str, items) -> None:
        self.save_or_raise(key, [i.to_dict() for i in items])

    def materials(self) -> List[Material]:
        return self._load_typed("materials", Material)

    def save_materials(self, items: List[Material]) -> None:
        self._save_typed("materials", items)

    def find_material(self, material_id) -> Optional[Material]:
        for m in self.materials():
            if m.id == material_id:
                return m
        return None

    def consumption(self) -> List[ConsumptionEvent]:
        return self._load_typed("consumption", ConsumptionEvent)

    def orders(self) -> List[Order]:
        return self._load_typed("orders", Order)

    def save_orders(self, items: List[Order]) -> None:
        self._save_typed("orders", items)

    def find_order(self, order_id) -> Optional[Order]:
        for o in self.orders():
            if o.id == order_id:
                return o
        return None

    def products(self) -> List[Product]:
        return self._load_typed("products", Product)

    def save_products(self, items: List[Product]) -> None:
        self._save_typed("products", items)

    def invoices(self) -> List[Invoice]:
        return self._load_typed("invoices", Invoice)

    def save_invoices(self, items: List[Invoice]) -> None:
        self._save_typed("invoices", items)

    def equipment(self) -> List[Equipment]:
        return self._load_typed("equipment", Equipment)

    def save_equipment(self, items: List[Equipment]) -> None:
        self._save_typed("equipment", items)

    def maintenances(self) -> List[Maintenance]:
        return self._load_typed("maintenances", Maintenance)

    def save_maintenances(self, items: List[Maintenance]) -> None:
        self._save_typed("maintenances", items)

    def customers(self) -> List[Customer]:
        return self._load_typed("customers", Customer)

    def save_customers(self, items: List[Customer]) -> None:
        self._save_typed("customers", items)

    def suppliers(self) -> List[Supplier]:
        return self._load_typed("suppliers", Supplier)

    def save_suppliers(self, items: List[Supplier]) -> None:
        self._save_typed("suppliers", items)

    def purchases(self) -> List[Purchase]:
        return self._load_typed("purchases", Purchase)

    def save_purchases(self, items: List[Purchase]) -> None:
        self._save_typed("purchases", items)

    def quotes(self) -> List[Quote]:
        return self._load_typed("quotes", Quote)

    def save_quotes(self, items: List[Quote]) -> None:
        self._save_typed("quotes", items)

    def entries(self, key: str) -> List[LedgerEntry]:
        if key not in ("income", "expenses"):
            raise KeyError(f"not a money ledger: {key!r}")
        return self._load_typed(key, LedgerEntry)

    def save_entries(self, key: str, items: List[LedgerEntry]) -> None:
        if key not in ("income", "expenses"):
            raise KeyError(f"not a money ledger: {key!r}")
        self._save_typed(key, items)

    # --- конфигурация ---
    def config(self) -> ShopConfig:
        rows = self.load("config")
        return ShopConfig.from_dict(rows[0]) if rows else ShopConfig()

    def save_config(self, cfg: ShopConfig) -> bool:
        return self.save("config", [cfg.to_dict()])

    def pricing_path(self) -> Optional[str]:
        return os.path.join(self.data_dir, PRICING_FILE) if self.data_dir else None


def load_pricing_json(path: str, *, base: dict | None = None, override: dict | None = None) -> dict:
    """
    pricing.json -> dict дефолтов калькулятора.
    base: если задан, то в него мерджится файл (обычно CALC_DEFAULTS).
    override: мердж поверх результата (например, --set в CLI).
    """
    if not os.path.exists(path):
        raise FileNotFoundError(path)

    with open(path, "r", encoding="utf-8") as f:
        cfg = json.load(f)

    if not isinstance(cfg, dict):
        raise ValueError("pricing.json: expected object")

    out = json.loads(json.dumps(base)) if isinstance(base, dict) else {}
    deep_merge(out, cfg)
    if override:
        deep_merge(out, override)
    return out


def resolve_pricing(store: ShopStore, base: dict, override: dict | None = None) -> dict:
    """Дефолты калькулятора: base -> pricing.json (если есть) -> override."""
    path = store.pricing_path()
    if path and os.path.exists(path):
        try:
            return load_pricing_json(path, base=base, override=override)
        except json.JSONDecodeError as e:
            raise ConfigError(f"pricing.json: JSON error ({e.msg}, line {e.lineno}, column {e.colno})") from None
        except ValueError as e:
            raise ConfigError(str(e)) from None
    out = json.loads(json.dumps(base))
    if override:
        deep_merge(out, override)
    return out
