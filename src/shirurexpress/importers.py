from __future__ import annotations

import csv
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path

from psycopg import Connection

from .domain import CATALOG_KINDS, OrderKind
from .repositories.product_repo import ProductRepository


class ImportFileError(Exception):
    pass


def _price(value, sku: str) -> Decimal:
    try:
        price = Decimal(str(value).strip())
    except InvalidOperation:
        raise ImportFileError(f"Invalid price for sku={sku}: {value!r}") from None
    if price < 0:
        raise ImportFileError(f"Negative price for sku={sku}")
    return price


def _stock(value, sku: str) -> int | None:
    # empty stock means the item is not stock-tracked (menu dishes)
    if value is None or str(value).strip() == "":
        return None
    try:
        qty = int(str(value).strip())
    except ValueError:
        raise ImportFileError(f"Invalid stock_qty for sku={sku}: {value!r}") from None
    if qty < 0:
        raise ImportFileError(f"Negative stock_qty for sku={sku}")
    return qty


def _kind(value, default: str) -> str:
    kind = (str(value).strip().lower() if value else "") or default
    if kind not in CATALOG_KINDS:
        raise ImportFileError(f"Unknown product kind: {kind!r}")
    return kind


def import_products_csv(
    conn: Connection,
    path: str | Path,
    provider_id: int,
    product_repo: ProductRepository,
    kind: str = OrderKind.GROCERY.value,
) -> int:
    p = Path(path)
    if not p.exists():
        raise ImportFileError(f"File not found: {p}")

    count = 0
    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        required = {"sku", "name", "category", "price", "unit", "stock_qty"}
        if not required.issubset(set(reader.fieldnames or [])):
            raise ImportFileError(f"CSV must contain columns: {sorted(required)}")

        for row in reader:
            sku = (row.get("sku") or "").strip()
            name = (row.get("name") or "").strip()
            if not sku or not name:
                continue
            product_repo.upsert_by_sku(
                conn,
                provider_id=provider_id,
                kind=_kind(row.get("kind"), kind),
                sku=sku,
                name=name,
                category=(row.get("category") or "").strip() or None,
                unit=(row.get("unit") or "").strip() or None,
                unit_price=_price(row.get("price"), sku),
                stock_qty=_stock(row.get("stock_qty"), sku),
            )
            count += 1
    return count


def import_products_json(
    conn: Connection,
    path: str | Path,
    provider_id: int,
    product_repo: ProductRepository,
    kind: str = OrderKind.RESTAURANT.value,
) -> int:
    p = Path(path)
    if not p.exists():
        raise ImportFileError(f"File not found: {p}")

    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except Exception as e:
        raise ImportFileError(f"Invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise ImportFileError("JSON must be a list of objects")

    count = 0
    for obj in data:
        if not isinstance(obj, dict):
            continue
        sku = str(obj.get("sku", "")).strip()
        name = str(obj.get("name", "")).strip()
        if not sku or not name:
            continue
        product_repo.upsert_by_sku(
            conn,
            provider_id=provider_id,
            kind=_kind(obj.get("kind"), kind),
            sku=sku,
            name=name,
            category=str(obj.get("category") or "").strip() or None,
            unit=str(obj.get("unit") or "").strip() or None,
            unit_price=_price(obj.get("price", 0), sku),
            stock_qty=_stock(obj.get("stock_qty"), sku),
            is_available=bool(obj.get("is_available", True)),
        )
        count += 1
    return count
