"""Human-readable labels and audit parameters for stored records."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from waybill_sync import _constants as keys

_LABEL_FIELDS: tuple[str, ...] = ("name", "title", "fullName", "number", "plateNumber", "brand", "code", "id")


def make_label(obj: Any) -> str | None:
    """First non-empty identifying field of a record."""
    if not isinstance(obj, dict):
        return None
    for name in _LABEL_FIELDS:
        value = obj.get(name)
        if value not in (None, ""):
            return str(value)
    return None


def _waybill_label(item: dict[str, Any]) -> str:
    return f"№{item.get('number')} от {item.get('date')}"


def _stock_transaction_label(item: dict[str, Any]) -> str:
    kind = "Приход" if item.get("type") == "income" else "Расход"
    return f"{kind} №{item.get('docNumber')} от {item.get('date')}"


_KEY_LABELS: dict[str, Callable[[dict[str, Any]], Any]] = {
    keys.WAYBILLS: _waybill_label,
    keys.EMPLOYEES: lambda item: item.get("shortName") or item.get("fullName"),
    keys.VEHICLES: lambda item: f"{item.get('plateNumber')} ({item.get('brand')})",
    keys.ORGANIZATIONS: lambda item: item.get("shortName"),
    keys.FUEL_TYPES: lambda item: item.get("name"),
    keys.SAVED_ROUTES: lambda item: f"{item.get('from')} -> {item.get('to')}",
    keys.WAYBILL_BLANKS: lambda item: f"{item.get('series')} {item.get('number')}",
    keys.GARAGE_STOCK_ITEMS: lambda item: item.get("name"),
    keys.STOCK_TRANSACTIONS: _stock_transaction_label,
    keys.TIRES: lambda item: f"{item.get('brand')} {item.get('model')} ({item.get('size')})",
    keys.PERIOD_LOCKS: lambda item: f"Блок периода {item.get('period')}",
    keys.BUSINESS_AUDIT: lambda item: f"{item.get('type') or 'Событие'} ({item.get('at') or ''})",
}


def item_label(item: Any, key: str) -> str:
    """Label of an incoming sub-item of *key* for the import preview."""
    if not isinstance(item, dict):
        return "Unknown" if item is None else str(item)
    formatter = _KEY_LABELS.get(key)
    if formatter is not None:
        label = formatter(item)
        if label:
            return str(label)
    label = make_label(item)
    if label:
        return label
    if item.get("docNumber"):
        return f"№{item['docNumber']}"
    if item.get("series") and item.get("number"):
        return f"{item['series']} {item['number']}"
    return "Record"


def _route_count(obj: dict[str, Any]) -> int:
    routes = obj.get("routes")
    return len(routes) if isinstance(routes, list) else 0


# Per-key fields copied into audit item params; callables derive a value.
PARAMS_CONFIG: dict[str, tuple[str | tuple[str, Callable[[dict[str, Any]], Any]], ...]] = {
    keys.WAYBILLS: ("id", "number", "date", ("routeCount", _route_count)),
    keys.VEHICLES: ("id", "plateNumber", "brand", "year", "fuelTankCapacity"),
    keys.EMPLOYEES: ("id", "fullName", "position", "employeeType"),
    keys.ORGANIZATIONS: ("id", "fullName", "inn"),
    keys.FUEL_TYPES: ("id", "code", "name", "density"),
    keys.SAVED_ROUTES: ("id", "from", "to", "distanceKm"),
    keys.SEASON_SETTINGS: ("type", "summerMonth", "winterMonth"),
}

_FALLBACK_PARAM_FIELDS: tuple[str, ...] = ("id", "code", "name", "number", "fullName", "plateNumber", "brand")


def build_params(key: str, obj: Any) -> dict[str, Any]:
    """Small summary of *obj* stored alongside an audit item."""
    if not isinstance(obj, dict):
        return {}
    out: dict[str, Any] = {}
    for definition in PARAMS_CONFIG.get(key, ()):
        if isinstance(definition, tuple):
            name, derive = definition
            out[name] = derive(obj)
        elif obj.get(definition) is not None:
            out[definition] = obj[definition]
    if not out:
        for name in _FALLBACK_PARAM_FIELDS:
            if obj.get(name) is not None:
                out[name] = obj[name]
                break
    return out
