"""
Named gateway operations and how each maps onto both upstream protocols.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.parse import quote

from fishbowl_gateway.errors import ValidationError
from fishbowl_gateway.models.session import UpstreamResult
from fishbowl_gateway.transport.envelope import STATUS_SUCCESS

Params = dict[str, Any]

QUANTITY_FIELDS = ("quantity", "Quantity", "QtyOnHand", "qtyOnHand", "AvailableQty", "availableQty")
NESTED_FIELDS = ("PartQuantity", "partQuantity", "inventory", "results", "data")


def succeeded(result: UpstreamResult) -> bool:
    if result.protocol == "xml":
        return result.status_code == STATUS_SUCCESS
    return result.status_code is not None and 200 <= result.status_code < 300


def _missing(value: Any) -> bool:
    return value is None or value == ""


def _filters(params: Params) -> Params:
    return {k: v for k, v in params.items() if not _missing(v)}


def _get_all(params: Params) -> Params:
    return _filters(params) or {"GetAll": True}


def _number(value: Any) -> Optional[float]:
    if isinstance(value, dict):
        value = value.get("#text")
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return int(number) if number.is_integer() else number


def _quantity(node: Any) -> Optional[float]:
    if isinstance(node, list):
        found = [q for q in (_quantity(item) for item in node) if q is not None]
        return sum(found) if found else None
    if not isinstance(node, dict):
        return None
    for field in QUANTITY_FIELDS:
        if field in node:
            return _number(node[field])
    for field in NESTED_FIELDS:
        if field in node:
            return _quantity(node[field])
    return None


def _inventory(params: Params, data: Any) -> dict[str, Any]:
    return {"partNumber": params["partNumber"], "quantity": _quantity(data), "details": data}


def _passthrough(params: Params, data: Any) -> Any:
    return data


def _tracking_items(params: Params) -> list[dict[str, Any]]:
    items = params.get("trackingItems") or []
    if not isinstance(items, list):
        raise ValidationError("trackingItems must be a list", ["trackingItems"])
    tracked = []
    for i, item in enumerate(items):
        tracking_id = (item.get("partTracking") or {}).get("id") if isinstance(item, dict) else None
        if _missing(tracking_id) or _missing(item.get("value")):
            raise ValidationError(
                f"trackingItems[{i}] requires partTracking.id and value", [f"trackingItems[{i}]"]
            )
        tracked.append({"PartTracking": {"ID": tracking_id}, "Value": item["value"]})
    return tracked


def _inventory_add_xml(params: Params) -> Params:
    payload: Params = {
        "PartID": params["partId"],
        "LocationID": params["locationId"],
        "Quantity": params["quantity"],
    }
    items = _tracking_items(params)
    if items:
        payload["TrackingItems"] = {"TrackingItem": items}
    return payload


def _inventory_add_rest(params: Params) -> Any:
    return {k: v for k, v in params.items() if k != "partId"}


@dataclass(frozen=True)
class UpstreamOperation:
    name: str
    xml_request: str
    rest_method: str
    rest_path: str
    required: tuple[str, ...] = ()
    numeric: tuple[str, ...] = ()
    xml_payload: Callable[[Params], Optional[Params]] = _filters
    rest_query: Optional[Callable[[Params], Optional[Params]]] = None
    rest_body: Optional[Callable[[Params], Any]] = None
    shape: Callable[[Params, Any], Any] = _passthrough
    success: Callable[[UpstreamResult], bool] = succeeded

    def validate(self, params: Params) -> None:
        missing = [field for field in self.required if _missing(params.get(field))]
        if missing:
            raise ValidationError(f"{', '.join(missing)} required for {self.name}", missing)
        invalid = [field for field in self.numeric if field in params and _number(params[field]) is None]
        if invalid:
            raise ValidationError(f"{', '.join(invalid)} must be numeric for {self.name}", invalid)

    def path(self, params: Params) -> str:
        values = {k: quote(str(v), safe="") for k, v in params.items()}
        return self.rest_path.format(**values)


OPERATIONS: dict[str, UpstreamOperation] = {op.name: op for op in (
    UpstreamOperation(
        name="getInventory",
        xml_request="PartQuantityRq",
        xml_payload=lambda p: {"PartNum": p["partNumber"]},
        rest_method="GET",
        rest_path="/api/parts/inventory",
        rest_query=lambda p: {"number": p["partNumber"]},
        required=("partNumber",),
        shape=_inventory,
    ),
    UpstreamOperation(
        name="getProducts",
        xml_request="ProductGetRq",
        xml_payload=_get_all,
        rest_method="GET",
        rest_path="/api/products",
        rest_query=_filters,
    ),
    UpstreamOperation(
        name="getParts",
        xml_request="PartGetRq",
        xml_payload=_get_all,
        rest_method="GET",
        rest_path="/api/parts",
        rest_query=_filters,
    ),
    UpstreamOperation(
        name="getManufactureOrders",
        xml_request="ManufactureOrderQueryRq",
        rest_method="GET",
        rest_path="/api/manufacture-orders",
        rest_query=_filters,
    ),
    UpstreamOperation(
        name="getPurchaseOrders",
        xml_request="PurchaseOrderQueryRq",
        rest_method="GET",
        rest_path="/api/purchase-orders",
        rest_query=_filters,
    ),
    UpstreamOperation(
        name="addInventory",
        xml_request="InventoryAddRq",
        xml_payload=_inventory_add_xml,
        rest_method="POST",
        rest_path="/api/parts/{partId}/inventory/add",
        rest_body=_inventory_add_rest,
        required=("partId", "locationId", "quantity"),
        numeric=("quantity",),
    ),
)}


def get_operation(name: str) -> UpstreamOperation:
    try:
        return OPERATIONS[name]
    except KeyError:
        raise ValidationError(f"Unknown command: {name}", ["command"])
