"""Pydantic models for rental meter billing payloads.

The storefront API exchanges camelCase JSON (``bwOldCount``, ``machineId``,
``gstType``) with Mongo-style ``_id`` keys. Every model accepts both the
camelCase alias and the snake_case field name, ignores unknown keys, and
coerces numeric fields through :func:`parse_non_negative_decimal_or_zero` so a
corrupt field degrades to zero instead of failing validation.

An invoice entry comes in two shapes, represented as a tagged variant:

- :class:`LegacyEntry`: one ``machineId`` with top-level ``a3Config`` /
  ``a4Config`` / ``a5Config`` readings.
- :class:`MultiProductEntry`: a non-empty ``products`` list, each element
  pairing a ``machineId`` with its own readings.

Use :func:`parse_rental_invoice_entry` to build the right variant from a raw
payload and :func:`product_lines` to normalize either variant to a list of
:class:`ProductLine`.
"""
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic.alias_generators import to_camel

from rental_billing.utils.numbers import ZERO, parse_non_negative_decimal_or_zero


class PaperSize(str, Enum):
    A3 = "a3"
    A4 = "a4"
    A5 = "a5"

    @property
    def config_field(self) -> str:
        return f"{self.value}_config"


class ColorMode(str, Enum):
    """Meter channel within a paper size, named after its payload prefix."""
    BW = "bw"
    COLOR = "color"
    COLOR_SCANNING = "color_scanning"

    @property
    def old_count_field(self) -> str:
        return f"{self.value}_old_count"

    @property
    def new_count_field(self) -> str:
        return f"{self.value}_new_count"

    @property
    def free_copies_field(self) -> str:
        return f"free_copies_{self.value}"

    @property
    def extra_amount_field(self) -> str:
        return f"extra_amount_{self.value}"


class _Payload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


def _mapping_or_none(value: Any) -> Any:
    # Unpopulated references (plain id strings) and junk are treated as absent
    if value is None or isinstance(value, BaseModel):
        return value
    if isinstance(value, Mapping):
        return dict(value)
    return None


def _label_or_none(value: Any) -> Optional[str]:
    # Display-only text; mobile forms send serial numbers and names as numbers
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (str, int, float, Decimal)):
        return str(value)
    return None


class MeterConfig(_Payload):
    """Billing rule and running baseline for one paper size of one machine."""

    bw_old_count: Decimal = ZERO
    color_old_count: Decimal = ZERO
    color_scanning_old_count: Decimal = ZERO
    free_copies_bw: Decimal = ZERO
    free_copies_color: Decimal = ZERO
    free_copies_color_scanning: Decimal = ZERO
    extra_amount_bw: Decimal = ZERO
    extra_amount_color: Decimal = ZERO
    extra_amount_color_scanning: Decimal = ZERO

    @field_validator("*", mode="before")
    @classmethod
    def coerce_numbers(cls, value: Any) -> Decimal:
        return parse_non_negative_decimal_or_zero(value)


class InvoiceEntryConfig(_Payload):
    """Meter readings reported on an invoice for one paper size.

    ``None`` means the channel was not reported.
    """

    bw_new_count: Optional[Decimal] = None
    color_new_count: Optional[Decimal] = None
    color_scanning_new_count: Optional[Decimal] = None

    @field_validator("*", mode="before")
    @classmethod
    def coerce_numbers(cls, value: Any) -> Optional[Decimal]:
        if value is None:
            return None
        return parse_non_negative_decimal_or_zero(value)


class GstComponent(_Payload):
    gst_type: Optional[str] = None
    gst_percentage: Decimal = ZERO

    @field_validator("gst_type", mode="before")
    @classmethod
    def stringify_label(cls, value: Any) -> Optional[str]:
        return _label_or_none(value)

    @field_validator("gst_percentage", mode="before")
    @classmethod
    def coerce_percentage(cls, value: Any) -> Decimal:
        return parse_non_negative_decimal_or_zero(value)


class Salesperson(_Payload):
    id: Optional[str] = Field(default=None, alias="_id")
    name: Optional[str] = None
    commission: Decimal = ZERO

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)

    @field_validator("name", mode="before")
    @classmethod
    def stringify_name(cls, value: Any) -> Optional[str]:
        return _label_or_none(value)

    @field_validator("commission", mode="before")
    @classmethod
    def coerce_commission(cls, value: Any) -> Decimal:
        return parse_non_negative_decimal_or_zero(value)


class RentalMachine(_Payload):
    """A rental product record (``machineId`` once populated)."""

    id: Optional[str] = Field(default=None, alias="_id")
    serial_no: Optional[str] = None
    model_name: Optional[str] = None
    base_price: Decimal = ZERO
    gst_type: List[GstComponent] = Field(default_factory=list)
    commission: Decimal = ZERO
    a3_config: Optional[MeterConfig] = None
    a4_config: Optional[MeterConfig] = None
    a5_config: Optional[MeterConfig] = None

    # model_name would otherwise clash with pydantic's protected namespace
    model_config = ConfigDict(protected_namespaces=())

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)

    @field_validator("serial_no", "model_name", mode="before")
    @classmethod
    def stringify_labels(cls, value: Any) -> Optional[str]:
        return _label_or_none(value)

    @field_validator("base_price", "commission", mode="before")
    @classmethod
    def coerce_numbers(cls, value: Any) -> Decimal:
        return parse_non_negative_decimal_or_zero(value)

    @field_validator("gst_type", mode="before")
    @classmethod
    def coerce_gst_list(cls, value: Any) -> List[Any]:
        if not isinstance(value, (list, tuple)):
            return []
        # Unpopulated GST references carry no percentage; drop them
        return [item for item in value if isinstance(item, (Mapping, GstComponent))]

    @field_validator("a3_config", "a4_config", "a5_config", mode="before")
    @classmethod
    def coerce_config(cls, value: Any) -> Any:
        return _mapping_or_none(value)

    def meter_config(self, size: PaperSize) -> Optional[MeterConfig]:
        return getattr(self, size.config_field)

    @property
    def gst_percentage(self) -> Decimal:
        """Effective GST rate: sum of every configured component."""
        return sum((gst.gst_percentage for gst in self.gst_type), ZERO)


class _ReadingsMixin(_Payload):
    a3_config: Optional[InvoiceEntryConfig] = None
    a4_config: Optional[InvoiceEntryConfig] = None
    a5_config: Optional[InvoiceEntryConfig] = None

    @field_validator("a3_config", "a4_config", "a5_config", mode="before")
    @classmethod
    def coerce_config(cls, value: Any) -> Any:
        return _mapping_or_none(value)

    def readings(self, size: PaperSize) -> Optional[InvoiceEntryConfig]:
        return getattr(self, size.config_field)

    def readings_by_size(self) -> Dict[PaperSize, InvoiceEntryConfig]:
        return {
            size: cfg for size in PaperSize
            if (cfg := self.readings(size)) is not None
        }


class ProductLine(_ReadingsMixin):
    """One invoiced machine and the readings reported for it."""

    machine: Optional[RentalMachine] = Field(default=None, alias="machineId")

    @field_validator("machine", mode="before")
    @classmethod
    def coerce_machine(cls, value: Any) -> Any:
        return _mapping_or_none(value)


class _EntryBase(_Payload):
    id: Optional[str] = Field(default=None, alias="_id")
    assigned_to: Optional[Salesperson] = None

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)

    @field_validator("assigned_to", mode="before")
    @classmethod
    def coerce_assigned_to(cls, value: Any) -> Any:
        return _mapping_or_none(value)


class LegacyEntry(_EntryBase, _ReadingsMixin):
    """Single-machine invoice entry (format used before multi-product entries)."""

    kind: Literal["legacy"] = "legacy"
    machine: Optional[RentalMachine] = Field(default=None, alias="machineId")

    @field_validator("machine", mode="before")
    @classmethod
    def coerce_machine(cls, value: Any) -> Any:
        return _mapping_or_none(value)


class MultiProductEntry(_EntryBase):
    kind: Literal["multi"] = "multi"
    products: List[ProductLine] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def drop_junk_products(cls, values: Any) -> Any:
        if isinstance(values, Mapping) and isinstance(values.get("products"), list):
            values = dict(values)
            values["products"] = [p for p in values["products"] if isinstance(p, (Mapping, ProductLine))]
        return values


class InvoiceCounter(_Payload):
    """Tenant-wide invoice sequence and display template, one per tenant."""

    invoice_count: int = 0
    global_invoice_format: str = ""

    @field_validator("invoice_count", mode="before")
    @classmethod
    def coerce_count(cls, value: Any) -> int:
        return int(parse_non_negative_decimal_or_zero(value))

    @field_validator("global_invoice_format", mode="before")
    @classmethod
    def coerce_format(cls, value: Any) -> str:
        return "" if value is None else str(value)


class CommissionRecord(_Payload):
    """Payload for the downstream "create commission" call."""

    commission_from: str = "rental"
    user_id: Optional[str] = None
    rental_invoice_id: Optional[str] = None
    commission_amount: Decimal
    percentage_rate: Decimal


RentalInvoiceEntry = Annotated[Union[LegacyEntry, MultiProductEntry], Field(discriminator="kind")]

_entry_adapter: TypeAdapter = TypeAdapter(RentalInvoiceEntry)


def parse_rental_invoice_entry(payload: Union[Mapping[str, Any], LegacyEntry, MultiProductEntry]) -> Union[LegacyEntry, MultiProductEntry]:
    """Build the entry variant for ``payload``.

    A non-empty ``products`` list takes precedence over the legacy top-level
    ``machineId`` shape. Raises ``pydantic.ValidationError`` only for payloads
    that are not mappings at all.
    """
    if isinstance(payload, (LegacyEntry, MultiProductEntry)):
        return payload
    if not isinstance(payload, Mapping):
        return _entry_adapter.validate_python(payload)
    data = dict(payload)
    products = data.get("products")
    has_products = isinstance(products, list) and any(
        isinstance(p, (Mapping, ProductLine)) for p in products
    )
    data["kind"] = "multi" if has_products else "legacy"
    if not has_products:
        data.pop("products", None)
    return _entry_adapter.validate_python(data)


def product_lines(entry: Union[LegacyEntry, MultiProductEntry]) -> List[ProductLine]:
    """Normalize either entry shape to its list of product lines."""
    if isinstance(entry, MultiProductEntry):
        return list(entry.products)
    return [
        ProductLine(
            machine=entry.machine,
            a3_config=entry.a3_config,
            a4_config=entry.a4_config,
            a5_config=entry.a5_config,
        )
    ]


__all__ = [
    "PaperSize",
    "ColorMode",
    "MeterConfig",
    "InvoiceEntryConfig",
    "GstComponent",
    "Salesperson",
    "RentalMachine",
    "ProductLine",
    "LegacyEntry",
    "MultiProductEntry",
    "InvoiceCounter",
    "CommissionRecord",
    "RentalInvoiceEntry",
    "parse_rental_invoice_entry",
    "product_lines",
]
