"""
Vendor configuration table.

The table is fixed and hand-maintained. It is built once at startup and
handed to the orchestrator; nothing mutates it at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from .errors import ValidationError


@dataclass(frozen=True)
class VendorConfig:
    key: str
    display_name: str
    search_namespace: str
    realtime_weight: float = 0.0
    corrections_enabled: bool = True
    corrections_namespace: str = ""
    # Live site search; ``{query}`` is replaced with the URL-encoded description
    realtime_search_url: str = ""
    # CSS selector for product-listing elements, in ranking order
    sku_selector: str = ""
    # Attribute holding the SKU; element text is used when empty
    sku_attribute: str = ""
    # Optional regex with one group that pulls the SKU out of the text/attribute
    sku_pattern: str = ""

    def __post_init__(self) -> None:
        if not 0.0 <= self.realtime_weight <= 1.0:
            raise ValueError(f"realtime_weight for {self.key} must be within 0..1")

    @property
    def feedback_namespace(self) -> str:
        return self.corrections_namespace or f"{self.search_namespace}-corrections"

    @property
    def realtime_enabled(self) -> bool:
        return self.realtime_weight > 0 and bool(self.realtime_search_url) and bool(self.sku_selector)


DEFAULT_VENDORS: Tuple[VendorConfig, ...] = (
    VendorConfig(
        key="graybar",
        display_name="Graybar",
        search_namespace="graybar",
        realtime_weight=0.7,
        realtime_search_url="https://www.graybar.com/search?text={query}",
        sku_selector="[data-product-sku]",
        sku_attribute="data-product-sku",
    ),
    VendorConfig(
        key="platt",
        display_name="Platt Electric Supply",
        search_namespace="platt",
        realtime_weight=0.4,
        realtime_search_url="https://www.platt.com/search.aspx?q={query}",
        sku_selector=".product-item .item-number",
        sku_pattern=r"(?:Item|SKU)\s*#?\s*:?\s*([A-Za-z0-9][A-Za-z0-9\-]*)",
    ),
    VendorConfig(
        key="wesco",
        display_name="Wesco",
        search_namespace="wesco",
        realtime_weight=0.0,
        corrections_enabled=False,
    ),
)


class VendorTable:
    """Read-only, case-insensitive view over a tuple of ``VendorConfig``."""

    def __init__(self, vendors: Iterable[VendorConfig] = DEFAULT_VENDORS):
        self._vendors: Tuple[VendorConfig, ...] = tuple(vendors)
        self._by_key: Dict[str, VendorConfig] = {}
        for v in self._vendors:
            k = v.key.strip().lower()
            if k in self._by_key:
                raise ValueError(f"Duplicate vendor key: {v.key}")
            self._by_key[k] = v

    def __iter__(self):
        return iter(self._vendors)

    def __len__(self) -> int:
        return len(self._vendors)

    @property
    def keys(self) -> Tuple[str, ...]:
        return tuple(v.key for v in self._vendors)

    def get(self, key: str) -> VendorConfig:
        vendor = self._by_key.get((key or "").strip().lower())
        if vendor is None:
            raise ValidationError(
                f"Unknown vendor '{key}'. Expected one of: {', '.join(self.keys)}"
            )
        return vendor

    def select(self, key: Optional[str] = None) -> Tuple[VendorConfig, ...]:
        """All vendors, or the single vendor named by ``key``."""
        if key is None:
            return self._vendors
        return (self.get(key),)
