# provide dataclass models

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

LANGUAGES = ("en", "ar", "es")


@dataclass(frozen=True)
class ClassRecord:
    """A catalog entry ("class"), always read live from the classes table."""

    id: int
    special_id: Optional[str]
    main_category: str
    quality: str  # shown as "Group" in the UI
    class_name: str
    class_name_arabic: Optional[str]
    class_name_english: Optional[str]
    class_features: Optional[str]
    class_price: Optional[float]  # None means "price on request"
    class_weight: Optional[float]  # kg
    class_quantity: Optional[int]  # 0 means "not orderable"
    class_video: Optional[str]
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def has_price(self) -> bool:
        return self.class_price is not None

    @property
    def is_orderable(self) -> bool:
        return self.class_quantity != 0

    def display_name(self, language: str = "es") -> str:
        if language == "ar" and self.class_name_arabic:
            return self.class_name_arabic
        if language == "en" and self.class_name_english:
            return self.class_name_english
        return self.class_name


@dataclass(frozen=True)
class PriceHistoryEntry:
    id: int
    class_id: int
    old_price: Optional[float]
    new_price: Optional[float]
    changed_at: str


@dataclass(frozen=True)
class PriceChange:
    """A history entry joined with the product's *current* identity."""

    entry: PriceHistoryEntry
    special_id: Optional[str]
    class_name: str


@dataclass(frozen=True)
class CartLine:
    class_id: int
    quantity: int
    record: ClassRecord

    @property
    def line_total(self) -> Optional[float]:
        if self.record.class_price is None:
            return None
        return self.record.class_price * self.quantity


@dataclass(frozen=True)
class CartView:
    session_id: str
    lines: Tuple[CartLine, ...]
    known_total: float
    total_items: int
    has_unknown_prices: bool

    @property
    def is_empty(self) -> bool:
        return not self.lines


@dataclass(frozen=True)
class OrderLineSnapshot:
    """
    Point in time copy of a product inside an order. Never joined back to
    the classes table, so later edits or deletes do not reach it.
    """

    class_id: int
    quantity: int
    special_id: str
    class_name: str
    class_price: Optional[float]
    quality: str = ""
    class_name_arabic: Optional[str] = None
    class_name_english: Optional[str] = None

    @property
    def line_total(self) -> Optional[float]:
        if self.class_price is None:
            return None
        return self.class_price * self.quantity

    @classmethod
    def from_record(cls, record: ClassRecord, quantity: int) -> "OrderLineSnapshot":
        return cls(
            class_id=record.id,
            quantity=quantity,
            special_id=record.special_id or "",
            class_name=record.class_name,
            class_price=record.class_price,
            quality=record.quality,
            class_name_arabic=record.class_name_arabic,
            class_name_english=record.class_name_english,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CustomerInfo:
    full_name: str
    company: str = ""
    phone: str = ""
    sales_person: str = ""
    notes: str = ""


@dataclass(frozen=True)
class Order:
    id: int
    order_id: str
    customer: CustomerInfo
    items: Tuple[OrderLineSnapshot, ...]
    known_total: float
    total_items: int
    has_unknown_prices: bool
    language: str
    created_at: str


@dataclass(frozen=True)
class SkippedRow:
    index: int  # 1-based spreadsheet row, header is row 1
    reason: str


@dataclass(frozen=True)
class ProcessedRow:
    index: int
    special_id: str
    action: str  # "created" | "updated"


@dataclass
class SyncReport:
    processed: List[ProcessedRow] = field(default_factory=list)
    skipped: List[SkippedRow] = field(default_factory=list)

    @property
    def processed_count(self) -> int:
        return len(self.processed)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "processedCount": self.processed_count,
            "skippedCount": self.skipped_count,
            "skipped": [{"index": s.index, "reason": s.reason} for s in self.skipped],
        }
