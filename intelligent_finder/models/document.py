"""Document model shared with the external document store."""
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def normalize_amount(raw: str) -> str:
    """Rewrite a formatted amount in plain decimal notation.

    When both ``,`` and ``.`` occur, the right-most one is the decimal
    separator ("1,250.00", "1.250,00"). A single comma followed by exactly
    three digits groups thousands ("1,250"); any other single comma marks
    decimals ("99,90"). Repeated dots group thousands ("1.250.000").
    """
    # Remove currency symbols, codes and spaces (keep sign and separators)
    cleaned = re.sub(r"[^\d,.\-+]", "", raw)

    if "," in cleaned and "." in cleaned:
        if cleaned.rfind(",") > cleaned.rfind("."):
            return cleaned.replace(".", "").replace(",", ".")
        return cleaned.replace(",", "")

    if "," in cleaned:
        head, _, tail = cleaned.rpartition(",")
        if cleaned.count(",") == 1 and len(tail) != 3:
            return f"{head}.{tail}"
        return cleaned.replace(",", "")

    if cleaned.count(".") > 1:
        return cleaned.replace(".", "")
    return cleaned


class Document(BaseModel):
    """A document owned by the external store, read-only for matching.

    Attributes:
        id: Store identifier
        type: Document type (e.g., "invoice", "bank_transaction")
        content: Extracted text content
        name: Optional display name / file name
        metadata: Free-form extracted fields; engines read ``date``,
            ``amount`` and ``currency`` from here
        created_at: When the document entered the store
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "id": "doc-0001",
                "type": "invoice",
                "content": "Invoice INV-2024-118 ACME GmbH total 1,250.00 EUR",
                "name": "INV-2024-118.pdf",
                "metadata": {"date": "2024-03-01", "amount": 1250.0, "currency": "EUR"},
            }
        },
    )

    id: str = Field(..., min_length=1)
    type: str
    content: str = ""
    name: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None

    @property
    def text(self) -> str:
        """Text used by string-based engines: content, falling back to name."""
        return self.content or self.name or ""

    @property
    def document_date(self) -> date | None:
        """Document date from ``metadata["date"]``, or None if absent/unparseable."""
        value = self.metadata.get("date")
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str) and value.strip():
            try:
                return datetime.fromisoformat(value.strip()).date()
            except ValueError:
                return None
        return None

    @property
    def amount(self) -> Decimal | None:
        """Document amount from ``metadata["amount"]``, or None if absent/unparseable."""
        value = self.metadata.get("amount")
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, str):
            value = normalize_amount(value)
            if not value:
                return None
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return None

    @property
    def currency(self) -> str | None:
        value = self.metadata.get("currency")
        return str(value).upper() if value else None
