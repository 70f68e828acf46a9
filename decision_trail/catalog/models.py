"""Catalog item and reference item models."""

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator


class CatalogItem(BaseModel):
    """A product the pipeline may consider as a candidate.

    Accepts the legacy catalog spellings ``asin`` (for ``id``) and
    ``reviews`` (for ``review_count``).
    """

    id: str = Field(
        validation_alias=AliasChoices("id", "asin"),
        description="Stable identifier (e.g. ASIN)",
    )
    title: str
    price: float = Field(ge=0.0)
    rating: float = Field(default=0.0, ge=0.0, le=5.0)
    review_count: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("review_count", "reviewCount", "reviews"),
    )
    features: list[str] = Field(default_factory=list)
    specifications: str = Field(default="", description="Free-text specification sheet")
    category: Optional[str] = None
    subcategory: Optional[str] = None

    @field_validator("specifications", mode="before")
    @classmethod
    def _flatten_specifications(cls, value: Any) -> Any:
        # Structured spec sheets are flattened to their values
        if isinstance(value, dict):
            return " ".join(str(v) for v in value.values())
        if value is None:
            return ""
        return value

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value

    @property
    def search_text(self) -> str:
        """Lower-cased title, features and specifications joined for matching."""
        return f"{self.title} {' '.join(self.features)} {self.specifications}".lower()

    @property
    def metrics(self) -> dict[str, Any]:
        return {"price": self.price, "rating": self.rating, "reviews": self.review_count}

    def as_candidate(self, **extra: Any) -> dict[str, Any]:
        """Candidate payload for trace verdicts."""
        return {"id": self.id, "title": self.title, **self.metrics, **extra}


class ReferenceItem(BaseModel):
    """The item competitors are being searched for."""

    id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("id", "asin"),
    )
    title: str
    price: float = Field(gt=0.0)
    rating: Optional[float] = Field(default=None, ge=0.0, le=5.0)
    review_count: Optional[int] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("review_count", "reviewCount", "reviews"),
    )
    category: Optional[str] = None
    subcategory: Optional[str] = None

    def summary(self) -> dict[str, Any]:
        return {
            "asin": self.id,
            "title": self.title,
            "price": self.price,
            "rating": self.rating,
            "reviews": self.review_count,
        }
