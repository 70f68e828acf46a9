"""
Request schemas for the API.

Bodies use camelCase on the wire; snake_case names are accepted too.
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ReferenceProductIn(BaseModel):
    """Optional numbers describing the reference product."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: Optional[str] = Field(None, validation_alias=AliasChoices("id", "asin"))
    price: Optional[float] = Field(None, gt=0)
    rating: Optional[float] = Field(None, ge=0, le=5)
    reviews: Optional[int] = Field(None, ge=0)


class CompetitorDetectionRequest(BaseModel):
    """Request to find the best competitor for a product."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "productTitle": "Stainless Steel Water Bottle 32oz Insulated",
                    "category": "Sports & Outdoors",
                    "subcategory": "Water Bottles",
                    "referenceProduct": {"asin": "B0REF00001", "price": 29.99, "rating": 4.3, "reviews": 1500},
                }
            ]
        },
    )

    product_title: str = Field(..., min_length=1, description="Title of the reference product")
    category: Optional[str] = None
    subcategory: Optional[str] = None
    reference_product: Optional[ReferenceProductIn] = None
