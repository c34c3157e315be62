"""Brand context API schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

MAX_PRODUCT_LINES = 20


class ProductLine(BaseModel):
    id: str
    name: str
    description: str | None = None
    value_proposition: str | None = None
    target_audience: str | None = None


class ProductLineInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str | None = None
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    value_proposition: str | None = None
    target_audience: str | None = None


class BrandContext(BaseModel):
    brand_voice: list[str]
    value_proposition: str | None = None
    target_industries: list[str]
    competitors: list[str]
    pain_clusters: list[str]
    primary_icp_roles: list[str]
    key_differentiators: list[str]
    use_cases: list[str]
    roi_claims: list[str]
    product_lines: list[ProductLine]
    updated_at: datetime


class UpsertBrandContextRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    brand_voice: list[str] = Field(default_factory=list)
    value_proposition: str | None = None
    target_industries: list[str] = Field(default_factory=list)
    competitors: list[str] = Field(default_factory=list)
    pain_clusters: list[str] = Field(default_factory=list)
    primary_icp_roles: list[str] = Field(default_factory=list)
    key_differentiators: list[str] = Field(default_factory=list)
    use_cases: list[str] = Field(default_factory=list)
    roi_claims: list[str] = Field(default_factory=list)
    product_lines: list[ProductLineInput] = Field(default_factory=list, max_length=MAX_PRODUCT_LINES)
