from __future__ import annotations

import base64
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    # Persisted and wire form uses camelCase keys; python code uses snake_case.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ImageType(str, Enum):
    MAIN = "Main Image"
    LIFESTYLE_1 = "Lifestyle 1"
    LIFESTYLE_2 = "Lifestyle 2"
    INFOGRAPHIC_1 = "Infographic 1"
    INFOGRAPHIC_2 = "Infographic 2"
    INFOGRAPHIC_3 = "Infographic 3"
    COMPARISON = "Comparison Image"
    BRAND_STORY = "Brand Story"


# 1 main / 2 lifestyle / 3 infographic / 1 comparison / 1 brand story
SLATE: tuple[ImageType, ...] = tuple(ImageType)
SLATE_SIZE = len(SLATE)


class InputType(str, Enum):
    URL = "url"
    ASIN = "asin"
    IMAGE = "image"
    SMART = "smart"


class GroundingSource(CamelModel):
    title: str = "Source"
    uri: str


def _clean_string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    out: list[str] = []
    for item in value:
        if item is None:
            continue
        s = str(item).strip()
        if s:
            out.append(s)
    return out


class ProductAnalysis(CamelModel):
    category: str
    use_case: str
    target_customer: str
    key_benefits: list[str]
    materials: str = ""
    dimensions: str = ""
    color_palette: list[str] = Field(default_factory=list)
    brand_tone: str
    competitor_insights: str = ""
    suggested_aesthetics: str = ""
    visual_description: str
    grounding_sources: list[GroundingSource] = Field(default_factory=list)
    extracted_image_urls: list[str] = Field(default_factory=list)

    @field_validator("category", "use_case", "target_customer", "brand_tone", "visual_description", mode="before")
    @classmethod
    def _required_text(cls, value: Any) -> str:
        if value is None or not str(value).strip():
            raise ValueError("must be a non-empty string")
        return str(value).strip()

    @field_validator("materials", "dimensions", "competitor_insights", "suggested_aesthetics", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            return ", ".join(str(v) for v in value)
        return str(value).strip()

    @field_validator("key_benefits", mode="before")
    @classmethod
    def _benefits(cls, value: Any) -> list[str]:
        if value is None:
            raise ValueError("keyBenefits is required")
        return _clean_string_list(value)

    @field_validator("color_palette", "extracted_image_urls", mode="before")
    @classmethod
    def _optional_lists(cls, value: Any) -> list[str]:
        return _clean_string_list(value)

    @field_validator("grounding_sources", mode="before")
    @classmethod
    def _sources(cls, value: Any) -> Any:
        return [] if value is None else value


class ListingImage(CamelModel):
    id: str
    type: ImageType
    title: str = ""
    headline: str = ""
    sub_copy: str = ""
    visual_prompt: str = ""
    creative_brief: str = ""
    generated_image_url: str | None = None
    versions: list[str] = Field(default_factory=list)
    # Transient UI state; never persisted.
    is_loading: bool = Field(default=False, exclude=True)
    error: str | None = Field(default=None, exclude=True)

    def record_version(self, uri: str) -> None:
        self.versions.append(uri)
        self.generated_image_url = uri

    def select_version(self, uri: str) -> None:
        if uri not in self.versions:
            raise ValueError("version is not part of this asset's history")
        self.generated_image_url = uri

    def view(self) -> dict[str, Any]:
        data = self.to_json_dict()
        data["isLoading"] = self.is_loading
        data["error"] = self.error
        return data


class User(CamelModel):
    id: str
    name: str
    email: str
    brand_name: str = ""
    avatar: str | None = None

    @classmethod
    def from_credentials(cls, email: str, brand_name: str) -> "User":
        email = email.strip()
        brand_name = brand_name.strip()
        return cls(
            id=base64.b64encode(email.encode("utf-8")).decode("ascii"),
            name=brand_name,
            email=email,
            brand_name=brand_name,
            avatar=f"https://api.dicebear.com/7.x/initials/svg?seed={brand_name}",
        )


class InputDescriptor(CamelModel):
    text: str | None = None
    image: str | None = None
    type: InputType

    @classmethod
    def from_submission(cls, text: str | None = None, image: str | None = None) -> "InputDescriptor":
        text = (text or "").strip() or None
        image = (image or "").strip() or None
        if not text and not image:
            raise ValueError("a product link, ID or photo is required")
        if text and image:
            kind = InputType.SMART
        elif image:
            kind = InputType.IMAGE
        elif text.startswith("http"):
            kind = InputType.URL
        else:
            kind = InputType.ASIN
        return cls(text=text, image=image, type=kind)

    @property
    def value(self) -> str:
        return self.text or self.image or ""


class HistoryItem(CamelModel):
    id: str
    user_id: str | None = None
    timestamp: int
    input: str
    type: InputType
    analysis: ProductAnalysis
    reference_image: str | None = None
    images: list[ListingImage] = Field(default_factory=list)

    def search_text(self) -> str:
        # Image-only projects store the photo as input; it is not searchable text.
        parts = [] if self.input.startswith("data:") else [self.input]
        parts.append(self.analysis.category)
        parts.extend(img.title for img in self.images)
        return " ".join(parts).lower()
