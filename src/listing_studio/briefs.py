from __future__ import annotations

import logging
from typing import Any

from listing_studio.decoding import decode
from listing_studio.errors import MalformedResponse, PlanningFailed
from listing_studio.models import SLATE, SLATE_SIZE, ImageType, ListingImage, ProductAnalysis
from listing_studio.providers.base import GenerativeProvider

logger = logging.getLogger(__name__)

BRIEF_FIELDS = ("id", "type", "title", "headline", "subCopy", "visualPrompt", "creativeBrief")

BRIEFS_SCHEMA: dict[str, Any] = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {name: {"type": "STRING"} for name in BRIEF_FIELDS},
        "required": list(BRIEF_FIELDS),
    },
}


def build_briefs_prompt(analysis: ProductAnalysis) -> str:
    roles = ", ".join(f'"{t.value}"' for t in SLATE)
    return (
        f"Based on this product analysis, design an {SLATE_SIZE}-image Amazon visual strategy.\n"
        f"\nCategory: {analysis.category}\n"
        f"Brand DNA: {analysis.visual_description}\n"
        f"Tone: {analysis.brand_tone}\n"
        f"\nProduce {SLATE_SIZE} assets: 1 Main, 2 Lifestyle, 3 Infographics, 1 Comparison, 1 Brand Story.\n"
        f"Use exactly these type values, in this order: {roles}.\n"
        "Return a JSON array of objects: {id, type, title, headline, subCopy, visualPrompt, creativeBrief}.\n"
    )


def _coerce_type(raw: Any, position: int) -> ImageType:
    if raw is not None:
        s = str(raw).strip().lower()
        for t in ImageType:
            if s in (t.value.lower(), t.name.lower()):
                return t
    return SLATE[position]


def normalize_briefs(payload: Any) -> list[ListingImage]:
    """
    Turn decoded drafts into unrendered ListingImage records: no versions,
    nothing selected, not loading. Ids are made unique within the slate.
    """
    if not isinstance(payload, list):
        raise PlanningFailed("Brief response was not a JSON array")

    out: list[ListingImage] = []
    seen: set[str] = set()
    for item in payload:
        if len(out) >= SLATE_SIZE:
            break
        if not isinstance(item, dict):
            continue
        position = len(out)

        brief_id = str(item.get("id") or "").strip()
        if not brief_id or brief_id in seen:
            brief_id = f"img-{position + 1}"
            while brief_id in seen:
                brief_id += "x"
        seen.add(brief_id)

        data = {key: item.get(key) for key in BRIEF_FIELDS[2:]}
        data = {key: "" if value is None else str(value) for key, value in data.items()}
        out.append(
            ListingImage.model_validate(data | {"id": brief_id, "type": _coerce_type(item.get("type"), position)})
        )

    if not out:
        raise PlanningFailed("The AI returned no creative briefs")
    return out


class BriefPlanner:
    def __init__(self, provider: GenerativeProvider) -> None:
        self.provider = provider

    async def plan(self, analysis: ProductAnalysis) -> list[ListingImage]:
        try:
            raw = await self.provider.structure(build_briefs_prompt(analysis), [], BRIEFS_SCHEMA)
        except Exception as exc:
            logger.warning("briefs.request_failed", extra={"error": str(exc)})
            raise PlanningFailed(f"Brief planning failed: {exc}") from exc

        try:
            payload = decode(raw)
        except MalformedResponse as exc:
            logger.warning(
                "briefs.malformed",
                extra={"raw_excerpt": exc.raw_excerpt, "raw_length": exc.raw_length},
            )
            raise PlanningFailed(str(exc)) from exc

        briefs = normalize_briefs(payload)
        if len(briefs) < SLATE_SIZE:
            logger.info("briefs.short_slate", extra={"count": len(briefs)})
        return briefs
