import asyncio
import json

import pytest
from fakes import FakeProvider, analysis_payload, briefs_payload

from listing_studio.briefs import BriefPlanner, normalize_briefs
from listing_studio.errors import PlanningFailed
from listing_studio.models import SLATE, ImageType, ProductAnalysis


@pytest.fixture
def analysis() -> ProductAnalysis:
    return ProductAnalysis.model_validate(analysis_payload())


def test_plan_returns_eight_unrendered_drafts(analysis):
    drafts = briefs_payload()
    # Upstream tries to sneak rendered state in; it must be discarded.
    for d in drafts:
        d["versions"] = ["data:image/png;base64,AAAA"]
        d["generatedImageUrl"] = "data:image/png;base64,AAAA"
        d["isLoading"] = True
    provider = FakeProvider(structure=[json.dumps(drafts)])

    briefs = asyncio.run(BriefPlanner(provider).plan(analysis))

    assert len(briefs) == 8
    for brief in briefs:
        assert brief.versions == []
        assert brief.generated_image_url is None
        assert brief.is_loading is False
    assert [b.type for b in briefs] == list(SLATE)


def test_plan_prompt_carries_identity_and_tone(analysis):
    provider = FakeProvider(structure=[json.dumps(briefs_payload())])
    asyncio.run(BriefPlanner(provider).plan(analysis))
    prompt, images, schema = provider.structure_calls[0]
    assert analysis.category in prompt
    assert analysis.visual_description in prompt
    assert analysis.brand_tone in prompt
    assert images == []
    assert schema["type"] == "ARRAY"


def test_zero_drafts_is_planning_failure(analysis):
    provider = FakeProvider(structure=["[]"])
    with pytest.raises(PlanningFailed):
        asyncio.run(BriefPlanner(provider).plan(analysis))


def test_undecodable_drafts_is_planning_failure(analysis):
    provider = FakeProvider(structure=["no briefs today"])
    with pytest.raises(PlanningFailed):
        asyncio.run(BriefPlanner(provider).plan(analysis))


def test_object_instead_of_array_is_planning_failure():
    with pytest.raises(PlanningFailed):
        normalize_briefs({"briefs": briefs_payload()})


def test_extra_drafts_are_dropped():
    assert len(normalize_briefs(briefs_payload(11))) == 8


def test_types_are_coerced_or_assigned_by_position():
    drafts = briefs_payload(3)
    drafts[0]["type"] = "main"
    drafts[1]["type"] = "LIFESTYLE_1"
    drafts[2]["type"] = "hero shot"
    briefs = normalize_briefs(drafts)
    assert [b.type for b in briefs] == [ImageType.MAIN, ImageType.LIFESTYLE_1, ImageType.LIFESTYLE_2]


def test_missing_and_duplicate_ids_are_replaced():
    drafts = briefs_payload(3)
    drafts[0]["id"] = "x"
    drafts[1]["id"] = "x"
    drafts[2]["id"] = None
    briefs = normalize_briefs(drafts)
    ids = [b.id for b in briefs]
    assert ids[0] == "x"
    assert len(set(ids)) == 3


def test_non_object_entries_are_skipped():
    briefs = normalize_briefs(["junk", *briefs_payload(2)])
    assert [b.id for b in briefs] == ["brief-0", "brief-1"]
    assert briefs[0].type is ImageType.MAIN
