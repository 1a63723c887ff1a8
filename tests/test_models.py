import pytest
from fakes import analysis_payload
from pydantic import ValidationError

from listing_studio.models import (
    SLATE,
    HistoryItem,
    ImageType,
    InputDescriptor,
    InputType,
    ListingImage,
    ProductAnalysis,
    User,
)


def test_slate_distribution():
    assert len(SLATE) == 8
    names = [t.name for t in SLATE]
    assert sum(n.startswith("MAIN") for n in names) == 1
    assert sum(n.startswith("LIFESTYLE") for n in names) == 2
    assert sum(n.startswith("INFOGRAPHIC") for n in names) == 3
    assert sum(n.startswith("COMPARISON") for n in names) == 1
    assert sum(n.startswith("BRAND_STORY") for n in names) == 1


@pytest.mark.parametrize(
    ("text", "image", "expected"),
    [
        ("B0CXXXX", None, InputType.ASIN),
        ("https://www.amazon.com/dp/B0CXXXX", None, InputType.URL),
        (None, "data:image/png;base64,AAAA", InputType.IMAGE),
        ("B0CXXXX", "data:image/png;base64,AAAA", InputType.SMART),
    ],
)
def test_input_descriptor_classification(text, image, expected):
    descriptor = InputDescriptor.from_submission(text=text, image=image)
    assert descriptor.type is expected


def test_input_descriptor_requires_something():
    with pytest.raises(ValueError):
        InputDescriptor.from_submission(text="  ", image="")


def test_input_descriptor_value_prefers_text():
    descriptor = InputDescriptor.from_submission(text="B0CXXXX", image="data:image/png;base64,AAAA")
    assert descriptor.value == "B0CXXXX"


def test_analysis_round_trips_camel_case_keys():
    analysis = ProductAnalysis.model_validate(analysis_payload())
    data = analysis.to_json_dict()
    assert data["visualDescription"].startswith("A low-profile blue running shoe")
    assert data["groundingSources"] == []
    assert data["keyBenefits"][0] == "Light"


def test_analysis_normalizes_optional_lists():
    analysis = ProductAnalysis.model_validate(
        analysis_payload(colorPalette=None, extractedImageUrls=None, keyBenefits=["A", None, " ", 7])
    )
    assert analysis.color_palette == []
    assert analysis.extracted_image_urls == []
    assert analysis.key_benefits == ["A", "7"]


@pytest.mark.parametrize("missing", ["category", "visualDescription", "brandTone"])
def test_analysis_rejects_blank_required_text(missing):
    with pytest.raises(ValidationError):
        ProductAnalysis.model_validate(analysis_payload(**{missing: "  "}))


def test_record_version_appends_and_selects():
    image = ListingImage(id="a", type=ImageType.MAIN)
    image.record_version("data:image/png;base64,AAA1")
    image.record_version("data:image/png;base64,AAA2")
    assert image.versions == ["data:image/png;base64,AAA1", "data:image/png;base64,AAA2"]
    assert image.generated_image_url == image.versions[-1]


def test_select_version_only_repoints():
    image = ListingImage(id="a", type=ImageType.MAIN, versions=["v1", "v2"], generated_image_url="v2")
    image.select_version("v1")
    assert image.generated_image_url == "v1"
    assert image.versions == ["v1", "v2"]
    with pytest.raises(ValueError):
        image.select_version("v3")


def test_transient_fields_are_not_persisted():
    image = ListingImage(id="a", type=ImageType.MAIN, is_loading=True, error="boom")
    data = image.to_json_dict()
    assert "isLoading" not in data
    assert "error" not in data
    view = image.view()
    assert view["isLoading"] is True
    assert view["error"] == "boom"


def test_user_from_credentials():
    user = User.from_credentials(" ana@example.com ", "Acme")
    assert user.email == "ana@example.com"
    assert user.brand_name == "Acme"
    assert user.id == "YW5hQGV4YW1wbGUuY29t"
    assert user.avatar.endswith("seed=Acme")


def test_history_search_text_skips_photo_input():
    item = HistoryItem(
        id="1",
        timestamp=1,
        input="data:image/png;base64,QUJD",
        type=InputType.IMAGE,
        analysis=ProductAnalysis.model_validate(analysis_payload()),
    )
    assert "data:" not in item.search_text()
    assert "running shoes" in item.search_text()
