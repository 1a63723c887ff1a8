from __future__ import annotations

import io
import json
import re
import zipfile

from listing_studio.imagery import file_extension, is_data_uri, parse_data_uri
from listing_studio.models import HistoryItem


def _slug(text: str) -> str:
    s = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return s or "asset"


def export_project(project: HistoryItem) -> bytes:
    """
    Zip the selected asset of every brief together with the analysis and
    brief copy. Remote asset URLs are listed in briefs.json, not downloaded.
    """
    buf = io.BytesIO()
    briefs: list[dict[str, object]] = []
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("analysis.json", json.dumps(project.analysis.to_json_dict(), indent=2))

        for idx, image in enumerate(project.images, start=1):
            entry: dict[str, object] = {
                "id": image.id,
                "type": image.type.value,
                "title": image.title,
                "headline": image.headline,
                "subCopy": image.sub_copy,
                "creativeBrief": image.creative_brief,
                "versionCount": len(image.versions),
                "file": None,
                "remoteUrl": None,
            }
            url = image.generated_image_url
            if url and is_data_uri(url):
                inline = parse_data_uri(url)
                name = f"{idx:02d}_{_slug(image.title or image.type.value)}.{file_extension(inline.mime_type)}"
                zf.writestr(f"images/{name}", inline.data)
                entry["file"] = f"images/{name}"
            elif url:
                entry["remoteUrl"] = url
            briefs.append(entry)

        zf.writestr("briefs.json", json.dumps(briefs, indent=2))
    return buf.getvalue()
