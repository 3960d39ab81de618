from __future__ import annotations

from provenance_core.schema.media import MediaAsset


def build_image_verification_instructions() -> str:
    return (
        "You review candidate images for an electronic music archive.\n"
        "Judge whether the image actually depicts the named subject, its technical quality, "
        "and the copyright risk of reusing it.\n"
        "Images with stock watermarks (Getty, Shutterstock, iStock, Alamy) are HIGH copyright risk. "
        "Press photos without attribution are MEDIUM. "
        "Wikimedia Commons, public domain or CC-licensed images are LOW risk.\n"
        "Return JSON only:\n"
        "{\n"
        '  "matchScore": 0-100,\n'
        '  "qualityScore": 0-100,\n'
        '  "copyrightRisk": "low" | "medium" | "high",\n'
        '  "licenseStatus": "safe" | "unknown" | "rejected",\n'
        '  "tags": ["..."],\n'
        '  "altText": "...",\n'
        '  "reasoning": "..."\n'
        "}"
    )


def build_image_verification_prompt(asset: MediaAsset) -> str:
    lines = [
        f"Subject: {asset.entity_name or asset.entity_id} ({asset.entity_type.value})",
        f"Image URL: {asset.source_url}",
    ]
    if asset.provider:
        lines.append(f"Provider: {asset.provider}")
    if asset.license:
        lines.append(f"Declared license: {asset.license}")
    return "\n".join(lines)
