"""Canonical ERC-1155 metadata document for a moment edition"""
from typing import Any, Dict, List

from moment_editions.models.edition import MintParameters
from moment_editions.models.moment import METADATA_FIELDS, Moment
from moment_editions.scoring import RarityScore

PLATFORM_NAME = "Moment Editions"
TOKEN_STANDARD = "ERC-1155"

def _split_list(value: Any) -> List[str]:
    """Split a comma separated field (or list) into trimmed values"""
    if isinstance(value, str):
        items = value.split(',')
    elif isinstance(value, (list, tuple)):
        items = [item for item in value if isinstance(item, str)]
    else:
        return []
    return [item.strip() for item in items if item.strip()]

def build_edition_metadata(moment: Moment, rarity: RarityScore, parameters: MintParameters,
                           site_url: str) -> Dict[str, Any]:
    """
    Build the metadata document referenced by the edition's metadata URI.

    Empty attributes are dropped so marketplaces do not show blank traits.
    """
    content_label = moment.content_type.label
    name_parts = [moment.song_name or content_label]
    if moment.venue_name:
        name_parts.append(f"- {moment.venue_name}")
    if moment.performance_date:
        name_parts.append(f"({moment.performance_date})")

    description = moment.metadata.get('description') if isinstance(moment.metadata, dict) else None
    if not isinstance(description, str) or not description.strip():
        description = (
            f"A {rarity.tier.value} {content_label.lower()}"
            f"{' from ' + moment.song_name if moment.song_name else ''}"
            f"{' at ' + moment.venue_name if moment.venue_name else ''}"
            f"{' on ' + moment.performance_date if moment.performance_date else ''}."
        )

    attributes = [
        {"trait_type": "Content Type", "value": content_label},
        {"trait_type": "Song/Content Name", "value": moment.song_name},
        {"trait_type": "Venue", "value": moment.venue_name},
        {"trait_type": "City", "value": moment.venue_city},
        {"trait_type": "Performance Date", "value": moment.performance_date},
        {"trait_type": "Rarity Tier", "value": rarity.tier.value},
        {"trait_type": "Rarity Score", "value": rarity.score, "display_type": "number", "max_value": 7},
        {"trait_type": "Audio Quality", "value": moment.audio_quality},
        {"trait_type": "Video Quality", "value": moment.video_quality},
        {"trait_type": "Song Total Performances", "value": moment.song_total_performances, "display_type": "number"},
    ]
    metadata = moment.metadata if isinstance(moment.metadata, dict) else {}
    attributes += [{"trait_type": "Emotion", "value": tag} for tag in _split_list(metadata.get('emotional_tags'))]
    attributes += [{"trait_type": "Instrument", "value": item} for item in _split_list(metadata.get('instruments'))]
    attributes = [attr for attr in attributes if attr["value"] not in (None, "")]

    properties = {
        "moment_id": moment.moment_id,
        "content_type": moment.content_type.value,
        "performance_id": moment.performance_id,
        "rarity_score": rarity.score,
        "rarity_tier": rarity.tier.value,
        "onchain_rarity": parameters.onchain_rarity,
        "platform": PLATFORM_NAME,
        "standard": TOKEN_STANDARD,
    }
    for name in METADATA_FIELDS:
        properties[name] = metadata.get(name)

    return {
        "name": " ".join(name_parts),
        "description": description,
        "image": moment.media_url,
        "external_url": f"{site_url.rstrip('/')}/moments/{moment.moment_id}",
        "attributes": attributes,
        "properties": properties,
    }
