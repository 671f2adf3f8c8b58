"""Content fingerprints used as the reconciliation key for listings."""

import hashlib
import json
from typing import Any

FINGERPRINT_FIELDS = (
    "external_id",
    "name",
    "raw_description",
    "photos",
    "sex",
)


def compute_fingerprint(shelter_id: str, fields: dict[str, Any]) -> str:
    """
    Compute a stable fingerprint for one listing.

    The shelter id is embedded as a prefix so fingerprints of different
    shelters can never collide.

    Args:
        shelter_id: Owning shelter id.
        fields: Listing content; only FINGERPRINT_FIELDS are hashed.

    Returns:
        Fingerprint of the form ``<shelter_id>:<hex digest>``.
    """
    content = {key: fields.get(key) for key in FINGERPRINT_FIELDS}
    canonical = json.dumps(content, sort_keys=True, ensure_ascii=False, default=str)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{shelter_id}:{digest[:32]}"
