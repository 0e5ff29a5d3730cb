"""Dedup keys and content hashes for listings."""

import hashlib
import json
from urllib.parse import urldefrag

from carscout.errors import ConfigurationError
from carscout.schemas.dealership import DEDUP_FIELDS
from carscout.schemas.listing import ListingSchema


def build_dedup_key(listing: ListingSchema, fields: list[str]) -> str | None:
    """First non-empty field in `fields` wins: 'vin:1HGCM82633A004352'.

    Returns None when none of the fields carries a value.
    """
    for name in fields:
        if name not in DEDUP_FIELDS:
            raise ConfigurationError(f"Unknown dedup field: {name}")
        value = getattr(listing, name)
        if not value:
            continue
        value = str(value).strip()
        if name == "vin":
            value = value.upper()
        elif name == "canonical_url":
            value = urldefrag(value).url
        if value:
            return f"{name}:{value}"
    return None


def content_hash(listing: ListingSchema) -> str:
    """sha256 over the listing's business fields."""
    payload = json.dumps(listing.business_fields(), sort_keys=True, default=str)
    return hashlib.sha256(payload.encode()).hexdigest()
