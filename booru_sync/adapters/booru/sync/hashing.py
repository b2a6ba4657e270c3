"""Content hash helpers used to recognise the same file across services."""

from __future__ import annotations

import hashlib
import re
from typing import TYPE_CHECKING

from booru_sync.adapters.booru.sync.constants import SVG_MIME_TYPE

if TYPE_CHECKING:
    from collections.abc import Iterable

    from booru_sync.adapters.booru.models import ImageRecord

_EXTENSION_RE = re.compile(r"\.\w+$")


def _hash_set(image: ImageRecord) -> set[str]:
    return {h for h in image.hashes if h}


def hash_compare(a: ImageRecord, b: ImageRecord) -> bool:
    """True when any of ``a``'s hashes equals any of ``b``'s (primary or original).

    Missing hashes never match each other.
    """
    return not _hash_set(a).isdisjoint(_hash_set(b))


def filter_unmatched(
    sources: Iterable[ImageRecord], destinations: Iterable[ImageRecord]
) -> list[ImageRecord]:
    """Sources for which no destination record passes :func:`hash_compare`."""
    known: set[str] = set()
    for image in destinations:
        known |= _hash_set(image)
    return [image for image in sources if _hash_set(image).isdisjoint(known)]


def sha512_hex(data: bytes) -> str:
    return hashlib.sha512(data).hexdigest()


def download_url_for(image: ImageRecord) -> str:
    """URL of the original upload.

    SVG records point at the rasterised preview; the source file lives under
    ``/download/`` with an ``.svg`` extension.
    """
    if image.mime_type != SVG_MIME_TYPE:
        return image.file_url
    return _EXTENSION_RE.sub(".svg", image.file_url.replace("/view/", "/download/", 1))
