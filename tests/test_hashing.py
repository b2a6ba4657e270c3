import hashlib

from booru_sync.adapters.booru.sync.hashing import (
    download_url_for,
    filter_unmatched,
    hash_compare,
    sha512_hex,
)
from tests.conftest import make_record


def test_hash_compare_matches_primary_hashes():
    a = make_record("1", content_hash="aaa")
    b = make_record("2", host="ponybooru.org", content_hash="aaa")
    assert hash_compare(a, b)


def test_hash_compare_matches_across_primary_and_original():
    a = make_record("1", content_hash="optimised", original_hash="upload")
    b = make_record("2", host="ponybooru.org", content_hash="upload")
    assert hash_compare(a, b)
    assert hash_compare(b, a)


def test_hash_compare_missing_hashes_never_match():
    a = make_record("1")
    b = make_record("2", host="ponybooru.org")
    assert not hash_compare(a, b)


def test_hash_compare_different_hashes():
    a = make_record("1", content_hash="aaa", original_hash="bbb")
    b = make_record("2", host="ponybooru.org", content_hash="ccc", original_hash="ddd")
    assert not hash_compare(a, b)


def test_filter_unmatched_keeps_order_and_drops_known():
    sources = [
        make_record("1", content_hash="h1"),
        make_record("2", content_hash="h2"),
        make_record("3", content_hash="h3", original_hash="o3"),
        make_record("4"),
    ]
    destinations = [
        make_record("90", host="ponybooru.org", content_hash="h2"),
        make_record("91", host="ponybooru.org", content_hash="x", original_hash="o3"),
    ]

    remaining = filter_unmatched(sources, destinations)

    assert [image.id for image in remaining] == ["1", "4"]


def test_filter_unmatched_with_no_destinations_keeps_everything():
    sources = [make_record("1", content_hash="h1"), make_record("2")]
    assert filter_unmatched(sources, []) == sources


def test_sha512_hex():
    assert sha512_hex(b"pony") == hashlib.sha512(b"pony").hexdigest()


def test_download_url_for_raster_is_unchanged():
    image = make_record("1", file_url="https://derpicdn.net/img/view/2024/1/1/1.png")
    assert download_url_for(image) == "https://derpicdn.net/img/view/2024/1/1/1.png"


def test_download_url_for_svg_points_at_original():
    image = make_record(
        "1",
        mime_type="image/svg+xml",
        file_url="https://derpicdn.net/img/view/2024/1/1/1.png",
    )
    assert download_url_for(image) == "https://derpicdn.net/img/download/2024/1/1/1.svg"
