"""Tests for ranking reverse image search candidates by metadata."""

from __future__ import annotations

import unittest

from booru_sync.adapters.booru.sync.similarity import (
    attribute_scores,
    jaccard_index,
    pick_best_candidate,
    similarity_score,
    usable_candidates,
)
from tests.conftest import make_record


def _image(image_id: str, **fields):
    defaults = {
        "mime_type": "image/png",
        "width": 800,
        "height": 600,
        "aspect_ratio": 800 / 600,
        "tags": ["safe", "pony"],
    }
    return make_record(image_id, host="ponybooru.org", **{**defaults, **fields})


class TestJaccardIndex(unittest.TestCase):
    def test_identical_sets(self):
        assert jaccard_index({"a", "b"}, {"a", "b"}) == 1.0

    def test_disjoint_sets(self):
        assert jaccard_index({"a"}, {"b"}) == 0.0

    def test_partial_overlap(self):
        assert jaccard_index({"a", "b", "c"}, {"b", "c", "d"}) == 0.5

    def test_both_empty_is_identical(self):
        assert jaccard_index(set(), set()) == 1.0

    def test_one_empty(self):
        assert jaccard_index({"a"}, set()) == 0.0


class TestSimilarityScore(unittest.TestCase):
    def test_identical_metadata_scores_one(self):
        source = _image("1")
        assert abs(similarity_score(source, _image("2")) - 1.0) < 1e-9

    def test_scores_stay_in_unit_interval(self):
        source = _image("1")
        candidate = _image(
            "2", mime_type="image/gif", width=10, height=5000, aspect_ratio=0.002, tags=["x"]
        )
        for value in attribute_scores(source, candidate).values():
            assert 0.0 <= value <= 1.0
        assert 0.0 <= similarity_score(source, candidate) <= 1.0

    def test_mime_mismatch_costs_its_weight(self):
        source = _image("1")
        candidate = _image("2", mime_type="image/jpeg")
        assert abs(similarity_score(source, candidate) - 0.8) < 1e-9

    def test_resolution_is_scaled(self):
        source = _image("1")
        # One extra pixel row barely moves the resolution score.
        candidate = _image("2", height=601, aspect_ratio=800 / 600)
        assert attribute_scores(source, candidate)["resolution"] > 0.3
        assert attribute_scores(source, candidate)["resolution"] < 1.0


class TestPickBestCandidate(unittest.TestCase):
    def test_no_candidates(self):
        assert pick_best_candidate(_image("1"), []) is None

    def test_single_candidate_returned_without_scoring(self):
        only = _image("2", mime_type="image/gif", tags=["unrelated"])
        assert pick_best_candidate(_image("1"), [only]) is only

    def test_tag_overlap_breaks_otherwise_equal_candidates(self):
        source = _image("1", tags=["a", "b", "c"])
        first = _image("10", tags=["a"])
        second = _image("11", tags=["a", "b", "c"])
        third = _image("12", tags=["x"])

        best = pick_best_candidate(source, [first, second, third])

        assert best is second

    def test_equal_scores_keep_earliest(self):
        source = _image("1")
        first = _image("10")
        second = _image("11")
        assert pick_best_candidate(source, [first, second]) is first

    def test_duplicates_and_deleted_are_ignored(self):
        source = _image("1")
        duplicate = _image("10", duplicate_of=5)
        deleted = _image("11", deletion_reason="Duplicate")
        weaker = _image("12", mime_type="image/jpeg")

        assert pick_best_candidate(source, [duplicate, deleted, weaker]) is weaker

    def test_only_unusable_candidates(self):
        source = _image("1")
        assert pick_best_candidate(source, [_image("10", deletion_reason="Rule #0")]) is None

    def test_usable_candidates_preserves_order(self):
        images = [_image("10"), _image("11", duplicate_of="3"), _image("12")]
        assert [i.id for i in usable_candidates(images)] == ["10", "12"]


if __name__ == "__main__":
    unittest.main()
