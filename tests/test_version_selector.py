"""Tests for npm range selection."""

import pytest

from fastcache.versioning.selector import (
    VersionSelector,
    is_valid_range,
    max_version,
    satisfies,
    select_version,
)

VERSIONS = ["1.0.0", "1.2.0", "1.2.5", "1.3.0", "2.0.0", "2.1.0-beta.1"]


class TestSelectVersion:
    """Highest satisfying version for common npm range forms."""

    @pytest.mark.parametrize("rng,expected", [
        ("^1.0.0", "1.3.0"),
        ("~1.2.0", "1.2.5"),
        ("1.2.0", "1.2.0"),
        (">=1.0.0 <1.3.0", "1.2.5"),
        ("1.x", "1.3.0"),
        ("1.2.x", "1.2.5"),
        ("1.0.0 - 1.2.0", "1.2.0"),
        ("^1.0.0 || ^2.0.0", "2.0.0"),
    ])
    def test_ranges(self, rng, expected):
        """Each range resolves to its highest match."""
        assert select_version(VERSIONS, rng) == expected

    @pytest.mark.parametrize("versions,rng,expected", [
        (["1.0.0", "1.2.4", "1.3.0", "2.0.0"], "~1.2.3", "1.2.4"),
        (["4.17.19", "4.17.20", "4.17.21", "5.0.0"], "^4.17.20", "4.17.21"),
        (["1.0.0", "2.0.0"], "^5.0.0", None),
    ])
    def test_documented_examples(self, versions, rng, expected):
        assert select_version(versions, rng) == expected

    @pytest.mark.parametrize("rng", ["*", "latest", "", "  "])
    def test_latest_forms_pick_highest_release(self, rng):
        """Wildcard and latest skip pre-releases when a release exists."""
        assert select_version(VERSIONS, rng) == "2.0.0"

    def test_no_match_returns_none(self):
        assert select_version(VERSIONS, "^3.0.0") is None

    def test_unparseable_range_returns_none(self):
        assert select_version(VERSIONS, "next") is None

    def test_prerelease_excluded_from_plain_caret(self):
        """A caret range does not admit pre-releases of a later version."""
        assert select_version(["1.0.0", "1.1.0-beta.1"], "^1.0.0") == "1.0.0"

    def test_non_semver_versions_skipped(self):
        assert select_version(["1.0.0", "not-a-version", "1.1.0"], "*") == "1.1.0"

    def test_empty_version_list(self):
        assert select_version([], "^1.0.0") is None


class TestMaxVersion:
    """Latest-version fallback."""

    def test_prefers_release(self):
        assert max_version(["1.0.0", "2.0.0-rc.1"]) == "1.0.0"

    def test_prerelease_only(self):
        assert max_version(["2.0.0-rc.1", "2.0.0-rc.2"]) == "2.0.0-rc.2"

    def test_empty(self):
        assert max_version([]) is None


class TestSatisfies:
    """Range membership checks used by the resolver fast path."""

    def test_inside_range(self):
        assert satisfies("1.5.0", "^1.0.0") is True

    def test_outside_range(self):
        assert satisfies("2.0.0", "^1.0.0") is False

    def test_latest_accepts_anything(self):
        assert satisfies("0.0.1", "latest") is True

    def test_invalid_version(self):
        assert satisfies("garbage", "^1.0.0") is False

    def test_invalid_range(self):
        assert satisfies("1.0.0", "next") is False


class TestValidity:
    """Distinguishing ranges from dist-tags."""

    def test_valid_ranges(self):
        for rng in ("^1.0.0", "~2.1", "*", "latest", ">=1.0.0 <2.0.0", "1.x"):
            assert is_valid_range(rng), rng

    def test_tags_are_not_ranges(self):
        assert is_valid_range("next") is False
        assert is_valid_range("beta") is False


def test_selector_facade_delegates():
    """The injectable selector matches the module functions."""
    selector = VersionSelector()
    assert selector.select(VERSIONS, "~1.2.0") == "1.2.5"
    assert selector.satisfies("1.2.5", "~1.2.0")
    assert not selector.is_valid_range("next")
