"""
Unit tests for per-document transforms.
"""

import pytest

from intelstore.migration.exceptions import UnknownTransformError
from intelstore.migration.transforms import (
    build_transform,
    get_transform,
    identity,
    register_transform,
)


class TestBuiltins:
    """Tests for built-in transforms."""

    def test_identity(self) -> None:
        doc = {"id": "indicator-1"}
        assert identity(doc) is doc

    def test_strip_fields(self) -> None:
        transform = get_transform("strip-fields:owner, groups")

        assert transform({"id": "a", "owner": "x", "groups": ["g"], "tlp": "green"}) == {
            "id": "a",
            "tlp": "green",
        }

    def test_rename_field(self) -> None:
        transform = get_transform("rename-field:tlp:tlp_level")

        assert transform({"id": "a", "tlp": "green"}) == {"id": "a", "tlp_level": "green"}

    def test_rename_missing_field_is_noop(self) -> None:
        doc = {"id": "a"}
        assert get_transform("rename-field:tlp:tlp_level")(doc) == {"id": "a"}

    def test_transforms_do_not_mutate_input(self) -> None:
        doc = {"id": "a", "owner": "x"}
        get_transform("strip-fields:owner")(doc)
        assert doc == {"id": "a", "owner": "x"}


class TestBuildTransform:
    """Tests for build_transform()."""

    def test_empty_is_identity(self) -> None:
        assert build_transform([]) is identity

    def test_composes_in_order(self) -> None:
        transform = build_transform(["rename-field:owner:author", "strip-fields:author"])

        assert transform({"id": "a", "owner": "x"}) == {"id": "a"}

    @pytest.mark.parametrize(
        "spec",
        ["missing", "strip-fields:", "rename-field:only_old", "rename-field::new"],
    )
    def test_invalid_specs(self, spec: str) -> None:
        with pytest.raises(UnknownTransformError) as exc_info:
            build_transform([spec])

        assert exc_info.value.error_code == "UNKNOWN_TRANSFORM"

    def test_registered_transform(self) -> None:
        register_transform("uppercase-title", lambda doc: {**doc, "title": doc["title"].upper()})

        assert build_transform(["uppercase-title"])({"title": "apt"}) == {"title": "APT"}
