import pytest

from msi_lifecycle.errors import VersionFormatError
from msi_lifecycle.version_compliance import (
    FIELD_MAX,
    CompliantVersion,
    semver_triplet,
    to_compliant_version,
)


class TestToCompliantVersion:
    def test_three_fields_are_padded_to_four(self):
        assert str(to_compliant_version("2.0.0")) == "2.0.0.0"

    def test_prerelease_is_dropped(self):
        assert to_compliant_version("1.2.3-beta").fields == (1, 2, 3, 0)

    def test_build_metadata_is_dropped(self):
        assert to_compliant_version("1.2.3+sha.5114f85").fields == (1, 2, 3, 0)

    def test_leading_v_is_accepted(self):
        assert str(to_compliant_version("v4.5.6")) == "4.5.6.0"

    def test_four_fields_are_kept(self):
        assert str(to_compliant_version("1.2.3.4")) == "1.2.3.4"

    def test_extra_fields_are_truncated(self):
        assert to_compliant_version("1.2.3.4.5.6").fields == (1, 2, 3, 4)

    def test_fields_are_clamped(self):
        assert to_compliant_version("70000.1.99999").fields == (FIELD_MAX, 1, FIELD_MAX, 0)

    @pytest.mark.parametrize("raw", ["", "beta", "1.2", "abc.1.2", "1.2.3beta", None])
    def test_unparseable_input_raises(self, raw):
        with pytest.raises(VersionFormatError):
            to_compliant_version(raw)

    def test_version_format_error_is_a_value_error(self):
        with pytest.raises(ValueError, match="Cannot derive"):
            to_compliant_version("latest")


class TestMonotonicity:
    """A newer release must never produce a smaller installer version."""

    ORDERED = [
        "0.0.1",
        "0.1.0",
        "0.9.9",
        "1.0.0",
        "1.0.1",
        "1.2.3",
        "1.10.0",
        "2.0.0",
        "10.0.0",
        "10.0.0.1",
    ]

    def test_release_versions_are_strictly_increasing(self):
        compliant = [to_compliant_version(v) for v in self.ORDERED]
        assert all(a < b for a, b in zip(compliant, compliant[1:]))

    def test_prerelease_never_exceeds_its_release(self):
        assert to_compliant_version("1.2.3-rc.1") <= to_compliant_version("1.2.3")
        assert to_compliant_version("1.2.3") < to_compliant_version("1.2.4-alpha")

    def test_clamping_never_reverses_order(self):
        assert to_compliant_version("65535.0.0") <= to_compliant_version("70000.0.0")

    def test_comparison_is_numeric_not_lexicographic(self):
        assert CompliantVersion((1, 10, 0, 0)) > CompliantVersion((1, 9, 0, 0))


class TestSemverTriplet:
    def test_returns_major_minor_patch(self):
        assert semver_triplet("1.2.3-beta") == (1, 2, 3)

    def test_requires_three_fields(self):
        with pytest.raises(VersionFormatError):
            semver_triplet("1.2")
