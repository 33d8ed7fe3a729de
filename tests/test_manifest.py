"""Tests for manifest.py."""

from datetime import datetime, timezone

import pytest

from conftest import make_manifest_text
from errors import ManifestFormatError
from manifest import parse_manifest


class TestParseManifest:
    """Tests for parse_manifest()."""

    def test_parses_all_known_fields(self):
        """Reads every field before the signature separator."""
        manifest = parse_manifest(make_manifest_text("software.example.org", revision=17))

        assert manifest.revision == 17
        assert manifest.name == "software.example.org"
        assert manifest.root_catalog == "600230b0ba7620426f2e898f1e1f43c5466efe59"
        assert manifest.catalog_size == 311296
        assert manifest.ttl == 240
        assert manifest.garbage_collectable is False
        assert manifest.alternative_name is False
        assert manifest.certificate == "2a3f2f8e1ebc2f2cc3ad4ba9c3cba1ce1a5e3b01"
        assert manifest.timestamp == datetime.fromtimestamp(1700000000, tz=timezone.utc)

    def test_ignores_signature(self):
        """Lines after '--' never override fields."""
        text = make_manifest_text("repo.example.org") + "S999\n"

        manifest = parse_manifest(text)

        assert manifest.revision == 42

    def test_optional_fields_absent(self):
        """Only C, R, D, S and N are required."""
        manifest = parse_manifest("Cabc\nRdef\nD60\nS3\nNrepo.example.org\n")

        assert manifest.revision == 3
        assert manifest.catalog_size is None
        assert manifest.garbage_collectable is None
        assert manifest.timestamp is None

    def test_unknown_keys_ignored(self):
        """Keys this parser doesn't know are skipped."""
        manifest = parse_manifest("Cabc\nRdef\nD60\nS3\nNrepo.example.org\nZsomething\n")

        assert manifest.name == "repo.example.org"

    def test_missing_required_field(self):
        """Missing revision raises ManifestFormatError."""
        with pytest.raises(ManifestFormatError, match="S"):
            parse_manifest("Cabc\nRdef\nD60\nNrepo.example.org\n")

    def test_non_integer_revision(self):
        """A non-numeric revision raises ManifestFormatError."""
        with pytest.raises(ManifestFormatError, match="not an integer"):
            parse_manifest("Cabc\nRdef\nD60\nSlatest\nNrepo.example.org\n")

    def test_invalid_boolean(self):
        """G must be yes or no."""
        with pytest.raises(ManifestFormatError, match="boolean"):
            parse_manifest("Cabc\nRdef\nD60\nS1\nNrepo.example.org\nGmaybe\n")

    def test_html_error_page(self):
        """An HTML page served instead of a manifest is rejected."""
        with pytest.raises(ManifestFormatError):
            parse_manifest("<html><body>Not Found</body></html>")


class TestManifestRender:
    """Tests for Manifest.render()."""

    def test_render_includes_revision(self):
        manifest = parse_manifest(make_manifest_text("repo.example.org", revision=7))

        lines = manifest.render()

        assert "Revision: 7" in lines
        assert "TTL: 240" in lines
        assert any(line.startswith("Published: 2023-11-14") for line in lines)
