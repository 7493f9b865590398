"""
Unit tests for MIME type resolution.
"""

import pytest

from smollchat.http.mime_types import (
    MIME_TYPES,
    ResourceNotFound,
    UnknownMimeType,
    get_mime_type,
    get_content_type,
)


class TestGetMimeType:

    @pytest.mark.parametrize("name, expected", [
        ("chat.js", "text/javascript"),
        ("style.css", "text/css"),
        ("index.html", "text/html"),
        ("icon.svg", "image/svg+xml"),
        ("logo.png", "image/png"),
        ("favicon.ico", "image/x-icon"),
    ])
    def test_known_extensions(self, name, expected):
        assert get_mime_type(name) == expected

    def test_case_insensitive(self):
        assert get_mime_type("/static/STYLE.CSS") == "text/css"

    @pytest.mark.parametrize("name", ["notes.txt", "archive.tar.gz", "Makefile", ""])
    def test_unknown_extension(self, name):
        with pytest.raises(UnknownMimeType):
            get_mime_type(name)

    def test_unknown_is_not_found(self):
        """Test that unknown types are answered like missing files."""
        assert issubclass(UnknownMimeType, ResourceNotFound)

    def test_table_covers_bundled_resources(self):
        assert {".js", ".css", ".html"} <= set(MIME_TYPES)


class TestGetContentType:

    def test_text_gets_charset(self):
        assert get_content_type("chat.js") == "text/javascript; charset=utf-8"

    def test_binary_has_no_charset(self):
        assert get_content_type("logo.png") == "image/png"

    def test_custom_charset(self):
        assert get_content_type("index.html", charset="latin-1") == "text/html; charset=latin-1"
