"""Tests for environment text parsing and rewriting."""

import pytest

from site_mover.constants import DEFAULT_STORAGE_PATH
from site_mover.core.env_codec import EnvironmentCodec


@pytest.fixture
def codec():
    return EnvironmentCodec()


class TestParse:
    def test_ignores_comments_and_blank_lines(self, codec):
        text = "# comment\n\nAPP_NAME=Shop\n   # indented comment\nNOT_A_PAIR\n"
        assert codec.parse(text) == {"APP_NAME": "Shop"}

    def test_splits_on_first_equals_only(self, codec):
        assert codec.parse("DATABASE_URL=mysql://u:p@h/db?opt=1") == {
            "DATABASE_URL": "mysql://u:p@h/db?opt=1"
        }

    def test_strips_one_layer_of_quotes(self, codec):
        values = codec.parse("A=\"hello world\"\nB='single'\nC=\"\"\nD=")
        assert values == {"A": "hello world", "B": "single", "C": "", "D": ""}

    def test_unescapes_double_quoted_values(self, codec):
        values = codec.parse('KEY="line1\\nline2 \\"quoted\\""')
        assert values["KEY"] == 'line1\nline2 "quoted"'

    def test_handles_crlf_line_endings(self, codec):
        assert codec.parse("A=1\r\nB=2\rC=3") == {"A": "1", "B": "2", "C": "3"}

    def test_later_keys_win(self, codec):
        assert codec.parse("A=1\nA=2")["A"] == "2"


class TestUpdate:
    def test_replaces_existing_key_in_place(self, codec):
        text = "APP_NAME=Shop\nDB_HOST=10.0.0.1\nDB_PORT=3306\n"
        updated = codec.update(text, "DB_HOST", "localhost")
        assert updated == "APP_NAME=Shop\nDB_HOST=localhost\nDB_PORT=3306\n"

    def test_appends_missing_key(self, codec):
        assert codec.update("APP_NAME=Shop", "APP_URL", "https://x.test") == (
            "APP_NAME=Shop\nAPP_URL=https://x.test\n"
        )

    def test_replaces_key_in_crlf_text(self, codec):
        text = "APP_NAME=Shop\r\nDB_HOST=10.0.0.1\r\nDB_PORT=3306\r\n"
        updated = codec.update(text, "DB_HOST", "localhost")
        assert updated == "APP_NAME=Shop\r\nDB_HOST=localhost\r\nDB_PORT=3306\r\n"
        assert updated.count("DB_HOST=") == 1

    def test_appends_with_crlf_when_text_uses_it(self, codec):
        assert codec.update("APP_NAME=Shop\r\n", "APP_URL", "https://x.test") == (
            "APP_NAME=Shop\r\nAPP_URL=https://x.test\r\n"
        )

    def test_appends_to_empty_text(self, codec):
        assert codec.update("", "A", "1") == "A=1\n"

    def test_does_not_match_key_prefixes(self, codec):
        updated = codec.update("DB_HOST_READ=replica\n", "DB_HOST", "primary")
        assert "DB_HOST_READ=replica" in updated
        assert updated.endswith("DB_HOST=primary\n")

    def test_value_with_backslashes_survives_roundtrip(self, codec):
        updated = codec.update("DB_PASSWORD=old\n", "DB_PASSWORD", "p@ss w\\rd$1")
        assert codec.parse(updated)["DB_PASSWORD"] == "p@ss w\\rd$1"


class TestQuote:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("plain", "plain"),
            ("", '""'),
            ("has space", '"has space"'),
            ('say "hi"', '"say \\"hi\\""'),
            ("a#b", '"a#b"'),
            ("$HOME", '"$HOME"'),
        ],
    )
    def test_quote(self, codec, value, expected):
        assert codec.quote(value) == expected


class TestStoragePaths:
    def test_drops_traversal_and_dedupes(self, codec):
        paths = [
            " storage/app/public/ ",
            "/storage/app/private",
            "../etc",
            "storage/../../secret",
            "storage/app/public",
            "",
        ]
        assert codec.normalize_storage_paths(paths) == [
            "storage/app/public",
            "storage/app/private",
        ]

    def test_dotted_names_are_not_traversal(self, codec):
        assert codec.normalize_storage_paths(["storage/app/..backup"]) == [
            "storage/app/..backup"
        ]

    def test_empty_result_falls_back_to_default(self, codec):
        assert codec.normalize_storage_paths(["..", "/", "  "]) == [DEFAULT_STORAGE_PATH]

    def test_storage_paths_from_text(self, codec):
        assert codec.storage_paths_from_text("a\n\n  b  \r\nc") == ["a", "b", "c"]


class TestMaskValue:
    @pytest.mark.parametrize(
        "value,expected",
        [("", ""), ("a", "*"), ("ab", "**"), ("abc", "a*c"), ("127.0.0.1", "1*******1")],
    )
    def test_mask_value(self, codec, value, expected):
        assert codec.mask_value(value) == expected
