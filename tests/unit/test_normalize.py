"""Unit tests for snapshot normalization."""

import gzip
import zlib
from datetime import UTC, datetime

import pytest

from ehtag_db_cache.core.exceptions import MalformedSnapshotError
from ehtag_db_cache.core.normalize import (
    clean_name,
    decompress_snapshot,
    decorate_name,
    get_full_key,
    get_search_term,
    normalize_snapshot,
    unwrap_paragraph,
)
from tests.conftest import make_snapshot_bytes


class TestCleanName:
    def test_paragraph_emoji_and_image(self) -> None:
        assert clean_name("<p>Foo 😀 <img src=x></p>") == "Foo"

    def test_plain_text_is_trimmed(self) -> None:
        assert clean_name("  巨乳  ") == "巨乳"

    def test_image_tag_case_insensitive(self) -> None:
        assert clean_name('<p>Bar <IMG SRC="y.png"></p>') == "Bar"

    def test_empty_after_cleaning(self) -> None:
        assert clean_name("<p>😀</p>") == ""

    def test_other_markup_untouched(self) -> None:
        assert clean_name("<p><b>Bold</b></p>") == "<b>Bold</b>"


class TestDecorateName:
    def test_paragraph_emoji_and_image(self) -> None:
        decorated = decorate_name("<p>Foo 😀 <img src=x></p>")

        assert decorated.startswith("Foo ")
        assert '<span class="ehs-emoji">😀</span>' in decorated
        assert '<img class="ehs-icon"  src=x>' in decorated
        assert "<p>" not in decorated

    def test_plain_text_unchanged(self) -> None:
        assert decorate_name("<p>巨乳</p>") == "巨乳"

    def test_other_markup_untouched(self) -> None:
        assert decorate_name("<p><b>Bold</b> 👓</p>") == '<b>Bold</b> <span class="ehs-emoji">👓</span>'


class TestUnwrapParagraph:
    def test_unwraps_whole_string_only(self) -> None:
        assert unwrap_paragraph("<p>a</p>") == "a"
        assert unwrap_paragraph("<p>a</p><p>b</p>") == "a</p><p>b"
        assert unwrap_paragraph("x <p>a</p>") == "x <p>a</p>"

    def test_empty_paragraph_is_kept(self) -> None:
        # `.+?` は1文字以上必要
        assert unwrap_paragraph("<p></p>") == "<p></p>"


class TestKeys:
    def test_full_key(self) -> None:
        assert get_full_key("female", "big breasts") == "female:big breasts"

    def test_search_term_quotes_whitespace(self) -> None:
        assert get_search_term("female", "big breasts") == 'f:"big breasts$"'
        assert get_search_term("artist", "someone") == "a:someone$"

    def test_search_term_misc_has_no_prefix(self) -> None:
        assert get_search_term("misc", "full color") == '"full color$"'

    def test_search_term_unknown_namespace_uses_full_name(self) -> None:
        assert get_search_term("temp", "thing") == "temp:thing$"


class TestDecompress:
    def test_gzip(self) -> None:
        assert decompress_snapshot(gzip.compress("テスト".encode()), True) == "テスト"

    def test_zlib(self) -> None:
        assert decompress_snapshot(zlib.compress(b"abc"), True) == "abc"

    def test_raw_deflate(self) -> None:
        compressor = zlib.compressobj(wbits=-zlib.MAX_WBITS)
        raw = compressor.compress(b"abc") + compressor.flush()
        assert decompress_snapshot(raw, True) == "abc"

    def test_uncompressed(self) -> None:
        assert decompress_snapshot(b"abc", False) == "abc"

    def test_garbage_is_malformed(self) -> None:
        with pytest.raises(MalformedSnapshotError, match="decompression failed"):
            decompress_snapshot(b"not compressed at all", True)

    def test_invalid_utf8_is_malformed(self) -> None:
        with pytest.raises(MalformedSnapshotError, match="invalid UTF-8"):
            decompress_snapshot(b"\xff\xfe\xfa", False)


class TestNormalizeSnapshot:
    def test_basic_records(self) -> None:
        result = normalize_snapshot(make_snapshot_bytes(), False, "link")

        assert result.sha == "0123456789abcdef"
        assert result.release_link == "link"
        assert [t["fullKey"] for t in result.tag_list] == [
            "female:big breasts",
            "female:glasses",
            "artist:someone",
        ]
        first = result.tag_list[0]
        assert first == {
            "name": "巨乳",
            "intro": "<p>intro</p>",
            "links": "",
            "key": "big breasts",
            "fullKey": "female:big breasts",
            "namespace": "female",
            "search": 'f:"big breasts$"',
        }
        assert result.tag_replace["female:glasses"] == '眼镜 <span class="ehs-emoji">👓</span>'
        assert result.tag_replace["artist:someone"] == '某人 <img class="ehs-icon"  src="x.png">'
        assert result.namespace_counts() == {"female": 2, "artist": 1}

    def test_compressed_input(self) -> None:
        result = normalize_snapshot(make_snapshot_bytes(compress=True), True, "link")
        assert len(result.tag_list) == 3

    def test_reserved_namespace_is_skipped(self) -> None:
        data = [{"namespace": "rows", "data": {"x": {"name": "X"}, "y": {"name": "Y"}}}]
        result = normalize_snapshot(make_snapshot_bytes(data), False, "link")

        assert result.tag_list == []
        assert result.tag_replace == {}

    def test_mapping_layout(self) -> None:
        data = {"rows": {"female": {"name": "F"}}, "male": {"muscle": {"name": "<p>肌肉</p>"}}}
        result = normalize_snapshot(make_snapshot_bytes(data), False, "link")

        assert [t["fullKey"] for t in result.tag_list] == ["male:muscle"]
        assert result.tag_list[0]["name"] == "肌肉"

    def test_empty_namespace_contributes_nothing(self) -> None:
        data = [{"namespace": "female", "data": {}}, {"namespace": "male"}]
        result = normalize_snapshot(make_snapshot_bytes(data), False, "link")
        assert result.tag_list == []

    def test_empty_name_is_not_an_error(self) -> None:
        data = [{"namespace": "other", "data": {"blank": {"name": "<p>😀</p>"}, "missing": {}}}]
        result = normalize_snapshot(make_snapshot_bytes(data), False, "link")

        assert [t["name"] for t in result.tag_list] == ["", ""]
        assert result.tag_replace["other:missing"] == ""

    def test_duplicate_full_key_appends_and_overwrites(self) -> None:
        # 現状の挙動を固定する: 一覧は追記、置換マップは後勝ち
        data = [
            {"namespace": "female", "data": {"a": {"name": "first"}}},
            {"namespace": "female", "data": {"a": {"name": "second"}}},
        ]
        result = normalize_snapshot(make_snapshot_bytes(data), False, "link")

        assert [t["name"] for t in result.tag_list] == ["first", "second"]
        assert result.tag_replace == {"female:a": "second"}

    def test_missing_sha_is_malformed(self) -> None:
        with pytest.raises(MalformedSnapshotError, match="head.sha"):
            normalize_snapshot(make_snapshot_bytes(sha=None), False, "link")

    def test_missing_data_is_malformed(self) -> None:
        with pytest.raises(MalformedSnapshotError, match="missing data"):
            normalize_snapshot(b'{"head": {"sha": "x"}}', False, "link")

    def test_invalid_json_is_malformed(self) -> None:
        with pytest.raises(MalformedSnapshotError, match="invalid JSON"):
            normalize_snapshot(b"{not json", False, "link")

    def test_non_object_record_is_malformed(self) -> None:
        data = [{"namespace": "female", "data": {"a": "oops"}}]
        with pytest.raises(MalformedSnapshotError, match="female:a"):
            normalize_snapshot(make_snapshot_bytes(data), False, "link")

    def test_epoch_zero_update_time_is_absent(self) -> None:
        epoch = datetime.fromtimestamp(0, tz=UTC)
        result = normalize_snapshot(make_snapshot_bytes(), False, "link", epoch)
        assert result.update_time is None

    def test_update_time_defaults_to_now(self) -> None:
        before = datetime.now(UTC)
        result = normalize_snapshot(make_snapshot_bytes(), False, "link")
        assert result.update_time is not None
        assert result.update_time >= before

    def test_deterministic(self) -> None:
        ts = datetime(2024, 1, 1, tzinfo=UTC)
        first = normalize_snapshot(make_snapshot_bytes(), False, "link", ts)
        second = normalize_snapshot(make_snapshot_bytes(), False, "link", ts)
        assert first == second
