import pytest

from agents_refactor import files
from agents_refactor.files import PositionError, Span

# The rocket is outside the Basic Multilingual Plane: one str index, two UTF-16 units
EMOJI_LINE = 'log("🚀"); const count = 1;'


def test_offsets_on_ascii_lines_are_indexes_plus_one():
    assert files.offset_to_index("const x = 1;", 7) == 6
    assert files.index_to_offset("const x = 1;", 6) == 7


def test_offsets_count_utf16_units():
    # "count" is index 16 but tsserver offset 18
    assert files.offset_to_index(EMOJI_LINE, 18) == 16
    assert files.index_to_offset(EMOJI_LINE, 16) == 18
    # Before the emoji both units agree
    assert files.offset_to_index(EMOJI_LINE, 5) == 4


def test_bmp_characters_take_one_unit():
    line = 'const é = "ü";'
    assert files.offset_to_index(line, 7) == 6
    assert files.index_to_offset(line, 11) == 12


def test_offset_past_end_of_line():
    assert files.offset_to_index(EMOJI_LINE, 40) == 38
    assert files.offset_to_index("abc", 10) == 9


def test_find_text_position_after_emoji():
    assert files.find_text_position([EMOJI_LINE], 1, "count") == Span(1, 18, 1, 23)


def test_find_text_position_plain():
    span = files.find_text_position(["", "const area = 3.14159 * r;"], 2, "3.14159")
    assert span == Span(2, 14, 2, 21)
    assert span.to_args() == {"startLine": 2, "startOffset": 14, "endLine": 2, "endOffset": 21}


def test_find_text_position_guidance():
    with pytest.raises(PositionError) as info:
        files.find_text_position(["const a = 1;"], 1, "b")
    assert 'Text "b" not found on line 1' in str(info.value)
    assert "Try:\n  1. " in str(info.value)

    with pytest.raises(PositionError, match="out of range"):
        files.find_text_position(["x"], 3, "x")


def test_identifier_at_uses_tsserver_offsets():
    assert files.identifier_at([EMOJI_LINE], 1, 18) == "count"
    assert files.identifier_at([EMOJI_LINE], 1, 40) is None
    assert files.identifier_at([EMOJI_LINE], 1, 0) is None
    assert files.identifier_at([EMOJI_LINE], 2, 1) is None


@pytest.mark.asyncio
async def test_read_write_and_move(tmp_path):
    source = tmp_path / "a.ts"
    await files.write_text(str(source), "line 1\r\nline 2 🚀\n")

    assert await files.read_text(str(source)) == "line 1\r\nline 2 🚀\n"

    destination = tmp_path / "lib" / "deep" / "a.ts"
    await files.move_file(str(source), str(destination))
    assert not source.exists()
    assert await files.read_lines(str(destination)) == ["line 1\r", "line 2 🚀", ""]


def test_resolve_path(tmp_path):
    assert files.resolve_path("src/a.ts", str(tmp_path)) == str(tmp_path / "src" / "a.ts")
    assert files.resolve_path("/abs/a.ts", str(tmp_path)) == "/abs/a.ts"
