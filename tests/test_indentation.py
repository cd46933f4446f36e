from agents_refactor.indentation import IndentationDetector, leading_whitespace


def test_leading_whitespace():
    assert leading_whitespace("\t  x = 1") == "\t  "
    assert leading_whitespace("x") == ""


def test_detect_prefers_lines_at_or_after_index():
    lines = ["function f() {", "", "    return 1;", "}"]
    assert IndentationDetector().detect(lines, 1) == "    "


def test_detect_falls_back_to_previous_lines():
    lines = ["  const a = 1;", "", "", "", "", ""]
    assert IndentationDetector().detect(lines, 3) == "  "


def test_detect_respects_search_window():
    lines = ["  const a = 1;", "", "", "", "", ""]
    assert IndentationDetector(search_window=1).detect(lines, 4) is None


def test_extract_indent_ignores_blank_lines():
    detector = IndentationDetector()
    assert detector.extract_indent("   ") is None
    assert detector.extract_indent("") is None
    assert detector.extract_indent("  x") == "  "


def test_detect_unit_spaces_uses_smallest_step():
    lines = ["class A {", "    m() {", "        return 1;", "    }", "}"]
    assert IndentationDetector().detect_unit(lines) == "    "


def test_detect_unit_ignores_doc_comment_bodies():
    lines = ["/**", " * Docs", " */", "function f() {", "  return 1;", "}"]
    assert IndentationDetector().detect_unit(lines) == "  "


def test_detect_unit_tabs_and_default():
    detector = IndentationDetector(default_unit="  ")
    assert detector.detect_unit(["if (x) {", "\treturn 1;", "}"]) == "\t"
    assert detector.detect_unit(["const a = 1;"]) == "  "


def test_format_options():
    detector = IndentationDetector()
    assert detector.format_options(["{", "    x;", "}"]) == {
        "indentSize": 4,
        "tabSize": 4,
        "convertTabsToSpaces": True,
    }
    assert detector.format_options(["{", "\tx;", "}"])["convertTabsToSpaces"] is False
