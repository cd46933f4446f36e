from agents_refactor.edits import EditRecord, FileChangeReport
from agents_refactor.results import PreviewInfo, RefactorResult


def test_failure_numbers_hints():
    result = RefactorResult.failure("Rename failed", ["Check the position", "Save the file"])

    assert not result.success
    assert result.message == "Rename failed\n\nTry:\n  1. Check the position\n  2. Save the file"


def test_failure_without_hints():
    assert RefactorResult.failure("Name cannot be empty").message == "Name cannot be empty"


def test_to_dict_shape():
    report = FileChangeReport("/w/src/a.ts", [EditRecord(2, 5, "old", "new")])
    result = RefactorResult(True, "Preview", [report], preview=PreviewInfo(1))

    assert result.to_dict() == {
        "success": True,
        "message": "Preview",
        "filesChanged": [{
            "file": "a.ts",
            "path": "/w/src/a.ts",
            "edits": [{"line": 2, "column": 5, "old": "old", "new": "new"}],
        }],
        "preview": {
            "filesAffected": 1,
            "estimatedTime": "< 1s",
            "command": "Run again with preview: false to apply changes",
        },
    }


def test_next_actions_and_warning():
    result = RefactorResult(True, "Organized imports", next_actions=["find_references"]).with_warning("\n\nWarning: x")

    assert result.to_dict()["nextActions"] == ["find_references"]
    assert result.message == "Organized imports\n\nWarning: x"
    assert "preview" not in result.to_dict()
