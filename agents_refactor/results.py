"""Result objects returned by every refactoring operation."""

from dataclasses import dataclass, field

from .edits import FileChangeReport

PREVIEW_COMMAND = "Run again with preview: false to apply changes"


@dataclass
class PreviewInfo:
    files_affected: int
    estimated_time: str = "< 1s"
    command: str = PREVIEW_COMMAND

    def to_dict(self) -> dict:
        return {
            "filesAffected": self.files_affected,
            "estimatedTime": self.estimated_time,
            "command": self.command,
        }


@dataclass
class RefactorResult:
    success: bool
    message: str
    files_changed: list[FileChangeReport] = field(default_factory=list)
    preview: PreviewInfo | None = None
    next_actions: list[str] | None = None

    @classmethod
    def failure(cls, message: str, hints: list[str] | None = None) -> "RefactorResult":
        if hints:
            message += "\n\nTry:\n" + "\n".join(f"  {i}. {hint}" for i, hint in enumerate(hints, 1))
        return cls(False, message)

    def with_warning(self, warning: str) -> "RefactorResult":
        self.message += warning
        return self

    def to_dict(self) -> dict:
        result = {
            "success": self.success,
            "message": self.message,
            "filesChanged": [report.to_dict() for report in self.files_changed],
        }
        if self.preview is not None:
            result["preview"] = self.preview.to_dict()
        if self.next_actions:
            result["nextActions"] = list(self.next_actions)
        return result
