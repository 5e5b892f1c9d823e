"""Data models for rw2patch analysis, patch and conversion results."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

# Model string written into converted files
TARGET_MODEL = 'DC-S5'

# Substring every source file's Model value must contain
SOURCE_MODEL_MARKER = 'S9'


@dataclass(frozen=True)
class ModelFieldLocation:
    """Absolute position and declared byte count of the Model string."""
    offset: int
    length: int
    is_inline: bool = False


@dataclass(frozen=True)
class AnalysisOutcome:
    """Result of analyzing one file."""
    status: str  # "convert" | "skip" | "error"
    offset: Optional[int] = None
    length: Optional[int] = None
    little_endian: Optional[bool] = None
    model: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def should_convert(cls, offset: int, length: int, little_endian: bool,
                       model: Optional[str] = None) -> 'AnalysisOutcome':
        return cls('convert', offset=offset, length=length,
                   little_endian=little_endian, model=model)

    @classmethod
    def skip(cls, model: str = TARGET_MODEL) -> 'AnalysisOutcome':
        return cls('skip', model=model)

    @classmethod
    def failure(cls, reason: str) -> 'AnalysisOutcome':
        return cls('error', error=reason)

    @property
    def is_convert(self) -> bool:
        return self.status == 'convert'

    @property
    def is_skip(self) -> bool:
        return self.status == 'skip'

    @property
    def is_error(self) -> bool:
        return self.status == 'error'


@dataclass(frozen=True)
class StepOutcome:
    """Result of a patch or validation step: success, or an error reason."""
    ok: bool
    error: Optional[str] = None

    @classmethod
    def success(cls) -> 'StepOutcome':
        return cls(True)

    @classmethod
    def failure(cls, reason: str) -> 'StepOutcome':
        return cls(False, reason)


PatchOutcome = StepOutcome
ValidationOutcome = StepOutcome


@dataclass
class PreviewResult:
    """What a conversion run would do with one file."""
    filepath: Path
    action: str  # "convert" | "skip" | "already_converted" | "error"
    analysis: Optional[AnalysisOutcome] = None
    error: Optional[str] = None


@dataclass
class ConversionResult:
    """Result of converting a single file."""
    source_path: Path
    output_path: Path
    mode: str  # "copy" | "inplace"
    status: str = 'converted'  # "converted" | "skipped" | "already_converted" | "dry_run" | "error"
    original_model: Optional[str] = None
    bytes_changed: int = 0
    restored: bool = False
    conversion_time_ms: float = 0.0
    error: Optional[str] = None


@dataclass
class BatchResult:
    """Result of a batch conversion run."""
    results: List[ConversionResult] = field(default_factory=list)
    total_files: int = 0
    files_converted: int = 0
    files_skipped: int = 0
    files_already_converted: int = 0
    files_dry_run: int = 0
    files_errored: int = 0
    cancelled: bool = False
    total_time_seconds: float = 0.0

    @property
    def errors(self) -> List[str]:
        return [f'{r.source_path.name}: {r.error}'
                for r in self.results if r.error]

    def error_summary(self, limit: int = 5) -> str:
        """Join the first ``limit`` error lines, noting how many were cut."""
        errors = self.errors
        text = '\n'.join(errors[:limit])
        if len(errors) > limit:
            text += f'\n...and {len(errors) - limit} more errors'
        return text
