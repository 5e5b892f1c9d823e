"""rw2patch -- relabel Lumix S9 RW2 raw files as DC-S5 for raw converter compatibility."""

__version__ = "1.0.0"

from rw2patch.models import (
    SOURCE_MODEL_MARKER,
    TARGET_MODEL,
    AnalysisOutcome,
    BatchResult,
    ConversionResult,
    ModelFieldLocation,
    PatchOutcome,
    PreviewResult,
    ValidationOutcome,
)
from rw2patch.analyzer import analyze_file, analyze_stream
from rw2patch.patcher import patch_file, write_model
from rw2patch.verify import validate_file, validate_stream, verify_file, verify_batch
from rw2patch.converter import (
    collect_rw2_files,
    convert_batch,
    convert_file,
    preview_batch,
)

__all__ = [
    "__version__",
    "TARGET_MODEL",
    "SOURCE_MODEL_MARKER",
    "ModelFieldLocation",
    "AnalysisOutcome",
    "PatchOutcome",
    "ValidationOutcome",
    "PreviewResult",
    "ConversionResult",
    "BatchResult",
    "analyze_file",
    "analyze_stream",
    "write_model",
    "patch_file",
    "validate_stream",
    "validate_file",
    "verify_file",
    "verify_batch",
    "collect_rw2_files",
    "preview_batch",
    "convert_file",
    "convert_batch",
]
