"""Verification -- confirm a patched file still parses and holds the new model.

``validate_stream`` / ``validate_file`` run right after a patch. The size
and changed-byte checks are separate so callers can run them against the
pre-patch copy they hold. ``verify_file`` / ``verify_batch`` re-analyze
already converted files after the fact.
"""

import os
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional, Sequence, Tuple

from rw2patch.analyzer import analyze_file
from rw2patch.models import TARGET_MODEL, AnalysisOutcome, ValidationOutcome
from rw2patch.tiff import RW2FormatError, read_header

# Read size for byte comparison of large raw files
COMPARE_CHUNK_SIZE = 1 << 20


def validate_stream(f: BinaryIO, offset: int) -> ValidationOutcome:
    """Re-check the header, then compare the raw bytes at offset.

    No NUL trimming: the bytes at offset must equal the model name exactly.
    """
    try:
        read_header(f)
    except RW2FormatError as e:
        return ValidationOutcome.failure(f'Modified file has invalid header: {e}')
    except OSError as e:
        return ValidationOutcome.failure(e.strerror or str(e))

    expected = TARGET_MODEL.encode('ascii')
    try:
        f.seek(offset)
        data = f.read(len(expected))
    except OSError as e:
        return ValidationOutcome.failure(e.strerror or str(e))
    if len(data) < len(expected):
        return ValidationOutcome.failure('Could not read modified model string')

    if data != expected:
        written = data.decode('ascii', errors='replace')
        return ValidationOutcome.failure(
            f"Model not written correctly: got '{written}'")
    return ValidationOutcome.success()


def validate_file(filepath: Path, offset: int) -> ValidationOutcome:
    """Open filepath read-only and validate the patched Model field.

    The file size is not looked at here. Pair this with
    ``check_file_size(filepath, original_size)`` to cover the full
    post-patch check; ``convert_file`` always runs both.
    """
    try:
        with open(filepath, 'rb') as f:
            return validate_stream(f, offset)
    except OSError as e:
        return ValidationOutcome.failure(e.strerror or str(e))


def check_file_size(filepath: Path, original_size: int) -> ValidationOutcome:
    """Patched files must keep their exact pre-patch size."""
    try:
        size = os.path.getsize(filepath)
    except OSError as e:
        return ValidationOutcome.failure(
            f'Could not verify modified file size: {e.strerror or e}')
    if size != original_size:
        return ValidationOutcome.failure(
            f'File size changed ({original_size} -> {size} bytes)')
    return ValidationOutcome.success()


def changed_byte_span(original: Path, modified: Path,
                      chunk_size: int = COMPARE_CHUNK_SIZE
                      ) -> Tuple[int, Optional[int], Optional[int]]:
    """Compare two files byte by byte.

    Returns (changed_count, first_changed_offset, last_changed_offset).
    Offsets are None when the files are identical. Bytes past the end of
    the shorter file count as changed.
    """
    changed = 0
    first = last = None
    pos = 0
    with open(original, 'rb') as fa, open(modified, 'rb') as fb:
        while True:
            a = fa.read(chunk_size)
            b = fb.read(chunk_size)
            if not a and not b:
                break
            if a != b:
                for i in range(max(len(a), len(b))):
                    if i >= len(a) or i >= len(b) or a[i] != b[i]:
                        changed += 1
                        if first is None:
                            first = pos + i
                        last = pos + i
            pos += max(len(a), len(b))
    return changed, first, last


def changed_bytes_within_field(original: Path, modified: Path,
                               offset: int, length: int) -> ValidationOutcome:
    """Every byte that differs must lie inside [offset, offset + length)."""
    try:
        changed, first, last = changed_byte_span(original, modified)
    except OSError as e:
        return ValidationOutcome.failure(e.strerror or str(e))
    if changed == 0:
        return ValidationOutcome.success()
    if changed > length:
        return ValidationOutcome.failure(
            f'Too many bytes changed ({changed} > {length})')
    if first < offset or last >= offset + length:
        return ValidationOutcome.failure(
            f'Bytes changed outside the model field ({first}..{last})')
    return ValidationOutcome.success()


def verify_file(filepath: Path) -> AnalysisOutcome:
    """Re-analyze a file. A converted file analyzes as "skip"."""
    return analyze_file(Path(filepath))


def verify_batch(
    files: Sequence[Path],
    progress_callback: Optional[Callable] = None,
) -> List[Tuple[Path, AnalysisOutcome]]:
    """Verify a list of files are converted.

    Args:
        files: Paths to re-analyze.
        progress_callback: Called with (index, total, filepath, outcome) after each file.

    Returns:
        List of (filepath, AnalysisOutcome) pairs in input order.
    """
    total = len(files)
    results = []

    for i, filepath in enumerate(files):
        outcome = verify_file(filepath)
        results.append((Path(filepath), outcome))

        if progress_callback:
            progress_callback(i + 1, total, filepath, outcome)

    return results
