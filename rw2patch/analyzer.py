"""Model tag analysis -- decide whether an RW2 file needs converting.

Reads the header and IFD0 of a file, finds the Model tag (0x0110) and
decides between convert, skip and error. Nothing is written here, and no
exception leaves ``analyze_stream`` / ``analyze_file``: every failure is
reported as an ``AnalysisOutcome`` with status "error".
"""

import logging
from pathlib import Path
from typing import BinaryIO, Optional

from rw2patch.models import (
    SOURCE_MODEL_MARKER,
    TARGET_MODEL,
    AnalysisOutcome,
    ModelFieldLocation,
)
from rw2patch.tiff import (
    MODEL_TAG,
    TYPE_ASCII,
    RW2FormatError,
    TIFFHeader,
    decode_ascii,
    find_entry,
    read_field,
    read_header,
    read_ifd,
)

logger = logging.getLogger(__name__)


def locate_model_field(f: BinaryIO,
                       header: TIFFHeader) -> Optional[ModelFieldLocation]:
    """Find the Model string in IFD0.

    Returns None when IFD0 has no Model entry. Raises RW2FormatError if
    the IFD can't be read or the entry isn't ASCII.
    """
    entries = read_ifd(f, header)
    entry = find_entry(entries, MODEL_TAG)
    if entry is None:
        return None
    if entry.dtype != TYPE_ASCII:
        raise RW2FormatError(f'Model tag has unexpected type: {entry.dtype}')
    return ModelFieldLocation(entry.value_offset, entry.count, entry.is_inline)


def classify_model(model: str, location: ModelFieldLocation,
                   little_endian: bool) -> AnalysisOutcome:
    """Apply the convert/skip/error rules to a decoded Model value."""
    if model == TARGET_MODEL:
        return AnalysisOutcome.skip(model)
    if SOURCE_MODEL_MARKER not in model:
        return AnalysisOutcome.failure(f'Not a Lumix S9 file (Model: {model})')
    if len(TARGET_MODEL) + 1 > location.length:
        return AnalysisOutcome.failure('New model name too long for field')
    return AnalysisOutcome.should_convert(location.offset, location.length,
                                          little_endian, model)


def analyze_stream(f: BinaryIO) -> AnalysisOutcome:
    """Analyze an open binary stream positioned anywhere."""
    try:
        header = read_header(f)
        location = locate_model_field(f, header)
        if location is None:
            return AnalysisOutcome.failure('Model tag not found in file')
        model = decode_ascii(read_field(f, location.offset, location.length))
    except RW2FormatError as e:
        return AnalysisOutcome.failure(str(e))
    except OSError as e:
        return AnalysisOutcome.failure(e.strerror or str(e))

    logger.debug('Model %r at offset %d (%d bytes, %s)', model,
                 location.offset, location.length,
                 'inline' if location.is_inline else 'indirect')
    return classify_model(model, location, header.is_little_endian)


def analyze_file(filepath: Path) -> AnalysisOutcome:
    """Open a file read-only and analyze it."""
    try:
        with open(filepath, 'rb') as f:
            return analyze_stream(f)
    except OSError as e:
        return AnalysisOutcome.failure(
            f'Could not open file: {e.strerror or e}')
