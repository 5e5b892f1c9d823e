"""Model tag patching -- overwrite the Model string in place.

Only call these after analysis returned "convert": the field length has
then been checked to hold the new model name plus its NUL terminator.
"""

import logging
from pathlib import Path
from typing import BinaryIO

from rw2patch.models import TARGET_MODEL, PatchOutcome

logger = logging.getLogger(__name__)


def build_replacement(length: int) -> bytes:
    """New model name, NUL-terminated, zero-padded to exactly length bytes."""
    value = TARGET_MODEL.encode('ascii') + b'\x00'
    if len(value) > length:
        raise ValueError(
            f'{TARGET_MODEL!r} needs {len(value)} bytes, field has {length}')
    return value.ljust(length, b'\x00')


def write_model(f: BinaryIO, offset: int, length: int) -> PatchOutcome:
    """Write the padded model name at offset in a single write."""
    try:
        replacement = build_replacement(length)
        f.seek(offset)
        written = f.write(replacement)
        f.flush()
    except (OSError, ValueError) as e:
        return PatchOutcome.failure(getattr(e, 'strerror', None) or str(e))

    if written is not None and written != len(replacement):
        return PatchOutcome.failure(
            f'Short write: {written} of {len(replacement)} bytes')
    logger.debug('Wrote %d bytes at offset %d', len(replacement), offset)
    return PatchOutcome.success()


def patch_file(filepath: Path, offset: int, length: int) -> PatchOutcome:
    """Open filepath for update (no truncation) and patch the Model field."""
    try:
        with open(filepath, 'r+b') as f:
            return write_model(f, offset, length)
    except OSError as e:
        return PatchOutcome.failure(e.strerror or str(e))
