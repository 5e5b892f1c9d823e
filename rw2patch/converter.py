"""Conversion orchestration -- copy-then-patch, in-place with backup, and batches.

Composes analyze -> patch -> validate -> size check for each file and
restores the pre-patch state whenever a step after the write fails.
Supports both sequential and parallel (thread pool) batch processing.
"""

import logging
import os
import shutil
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from rw2patch.analyzer import analyze_file
from rw2patch.config import ConverterConfig
from rw2patch.models import (
    BatchResult,
    ConversionResult,
    PreviewResult,
)
from rw2patch.patcher import patch_file
from rw2patch.verify import (
    changed_byte_span,
    changed_bytes_within_field,
    check_file_size,
    validate_file,
)

logger = logging.getLogger(__name__)

# File extensions considered for batch processing
RW2_EXTENSIONS = {'.rw2'}


class _StepFailed(Exception):
    """Internal: a post-write step failed and the file must be restored."""


def collect_rw2_files(
    path: Path,
    extensions: Optional[Iterable[str]] = None,
    recursive: bool = False,
    exclude: Optional[Path] = None,
) -> List[Path]:
    """Collect RW2 files from a path (file or directory).

    Hidden files are skipped and extensions match case-insensitively.

    Args:
        path: File or directory to search.
        extensions: Suffixes to accept (default: .rw2).
        recursive: Walk sub-directories too.
        exclude: Directory to leave out, e.g. the output folder.
    """
    path = Path(path)
    if path.is_file():
        return [path]

    exts = {e.lower() for e in (extensions or RW2_EXTENSIONS)}
    excluded = Path(exclude).resolve() if exclude is not None else None

    files = []
    if recursive:
        for root, dirnames, filenames in os.walk(path):
            dirnames[:] = sorted(
                d for d in dirnames
                if not d.startswith('.')
                and (excluded is None or (Path(root) / d).resolve() != excluded))
            for fname in sorted(filenames):
                if not fname.startswith('.') and Path(fname).suffix.lower() in exts:
                    files.append(Path(root) / fname)
        files.sort()
    else:
        for entry in path.iterdir():
            if (entry.is_file() and not entry.name.startswith('.')
                    and entry.suffix.lower() in exts):
                files.append(entry)
        files.sort(key=lambda p: p.name)
    return files


def unique_paths(files: Iterable[Path]) -> List[Path]:
    """Drop repeated paths (after resolving) while keeping order."""
    seen = set()
    result = []
    for filepath in files:
        key = Path(filepath).resolve()
        if key in seen:
            continue
        seen.add(key)
        result.append(Path(filepath))
    return result


def output_path_for(filepath: Path, output_dir: Path,
                    input_root: Optional[Path] = None) -> Path:
    """Mirror filepath under output_dir, relative to input_root if given."""
    if input_root is not None and Path(input_root).is_dir():
        try:
            return Path(output_dir) / Path(filepath).relative_to(input_root)
        except ValueError:
            pass
    return Path(output_dir) / Path(filepath).name


def output_collisions(file_pairs: Sequence) -> Dict[Path, Path]:
    """Map each source whose output path is already claimed to the earlier source.

    file_pairs holds (source, output) tuples; None outputs (in-place) never
    collide. The first source to claim an output keeps it.
    """
    claimed = {}
    collisions = {}
    for filepath, out in file_pairs:
        if out is None:
            continue
        key = Path(out).resolve()
        if key in claimed:
            collisions[filepath] = claimed[key]
        else:
            claimed[key] = filepath
    return collisions


def _collision_error(first: Path) -> str:
    return f'Output name collides with {first}'


def preview_file(filepath: Path,
                 output_path: Optional[Path] = None) -> PreviewResult:
    """Classify what converting filepath would do, without writing."""
    filepath = Path(filepath)
    if output_path is not None and Path(output_path).exists():
        return PreviewResult(filepath=filepath, action='already_converted')

    analysis = analyze_file(filepath)
    if analysis.is_convert:
        return PreviewResult(filepath=filepath, action='convert', analysis=analysis)
    if analysis.is_skip:
        return PreviewResult(filepath=filepath, action='skip', analysis=analysis)
    return PreviewResult(filepath=filepath, action='error', analysis=analysis,
                         error=analysis.error)


def preview_batch(
    files: Sequence[Path],
    output_dir: Optional[Path] = None,
    input_root: Optional[Path] = None,
    progress_callback: Optional[Callable] = None,
) -> List[PreviewResult]:
    """Preview a batch of files.

    Args:
        files: Paths to analyze.
        output_dir: Copy-mode output folder, used to spot already converted files.
        input_root: Base directory for mirroring sub-paths under output_dir.
        progress_callback: Called with (index, total, filepath, preview) after each file.
    """
    files = unique_paths(files)
    total = len(files)
    file_pairs = [(filepath, output_path_for(filepath, output_dir, input_root)
                   if output_dir is not None else None)
                  for filepath in files]
    collisions = output_collisions(file_pairs)
    results = []
    for i, (filepath, out) in enumerate(file_pairs):
        if filepath in collisions:
            preview = PreviewResult(filepath=filepath, action='error',
                                    error=_collision_error(collisions[filepath]))
        else:
            preview = preview_file(filepath, out)
        results.append(preview)
        if progress_callback:
            progress_callback(i + 1, total, filepath, preview)
    return results


def _copy_times(source_stat: os.stat_result, target: Path):
    os.utime(target, ns=(source_stat.st_atime_ns, source_stat.st_mtime_ns))


def _rollback(mode: str, filepath: Path, target: Path,
              backup: Optional[Path]) -> bool:
    """Undo a failed conversion. Returns True if the original state is back."""
    try:
        if mode == 'copy':
            target.unlink(missing_ok=True)
        elif backup is not None and backup.exists():
            os.replace(backup, filepath)
        else:
            return False
    except OSError:
        logger.exception('Rollback failed for %s', filepath)
        return False
    logger.warning('Restored pre-patch state for %s', filepath)
    return True


def convert_file(
    filepath: Path,
    output_path: Optional[Path] = None,
    verify: bool = True,
    dry_run: bool = False,
    preserve_timestamps: bool = True,
    backup_suffix: str = '.bak',
) -> ConversionResult:
    """Convert a single RW2 file.

    Args:
        filepath: Path to the source file.
        output_path: If provided, copy file here first and patch the copy
                     (copy mode). If None, patch in-place behind a backup.
        verify: If True, also re-analyze the result and check that no byte
                outside the Model field changed.
        dry_run: If True, only analyze -- don't modify anything.
        preserve_timestamps: Carry the source's access/modification times over.
        backup_suffix: Suffix of the in-place backup copy.

    Returns:
        ConversionResult with details of what was done.
    """
    filepath = Path(filepath)
    t0 = time.monotonic()
    mode = 'copy' if output_path is not None else 'inplace'
    target = Path(output_path) if output_path is not None else filepath

    def finish(status: str, **kwargs) -> ConversionResult:
        elapsed = (time.monotonic() - t0) * 1000
        return ConversionResult(source_path=filepath, output_path=target,
                                mode=mode, status=status,
                                conversion_time_ms=elapsed, **kwargs)

    if not filepath.exists():
        return finish('error', error=f'File not found: {filepath}')

    if mode == 'copy' and target.exists():
        return finish('already_converted')

    analysis = analyze_file(filepath)
    if analysis.is_error:
        return finish('error', error=analysis.error)
    if analysis.is_skip:
        return finish('skipped', original_model=analysis.model)
    if dry_run:
        return finish('dry_run', original_model=analysis.model)

    offset, length = analysis.offset, analysis.length
    source_stat = filepath.stat()
    original_size = source_stat.st_size
    backup = None

    if mode == 'inplace':
        existing = filepath.with_name(filepath.name + backup_suffix)
        if existing.exists():
            return finish('error', original_model=analysis.model,
                          error=f'Backup file already exists: {existing.name}')

    # Never write to a file that isn't independently backed up or copied
    try:
        if mode == 'copy':
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(str(filepath), str(target))
            reference = filepath
        else:
            backup = filepath.with_name(filepath.name + backup_suffix)
            shutil.copy2(str(filepath), str(backup))
            reference = backup
    except OSError as e:
        if mode == 'copy':
            _rollback(mode, filepath, target, None)
        elif backup is not None:
            backup.unlink(missing_ok=True)
        return finish('error', original_model=analysis.model,
                      error=f'Could not create working copy: {e.strerror or e}')

    bytes_changed = length
    try:
        outcome = patch_file(target, offset, length)
        if not outcome.ok:
            raise _StepFailed(f'Patch failed: {outcome.error}')

        outcome = validate_file(target, offset)
        if not outcome.ok:
            raise _StepFailed(f'Validation failed: {outcome.error}')

        outcome = check_file_size(target, original_size)
        if not outcome.ok:
            raise _StepFailed(f'Validation failed: {outcome.error}')

        if verify:
            outcome = changed_bytes_within_field(reference, target, offset, length)
            if not outcome.ok:
                raise _StepFailed(f'Validation failed: {outcome.error}')
            bytes_changed = changed_byte_span(reference, target)[0]
            recheck = analyze_file(target)
            if not recheck.is_skip:
                raise _StepFailed('Validation failed: converted file does not '
                                  f'analyze as converted ({recheck.error or recheck.status})')
    except _StepFailed as e:
        restored = _rollback(mode, filepath, target, backup)
        return finish('error', original_model=analysis.model,
                      restored=restored, error=str(e))
    except Exception as e:
        logger.exception('convert_file failed for %s', filepath)
        restored = _rollback(mode, filepath, target, backup)
        return finish('error', original_model=analysis.model,
                      restored=restored, error=str(e))

    if preserve_timestamps:
        try:
            _copy_times(source_stat, target)
        except OSError as e:
            logger.warning('Could not preserve timestamps on %s: %s', target, e)

    if backup is not None:
        try:
            backup.unlink()
        except OSError as e:
            logger.warning('Could not remove backup %s: %s', backup, e)

    logger.debug('Converted %s (%r -> offset %d, %d bytes)',
                 filepath, analysis.model, offset, length)
    return finish('converted', original_model=analysis.model,
                  bytes_changed=bytes_changed)


def convert_batch(
    files: Sequence[Path],
    output_dir: Optional[Path] = None,
    input_root: Optional[Path] = None,
    verify: bool = True,
    dry_run: bool = False,
    progress_callback: Optional[Callable] = None,
    workers: int = 1,
    cancel_event: Optional[threading.Event] = None,
    config: Optional[ConverterConfig] = None,
) -> BatchResult:
    """Convert a batch of RW2 files.

    Args:
        files: Paths to convert. Repeated paths are processed once.
        output_dir: If provided, write converted copies here (copy mode).
        input_root: Base directory for mirroring sub-paths under output_dir.
        verify: Re-analyze and diff each converted file.
        dry_run: Analyze only, don't modify.
        progress_callback: Called with (index, total, filepath, result) after each file.
        workers: Number of parallel workers. 1 = sequential (default).
        cancel_event: When set, files not yet started are left alone.
        config: Timestamp and backup settings (defaults if None).

    Returns:
        BatchResult with summary statistics.
    """
    config = config or ConverterConfig.default()
    t0 = time.monotonic()

    files = unique_paths(files)
    batch = BatchResult(total_files=len(files))

    file_pairs = []
    for filepath in files:
        out = (output_path_for(filepath, output_dir, input_root)
               if output_dir is not None else None)
        file_pairs.append((filepath, out))

    # Sources sharing an output path never reach convert_file
    collisions = output_collisions(file_pairs)

    def process_one(filepath, out):
        if filepath in collisions:
            return ConversionResult(source_path=filepath, output_path=out,
                                    mode='copy', status='error',
                                    error=_collision_error(collisions[filepath]))
        try:
            return convert_file(filepath, output_path=out, verify=verify,
                                dry_run=dry_run,
                                preserve_timestamps=config.preserve_timestamps,
                                backup_suffix=config.backup_suffix)
        except Exception as e:
            logger.exception('Unexpected failure converting %s', filepath)
            return ConversionResult(
                source_path=filepath,
                output_path=out or filepath,
                mode='copy' if out else 'inplace',
                status='error',
                error=str(e),
            )

    if workers > 1 and len(file_pairs) > 1:
        results = _batch_parallel(file_pairs, process_one, workers,
                                  progress_callback, cancel_event, batch)
    else:
        results = _batch_sequential(file_pairs, process_one,
                                    progress_callback, cancel_event, batch)

    batch.results = results
    batch.total_time_seconds = time.monotonic() - t0
    return batch


def _batch_sequential(
    file_pairs: List,
    process_one: Callable,
    progress_callback: Optional[Callable],
    cancel_event: Optional[threading.Event],
    batch: BatchResult,
) -> List[ConversionResult]:
    """Process files one after another."""
    results = []
    total = len(file_pairs)

    for i, (filepath, out) in enumerate(file_pairs):
        if cancel_event is not None and cancel_event.is_set():
            batch.cancelled = True
            break

        result = process_one(filepath, out)
        results.append(result)
        _update_batch_stats(batch, result)

        if progress_callback:
            progress_callback(i + 1, total, filepath, result)

    return results


def _batch_parallel(
    file_pairs: List,
    process_one: Callable,
    workers: int,
    progress_callback: Optional[Callable],
    cancel_event: Optional[threading.Event],
    batch: BatchResult,
) -> List[ConversionResult]:
    """Process files in parallel using a thread pool.

    Each path goes to exactly one task. Results are collected in
    submission order for deterministic output.
    """
    total = len(file_pairs)
    results = [None] * total
    lock = threading.Lock()
    completed_count = [0]

    def run(index, filepath, out):
        # Cancellation only takes effect before a file is started
        if cancel_event is not None and cancel_event.is_set():
            return index, None
        return index, process_one(filepath, out)

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {}
        for i, (filepath, out) in enumerate(file_pairs):
            future = executor.submit(run, i, filepath, out)
            futures[future] = filepath

        for future in as_completed(futures):
            filepath = futures[future]
            index, result = future.result()
            if result is None:
                batch.cancelled = True
                continue
            results[index] = result

            with lock:
                _update_batch_stats(batch, result)
                completed_count[0] += 1
                if progress_callback:
                    progress_callback(completed_count[0], total, filepath, result)

    return [r for r in results if r is not None]


def _update_batch_stats(batch: BatchResult, result: ConversionResult):
    """Update batch statistics from a single result."""
    if result.error:
        batch.files_errored += 1
    elif result.status == 'skipped':
        batch.files_skipped += 1
    elif result.status == 'already_converted':
        batch.files_already_converted += 1
    elif result.status == 'dry_run':
        batch.files_dry_run += 1
    else:
        batch.files_converted += 1
