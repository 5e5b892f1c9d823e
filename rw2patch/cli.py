"""CLI interface for rw2patch -- scan, convert, verify, info subcommands."""

import json
import logging
import sys
import time
from pathlib import Path

import click

import rw2patch
from rw2patch import log
from rw2patch.analyzer import analyze_stream
from rw2patch.config import ConverterConfig
from rw2patch.converter import collect_rw2_files, convert_batch, preview_batch
from rw2patch.models import TARGET_MODEL
from rw2patch.tiff import RW2FormatError, read_header, read_ifd
from rw2patch.verify import verify_batch


def _configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )


def _load_config(config_path) -> ConverterConfig:
    if not config_path:
        return ConverterConfig.default()
    try:
        return ConverterConfig.from_json(config_path)
    except (OSError, ValueError) as e:
        click.echo(log.cli_error(f'Error: could not load config: {e}'), err=True)
        sys.exit(1)


def _default_output_dir(input_path: Path, config: ConverterConfig) -> Path:
    base = input_path if input_path.is_dir() else input_path.parent
    return base / config.output_dir_name


def _count(previews, action):
    return sum(1 for p in previews if p.action == action)


def _plural(n, word='file'):
    return f'{n} {word}{"" if n == 1 else "s"}'


@click.group()
@click.version_option(version=rw2patch.__version__, prog_name='rw2patch')
def main():
    """rw2patch -- relabel Lumix S9 RW2 files as DC-S5.

    Rewrites the EXIF Model tag in place so raw converters that only
    know the S5 accept files from the sensor-compatible S9.
    """
    pass


@main.command()
@click.argument('path', type=click.Path(exists=True))
@click.option('--verbose', '-v', is_flag=True, help='Show every file and debug logging.')
@click.option('--recursive', '-r', is_flag=True,
              help='Also scan sub-directories.')
@click.option('--json-out', type=click.Path(), help='Write results as JSON to file.')
@click.option('--config', 'config_path', type=click.Path(exists=True),
              help='JSON config file.')
def scan(path, verbose, recursive, json_out, config_path):
    """Analyze RW2 files without modifying them.

    PATH can be a single file or a directory.
    """
    _configure_logging(verbose)
    config = _load_config(config_path)
    input_path = Path(path)
    recursive = recursive or config.recursive

    files = collect_rw2_files(input_path, config.extensions, recursive)
    if not files:
        click.echo(f'No RW2 files found in {input_path}')
        return

    click.echo(f'Scanning {_plural(len(files))}...')
    previews = preview_batch(files)

    results_json = []
    for i, preview in enumerate(previews, 1):
        if verbose or preview.action == 'error':
            click.echo(f'  [{i}/{len(previews)}] {preview.filepath.name} -- '
                       f'{log.cli_status(preview.action, preview.error)}')
        if json_out:
            analysis = preview.analysis
            results_json.append({
                'file': str(preview.filepath),
                'action': preview.action,
                'model': analysis.model if analysis else None,
                'offset': analysis.offset if analysis else None,
                'length': analysis.length if analysis else None,
                'error': preview.error,
            })

    click.echo(f'\nSummary: {_plural(len(previews))} scanned, '
               f'{_count(previews, "convert")} to convert, '
               f'{_count(previews, "skip")} already {TARGET_MODEL}, '
               f'{_count(previews, "error")} with errors')

    if json_out:
        with open(json_out, 'w') as f:
            json.dump(results_json, f, indent=2)
        click.echo(f'Results written to {json_out}')


@main.command()
@click.argument('path', type=click.Path(exists=True))
@click.option('--output', '-o', type=click.Path(),
              help='Output directory (copy mode). Defaults to a "Converted" '
                   'folder next to the input.')
@click.option('--in-place', is_flag=True,
              help='Patch the original files (a backup is kept until each file validates).')
@click.option('--dry-run', is_flag=True, help='Analyze only, don\'t modify files.')
@click.option('--no-verify', is_flag=True,
              help='Skip re-analysis and byte diff after patching.')
@click.option('--recursive', '-r', is_flag=True,
              help='Also process sub-directories.')
@click.option('--workers', '-w', type=int, default=None,
              help='Number of parallel workers (default: 1, sequential).')
@click.option('--yes', '-y', is_flag=True, help='Don\'t ask for confirmation.')
@click.option('--log', 'log_path', type=click.Path(), help='Write log to file.')
@click.option('--config', 'config_path', type=click.Path(exists=True),
              help='JSON config file.')
@click.option('--verbose', '-v', is_flag=True, help='Debug logging.')
def convert(path, output, in_place, dry_run, no_verify, recursive, workers,
            yes, log_path, config_path, verbose):
    """Convert S9 RW2 files to DC-S5.

    PATH can be a single file or a directory. By default converted copies
    are written to a "Converted" folder and the originals are left alone.
    """
    _configure_logging(verbose)
    config = _load_config(config_path)
    input_path = Path(path)
    recursive = recursive or config.recursive
    workers = config.workers if workers is None else workers

    if in_place and output:
        click.echo(log.cli_error('Error: --output and --in-place are mutually exclusive.'),
                   err=True)
        sys.exit(1)
    if workers < 1:
        click.echo(log.cli_error('Error: --workers must be at least 1.'), err=True)
        sys.exit(1)

    if in_place:
        output_dir = None
    elif output:
        output_dir = Path(output)
    else:
        output_dir = _default_output_dir(input_path, config)
    input_root = input_path if input_path.is_dir() else None

    log_file = open(log_path, 'w') if log_path else None

    def log_msg(msg, line=None):
        click.echo(msg)
        if log_file:
            log_file.write((line or log.log_info(click.unstyle(msg))) + '\n')
            log_file.flush()

    try:
        files = collect_rw2_files(input_path, config.extensions, recursive,
                                  exclude=output_dir)
        if not files:
            log_msg(f'No RW2 files found in {input_path}')
            return

        previews = preview_batch(files, output_dir, input_root)
        to_convert = _count(previews, 'convert')
        click.echo(log.cli_header('Conversion preview'))
        click.echo(f'  {_plural(to_convert)} will be converted')
        click.echo(f'  {_plural(_count(previews, "skip"))} already {TARGET_MODEL}')
        click.echo(f'  {_plural(_count(previews, "already_converted"))} already converted')
        click.echo(f'  {_plural(_count(previews, "error"))} with errors')

        if to_convert == 0 and not dry_run:
            log_msg('Nothing to convert')
            if any(p.action == 'error' for p in previews):
                sys.exit(1)
            return

        if not dry_run and not yes:
            click.confirm(f'Convert {_plural(to_convert)}?', abort=True)

        if dry_run:
            mode_str = 'DRY RUN'
        elif output_dir is None:
            mode_str = 'in-place'
        else:
            mode_str = f'copy to {output_dir}'
        workers_str = f', {workers} workers' if workers > 1 else ''
        log_msg(f'rw2patch v{rw2patch.__version__} -- {mode_str}{workers_str}')
        log_msg(f'Processing {_plural(len(files))}...\n')

        t0 = time.time()

        def progress(i, total, filepath, result):
            elapsed = time.time() - t0
            rate = i / elapsed if elapsed > 0 else 0
            msg = (f'  [{i}/{total}] {rate:.1f}/s | {filepath.name} | '
                   f'{log.cli_status(result.status, result.error)}')
            line = None
            if result.error:
                line = log.log_error(f'{filepath}: {result.error}')
            elif result.status in ('skipped', 'already_converted'):
                line = log.log_warn(f'{filepath}: {click.unstyle(log.cli_status(result.status))}')
            log_msg(msg, line)

        batch = convert_batch(
            files, output_dir=output_dir, input_root=input_root,
            verify=not no_verify, dry_run=dry_run,
            progress_callback=progress, workers=workers, config=config,
        )

        click.echo(log.cli_separator())
        log_msg(log.cli_bold(f'Done in {batch.total_time_seconds:.1f}s'))
        log_msg(f'  Total:             {batch.total_files}')
        if dry_run:
            log_msg(f'  Would convert:     {batch.files_dry_run}')
        log_msg(f'  Converted:         {batch.files_converted}')
        log_msg(f'  Skipped:           {batch.files_skipped}')
        log_msg(f'  Already converted: {batch.files_already_converted}')
        log_msg(f'  Errors:            {batch.files_errored}')
        if output_dir is not None and batch.files_converted and not dry_run:
            log_msg(f'  Output:            {output_dir}')

        if batch.files_errored > 0:
            click.echo(log.cli_error('\nErrors:'))
            click.echo(batch.error_summary(config.max_error_messages))
            sys.exit(1)
    finally:
        if log_file:
            log_file.close()


@main.command()
@click.argument('path', type=click.Path(exists=True))
@click.option('--recursive', '-r', is_flag=True, help='Also check sub-directories.')
@click.option('--verbose', '-v', is_flag=True, help='Show every file.')
def verify(path, recursive, verbose):
    """Check that files carry the DC-S5 model name.

    Re-analyzes every file; a file passes when no conversion is needed.
    """
    _configure_logging(verbose)
    input_path = Path(path)
    files = collect_rw2_files(input_path, recursive=recursive)

    if not files:
        click.echo(f'No RW2 files found in {input_path}')
        return

    click.echo(f'Verifying {_plural(len(files))}...')

    ok_count = 0
    bad_count = 0

    def progress(i, total, filepath, outcome):
        nonlocal ok_count, bad_count
        if outcome.is_skip:
            ok_count += 1
            if verbose:
                click.echo(f'  [{i}/{total}] {filepath.name} -- '
                           + log.cli_success(f'OK ({outcome.model})'))
        else:
            bad_count += 1
            detail = outcome.error or f'Model is still {outcome.model}'
            click.echo(f'  [{i}/{total}] {filepath.name} -- ' + log.cli_error(detail))

    verify_batch(files, progress_callback=progress)

    click.echo(f'\nVerification: {ok_count} converted, {bad_count} not converted')
    if bad_count > 0:
        sys.exit(1)
    click.echo(log.cli_success('All files verified.'))


@main.command()
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
def info(path):
    """Show header, IFD0 and Model tag details for one RW2 file."""
    filepath = Path(path)

    click.echo(log.cli_bold(f'File: {filepath.name}'))
    click.echo(f'Size: {filepath.stat().st_size} bytes')

    with open(filepath, 'rb') as f:
        try:
            header = read_header(f)
            entries = read_ifd(f, header)
        except RW2FormatError as e:
            click.echo(log.cli_error(f'Error: {e}'))
            sys.exit(1)

        click.echo(f'Byte order: {header.byte_order}')
        click.echo(f'Magic: {header.magic}')
        click.echo(f'IFD0 offset: {header.first_ifd_offset}')
        click.echo(f'IFD0 entries: {len(entries)}')
        for entry in entries:
            click.echo(log.cli_dim(
                f'  0x{entry.tag_id:04X} {entry.tag_name:<20} type={entry.dtype} '
                f'count={entry.count} value@{entry.value_offset}'))

        outcome = analyze_stream(f)

    click.echo(log.cli_separator())
    if outcome.is_convert:
        click.echo(f'Model: {outcome.model} at offset {outcome.offset} '
                   f'({outcome.length} bytes)')
        click.echo(log.cli_success(f'Status: can be converted to {TARGET_MODEL}'))
    elif outcome.is_skip:
        click.echo(f'Model: {outcome.model}')
        click.echo(log.cli_warning('Status: already converted'))
    else:
        click.echo(log.cli_error(f'Status: {outcome.error}'))


if __name__ == '__main__':
    main()
