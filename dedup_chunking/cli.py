"""
Command-line interface for the dedup_chunking library.

This module provides a CLI for chunking files, sizing record buffers,
checking chunkings, summarizing duplication across files and running
benchmarks.
"""

import click
import dataclasses
import json
import shutil
import sys
import time
from pathlib import Path
from typing import Optional, Tuple

from dedup_chunking import (
    ChunkerConfig,
    DeduplicationError,
    DistributedDeduplicator,
    RecordValidator,
    dedupe_file,
    required_capacity,
    __version__
)
from dedup_chunking.core.streaming import DEFAULT_BUFFER_SIZE
from dedup_chunking.utils.benchmarking import DEFAULT_AVERAGES, BenchmarkRunner, generate_sources

# Import centralized logging
from dedup_chunking.logging_config import (
    configure_logging, LogLevel, get_logger,
    enable_debug_mode, collect_debug_info,
    user_info, user_success, user_warning, user_error,
    debug_operation, performance_log, metrics_log
)

logger = get_logger(__name__)


def size_options(func):
    """Shared options selecting the chunk size configuration."""
    options = [
        click.option('--average', '-a', type=int, help='Average chunk size in bytes'),
        click.option('--minimum', type=int, help='Minimum chunk size in bytes'),
        click.option('--maximum', type=int, help='Maximum chunk size in bytes'),
        click.option('--config', '-c', type=click.Path(exists=True, path_type=Path),
                     help='YAML configuration file'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_config(
    config: Optional[Path],
    average: Optional[int],
    minimum: Optional[int],
    maximum: Optional[int],
) -> ChunkerConfig:
    """Load the configuration file (if any) and apply command-line overrides."""
    overrides = {
        key: value
        for key, value in (('average', average), ('minimum', minimum), ('maximum', maximum))
        if value is not None
    }
    if config:
        chunker_config = ChunkerConfig.from_file(config)
        if overrides:
            chunker_config = dataclasses.replace(chunker_config, **overrides)
    else:
        chunker_config = ChunkerConfig.from_dict(overrides)

    debug_operation("build_config", chunker_config.to_dict())
    return chunker_config


def _error(message: str) -> click.ClickException:
    user_error(message)
    return click.ClickException(message)


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--quiet', '-q', is_flag=True, help='Suppress output except errors')
@click.option('--debug', is_flag=True, help='Enable debug mode with detailed logging')
@click.option('--log-level', type=click.Choice(['silent', 'minimal', 'normal', 'verbose', 'debug', 'trace']),
              help='Set specific log level')
@click.option('--log-file', type=click.Path(path_type=Path), help='Write logs to file')
@click.pass_context
def main(ctx: click.Context, verbose: bool, quiet: bool, debug: bool,
         log_level: Optional[str], log_file: Optional[Path]) -> None:
    """
    Dedup Chunking CLI

    Content-defined chunking for deduplication: split files into chunks with
    stable boundaries and report the SHA-256 digest and size of every chunk.
    """
    ctx.ensure_object(dict)

    if debug:
        level = LogLevel.DEBUG
        if log_file is None:
            log_file = Path("dedup_debug.log")
    elif log_level:
        level = LogLevel(log_level.lower())
    elif quiet:
        level = LogLevel.MINIMAL
    elif verbose:
        level = LogLevel.VERBOSE
    else:
        level = LogLevel.NORMAL

    configure_logging(
        level=level,
        file_output=bool(log_file),
        log_file=log_file,
        console_output=not quiet,
        collect_performance=debug or verbose,
        collect_metrics=debug or verbose
    )

    ctx.obj['verbose'] = verbose or debug
    ctx.obj['quiet'] = quiet
    ctx.obj['debug'] = debug
    ctx.obj['log_file'] = log_file


@main.command()
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@size_options
@click.option('--buffer-size', type=int, default=DEFAULT_BUFFER_SIZE, show_default=True,
              help='Read buffer size in bytes (must exceed the maximum chunk size)')
@click.option('--format', 'output_format', type=click.Choice(['text', 'json']), default='text',
              help='Output format')
@click.option('--output', '-o', type=click.Path(path_type=Path), help='Write chunks to this file')
@click.pass_context
def chunk(
    ctx: click.Context,
    input_file: Path,
    average: Optional[int],
    minimum: Optional[int],
    maximum: Optional[int],
    config: Optional[Path],
    buffer_size: int,
    output_format: str,
    output: Optional[Path]
) -> None:
    """Chunk a file and print the hash, offset and size of every chunk."""
    try:
        chunker_config = _build_config(config, average, minimum, maximum)
        start_time = time.time()
        records = list(dedupe_file(input_file, chunker_config, buffer_size))
        processing_time = time.time() - start_time
    except (DeduplicationError, OSError) as e:
        raise _error(f"Failed to chunk {input_file}: {e}") from e

    if output_format == 'json':
        text = json.dumps({
            'file': str(input_file),
            'config': chunker_config.to_dict(),
            'chunks': [record.to_dict() for record in records],
        }, indent=2)
    else:
        text = "\n".join(
            f"hash={record.hexdigest} offset={record.offset} size={record.length}"
            for record in records
        )

    if output:
        output.write_text(text + "\n", encoding='utf-8')
        click.echo(f"Chunks saved to {output}")
    elif text:
        click.echo(text)

    total_bytes = sum(record.length for record in records)
    performance_log("chunk", processing_time, file_size=total_bytes, chunks=len(records))
    if not ctx.obj.get('quiet'):
        user_success(f"Processing complete: {len(records)} chunks from {total_bytes:,} bytes "
                     f"in {processing_time:.3f}s")


@main.command('target-size')
@click.argument('minimum', type=int)
@click.argument('source_size', type=int)
def target_size(minimum: int, source_size: int) -> None:
    """Print the record buffer size needed to chunk SOURCE_SIZE bytes."""
    try:
        click.echo(required_capacity(minimum, source_size))
    except DeduplicationError as e:
        raise _error(str(e)) from e


@main.command()
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@size_options
@click.option('--buffer-size', type=int, default=DEFAULT_BUFFER_SIZE, show_default=True,
              help='Read buffer size in bytes')
def verify(
    input_file: Path,
    average: Optional[int],
    minimum: Optional[int],
    maximum: Optional[int],
    config: Optional[Path],
    buffer_size: int
) -> None:
    """Chunk a file and check the records against its contents."""
    try:
        chunker_config = _build_config(config, average, minimum, maximum)
        records = list(dedupe_file(input_file, chunker_config, buffer_size))
        data = input_file.read_bytes()
    except (DeduplicationError, OSError) as e:
        raise _error(f"Failed to chunk {input_file}: {e}") from e

    issues = RecordValidator(chunker_config).validate(data, records)
    if issues:
        click.echo(f"Validation issues found: {len(issues)}", err=True)
        for issue in issues[:5]:
            click.echo(f"  - {issue}", err=True)
        if len(issues) > 5:
            click.echo(f"  ... and {len(issues) - 5} more", err=True)
        sys.exit(1)

    click.echo(f"OK: {len(records)} chunks cover {len(data):,} bytes")


@main.command()
@click.argument('files', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@size_options
@click.option('--workers', '-w', type=int, help='Number of workers (auto-detected if not specified)')
@click.option('--mode', type=click.Choice(['process', 'thread', 'sequential']), default='thread',
              help='Parallel processing mode')
@click.option('--format', 'output_format', type=click.Choice(['json', 'summary']), default='summary',
              help='Output format')
def batch(
    files: Tuple[Path, ...],
    average: Optional[int],
    minimum: Optional[int],
    maximum: Optional[int],
    config: Optional[Path],
    workers: Optional[int],
    mode: str,
    output_format: str
) -> None:
    """Chunk many files and report how much of their content repeats."""
    try:
        chunker_config = _build_config(config, average, minimum, maximum)
    except (DeduplicationError, OSError) as e:
        raise _error(str(e)) from e

    deduplicator = DistributedDeduplicator(chunker_config, max_workers=workers)
    result = deduplicator.process_files(list(files), parallel_mode=mode)
    summary = result.summary
    metrics_log(summary.to_dict())

    if output_format == 'json':
        click.echo(json.dumps({
            'total_files': result.total_files,
            'completed_files': result.completed_files,
            'failed_files': result.errors,
            'processing_time': result.total_processing_time,
            'throughput_mbps': result.average_throughput_mbps,
            'summary': summary.to_dict(),
            'files': {
                path: {'size': manifest.size, 'chunks': manifest.chunk_count}
                for path, manifest in result.manifests.items()
            },
        }, indent=2))
    else:
        click.echo("\n📊 Batch Deduplication Summary:")
        click.echo("=" * 50)
        click.echo(f"✅ Successful files: {result.completed_files}")
        click.echo(f"❌ Failed files: {result.failed_files}")
        click.echo(f"📦 Total chunks: {summary.total_chunks}")
        click.echo(f"🧩 Unique chunks: {summary.unique_chunks}")
        click.echo(f"💾 Bytes: {summary.total_bytes:,} total, {summary.unique_bytes:,} unique")
        click.echo(f"🔁 Dedup ratio: {summary.dedup_ratio:.3f}")
        click.echo(f"⏱️  Processing time: {result.total_processing_time:.2f}s")

        if result.errors:
            click.echo("\n❌ Failed files:")
            for file_path, error in result.errors.items():
                click.echo(f"   {file_path}: {error}")

    if result.failed_files:
        sys.exit(1)


@main.command()
@click.option('--average', '-a', 'averages', type=int, multiple=True,
              help='Average chunk size to test (repeatable, defaults to 2 KiB through 128 KiB)')
@click.option('--size', type=int, default=1024 * 1024, show_default=True, help='Bytes per source')
@click.option('--sources', type=int, default=8, show_default=True, help='Number of sources')
@click.option('--workers', '-w', type=int, help='Threads used to chunk sources')
@click.option('--output-dir', '-o', type=click.Path(path_type=Path), help='Save results as JSON here')
def benchmark(
    averages: Tuple[int, ...],
    size: int,
    sources: int,
    workers: Optional[int],
    output_dir: Optional[Path]
) -> None:
    """Measure chunking speed and dedup ratio for several chunk sizes."""
    averages = averages or DEFAULT_AVERAGES
    user_info(f"Generating {sources} sources of {size:,} bytes")
    runner = BenchmarkRunner(output_dir=output_dir, max_workers=workers)
    suite = runner.run_benchmark_suite(
        averages=averages,
        sources=generate_sources(sources, size),
        save_results=output_dir is not None,
    )

    click.echo(f"{'Average':>10} {'Error':>8} {'Chunks':>8} {'Savings':>8} {'Latency':>10} {'Throughput':>12}")
    click.echo("-" * 61)
    failed = False
    for result in suite.results:
        if not result.success:
            failed = True
            click.echo(f"{result.average:>10} failed: {result.error_message}")
            continue
        click.echo(
            f"{result.average:>10} {result.average_error_percent:>+7.2f}% {result.chunk_count:>8} "
            f"{result.savings_percent:>7.2f}% {result.latency_ms:>8.3f}ms {result.throughput_mbps:>7.2f} MB/s"
        )

    if failed:
        user_warning("Some chunk sizes could not be benchmarked")
        sys.exit(1)


@main.command('init-config')
@click.argument('output', type=click.Path(dir_okay=False, path_type=Path))
@click.option('--average', '-a', type=int, default=65536, show_default=True,
              help='Average chunk size for the recommended preset')
def init_config(output: Path, average: int) -> None:
    """Write a YAML configuration using the recommended preset."""
    try:
        ChunkerConfig.recommended(average).save(output)
    except (DeduplicationError, OSError) as e:
        raise _error(str(e)) from e
    click.echo(f"Configuration saved to {output}")


# Debug and logging commands
@main.group("debug")
@click.pass_context
def debug_commands(ctx: click.Context) -> None:
    """Debug and logging utilities for troubleshooting issues."""
    pass


@debug_commands.command("enable")
@click.option('--log-file', type=click.Path(path_type=Path),
              help='File to write debug logs to (default: dedup_debug.log)')
def enable_debug(log_file: Optional[Path]) -> None:
    """Enable debug logging for troubleshooting."""
    log_file = log_file or Path("dedup_debug.log")
    debug_dir = enable_debug_mode(log_file)
    user_success("Debug mode enabled!")
    user_info(f"Debug data collection directory: {debug_dir}")


@debug_commands.command("collect")
@click.option('--output', '-o', type=click.Path(file_okay=False, path_type=Path),
              help='Directory to move the debug archive into')
def collect_debug(output: Optional[Path]) -> None:
    """Collect debug information into a zip file for bug reports."""
    archive = collect_debug_info()
    if output:
        output.mkdir(parents=True, exist_ok=True)
        archive = Path(shutil.move(str(archive), str(output / archive.name)))
    click.echo(f"Debug archive created: {archive}")


if __name__ == '__main__':
    main()
