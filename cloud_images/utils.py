"""Utility functions for Cloud Images.

Provides logging setup, clipboard operations, output formatting,
file type detection, and other helper functions.
"""

import logging
from pathlib import Path

import pyperclip
from rich.console import Console
from rich.logging import RichHandler

from .models import UploadResult


console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Route library logging through Rich.

    Args:
        verbose: Show DEBUG records instead of WARNING and above
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def copy_to_clipboard(text: str) -> bool:
    """Copy text to system clipboard.

    Args:
        text: Text to copy

    Returns:
        True if successful, False otherwise
    """
    try:
        pyperclip.copy(text)
        return True
    except pyperclip.PyperclipException:
        return False


def format_plain(results: list[UploadResult]) -> str:
    """Format upload results as plain text URLs."""
    return '\n'.join(r.url for r in results)


def format_markdown(results: list[UploadResult]) -> str:
    """Format upload results as Markdown image syntax.

    The public id is used as alt text.
    """
    return '\n'.join(f"![{r.public_id}]({r.url})" for r in results)


def format_html(results: list[UploadResult]) -> str:
    """Format upload results as HTML img tags with dimensions."""
    return '\n'.join(
        f'<img src="{r.url}" alt="{r.public_id}" width="{r.width}" height="{r.height}">'
        for r in results
    )


def format_output(results: list[UploadResult], format_type: str) -> str:
    """Format upload results based on output format setting.

    Args:
        results: List of upload results
        format_type: Output format (plain, markdown, html)

    Returns:
        Formatted output string
    """
    formatters = {
        'plain': format_plain,
        'markdown': format_markdown,
        'html': format_html,
    }

    formatter = formatters.get(format_type, format_plain)
    return formatter(results)


def format_file_size(size_bytes: float) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted string (e.g., "1.5 MB")
    """
    for unit in ['B', 'KB', 'MB', 'GB']:
        if abs(size_bytes) < 1024:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.1f} TB"


def print_success(message: str) -> None:
    """Print a success message with checkmark."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message with X mark."""
    console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message with exclamation mark."""
    console.print(f"[yellow]![/yellow] {message}")


def is_supported_image(path: Path) -> bool:
    """Check if file is a supported image format.

    Args:
        path: Path to file

    Returns:
        True if supported image format
    """
    return path.suffix.lower() in {
        '.jpg', '.jpeg', '.png', '.gif', '.webp',
        '.bmp', '.tiff', '.tif'
    }


def output_suffix(target_format: str) -> str:
    """File suffix for an output format name."""
    fmt = target_format.lower()
    if fmt in ('jpeg', 'jpg'):
        return '.jpg'
    if fmt == 'png':
        return '.png'
    return '.webp'
