"""CLI interface for Cloud Images using Typer.

Main entry point for the application. Handles command definitions,
argument parsing, progress bars, and Rich console output.
"""

from pathlib import Path
from typing import Optional
from datetime import datetime
import json
import time

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn
from rich.table import Table

from .config import load_config, ConfigError
from .models import BoundingBox, Outcome, UploadResult
from .process import optimize_image, create_thumbnail, ImageProcessingError
from .storage import DEFAULT_FOLDER, CROP_FOLDER, CROP_TAGS, generate_public_id, sanitize_name
from .upload import (
    init_client, upload_image, crop_and_upload, get_image_info, delete_image,
    generate_signed_url, get_usage_stats, verify_connection, CloudinaryClient,
)
from .utils import (
    copy_to_clipboard, format_output, format_file_size, is_supported_image,
    output_suffix, print_success, print_error, print_warning, setup_logging,
)

# History file location
HISTORY_FILE = Path.home() / ".cloud-images-history.json"

# Number of batches kept in history
HISTORY_LIMIT = 50


def load_history() -> list[dict]:
    """Load upload history from file."""
    if not HISTORY_FILE.exists():
        return []
    try:
        with open(HISTORY_FILE, 'r') as f:
            return json.load(f)
    except (json.JSONDecodeError, IOError):
        return []


def save_history(history: list[dict]) -> None:
    """Save upload history to file."""
    with open(HISTORY_FILE, 'w') as f:
        json.dump(history, f, indent=2, default=str)


def add_batch_to_history(uploads: list[dict]) -> None:
    """Add a batch of uploads to history.

    Args:
        uploads: List of dicts with 'public_id' and 'url' for each upload
    """
    if not uploads:
        return

    history = load_history()
    batch = {
        "timestamp": datetime.now().isoformat(),
        "count": len(uploads),
        "uploads": uploads
    }
    history.append(batch)

    if len(history) > HISTORY_LIMIT:
        history = history[-HISTORY_LIMIT:]

    save_history(history)


def expand_paths(paths: list[Path]) -> list[Path]:
    """Expand paths, recursively finding images in directories.

    Args:
        paths: List of file or directory paths

    Returns:
        List of image paths (directories expanded to their contents)
    """
    expanded = []

    for path in paths:
        if path.is_dir():
            expanded.extend(p for p in path.rglob("*") if p.is_file() and is_supported_image(p))
        else:
            expanded.append(path)

    # Sort by name for consistent ordering
    return sorted(expanded, key=lambda p: p.name.lower())


def get_client() -> CloudinaryClient:
    """Load configuration and build a client, exiting on config errors."""
    try:
        return init_client(load_config())
    except ConfigError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)


def fail(outcome: Outcome, action: str) -> None:
    """Report a failed outcome and exit with status 1."""
    print_error(f"{action} failed ({outcome.kind.value}): {outcome.error}")
    raise typer.Exit(1)


def default_output(source: Path, label: str, target_format: str) -> Path:
    """Output path next to the source, e.g. photo.thumb.webp."""
    return source.with_name(f"{source.stem}.{label}{output_suffix(target_format)}")


app = typer.Typer(
    name="cloud-images",
    help="Upload, crop and manage images on Cloudinary",
    add_completion=False,
)
console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug logging",
    ),
) -> None:
    """Upload, crop and manage images on Cloudinary."""
    setup_logging(verbose)


@app.command()
def upload(
    files: list[Path] = typer.Argument(
        ...,
        help="Image files or folders to upload",
        exists=True,
    ),
    folder: str = typer.Option(
        DEFAULT_FOLDER,
        "--folder",
        "-d",
        help="Destination folder",
    ),
    tags: Optional[list[str]] = typer.Option(
        None,
        "--tag",
        "-t",
        help="Tag to attach (repeatable)",
    ),
    optimize: bool = typer.Option(
        False,
        "--optimize",
        "-O",
        help="Resize and re-encode locally before uploading",
    ),
    quality: int = typer.Option(
        85,
        "--quality",
        "-q",
        help="Quality 0-100 used with --optimize",
        min=0,
        max=100,
    ),
    keep_name: bool = typer.Option(
        False,
        "--keep-name",
        "-k",
        help="Use the file name as public id prefix",
    ),
    output_format: str = typer.Option(
        "plain",
        "--output-format",
        "-o",
        help="Output format: plain|markdown|html",
    ),
    copy: bool = typer.Option(
        True,
        "--copy/--no-copy",
        help="Copy resulting URLs to clipboard",
    ),
) -> None:
    """Upload images to Cloudinary."""
    expanded_files = expand_paths(files)

    if not expanded_files:
        console.print("[yellow]No supported files found[/yellow]")
        raise typer.Exit(0)

    if len(expanded_files) != len(files):
        console.print(f"[dim]Found {len(expanded_files)} files to process[/dim]\n")

    client = get_client()

    results: list[UploadResult] = []
    batch_uploads = []
    failed = 0

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:

        task = progress.add_task("[cyan]Uploading files...", total=len(expanded_files))

        for file_path in expanded_files:
            progress.update(task, description=f"[cyan]Uploading {file_path.name}...")

            data = file_path.read_bytes()
            if optimize:
                data = optimize_image(data, quality=quality)

            public_id = None
            if keep_name:
                public_id = generate_public_id(sanitize_name(file_path.stem) or "img")

            outcome = upload_image(
                client, data, folder=folder, public_id=public_id, tags=tags or [],
            )
            if outcome.success:
                results.append(outcome.value)
                batch_uploads.append({"public_id": outcome.value.public_id, "url": outcome.value.url})
            else:
                failed += 1
                print_error(f"Failed to upload {file_path.name}: {outcome.error}")

            progress.advance(task)

    add_batch_to_history(batch_uploads)

    if not results:
        console.print("[yellow]No files were uploaded[/yellow]")
        raise typer.Exit(1)

    output = format_output(results, output_format)
    console.print("\n[bold green]Upload complete![/bold green]\n")
    console.print(output, soft_wrap=True, markup=False)

    if copy and copy_to_clipboard(output):
        console.print(f"\n[dim]{len(results)} URL(s) copied to clipboard[/dim]")

    if failed:
        raise typer.Exit(1)


@app.command()
def crop(
    file: Path = typer.Argument(..., help="Source image", exists=True, dir_okay=False),
    x: int = typer.Option(..., "--x", help="Left edge of the region", min=0),
    y: int = typer.Option(..., "--y", help="Top edge of the region", min=0),
    width: int = typer.Option(..., "--width", "-w", help="Region width", min=1),
    height: int = typer.Option(..., "--height", "-h", help="Region height", min=1),
    padding: int = typer.Option(10, "--padding", "-p", help="Margin on each side", min=0),
    folder: str = typer.Option(CROP_FOLDER, "--folder", "-d", help="Destination folder"),
    tags: Optional[list[str]] = typer.Option(
        None,
        "--tag",
        "-t",
        help="Tag to attach (repeatable, default: crop, evidence)",
    ),
) -> None:
    """Crop a padded region of an image and upload it as PNG."""
    client = get_client()
    bbox = BoundingBox(x=x, y=y, width=width, height=height)

    with console.status("[bold green]Cropping and uploading..."):
        outcome = crop_and_upload(
            client,
            file.read_bytes(),
            bbox,
            padding=padding,
            folder=folder,
            tags=tags if tags else CROP_TAGS,
        )

    if not outcome.success:
        fail(outcome, "Crop")

    result = outcome.value
    padded = result.padded_bbox
    print_success(f"Uploaded {result.public_id}")
    console.print(f"  Region: {padded.width}x{padded.height} at ({padded.x}, {padded.y})")
    console.print(f"  Tags: {', '.join(result.tags)}")
    console.print(result.url, soft_wrap=True, markup=False)
    add_batch_to_history([{"public_id": result.public_id, "url": result.url}])


@app.command()
def info(public_id: str = typer.Argument(..., help="Public id including folder")) -> None:
    """Show metadata of a stored image."""
    client = get_client()

    with console.status("[bold green]Fetching image info..."):
        outcome = get_image_info(client, public_id)

    if not outcome.success:
        fail(outcome, "Lookup")

    image = outcome.value
    table = Table(title=image.public_id, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("URL", image.url)
    table.add_row("Dimensions", f"{image.width}x{image.height}")
    table.add_row("Format", image.format)
    table.add_row("Size", format_file_size(image.size))
    table.add_row("Created", image.created_at or "-")
    table.add_row("Tags", ", ".join(image.tags) or "-")
    console.print(table)


@app.command()
def delete(
    public_id: str = typer.Argument(..., help="Public id including folder"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt"),
) -> None:
    """Delete a stored image."""
    if not force:
        if not typer.confirm(f"Delete {public_id}?", default=False):
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(0)

    client = get_client()
    outcome = delete_image(client, public_id)

    if not outcome.success:
        fail(outcome, "Delete")

    print_success(f"Deleted {public_id}")


@app.command()
def sign(
    public_id: str = typer.Argument(..., help="Public id including folder"),
    expires_in: int = typer.Option(
        3600,
        "--expires-in",
        "-e",
        help="Lifetime in seconds",
        min=1,
    ),
    format: str = typer.Option("", "--format", "-f", help="File extension to deliver (e.g. jpg)"),
    attachment: bool = typer.Option(False, "--attachment", "-a", help="Force a file download"),
) -> None:
    """Print a signed download URL that expires."""
    client = get_client()
    outcome = generate_signed_url(
        client,
        public_id,
        expires_at=int(time.time()) + expires_in,
        format=format,
        attachment=attachment,
    )

    if not outcome.success:
        fail(outcome, "Signing")

    console.print(outcome.value, soft_wrap=True, markup=False)


@app.command()
def optimize(
    file: Path = typer.Argument(..., help="Source image", exists=True, dir_okay=False),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output path"),
    max_width: int = typer.Option(1920, "--max-width", help="Maximum width", min=1),
    max_height: int = typer.Option(1080, "--max-height", help="Maximum height", min=1),
    quality: int = typer.Option(85, "--quality", "-q", help="Quality 0-100", min=0, max=100),
    target_format: str = typer.Option("webp", "--format", help="webp|jpeg|png"),
) -> None:
    """Resize an image to fit a box and re-encode it locally."""
    data = file.read_bytes()
    result = optimize_image(
        data,
        max_width=max_width,
        max_height=max_height,
        quality=quality,
        target_format=target_format,
    )

    if result is data:
        print_warning("Optimization failed, original kept")
        raise typer.Exit(1)

    destination = output or default_output(file, "optimized", target_format)
    destination.write_bytes(result)
    print_success(
        f"{destination.name}: {format_file_size(len(data))} → {format_file_size(len(result))}"
    )


@app.command()
def thumbnail(
    file: Path = typer.Argument(..., help="Source image", exists=True, dir_okay=False),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output path"),
    width: int = typer.Option(300, "--width", "-w", help="Thumbnail width", min=1),
    height: int = typer.Option(300, "--height", "-h", help="Thumbnail height", min=1),
    quality: int = typer.Option(80, "--quality", "-q", help="Quality 0-100", min=0, max=100),
    target_format: str = typer.Option("webp", "--format", help="webp|jpeg|png"),
) -> None:
    """Create a center-cropped thumbnail locally."""
    try:
        result = create_thumbnail(
            file.read_bytes(),
            width=width,
            height=height,
            quality=quality,
            target_format=target_format,
        )
    except ImageProcessingError as e:
        print_error(f"Thumbnail failed: {e}")
        raise typer.Exit(1)

    destination = output or default_output(file, "thumb", target_format)
    destination.write_bytes(result)
    print_success(f"{destination.name}: {width}x{height}")


@app.command()
def usage() -> None:
    """Show account usage."""
    client = get_client()

    with console.status("[bold green]Fetching usage..."):
        outcome = get_usage_stats(client)

    if not outcome.success:
        fail(outcome, "Usage lookup")

    stats = outcome.value
    table = Table(title=f"Usage (plan: {stats.plan})")
    table.add_column("Resource", style="cyan")
    table.add_column("Used", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Remaining", justify="right", style="green")

    for name, quota in (("Credits", stats.credits), ("Objects", stats.objects)):
        table.add_row(name, f"{quota.used:g}", f"{quota.limit:g}", f"{quota.remaining:g}")

    bandwidth = stats.bandwidth
    table.add_row(
        "Bandwidth",
        format_file_size(bandwidth.used),
        format_file_size(bandwidth.limit),
        format_file_size(bandwidth.remaining),
    )
    console.print(table)


@app.command()
def auth() -> None:
    """Validate credentials and test the Cloudinary connection."""
    with console.status("[bold green]Validating configuration..."):
        client = get_client()

    console.print("[green]✓[/green] Configuration valid")

    with console.status("[bold green]Testing Cloudinary connection..."):
        outcome = verify_connection(client)

    if not outcome.success:
        console.print(f"[red]✗[/red] Connection error: {outcome.error}")
        raise typer.Exit(1)

    console.print("[green]✓[/green] Cloudinary connection successful")
    console.print(f"  Cloud: {client.config.cloud_name}")


@app.command()
def undo(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Skip confirmation prompt",
    ),
) -> None:
    """Delete the most recent batch of uploads from Cloudinary."""
    history = load_history()

    if not history:
        console.print("[yellow]No upload history found[/yellow]")
        raise typer.Exit(0)

    latest = history[-1]
    uploads = latest.get("uploads", [])
    timestamp = latest.get("timestamp", "Unknown")

    if not uploads:
        console.print("[yellow]Latest batch has no uploads to delete[/yellow]")
        raise typer.Exit(0)

    try:
        dt = datetime.fromisoformat(timestamp)
        formatted_time = dt.strftime("%Y-%m-%d %H:%M:%S")
    except (ValueError, TypeError):
        formatted_time = timestamp

    console.print(f"\n[bold]Latest batch ({formatted_time}):[/bold]")
    console.print(f"  Images: {len(uploads)}")
    console.print("\n[dim]Images to delete:[/dim]")
    for item in uploads:
        console.print(f"  • {item['public_id']}")

    if not force:
        console.print("")
        confirm = typer.confirm("Delete these images from Cloudinary?", default=False)
        if not confirm:
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(0)

    client = get_client()

    deleted = 0
    failed = 0
    with console.status("[bold red]Deleting images..."):
        for item in uploads:
            outcome = delete_image(client, item['public_id'])
            if outcome.success:
                deleted += 1
            else:
                failed += 1
                print_warning(f"{item['public_id']}: {outcome.error}")

    history.pop()
    save_history(history)

    if failed == 0:
        console.print(f"\n[green]✓ Deleted {deleted} images[/green]")
    else:
        console.print(f"\n[yellow]Deleted {deleted} images, {failed} failed[/yellow]")


@app.command()
def history(
    count: int = typer.Option(
        5,
        "--count",
        "-n",
        help="Number of recent batches to show",
        min=1,
    ),
) -> None:
    """Show recent upload batches."""
    batches = load_history()

    if not batches:
        console.print("[yellow]No upload history found[/yellow]")
        return

    # Most recent first
    recent = list(reversed(batches[-count:]))

    table = Table(title="Recent Upload Batches")
    table.add_column("#", style="dim")
    table.add_column("Timestamp", style="cyan")
    table.add_column("Images", justify="right")

    for i, batch in enumerate(recent):
        timestamp = batch.get("timestamp", "Unknown")
        try:
            dt = datetime.fromisoformat(timestamp)
            formatted = dt.strftime("%Y-%m-%d %H:%M:%S")
        except (ValueError, TypeError):
            formatted = timestamp

        image_count = str(batch.get("count", len(batch.get("uploads", []))))
        table.add_row(str(i + 1), formatted, image_count)

    console.print(table)
    console.print("\n[dim]Use 'cloud-images undo' to delete the most recent batch[/dim]")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
