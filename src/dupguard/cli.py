from pathlib import Path
import json
from typing import Optional

import typer

from .config import ConfigurationError, Settings
from .fingerprint.compare import DEFAULT_COMPARE_THRESHOLD, compare, percent_difference
from .fingerprint.hash import compute_fingerprints
from .logging import get_logger
from .service import UploadRequest, build_service

app = typer.Typer(help="dupguard – perceptual duplicate-upload guard", no_args_is_help=True)


def _load_service():
    logger = get_logger(__name__)
    try:
        return build_service(Settings.from_env())
    except ConfigurationError as exc:
        logger.error(f"Invalid configuration: {exc}")
        raise typer.Exit(code=2) from exc


@app.command("hash")
def hash_image(
    image_path: Path = typer.Argument(..., exists=True, readable=True, help="Image file to fingerprint"),
) -> None:
    """Print the perceptual fingerprints of an image."""
    fingerprints = compute_fingerprints(image_path.read_bytes())
    typer.echo(f"Combined hash: {fingerprints.combined_hash}")
    typer.echo(f"Color hash:    {fingerprints.color_hash or '-'}")
    typer.echo(f"Fallback:      {'yes' if fingerprints.is_fallback else 'no'}")


@app.command("compare")
def compare_images(
    image_a: Path = typer.Argument(..., exists=True, readable=True, help="First image"),
    image_b: Path = typer.Argument(..., exists=True, readable=True, help="Second image"),
    threshold: int = typer.Option(DEFAULT_COMPARE_THRESHOLD, help="Maximum distance (0-256) still considered similar"),
) -> None:
    """Compare two images and report their perceptual distance."""
    comparison = compare(
        compute_fingerprints(image_a.read_bytes()),
        compute_fingerprints(image_b.read_bytes()),
        threshold=threshold,
    )
    typer.echo(f"Distance:   {comparison.distance} ({percent_difference(comparison.distance):.1f}%)")
    typer.echo(f"Similar:    {'yes' if comparison.is_similar else 'no'} (threshold {threshold})")


@app.command("check")
def check_upload(
    image_path: Path = typer.Argument(..., exists=True, readable=True, help="Image to check and upload"),
    user: str = typer.Option("anonymous", help="Uploading user ID"),
    max_uploads: Optional[int] = typer.Option(None, help="Override the configured upload quota"),
    threshold: Optional[int] = typer.Option(None, help="Override the configured 0-100 similarity threshold"),
) -> None:
    """
    Run the duplicate check against the configured stores.

    Exits with code 1 when the upload is blocked or fails.
    """
    logger = get_logger(__name__)
    service = _load_service()
    if max_uploads is not None:
        service.settings.max_uploads = max_uploads
    if threshold is not None:
        service.settings.similarity_threshold = threshold

    logger.info(f"Checking {image_path}")
    request = UploadRequest(image_bytes=image_path.read_bytes(), user_id=user, file_name=image_path.name)
    response = service.handle(request)
    typer.echo(json.dumps(response.to_dict(), indent=2))

    if not response.success:
        raise typer.Exit(code=1)


@app.command("stats")
def image_stats(
    perceptual_hash: str = typer.Argument(..., help="Combined hash (64 hex digits)"),
) -> None:
    """Show the upload history of a stored hash and its similar images."""
    service = _load_service()
    stats = service.engine.stats(perceptual_hash, service.settings.similarity_threshold)
    if stats is None:
        typer.echo(f"No record for {perceptual_hash}")
        raise typer.Exit(code=1)

    record = stats.record
    typer.echo(f"Uploads:        {record.upload_count}")
    typer.echo(f"First upload:   {record.first_uploaded_at}")
    typer.echo(f"Last upload:    {record.last_uploaded_at}")
    for uploader in record.uploaders:
        typer.echo(f"  {uploader.timestamp}  {uploader.user_id}  {uploader.file_name}")
    typer.echo(f"Similar images: {len(stats.similar_matches)} ({stats.total_similar_count} uploads)")
    for match in stats.similar_matches:
        typer.echo(f"  {match.matched_hash[:16]}...  distance {match.distance}  uploads {match.upload_count}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
