"""Concurrent download of the images referenced by exported records.

Records carrying both an ``image`` URL and a ``filename`` stem produce one
download task each. Tasks run with bounded concurrency and independently of
each other: a failed download never cancels its siblings, and all failures
are reported together once every task has finished. Images are re-encoded
to PNG so the ``.png`` extension always matches the file content.
"""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit

import httpx
from PIL import Image

from datamine_exporter.output.json_generator import normalize_filename
from datamine_exporter.spreadsheet_document import Dataset
from datamine_exporter.utils.exceptions import ImageDownloadError
from datamine_exporter.utils.logging import ProgressTracker, get_logger

logger = get_logger(__name__)

IMAGE_FIELD = "image"
FILENAME_FIELD = "filename"
DEFAULT_CONCURRENCY = 10


@dataclass(frozen=True)
class ImageTask:
    """One image to fetch and where to store it."""

    url: str
    filename: str
    path: Path


@dataclass
class ImageDownloadSummary:
    total: int = 0
    downloaded: int = 0
    skipped: int = 0


def collect_image_tasks(
    dataset: Dataset,
    image_dir: Path,
    *,
    image_field: str = IMAGE_FIELD,
    filename_field: str = FILENAME_FIELD,
) -> list[ImageTask]:
    """Build one task per record holding both an image URL and a filename.

    Filenames are normalized; when several records map to the same file,
    only the first one is downloaded.
    """
    tasks: list[ImageTask] = []
    seen: set[Path] = set()
    for sheet_title, records in dataset.items():
        for record in records:
            url = record.get(image_field)
            filename = record.get(filename_field)
            if not isinstance(url, str) or not isinstance(filename, str):
                continue
            stem = normalize_filename(filename)
            if not stem:
                logger.warning(
                    "Skipping image with empty filename",
                    sheet=sheet_title,
                    filename=filename,
                )
                continue
            path = Path(image_dir) / f"{stem}.png"
            if path in seen:
                logger.debug("Duplicate image filename", sheet=sheet_title, path=path)
                continue
            seen.add(path)
            tasks.append(ImageTask(url=url, filename=stem, path=path))
    return tasks


def _write_png(content: bytes, path: Path) -> None:
    tmp_path = path.with_name(f"{path.name}.part")
    try:
        with Image.open(io.BytesIO(content)) as image:
            image.save(tmp_path, format="PNG")
        tmp_path.replace(path)
    finally:
        tmp_path.unlink(missing_ok=True)


class ImageDownloader:
    """Fetches images with at most ``concurrency`` requests in flight."""

    def __init__(
        self,
        image_dir: Path,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        timeout: float = 120.0,
        overwrite: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the downloader.

        Args:
            image_dir: Directory receiving ``<filename>.png`` files.
            concurrency: Maximum number of simultaneous downloads.
            timeout: Per-request timeout in seconds.
            overwrite: Download images whose file already exists.
            transport: Optional httpx transport (used by tests).
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.image_dir = Path(image_dir)
        self.concurrency = concurrency
        self.timeout = timeout
        self.overwrite = overwrite
        self._transport = transport

    async def download_dataset(self, dataset: Dataset) -> ImageDownloadSummary:
        """Download every image referenced by a dataset."""
        return await self.download_all(collect_image_tasks(dataset, self.image_dir))

    async def download_all(self, tasks: list[ImageTask]) -> ImageDownloadSummary:
        """Run all tasks and raise once at the end if any of them failed.

        Raises:
            ImageDownloadError: Listing every failed filename, after all
                tasks have completed.
        """
        summary = ImageDownloadSummary(total=len(tasks))
        if not tasks:
            return summary

        self.image_dir.mkdir(parents=True, exist_ok=True)
        semaphore = asyncio.Semaphore(self.concurrency)
        tracker = ProgressTracker(
            logger,
            "Downloading images",
            total=len(tasks),
            log_interval=max(1, len(tasks) // 20),
        )

        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            downloads = [
                self._download_one(client, semaphore, task, tracker) for task in tasks
            ]
            results = await asyncio.gather(*downloads, return_exceptions=True)

        failures: dict[str, str] = {}
        for task, result in zip(tasks, results, strict=True):
            if isinstance(result, Exception):
                logger.error(
                    "Image download failed",
                    filename=task.filename,
                    url=task.url,
                    error=str(result),
                )
                failures[task.filename] = str(result) or type(result).__name__
            elif result:
                summary.downloaded += 1
            else:
                summary.skipped += 1

        tracker.complete()
        if failures:
            raise ImageDownloadError(failures, total=len(tasks))
        return summary

    async def _download_one(
        self,
        client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
        task: ImageTask,
        tracker: ProgressTracker,
    ) -> bool:
        """Fetch one image. Returns False when an existing file was kept."""
        try:
            if task.path.exists() and not self.overwrite:
                return False

            if urlsplit(task.url).scheme not in ("http", "https"):
                raise ValueError(f"Not an http(s) URL: {task.url}")

            async with semaphore:
                response = await client.get(task.url)
                response.raise_for_status()
                content = response.content

            await asyncio.to_thread(_write_png, content, task.path)
            return True
        finally:
            tracker.update(details=task.filename)
