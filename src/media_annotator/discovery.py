"""Directory scan: turn a media folder into classified work items."""

from pathlib import Path

from loguru import logger

from media_annotator.models import MediaKind, WorkItem


IMAGE_EXTENSIONS = "jpg,jpeg,png,gif,bmp,tiff"
VIDEO_EXTENSIONS = "mp4,mov,avi"


def parse_extensions(extensions: str) -> set[str]:
    """
    Normalize comma-separated extensions into a casefolded set like {".mp4", ".jpg"}.

    Examples:
        >>> sorted(parse_extensions("mp4, jpg ,PNG"))
        ['.jpg', '.mp4', '.png']

    """
    return {
        f".{ext.strip().lstrip('.').casefold()}"
        for ext in extensions.split(",")
        if ext.strip().lstrip(".")
    }


def classify(path: Path, image_exts: set[str], video_exts: set[str]) -> MediaKind | None:
    """Return the media kind for a path by its (case-insensitive) suffix, or None to ignore it."""
    suffix = path.suffix.casefold()
    if suffix in image_exts:
        return MediaKind.IMAGE
    if suffix in video_exts:
        return MediaKind.VIDEO
    return None


def scan_directory(
    directory: Path,
    *,
    image_extensions: str = IMAGE_EXTENSIONS,
    video_extensions: str = VIDEO_EXTENSIONS,
    recursive: bool = False,
) -> list[WorkItem]:
    """
    Collect the media files of a directory as work items.

    Args:
        directory: Folder to scan
        image_extensions: Comma-separated image extensions
        video_extensions: Comma-separated video extensions (empty string disables videos)
        recursive: Descend into subdirectories

    Returns:
        Work items sorted by path; non-matching files are ignored.

    """
    image_exts = parse_extensions(image_extensions)
    video_exts = parse_extensions(video_extensions) - image_exts
    candidates = directory.rglob("*") if recursive else directory.iterdir()

    items: list[WorkItem] = []
    ignored = 0
    for path in sorted(candidates):
        if not path.is_file():
            continue
        kind = classify(path, image_exts, video_exts)
        if kind is None:
            ignored += 1
            continue
        items.append(WorkItem(path=path, kind=kind))

    logger.info(
        "media_files_discovered",
        directory=str(directory),
        images=sum(1 for i in items if i.kind is MediaKind.IMAGE),
        videos=sum(1 for i in items if i.kind is MediaKind.VIDEO),
        ignored=ignored,
    )
    return items
