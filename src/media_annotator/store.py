"""Metadata store: read and write annotation fields on media files through ExifTool."""

from pathlib import Path
from typing import Any

from exiftool import ExifToolHelper  # type: ignore[attr-defined]
from exiftool.exceptions import ExifToolException
from loguru import logger

from media_annotator.errors import StoreError


# Fields whose presence means the file was already annotated.
ANNOTATION_TAGS = ("Comment",)
# Human-readable field, keyword field, and the standard description field.
WRITE_TAGS = ("Comment", "Keywords", "ImageDescription")

_EXIFTOOL_ERRORS = (ValueError, TypeError, OSError, ExifToolException)


def _format_metadata_value(value: Any) -> str:  # noqa: ANN401
    """
    Coerce metadata values (lists, numbers) into a readable string.

    Examples:
        >>> _format_metadata_value(["sky", "", "  "])
        'sky'
        >>> _format_metadata_value(42)
        '42'

    """
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple, set)):
        return ", ".join(str(v) for v in value if str(v).strip())
    return str(value)


class MetadataStore:
    """
    Annotation fields of a media file, backed by ExifTool.

    Each call runs its own ExifTool process so concurrent workers never share one.
    """

    def __init__(
        self,
        annotation_tags: tuple[str, ...] = ANNOTATION_TAGS,
        write_tags: tuple[str, ...] = WRITE_TAGS,
    ) -> None:
        self.annotation_tags = annotation_tags
        self.write_tags = write_tags

    def read(self, path: Path) -> dict[str, str]:
        """
        Read the annotation-bearing fields of a file.

        Returns:
            Tag names without their group prefix (e.g. "Comment", "Keywords") mapped to text.
            Tags that are absent from the file are absent from the result.

        Raises:
            StoreError: if ExifTool cannot read the file.

        """
        tags = list(dict.fromkeys((*self.annotation_tags, *self.write_tags)))
        try:
            with ExifToolHelper() as et:  # type: ignore[no-untyped-call]
                blocks = et.get_tags(files=[str(path)], tags=tags)
        except _EXIFTOOL_ERRORS as exc:
            msg = f"cannot read metadata of {path.name}: {exc}"
            raise StoreError(msg) from exc

        fields: dict[str, str] = {}
        for block in blocks:
            for key, value in block.items():
                if key == "SourceFile":
                    continue
                name = key.rsplit(":", 1)[-1]
                text = _format_metadata_value(value).strip()
                if text and name not in fields:
                    fields[name] = text

        logger.debug("metadata_read", fields=sorted(fields))
        return fields

    def is_annotated(self, fields: dict[str, str]) -> bool:
        """Return True when any annotation field is already non-empty."""
        return any(fields.get(tag, "").strip() for tag in self.annotation_tags)

    def write(self, path: Path, description: str) -> None:
        """
        Write the same description to every annotation field, overwriting the file in place.

        No `_original` backup is kept, so repeated writes never accumulate stale copies.

        Raises:
            StoreError: if ExifTool cannot write the file.

        """
        tags_to_write = dict.fromkeys(self.write_tags, description)
        try:
            with ExifToolHelper() as et:  # type: ignore[no-untyped-call]
                et.set_tags(
                    files=[str(path)],
                    tags=tags_to_write,
                    params=["-overwrite_original"],
                )
        except _EXIFTOOL_ERRORS as exc:
            msg = f"cannot write metadata of {path.name}: {exc}"
            raise StoreError(msg) from exc

        logger.info("metadata_written_successfully", tags=list(tags_to_write))
