"""Create finished matches from scoreboard photos, one at a time or in a ZIP."""
import base64
import io
import logging
import re
import zipfile
from datetime import datetime
from typing import Dict, Optional

from app.models import Match
from app.services.extraction_service import mime_type_for

_FILENAME_DATE_RE = re.compile(r'(\d{4})[-_]?(\d{2})[-_]?(\d{2})')


def parse_date_from_filename(filename: str) -> Optional[datetime]:
    """Date embedded in a file name such as ``2024-03-01.jpg`` or ``IMG_20240301``.

    Returns ``None`` when there is no date-like run of digits or it is not a
    real calendar date.
    """
    found = _FILENAME_DATE_RE.search(filename or '')
    if not found:
        return None
    year, month, day = (int(part) for part in found.groups())
    try:
        return datetime(year, month, day)
    except ValueError:
        return None


def to_data_uri(image_bytes: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"


class ImportService:
    """Runs extraction and persistence together for uploaded scoreboard photos.

    Uploaded scoreboards are treated as finished matches: each one is stored
    with ``status = 'ended'`` and keeps the photo as its scoreboard image.
    """

    def __init__(self, match_service, extraction_service) -> None:
        """
        Args:
            match_service:      A :class:`~app.services.match_service.MatchService`.
            extraction_service: An :class:`~app.services.extraction_service.ExtractionService`.
        """
        self._matches = match_service
        self._extraction = extraction_service
        self._log = logging.getLogger(f'scoremate.service.{type(self).__name__}')

    def import_image(self, db, owner: str, image_bytes: bytes, filename: str,
                     mime_type: Optional[str] = None) -> Match:
        """Extract one photo and store it as an ended match.

        Args:
            db:          SQLAlchemy session.
            owner:       Owning username.
            image_bytes: Raw image file contents.
            filename:    Original file name; a date in it becomes the match date.
            mime_type:   Overrides the type guessed from *filename*.

        Returns:
            The stored :class:`Match`.

        Raises:
            ValueError: the file is not a supported image type.
            ExtractionError: the scoreboard could not be read.  No match is
                created in that case, nor when storing the result fails.
        """
        mime_type = mime_type or mime_type_for(filename)
        if not mime_type:
            raise ValueError(f"Unsupported image type: {filename}")

        result = self._extraction.extract(image_bytes, mime_type)

        match = self._matches.create(
            db, owner, result.player1_name, result.player2_name,
            created_at=parse_date_from_filename(filename),
        )
        match.frames = list(result.frames)
        match.player1_total_foul_points = result.player1_total_foul_points
        match.player2_total_foul_points = result.player2_total_foul_points
        match.scoreboard_image = to_data_uri(image_bytes, mime_type)
        match.end()
        try:
            self._matches.update(db, owner, match)
        except Exception:
            self._log.warning("Removing half-imported match %s from %s", match.id, filename)
            self._matches.delete(db, owner, match.id)
            raise
        self._log.info("Imported %s as match %s (%d frames)",
                       filename, match.id, len(match.frames))
        return match

    def import_archive(self, db, owner: str, archive_bytes: bytes) -> Dict:
        """Import every supported image inside a ZIP archive.

        Entries are processed one after another.  A failing image is logged
        and reported but does not stop the rest of the batch.

        Returns:
            ``{"created": int, "total": int, "failed": [{"file", "error"}]}``
            where *total* counts the image entries found.

        Raises:
            ValueError: *archive_bytes* is not a ZIP file.
        """
        try:
            archive = zipfile.ZipFile(io.BytesIO(archive_bytes))
        except zipfile.BadZipFile as exc:
            raise ValueError("Uploaded file is not a valid ZIP archive") from exc

        with archive:
            entries = [
                info for info in archive.infolist()
                if not info.is_dir() and mime_type_for(info.filename)
            ]
            created = 0
            failed = []
            for info in entries:
                try:
                    self.import_image(db, owner, archive.read(info), info.filename)
                    created += 1
                except Exception as exc:
                    self._log.warning("Failed to import %s: %s", info.filename, exc)
                    failed.append({'file': info.filename, 'error': str(exc)})

        self._log.info("Batch import for %s: %d of %d matches created",
                       owner, created, len(entries))
        return {'created': created, 'total': len(entries), 'failed': failed}
