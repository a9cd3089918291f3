from typing import Iterable, List, Optional, Sequence, Set, Tuple

from . import api
from .client import ApiClient
from .errors import AuthFailure, MediaDashError, ValidationFailure
from .listing import SESSION_EXPIRED, ListingController
from .models import FileRecord, UploadFile
from .utils import format_bytes, get_logger

UPLOAD_FAILED = "Failed to upload file. Please try again."

ACCEPTED_PREFIXES = ("image/", "video/", "audio/")
ACCEPTED_TYPES = frozenset({
    "application/pdf",
    "text/csv",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.oasis.opendocument.spreadsheet",
})


def normalize_tags(tags: Iterable[str]) -> Set[str]:
    return {tag.strip() for tag in tags if tag and tag.strip()}


def is_accepted(mime_type: str) -> bool:
    mime_type = (mime_type or "").lower()
    return mime_type.startswith(ACCEPTED_PREFIXES) or mime_type in ACCEPTED_TYPES


class UploadCoordinator:
    def __init__(self, client: ApiClient, listing: ListingController, max_bytes: int = 100 * 1024 * 1024) -> None:
        self.client = client
        self.listing = listing
        self.max_bytes = max_bytes
        self.uploading = False
        self.error: Optional[str] = None
        self.logger = get_logger("mediadash.upload")
        self._last_batch: Optional[Tuple[List[UploadFile], Set[str]]] = None

    def validate(self, files: Sequence[UploadFile]) -> None:
        if not files:
            raise ValidationFailure("Please select a file to upload")
        for item in files:
            if item.size_bytes > self.max_bytes:
                raise ValidationFailure(f"{item.name} is larger than {format_bytes(self.max_bytes)}")
            if not is_accepted(item.mime_type):
                raise ValidationFailure(f"{item.name}: unsupported file type {item.mime_type or 'unknown'}")

    async def upload(self, files: Sequence[UploadFile], tags: Iterable[str] = ()) -> Optional[List[FileRecord]]:
        batch = list(files)
        tag_set = normalize_tags(tags)
        try:
            self.validate(batch)
        except ValidationFailure as exc:
            self.error = exc.message
            return None

        self.uploading = True
        self.error = None
        try:
            records = await api.upload_files(self.client, batch, tag_set)
        except MediaDashError as exc:
            self._last_batch = (batch, tag_set)
            self.error = SESSION_EXPIRED if isinstance(exc, AuthFailure) else UPLOAD_FAILED
            self.logger.warning("Upload of %d file(s) failed: %s", len(batch), exc.message)
            return None
        finally:
            self.uploading = False

        self._last_batch = None
        self.listing.prepend(records)
        self.logger.info("Uploaded %d file(s)", len(records))
        return records

    @property
    def can_retry(self) -> bool:
        return self._last_batch is not None

    async def retry(self) -> Optional[List[FileRecord]]:
        if self._last_batch is None:
            return None
        batch, tags = self._last_batch
        return await self.upload(batch, tags)
