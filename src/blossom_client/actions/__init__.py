"""Protocol actions: one executor per endpoint."""

from .delete import delete_blob
from .download import download_blob, download_to, has_blob
from .list import list_blobs
from .media import upload_media
from .mirror import mirror_blob
from .upload import check_upload, upload_blob

__all__ = [
    "check_upload",
    "delete_blob",
    "download_blob",
    "download_to",
    "has_blob",
    "list_blobs",
    "mirror_blob",
    "upload_blob",
    "upload_media",
]
