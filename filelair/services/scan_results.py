import json
import logging

from filelair.logging_config import mask_identifier
from filelair.models import ScanStatus
from filelair.services.metadata_store import MetadataStore
from filelair.services.storage import NO_THREATS_FOUND, ObjectStorage, share_id_from_key

logger = logging.getLogger(__name__)


class ScanResultProcessor:
    """Applies the malware scanner's verdict, read from object tags, to a file record."""

    def __init__(self, store: MetadataStore, storage: ObjectStorage):
        self.store = store
        self.storage = storage

    def process(self, storage_key: str) -> ScanStatus | None:
        """Handle a "tags added" notification for ``storage_key``.

        Returns the status written, or None when there was nothing to do.
        Unexpected failures mark the record ``error`` and are re-raised.
        """
        share_id = share_id_from_key(storage_key)
        if share_id is None:
            logger.warning("Ignoring tag event for unrecognised key")
            return None

        try:
            verdict = self.storage.get_scan_status(storage_key)
            if verdict is None:
                logger.info("No scan verdict yet", extra={"share": mask_identifier(share_id)})
                return None

            if verdict == NO_THREATS_FOUND:
                self.store.update_scan_status(share_id, ScanStatus.CLEAN)
                logger.info("File is clean", extra={"share": mask_identifier(share_id)})
                return ScanStatus.CLEAN

            # THREAT_DETECTED, UNSUPPORTED, ACCESS_DENIED, FAILED... are all refused.
            # The record flips before the object goes so downloads see "infected"
            # rather than a clean record pointing at nothing.
            self.store.update_scan_status(
                share_id, ScanStatus.INFECTED, json.dumps({"status": verdict})
            )
            self.storage.delete(storage_key)
            logger.warning(
                "File flagged by malware scan and deleted",
                extra={"share": mask_identifier(share_id), "verdict": verdict},
            )
            return ScanStatus.INFECTED
        except Exception as exc:
            logger.exception(
                "Failed to process scan result", extra={"share": mask_identifier(share_id)}
            )
            self._mark_error(share_id, exc)
            raise

    def _mark_error(self, share_id: str, exc: Exception) -> None:
        try:
            self.store.update_scan_status(
                share_id, ScanStatus.ERROR, json.dumps({"error": type(exc).__name__})
            )
        except Exception:
            logger.exception(
                "Failed to record scan error status", extra={"share": mask_identifier(share_id)}
            )
