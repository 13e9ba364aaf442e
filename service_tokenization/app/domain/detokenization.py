"""
Detokenization: unlock an uploaded bundle and let the driver parse it.
"""

from typing import Any

from shared.errors import ExternalServiceError, UploadValidationError
from shared.logging import get_logger
from service_tokenization.app.adapters import DriverClient
from .unpack import ArchiveError, ZipArchiveUnpacker

DETOKENIZATION_SENTINEL = "detok"
INVALID_UPLOAD_MESSAGE = "Uploaded file not valid."
DETOKENIZE_FAILED_MESSAGE = "File could not be detokenized."


def validate_payload(content: str) -> str:
    """Return ``content`` if it looks like a detokenization payload."""
    if not content or not content.startswith(DETOKENIZATION_SENTINEL):
        raise UploadValidationError(
            INVALID_UPLOAD_MESSAGE,
            error=f"Content does not start with '{DETOKENIZATION_SENTINEL}'"
        )
    return content


class DetokenizationWorkflow:

    def __init__(self, driver_client: DriverClient, unpacker: ZipArchiveUnpacker, metrics=None):
        self.driver_client = driver_client
        self.unpacker = unpacker
        self.metrics = metrics
        self.logger = get_logger("tokenization.detokenization")

    async def detokenize(self, data: bytes, password: str) -> Any:
        """Unpack the upload and return the driver's parse result verbatim."""
        try:
            content = self.unpacker.unpack(data, password)
        except ArchiveError as e:
            self.logger.warning("Upload could not be unpacked", size=len(data), error=str(e))
            self._record("unpack_failed")
            raise UploadValidationError(DETOKENIZE_FAILED_MESSAGE, error=str(e)) from e

        try:
            validate_payload(content)
        except UploadValidationError:
            self.logger.warning("Upload is not a detokenization payload", size=len(data))
            self._record("invalid_payload")
            raise

        try:
            result = await self.driver_client.parse_detokenization(content)
        except ExternalServiceError as e:
            self._record("driver_failed")
            raise UploadValidationError(DETOKENIZE_FAILED_MESSAGE, error=e.message) from e

        self.logger.info("Detokenization payload parsed")
        self._record("parsed")
        return result

    def _record(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_business_event(f"detokenization_{outcome}")
