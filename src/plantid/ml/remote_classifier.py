"""Remote plant classification over HTTP.

Wire protocol:
    POST {base_url}/identify   {"imageBase64": "<base64 JPEG>"}
    200                        {"classification": "<label>"}
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from plantid.ml.errors import ApiError, InvalidImageError, NetworkError
from plantid.ml.image_classifier import UNKNOWN_LABEL, ClassificationMode, ClassificationResult
from plantid.ml.preprocessing import DEFAULT_JPEG_QUALITY, encode

if TYPE_CHECKING:
    from PIL import Image

logger = logging.getLogger(__name__)

IDENTIFY_PATH = "identify"


class ClassificationRequest(BaseModel):
    """Body sent to the remote classification API."""

    model_config = ConfigDict(populate_by_name=True)

    image_data: str = Field(alias="imageBase64")


class ClassificationResponse(BaseModel):
    """Successful body returned by the remote classification API."""

    model_config = ConfigDict(extra="ignore")

    classification: str | None = None


class RemoteClassifier:
    """Delegates classification to a remote API with a single POST per image."""

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
    ) -> None:
        self._endpoint = f"{base_url.rstrip('/')}/{IDENTIFY_PATH}"
        self._client = client
        self._jpeg_quality = jpeg_quality

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def classify(self, image: Image.Image) -> ClassificationResult:
        """Send the image to the remote API and map the reply to a result.

        No retry and no caching. Never raises: failures are returned as the
        result's ``error``.
        """
        try:
            request = ClassificationRequest(image_data=encode(image, self._jpeg_quality))
        except InvalidImageError as exc:
            return ClassificationResult(source=ClassificationMode.REMOTE, error=exc)

        try:
            response = await self._client.post(
                self._endpoint,
                content=request.model_dump_json(by_alias=True),
                headers={"Content-Type": "application/json"},
            )
        except httpx.RequestError as exc:
            logger.warning("Request to %s failed: %s", self._endpoint, exc)
            return ClassificationResult(source=ClassificationMode.REMOTE, error=NetworkError(str(exc)))

        if not response.is_success:
            logger.warning("Remote API %s returned %d", self._endpoint, response.status_code)
            return ClassificationResult(
                source=ClassificationMode.REMOTE,
                error=ApiError(response.status_code),
            )

        return ClassificationResult(source=ClassificationMode.REMOTE, label=self._parse_label(response))

    @staticmethod
    def _parse_label(response: httpx.Response) -> str:
        try:
            body = ClassificationResponse.model_validate_json(response.content)
        except ValidationError:
            logger.warning("Unparseable response body from remote API; using %r", UNKNOWN_LABEL)
            return UNKNOWN_LABEL
        if body.classification is None:
            return UNKNOWN_LABEL
        return body.classification
