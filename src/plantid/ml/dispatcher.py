"""Backend selection for classification requests.

The mode is a plain argument captured when a call starts. ``ModeToggle`` only
holds the user's current choice; flipping it never affects a call already in
flight.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING

from plantid.ml.image_classifier import ClassificationMode, ClassificationResult

if TYPE_CHECKING:
    from PIL import Image

    from plantid.ml.image_classifier import LocalClassifier
    from plantid.ml.inference import InferencePool
    from plantid.ml.remote_classifier import RemoteClassifier

logger = logging.getLogger(__name__)


class ModeToggle:
    """Process-wide user choice of backend. Last write wins."""

    def __init__(self, mode: ClassificationMode = ClassificationMode.LOCAL) -> None:
        self._mode = mode
        self._lock = threading.Lock()

    @property
    def mode(self) -> ClassificationMode:
        with self._lock:
            return self._mode

    def set(self, mode: ClassificationMode) -> None:
        with self._lock:
            previous, self._mode = self._mode, mode
        if previous != mode:
            logger.info("Switched to %s mode", mode)


class Dispatcher:
    """Routes an image to exactly one backend. No fallback between modes."""

    def __init__(
        self,
        local: LocalClassifier,
        remote: RemoteClassifier,
        pool: InferencePool | None = None,
    ) -> None:
        self._local = local
        self._remote = remote
        self._pool = pool

    def dispatch(
        self, image: Image.Image, mode: ClassificationMode
    ) -> ClassificationResult | asyncio.Task[ClassificationResult]:
        """Start a classification.

        LOCAL runs to completion on the calling thread and returns the result.
        REMOTE schedules the request on the running event loop and returns the
        task immediately; it resolves exactly once and can be cancelled with
        ``Task.cancel()``.

        Raises:
            RuntimeError: For REMOTE when called outside a running event loop.
        """
        if mode == ClassificationMode.LOCAL:
            return self._local.classify(image)
        loop = asyncio.get_running_loop()
        return loop.create_task(self._remote.classify(image))

    async def classify(self, image: Image.Image, mode: ClassificationMode) -> ClassificationResult:
        """Classify and wait for the result.

        LOCAL inference is moved to the worker pool when one is configured.

        Raises:
            TimeoutError: If the worker pool is saturated.
        """
        if mode == ClassificationMode.REMOTE:
            return await self._remote.classify(image)
        if self._pool is None:
            return self._local.classify(image)
        return await self._pool.run(self._local.classify, image)
