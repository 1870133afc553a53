"""
Caller-side driver for a single compression request.
"""
import logging
import threading
from typing import Callable, Optional

from imgpress.errors import Cancelled
from imgpress.models import CompressionRequest, CompressionResult, ImageAsset, PHASE_UPLOADING
from imgpress.orchestrator import CompressionOrchestrator
from imgpress.utils.image_processing import preprocess_image
from imgpress.utils.progress import ProgressEstimator, ProgressListener


logger = logging.getLogger(__name__)


class CompressionPipeline:
    """
    Preprocesses the source image, runs the orchestrator and drives the
    progress estimator around the blocking call.

    One pipeline handles one request. ``cancel`` may be called from another
    thread; it stops the progress timer and keeps further remote phases from
    starting.
    """

    def __init__(
        self,
        orchestrator: CompressionOrchestrator,
        preprocess: Callable[[ImageAsset], ImageAsset] = preprocess_image,
        listener: Optional[ProgressListener] = None,
        progress_duration: float = 3.0,
        progress_cap: float = 95.0,
    ):
        self.orchestrator = orchestrator
        self.preprocess = preprocess
        self.progress = ProgressEstimator(listener, duration=progress_duration, cap=progress_cap)
        self.cancel_event = threading.Event()

    def run(self, request: CompressionRequest) -> CompressionResult:
        """
        Run the request to completion.

        Args:
            request: Validated compression request

        Returns:
            CompressionResult

        Raises:
            ClassifiedError: If any remote phase fails or the request is cancelled
        """
        self.progress.begin(PHASE_UPLOADING)
        source = self.preprocess(request.source)
        self.progress.report(100.0)

        if source is not request.source:
            logger.info(f'Source reduced from {request.source.size} to {source.size} bytes', extra={
                'image_filename': source.filename,
            })
            request = CompressionRequest(source=source, output_format=request.output_format, options=request.options)

        if self.cancel_event.is_set():
            self.progress.cancel()
            raise Cancelled('Request cancelled before compression started')

        self.progress.start()
        try:
            result = self.orchestrator.compress(
                request, cancel_event=self.cancel_event, on_phase=self._enter_phase,
            )
        except Cancelled:
            self.progress.cancel()
            raise
        except Exception:
            self.progress.fail()
            raise

        # cancel() may land while the final phase is in flight
        if self.cancel_event.is_set():
            self.progress.cancel()
            raise Cancelled('Request cancelled before the result was delivered')

        self.progress.complete()
        return result

    def _enter_phase(self, phase: str):
        if self.cancel_event.is_set():
            return
        self.progress.enter(phase)

    def cancel(self):
        self.cancel_event.set()
        self.progress.cancel()
