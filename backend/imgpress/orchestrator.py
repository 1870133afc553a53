"""
Client for the remote compress/convert protocol.

A request runs through up to three sequential calls against the compression
service:

1. compress: POST the source bytes to ``/shrink``
2. convert: POST conversion options to the compressed artifact, only when
   the output format differs from the source format
3. fetch: GET the final artifact when its bytes were not delivered inline
"""
import logging
import threading
import time
from typing import Callable, Optional

import requests
from requests.auth import HTTPBasicAuth

from imgpress.errors import (
    ClassifiedError,
    UpstreamFetchFailed,
    UpstreamRejected,
    ConversionFailed,
    ConversionSuspect,
    InternalError,
    Cancelled,
)
from imgpress.models import (
    CompressionRequest,
    CompressionResult,
    LOSSLESS_MIME_TYPES,
    PHASE_DOWNLOADING,
    build_convert_payload,
)
from imgpress.utils.response_types import (
    BinaryPayload,
    JsonDescriptor,
    classify_response,
    parse_descriptor,
)
from imgpress.utils.results import assemble_result, assemble_passthrough_result


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'https://api.tinify.com'
DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_SANITY_THRESHOLD = 0.8


class CompressionOrchestrator:
    """
    Runs the compress/convert protocol for one request at a time.

    The instance holds configuration only; each call opens and closes its own
    HTTP session, so one orchestrator can serve concurrent requests.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        sanity_threshold: float = DEFAULT_SANITY_THRESHOLD,
        session_factory: Callable[[], requests.Session] = requests.Session,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not api_key:
            raise ValueError('api_key is required')

        self.auth = HTTPBasicAuth('api', api_key)
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.sanity_threshold = sanity_threshold
        self.session_factory = session_factory
        self.clock = clock

    @property
    def shrink_url(self) -> str:
        return f'{self.base_url}/shrink'

    def compress(
        self,
        request: CompressionRequest,
        cancel_event: Optional[threading.Event] = None,
        on_phase: Optional[Callable[[str], None]] = None,
    ) -> CompressionResult:
        """
        Compress and optionally convert an image.

        Args:
            request: Validated compression request
            cancel_event: Set by the caller to abandon the request between phases
            on_phase: Called with the progress phase when the final download starts

        Returns:
            CompressionResult for the final image

        Raises:
            ClassifiedError: On any failure; nothing is retried
        """
        call = _ProtocolCall(self, request, cancel_event, on_phase)
        session = self.session_factory()
        try:
            return call.run(session)
        except ClassifiedError:
            raise
        except Exception as e:
            logger.error(f'Compression failed unexpectedly: {str(e)}', exc_info=True)
            raise InternalError(str(e) or 'Failed to compress image', cause=e)
        finally:
            session.close()


class _ProtocolCall:
    """State of a single pass through the protocol."""

    def __init__(self, orchestrator: CompressionOrchestrator, request: CompressionRequest,
                 cancel_event: Optional[threading.Event], on_phase: Optional[Callable[[str], None]] = None):
        self.orchestrator = orchestrator
        self.request = request
        self.cancel_event = cancel_event
        self.on_phase = on_phase
        self.deadline = orchestrator.clock() + orchestrator.timeout

    def run(self, session: requests.Session) -> CompressionResult:
        source = self.request.source

        descriptor = self.shrink(session)

        if not self.request.needs_conversion:
            # the service normalizes MIME names (image/jpg comes back as image/jpeg)
            content = self.fetch(session, descriptor.location)
            return assemble_result(
                original_size=source.size,
                content=content,
                original_type=source.mime_type,
                output_type=source.mime_type,
                declared_size=descriptor.size,
            )

        converted = self.convert(session, descriptor)

        if isinstance(converted, BinaryPayload):
            self.check_sanity(len(converted.content))
            return assemble_passthrough_result(
                original_size=source.size,
                content=converted.content,
                original_type=source.mime_type,
                output_type=self.request.output_format,
            )

        content = self.fetch(session, converted.location)
        self.check_sanity(len(content))
        return assemble_result(
            original_size=source.size,
            content=content,
            original_type=source.mime_type,
            output_type=converted.mime_type or self.request.output_format,
            declared_size=converted.size,
        )

    def shrink(self, session: requests.Session) -> JsonDescriptor:
        source = self.request.source
        response = self.send(
            session, 'compress', 'POST', self.orchestrator.shrink_url,
            data=source.data,
            headers={'Content-Type': source.mime_type},
        )

        if not response.ok:
            raise UpstreamRejected(_upstream_message(response, 'Failed to compress image'))

        return parse_descriptor(response)

    def convert(self, session: requests.Session, descriptor: JsonDescriptor):
        response = self.send(
            session, 'convert', 'POST', descriptor.location,
            json=build_convert_payload(self.request),
        )

        if not response.ok:
            raise ConversionFailed(_upstream_message(response, 'Failed to convert image format'))

        return classify_response(response)

    def fetch(self, session: requests.Session, location: str) -> bytes:
        if self.on_phase is not None:
            self.on_phase(PHASE_DOWNLOADING)
        response = self.send(session, 'fetch', 'GET', location)

        if not response.ok:
            raise UpstreamFetchFailed(f'Failed to fetch compressed image (status {response.status_code})')

        return response.content

    def check_sanity(self, output_size: int):
        """Reject lossless conversions that shrank implausibly far."""
        if self.request.output_format not in LOSSLESS_MIME_TYPES:
            return

        original_size = self.request.source.size
        if output_size < original_size * self.orchestrator.sanity_threshold:
            raise ConversionSuspect(
                f'Converted {self.request.output_format} is {output_size} bytes, '
                f'below {int(self.orchestrator.sanity_threshold * 100)}% of the {original_size} byte original'
            )

    def send(self, session: requests.Session, phase: str, method: str, url: str, **kwargs) -> requests.Response:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise Cancelled(f'Request cancelled before {phase} phase')

        remaining = self.deadline - self.orchestrator.clock()
        if remaining <= 0:
            raise UpstreamFetchFailed(f'Timed out before {phase} phase')

        start_time = self.orchestrator.clock()
        try:
            response = session.request(
                method, url,
                auth=self.orchestrator.auth,
                timeout=remaining,
                **kwargs
            )
        except requests.Timeout as e:
            raise UpstreamFetchFailed(f'Timed out during {phase} phase', cause=e)
        except requests.RequestException as e:
            raise UpstreamFetchFailed(f'Network error during {phase} phase: {str(e)}', cause=e)

        finished_at = self.orchestrator.clock()
        duration_ms = int((finished_at - start_time) * 1000)
        logger.info(f'{phase} phase finished', extra={
            'phase': phase,
            'duration_ms': duration_ms,
            'status': response.status_code,
        })

        # requests applies the timeout per read, so a slowly trickled body can outlive the deadline
        if finished_at > self.deadline:
            response.close()
            raise UpstreamFetchFailed(f'Timed out during {phase} phase')

        return response


def _upstream_message(response: requests.Response, default: str) -> str:
    """Pull the ``message`` field out of an error response, if there is one."""
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict) and body.get('message'):
        return str(body['message'])
    return default
