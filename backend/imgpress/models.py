"""
Data model shared by the compression pipeline.
Defines the values that flow from the inbound request through preprocessing,
the remote compress/convert protocol and result assembly.
"""
from dataclasses import dataclass, field
from typing import Optional, Dict


SUPPORTED_MIME_TYPES = (
    'image/png',
    'image/jpeg',
    'image/jpg',
    'image/webp',
    'image/avif',
)

# Targets where a large size drop after conversion is implausible
LOSSLESS_MIME_TYPES = ('image/png',)

# Metadata kinds the service keeps when preservation is requested
PRESERVED_METADATA = ['copyright', 'creation', 'location']

RESIZE_METHODS = ('fit', 'cover', 'contain')

PHASE_IDLE = 'idle'
PHASE_UPLOADING = 'uploading'
PHASE_COMPRESSING = 'compressing'
PHASE_DOWNLOADING = 'downloading'
PHASES = (PHASE_IDLE, PHASE_UPLOADING, PHASE_COMPRESSING, PHASE_DOWNLOADING)


@dataclass(frozen=True)
class ImageAsset:
    """
    Raw image bytes together with their declared MIME type.

    Produced by the caller or by the preprocessor and consumed once by the
    orchestrator.
    """
    data: bytes
    mime_type: str
    filename: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ResizeOptions:
    width: Optional[int] = None
    height: Optional[int] = None
    method: Optional[str] = None

    def to_payload(self) -> Dict:
        payload = {}
        if self.method:
            payload['method'] = self.method
        if self.width is not None:
            payload['width'] = self.width
        if self.height is not None:
            payload['height'] = self.height
        return payload


@dataclass(frozen=True)
class CompressionOptions:
    resize: Optional[ResizeOptions] = None
    preserve_metadata: bool = False
    quality: Optional[int] = None  # accepted for compatibility, the service has no quality knob


@dataclass(frozen=True)
class CompressionRequest:
    """A validated request: source asset plus the desired output format."""
    source: ImageAsset
    output_format: str
    options: CompressionOptions = field(default_factory=CompressionOptions)

    @property
    def needs_conversion(self) -> bool:
        return self.output_format != self.source.mime_type


@dataclass(frozen=True)
class ProgressState:
    phase: str = PHASE_IDLE
    percent: float = 0.0


@dataclass(frozen=True)
class CompressionResult:
    original_size: int
    compressed_size: int
    saved_bytes: int
    compression_ratio: int
    compressed_image: str  # data URI
    original_type: str
    output_type: str

    def to_dict(self) -> Dict:
        """Serialize to the camelCase response shape returned to callers."""
        return {
            'success': True,
            'originalSize': self.original_size,
            'compressedSize': self.compressed_size,
            'savedBytes': self.saved_bytes,
            'compressionRatio': self.compression_ratio,
            'compressedImage': self.compressed_image,
            'originalType': self.original_type,
            'outputType': self.output_type,
        }


def build_convert_payload(request: CompressionRequest) -> Dict:
    """
    Build the JSON body for the convert phase.

    Args:
        request: The compression request being processed

    Returns:
        Dict with ``convert`` and, when requested, ``preserve`` and ``resize``
    """
    payload = {'convert': {'type': request.output_format}}

    if request.options.preserve_metadata:
        payload['preserve'] = list(PRESERVED_METADATA)

    if request.options.resize is not None:
        resize = request.options.resize.to_payload()
        if resize:
            payload['resize'] = resize

    return payload
