"""
Script to compress a local image through the compression pipeline.
Usage: python compress_image.py <image_path> [output_format] [output_path]
"""
import base64
import mimetypes
import os
import sys
from pathlib import Path
from dotenv import load_dotenv

from imgpress.errors import ClassifiedError
from imgpress.models import CompressionRequest, ImageAsset, SUPPORTED_MIME_TYPES
from imgpress.orchestrator import CompressionOrchestrator
from imgpress.pipeline import CompressionPipeline

load_dotenv()

mimetypes.add_type("image/webp", ".webp")
mimetypes.add_type("image/avif", ".avif")

TINIFY_API_KEY = os.getenv("TINIFY_API_KEY")
DEFAULT_OUTPUT_FORMAT = "image/webp"

EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
    "image/avif": ".avif",
}


def print_progress(state):
    """Render the progress state as a single updating line."""
    filled = int(state.percent / 5)
    bar = "#" * filled + "-" * (20 - filled)
    print(f"\r   [{bar}] {state.percent:5.1f}% {state.phase:<12}", end="", flush=True)


def compress_file(image_path: str, output_format: str, output_path: str = None):
    """
    Compress an image file and write the result next to it.

    Args:
        image_path: Path to the image file
        output_format: MIME type of the output
        output_path: Destination path (derived from the input when omitted)

    Returns:
        The output path if successful, None otherwise
    """
    print("=" * 60)
    print("Compressing Image")
    print("=" * 60)

    if not os.path.exists(image_path):
        print(f"❌ Error: Image not found at {image_path}")
        return None

    mime_type, _ = mimetypes.guess_type(image_path)
    if mime_type not in SUPPORTED_MIME_TYPES:
        print(f"❌ Error: Unsupported image type {mime_type}")
        print(f"   Supported types: {', '.join(SUPPORTED_MIME_TYPES)}")
        return None

    data = Path(image_path).read_bytes()

    print(f"\n📁 Image Info:")
    print(f"   Path: {image_path}")
    print(f"   Size: {len(data):,} bytes ({len(data) / 1024:.2f} KB)")
    print(f"   Type: {mime_type} -> {output_format}")

    orchestrator = CompressionOrchestrator(api_key=TINIFY_API_KEY)
    pipeline = CompressionPipeline(orchestrator, listener=print_progress)
    request = CompressionRequest(
        source=ImageAsset(data=data, mime_type=mime_type, filename=os.path.basename(image_path)),
        output_format=output_format,
    )

    print(f"\n⏳ Processing...")
    try:
        result = pipeline.run(request)
    except KeyboardInterrupt:
        pipeline.cancel()
        print(f"\n\n⚠️  Cancelled")
        return None
    except ClassifiedError as e:
        print(f"\n\n❌ {e.kind}: {e.message}")
        return None
    print()

    if output_path is None:
        output_path = str(Path(image_path).with_suffix("")) + "-compressed" + EXTENSIONS[result.output_type]

    encoded = result.compressed_image.split(",", 1)[1]
    Path(output_path).write_bytes(base64.b64decode(encoded))

    print(f"\n📋 Result:")
    print(f"   Original: {result.original_size:,} bytes")
    print(f"   Compressed: {result.compressed_size:,} bytes")
    print(f"   Saved: {result.saved_bytes:,} bytes ({result.compression_ratio}%)")
    print(f"   Output: {output_path}")

    return output_path


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__.strip())
        sys.exit(1)

    if not TINIFY_API_KEY:
        print("❌ TINIFY_API_KEY is not set")
        sys.exit(1)

    target = sys.argv[2] if len(sys.argv) > 2 else DEFAULT_OUTPUT_FORMAT
    if target not in SUPPORTED_MIME_TYPES:
        print(f"❌ Unsupported output format {target}")
        sys.exit(1)

    output = compress_file(sys.argv[1], target, sys.argv[3] if len(sys.argv) > 3 else None)
    sys.exit(0 if output else 1)
