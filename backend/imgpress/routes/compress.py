"""
/compress endpoint for compressing and converting images.
"""
from datetime import datetime
from functools import partial
from flask import request, jsonify
from werkzeug.exceptions import BadRequest, HTTPException, Unauthorized, ServiceUnavailable

from imgpress.errors import ClassifiedError, InternalError
from imgpress.pipeline import CompressionPipeline
from imgpress.utils.image_processing import preprocess_image
from imgpress.utils.validation import ValidationError, parse_compression_request


def register_compress_route(app):
    """Register the /compress endpoint with the Flask app."""

    def log_progress(filename, state):
        app.logger.debug('Compression progress', extra={
            'endpoint': '/compress',
            'image_filename': filename,
            'phase': state.phase,
            'percent': round(state.percent, 1),
        })

    @app.route('/compress', methods=['POST'])
    def compress():
        """
        Compress an image and optionally convert it to another format.

        Accepts JSON with:
        - imageBase64: str (base64 or data URI), or imageUrl: str
        - filename: str
        - mimeType: str (image/png, image/jpeg, image/jpg, image/webp, image/avif)
        - outputFormat: str (same set)
        - options: dict (optional: resize, preserveMetadata, quality)

        Returns JSON with sizes, savings and the result as a data URI.
        """
        start_time = datetime.utcnow()
        filename = None

        try:
            # 1. Authenticate request when an inbound key is configured
            if app.config.get('API_KEY'):
                auth_header = request.headers.get('Authorization', '')
                if not auth_header.startswith('Bearer '):
                    raise Unauthorized('Missing or invalid Authorization header')

                api_key = auth_header.replace('Bearer ', '').strip()
                if api_key != app.config['API_KEY']:
                    raise Unauthorized('Invalid API key')

            # 2. Check the compression service is configured
            if getattr(app, 'orchestrator', None) is None:
                raise ServiceUnavailable('TINIFY_API_KEY not configured')

            # 3. Parse and validate payload
            if not request.is_json:
                raise BadRequest('Request body must be JSON')

            try:
                compression_request, filename = parse_compression_request(request.get_json())
            except ValidationError as e:
                raise BadRequest(str(e))

            app.logger.info(f'Compressing {filename or "image"} '
                            f'({compression_request.source.mime_type} -> {compression_request.output_format})')

            # 4. Run the pipeline
            pipeline = CompressionPipeline(
                app.orchestrator,
                preprocess=partial(
                    preprocess_image,
                    threshold_bytes=app.config['PREPROCESS_THRESHOLD_BYTES'],
                    max_dimension=app.config['PREPROCESS_MAX_DIMENSION'],
                    quality=app.config['PREPROCESS_QUALITY'],
                ),
                listener=partial(log_progress, filename),
                progress_duration=app.config['PROGRESS_DURATION_SECONDS'],
                progress_cap=app.config['PROGRESS_CAP'],
            )
            result = pipeline.run(compression_request)

            # 5. Log completion
            duration_ms = int((datetime.utcnow() - start_time).total_seconds() * 1000)
            app.logger.info('Request completed', extra={
                'endpoint': '/compress',
                'image_filename': filename,
                'original_size': result.original_size,
                'compressed_size': result.compressed_size,
                'duration_ms': duration_ms,
                'status': 'success'
            })

            return jsonify(result.to_dict()), 200

        except (HTTPException, ClassifiedError):
            # Rendered by the registered error handlers
            raise

        except Exception as e:
            duration_ms = int((datetime.utcnow() - start_time).total_seconds() * 1000)
            app.logger.error(f'Request failed: {str(e)}', exc_info=True, extra={
                'endpoint': '/compress',
                'image_filename': filename,
                'duration_ms': duration_ms,
                'status': 'error'
            })
            raise InternalError(str(e) or 'Failed to process image', cause=e)
