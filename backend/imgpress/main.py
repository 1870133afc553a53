"""
Main Flask application with configuration, logging, and error handlers.
"""
import os
import json
import logging
from datetime import datetime
from flask import Flask, jsonify
from dotenv import load_dotenv

from imgpress.errors import ClassifiedError
from imgpress.orchestrator import CompressionOrchestrator

# Load environment variables
load_dotenv()


class Config:
    """Configuration class to load environment variables."""

    TINIFY_API_KEY = os.getenv('TINIFY_API_KEY')
    TINIFY_BASE_URL = os.getenv('TINIFY_BASE_URL', 'https://api.tinify.com')
    API_KEY = os.getenv('API_KEY')
    FLASK_ENV = os.getenv('FLASK_ENV', 'production')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    MAX_REQUEST_SIZE = int(os.getenv('MAX_REQUEST_SIZE', 20 * 1024 * 1024))  # 20MB, base64 inflates uploads
    PREPROCESS_THRESHOLD_BYTES = int(os.getenv('PREPROCESS_THRESHOLD_BYTES', 5 * 1024 * 1024))  # 5MB
    PREPROCESS_MAX_DIMENSION = int(os.getenv('PREPROCESS_MAX_DIMENSION', 2048))
    PREPROCESS_QUALITY = float(os.getenv('PREPROCESS_QUALITY', 0.8))
    REQUEST_TIMEOUT_SECONDS = float(os.getenv('REQUEST_TIMEOUT_SECONDS', 60))
    LOSSLESS_SANITY_THRESHOLD = float(os.getenv('LOSSLESS_SANITY_THRESHOLD', 0.8))
    PROGRESS_DURATION_SECONDS = float(os.getenv('PROGRESS_DURATION_SECONDS', 3))
    PROGRESS_CAP = float(os.getenv('PROGRESS_CAP', 95))


LOG_EXTRA_FIELDS = (
    'endpoint',
    'image_filename',
    'phase',
    'percent',
    'kind',
    'original_size',
    'compressed_size',
    'duration_ms',
    'status',
    'environment',
)


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record):
        log_data = {
            'timestamp': datetime.utcnow().isoformat() + 'Z',
            'level': record.levelname,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Add extra fields if present
        for field in LOG_EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        # Add exception info if present
        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(app):
    """Set up JSON logging for the application and the pipeline modules."""
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())

    log_level = getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO)
    handler.setLevel(log_level)

    for logger in (app.logger, logging.getLogger('imgpress')):
        # Remove default handlers
        logger.handlers.clear()
        logger.setLevel(log_level)
        logger.addHandler(handler)
        # Prevent propagation to avoid duplicate logs
        logger.propagate = False


def create_app():
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(Config)
    app.config['MAX_CONTENT_LENGTH'] = Config.MAX_REQUEST_SIZE

    # Set up JSON logging
    setup_logging(app)

    # The API key is injected here and nowhere else
    if Config.TINIFY_API_KEY:
        app.orchestrator = CompressionOrchestrator(
            api_key=Config.TINIFY_API_KEY,
            base_url=Config.TINIFY_BASE_URL,
            timeout=Config.REQUEST_TIMEOUT_SECONDS,
            sanity_threshold=Config.LOSSLESS_SANITY_THRESHOLD,
        )
        app.logger.info('CompressionOrchestrator initialized')
    else:
        app.logger.warning('TINIFY_API_KEY not set, orchestrator not initialized')
        app.orchestrator = None

    # Register error handlers
    register_error_handlers(app)

    # Register routes
    register_routes(app)

    app.logger.info('Flask application initialized', extra={
        'environment': Config.FLASK_ENV,
    })

    return app


# status -> (error, error_code, fixed message; None uses the exception description)
HTTP_ERRORS = {
    400: ('Bad request', 'BAD_REQUEST', None),
    401: ('Unauthorized', 'AUTH_FAILED', 'Invalid or missing API key'),
    404: ('Not found', 'NOT_FOUND', None),
    413: ('Request entity too large', 'IMAGE_TOO_LARGE', None),
    500: ('Internal server error', 'INTERNAL_ERROR', 'An unexpected error occurred'),
    503: ('Service unavailable', 'SERVICE_UNAVAILABLE', None),
}


def register_error_handlers(app):
    """Register error handlers for pipeline failures and common HTTP status codes."""

    @app.errorhandler(ClassifiedError)
    def classified_error(error):
        """Handle pipeline failures."""
        app.logger.warning(f'{error.kind}: {error.message}', extra={'kind': error.kind})
        return jsonify(error.to_dict()), error.status_code

    def make_handler(status_code, title, error_code, message):
        def handle(error):
            if status_code >= 500:
                app.logger.error(f'{title}: {str(error)}', exc_info=status_code == 500)
            else:
                app.logger.warning(f'{title}: {str(error)}')

            if status_code == 413:
                description = f'Request exceeds maximum size of {app.config["MAX_CONTENT_LENGTH"]} bytes'
            else:
                description = message or getattr(error, 'description', None) or title

            return jsonify({
                'status': 'error',
                'error': title,
                'error_code': error_code,
                'message': str(description)
            }), status_code
        return handle

    for status_code, (title, error_code, message) in HTTP_ERRORS.items():
        app.register_error_handler(status_code, make_handler(status_code, title, error_code, message))


def register_routes(app):
    """Register application routes."""

    # Import and register compress route
    from imgpress.routes.compress import register_compress_route
    register_compress_route(app)

    @app.route('/health', methods=['GET'])
    def health():
        """
        Health check endpoint.
        Returns 200 if the compression service is configured, 503 otherwise.
        """
        if app.orchestrator is None:
            app.logger.error('Health check failed: TINIFY_API_KEY not configured')
            return jsonify({
                'status': 'unhealthy',
                'error': 'TINIFY_API_KEY not configured',
                'timestamp': datetime.utcnow().isoformat() + 'Z'
            }), 503

        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.utcnow().isoformat() + 'Z'
        }), 200


# Create the Flask app instance
app = create_app()


if __name__ == '__main__':
    # For local development only
    port = int(os.environ.get('PORT', 8080))
    app.run(host='0.0.0.0', port=port, debug=(Config.FLASK_ENV != 'production'))
