"""
Middleware for request logging and security headers
"""
from flask import request
import logging

logger = logging.getLogger(__name__)


def setup_middleware(app):
    """Install request logging and response security headers"""

    @app.before_request
    def log_request():
        if not app.debug:
            logger.info("%s %s - %s", request.method, request.path, request.remote_addr)

    @app.after_request
    def set_security_headers(response):
        if not app.debug:
            # Prevent clickjacking
            response.headers['X-Frame-Options'] = 'DENY'
            # Prevent MIME type sniffing
            response.headers['X-Content-Type-Options'] = 'nosniff'
            response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
            response.headers['Cache-Control'] = 'no-store'
            # Only add HSTS over HTTPS
            if request.is_secure:
                response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response
