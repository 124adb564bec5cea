"""
CORS Configuration
"""

CORS_CONFIG = {
    "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    "allow_headers": [
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "X-Razorpay-Signature",
    ],
    "expose_headers": [
        "Content-Type",
        "Content-Disposition",
    ],
    "max_age": 86400,  # 24 hours
}


def init_cors(app):
    """Initialize CORS for the /api and /health routes; origins come from CORS_ORIGINS"""
    from flask_cors import CORS

    origins = [o.strip() for o in app.config['CORS_ORIGINS'].split(',') if o.strip()] or ['*']
    CORS(app,
         resources={r"/api/*": {"origins": origins},
                    r"/health*": {"origins": "*"}},
         methods=CORS_CONFIG["methods"],
         allow_headers=CORS_CONFIG["allow_headers"],
         expose_headers=CORS_CONFIG["expose_headers"],
         max_age=CORS_CONFIG["max_age"])

    app.logger.info("CORS enabled for origins: %s", ", ".join(origins))
