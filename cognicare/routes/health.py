"""
Health check endpoints for monitoring and load balancers
"""
from flask import Blueprint, jsonify
from cognicare.extensions import db
from cognicare.models.base import isoformat, utcnow

health_bp = Blueprint('health', __name__, url_prefix='/health')


@health_bp.route('', methods=['GET'])
def health_check():
    """Basic health check - no database connection"""
    return jsonify({
        'status': 'healthy',
        'timestamp': isoformat(utcnow()),
        'service': 'cognicare-backend'
    }), 200


@health_bp.route('/ready', methods=['GET'])
def readiness_check():
    """Readiness check - includes database connection"""
    try:
        db.session.execute(db.text('SELECT 1'))
        db_status = 'connected'
    except Exception as e:
        db.session.rollback()
        db_status = f'error: {e.__class__.__name__}'

    return jsonify({
        'status': 'ready' if db_status == 'connected' else 'not_ready',
        'database': db_status,
        'timestamp': isoformat(utcnow())
    }), 200 if db_status == 'connected' else 503


@health_bp.route('/live', methods=['GET'])
def liveness_check():
    """Liveness check for containers"""
    return jsonify({
        'status': 'alive',
        'timestamp': isoformat(utcnow())
    }), 200
