from flask import Blueprint, g, jsonify

from cognicare.extensions import db
from cognicare.services.analytics_service import AnalyticsAggregator, date_range_from_request
from cognicare.services.feature_gate import ADVANCED_ANALYTICS
from cognicare.utils.decorators import addon_required, permission_required
from cognicare.utils.identity import caller_required
from cognicare.utils.permissions import Action, Resource

analytics_bp = Blueprint('analytics', __name__, url_prefix='/api/analytics')


@analytics_bp.route('/dashboard', methods=['GET'])
@caller_required()
@permission_required(Action.READ, Resource.ANALYTICS)
def dashboard():
    """Headline numbers; Query params: start_date, end_date (default last 30 days)"""
    start, end = date_range_from_request()
    return jsonify({
        'success': True,
        'analytics': AnalyticsAggregator(db.session, g.caller).dashboard(start, end)
    }), 200


@analytics_bp.route('/appointments', methods=['GET'])
@caller_required()
@permission_required(Action.READ, Resource.ANALYTICS)
@addon_required(ADVANCED_ANALYTICS)
def appointment_analytics():
    start, end = date_range_from_request()
    return jsonify({
        'success': True,
        'analytics': AnalyticsAggregator(db.session, g.caller).appointments(start, end)
    }), 200


@analytics_bp.route('/patients', methods=['GET'])
@caller_required()
@permission_required(Action.READ, Resource.ANALYTICS)
@addon_required(ADVANCED_ANALYTICS)
def patient_analytics():
    start, end = date_range_from_request()
    return jsonify({
        'success': True,
        'analytics': AnalyticsAggregator(db.session, g.caller).patients(start, end)
    }), 200
