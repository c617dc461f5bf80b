"""
Subscribers Routes
==================

Public (CORS-enabled, no auth):
- POST /subscribe    -- start double opt-in, body {email, captchaToken}
- GET  /confirm      -- confirm with ?token=
- GET  /unsubscribe  -- unsubscribe with ?email= (POST with JSON body also accepted)

Admin (session['admin_id'] required):
- GET /              -- list subscribers, optional ?state=
- GET /<id>          -- one subscriber
- GET /stats         -- counts per subscription state
- GET /logs          -- recent persisted events, optional ?source= and ?limit=
"""

import logging
from functools import wraps
from urllib.parse import urlparse

from flask import request, jsonify, session, current_app
from flask_cors import cross_origin

from subscribekit.core import LoggingService, db_log, get_config
from subscribekit.modules.captcha import CaptchaConfigurationError
from subscribekit.modules.settings import helpers
from . import subscribers_bp
from .errors import SubscriptionError
from .models import SubscriptionState
from .notifier import NotifierConfigurationError

logger = logging.getLogger(__name__)

# Longer names are truncated before they are stored
MAX_NAME_LENGTH = 100

# Form field names used by the provider widgets when the site posts the raw form
CAPTCHA_FIELDS = ('captchaToken', 'cf-turnstile-response', 'g-recaptcha-response')


def configure_cors(app):
    """
    Store the allowed origins as CORS_ORIGINS, which cross_origin reads per request.
    Browser widgets post from the public site, which usually lives on another
    origin: CORS_ORIGINS (comma separated), else the FRONTEND_URL origin, else any.
    """
    with app.app_context():
        configured = get_config('CORS_ORIGINS') or helpers.get_frontend_url() or '*'
    if isinstance(configured, str):
        configured = configured.split(',')
    app.config['CORS_ORIGINS'] = [_origin(entry) for entry in configured if entry and entry.strip()]
    return app.config['CORS_ORIGINS']


def _origin(url):
    """scheme://host[:port] of a URL; anything without a scheme (e.g. '*') is kept as-is"""
    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme and parsed.netloc:
        return f'{parsed.scheme}://{parsed.netloc}'
    return url.rstrip('/')


def _get_extension():
    return current_app.extensions['subscribekit']


def get_client_ip():
    """Get client IP address from request"""
    if request.headers.get('X-Forwarded-For'):
        return request.headers.get('X-Forwarded-For').split(',')[0].strip()
    elif request.headers.get('X-Real-IP'):
        return request.headers.get('X-Real-IP')
    else:
        return request.remote_addr


def _request_data():
    """JSON body, falling back to form fields"""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _text_field(data, key):
    """Stripped string value of a body field; anything that is not a non-empty string is None"""
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()


def _error_response(error):
    if error.status_code >= 500:
        logger.error(f"{error.code}: {error.message}")
    return jsonify(error.to_dict()), error.status_code


def admin_required(f):
    """Decorator to require admin login"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'admin_id' not in session:
            return jsonify({'error': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function


# ===================
# PUBLIC API ROUTES
# ===================

@subscribers_bp.route('/subscribe', methods=['POST', 'OPTIONS'])
@cross_origin(supports_credentials=False)
def subscribe():
    """Handle new subscription requests"""
    data = _request_data()
    captcha_token = next((_text_field(data, field) for field in CAPTCHA_FIELDS if _text_field(data, field)), None)
    name = _text_field(data, 'name')

    try:
        workflow = _get_extension().build_workflow()
        result = workflow.subscribe(
            data.get('email'),
            captcha_token,
            remote_ip=get_client_ip(),
            name=name[:MAX_NAME_LENGTH] if name else None,
        )
        return jsonify(result), 200

    except SubscriptionError as e:
        return _error_response(e)
    except (CaptchaConfigurationError, NotifierConfigurationError) as e:
        logger.error(f"Subscription misconfigured: {e}")
        db_log('error', 'subscribers', 'Subscription misconfigured', {'error': str(e)})
        return jsonify({'error': 'Server configuration error.'}), 500
    except Exception as e:
        logger.error(f"Subscription error: {e}")
        LoggingService.log_exception('subscribers', 'Subscription error', e)
        return jsonify({'error': 'An error occurred during the subscription process.'}), 500


@subscribers_bp.route('/confirm', methods=['GET', 'OPTIONS'])
@cross_origin(supports_credentials=False)
def confirm():
    """Confirm a pending subscription from the emailed link"""
    try:
        workflow = _get_extension().build_workflow()
        return jsonify(workflow.confirm(request.args.get('token'))), 200

    except SubscriptionError as e:
        return _error_response(e)
    except Exception as e:
        logger.error(f"Confirmation error: {e}")
        LoggingService.log_exception('subscribers', 'Confirmation error', e)
        return jsonify({'error': 'An error occurred during confirmation.'}), 500


@subscribers_bp.route('/unsubscribe', methods=['GET', 'POST', 'OPTIONS'])
@cross_origin(supports_credentials=False)
def unsubscribe():
    """Handle unsubscribe requests"""
    if request.method == 'POST':
        email = _request_data().get('email')
    else:
        email = request.args.get('email')

    try:
        workflow = _get_extension().build_workflow()
        return jsonify(workflow.unsubscribe(email)), 200

    except SubscriptionError as e:
        return _error_response(e)
    except Exception as e:
        logger.error(f"Unsubscribe error: {e}")
        LoggingService.log_exception('subscribers', 'Unsubscribe error', e)
        return jsonify({'error': 'An error occurred during unsubscription.'}), 500


# ===================
# ADMIN ROUTES
# ===================

@subscribers_bp.route('/', methods=['GET'])
@admin_required
def list_subscribers():
    """List subscribers, newest first"""
    state = request.args.get('state')
    if state:
        try:
            state = SubscriptionState(state)
        except ValueError:
            return jsonify({'error': f'Unknown state: {state}'}), 400

    subscribers = _get_extension().repository.list(state=state or None)
    return jsonify({
        'subscribers': [s.to_public_dict() for s in subscribers],
        'total_count': len(subscribers),
    }), 200


@subscribers_bp.route('/<int:subscriber_id>', methods=['GET'])
@admin_required
def get_subscriber(subscriber_id):
    subscriber = _get_extension().repository.get(subscriber_id)
    if subscriber is None:
        return jsonify({'error': 'Subscriber not found'}), 404
    return jsonify(subscriber.to_public_dict()), 200


@subscribers_bp.route('/stats', methods=['GET'])
@admin_required
def get_subscriber_stats():
    """Get subscriber counts per state"""
    counts = _get_extension().repository.count_by_state()
    return jsonify({'counts': counts, 'total': sum(counts.values())}), 200


@subscribers_bp.route('/logs', methods=['GET'])
@admin_required
def get_subscription_logs():
    """Recent persisted events, newest first (?source=subscribers|captcha|email, ?limit=)"""
    limit = request.args.get('limit', 50, type=int)
    entries = LoggingService.recent(source=request.args.get('source'), limit=max(1, min(limit, 500)))
    return jsonify({'logs': entries, 'count': len(entries)}), 200
