import os

from flask import Blueprint, abort, current_app, jsonify, request, send_from_directory
from werkzeug.utils import secure_filename

from .. import get_csrf_token, leads, public
from ..errors import RateLimitError
from ..ratelimit import SCOPE_QUOTE_FORM, is_rate_limited, register_attempt
from ..site_data import BLOG_CATEGORIES, QUOTE_FORM_OPTIONS

public_bp = Blueprint('public', __name__)
QUOTE_RECEIVED_MESSAGE = "Thanks! We received your request and will reach out within one business day."


def _safe_upload_path(stored_name):
    upload_root = os.path.abspath(current_app.config['UPLOAD_FOLDER'])
    raw_name = (stored_name or '').strip()
    safe_name = secure_filename(raw_name)
    if not safe_name or safe_name != raw_name:
        return None, None
    full_path = os.path.abspath(os.path.join(upload_root, safe_name))
    try:
        if os.path.commonpath([upload_root, full_path]) != upload_root:
            return None, None
    except ValueError:
        return None, None
    return safe_name, full_path


@public_bp.after_request
def public_cache_headers(response):
    if request.method != 'GET' or response.status_code != 200:
        return response
    if not request.path.startswith('/api/public/'):
        return response
    if request.args.get('preview_token'):
        response.headers['Cache-Control'] = 'no-store'
    else:
        max_age = current_app.config.get('PUBLIC_CACHE_MAX_AGE', 120)
        response.headers.setdefault('Cache-Control', f'public, max-age={max_age}')
    return response


@public_bp.get('/api/csrf-token')
def csrf_token():
    response = jsonify({'csrf_token': get_csrf_token()})
    response.headers['Cache-Control'] = 'no-store'
    return response


# Quote form
@public_bp.post('/api/public/leads')
def submit_quote():
    limit = current_app.config.get('QUOTE_FORM_LIMIT', 8)
    window = current_app.config.get('QUOTE_FORM_WINDOW_SECONDS', 3600)
    limited, seconds = is_rate_limited(SCOPE_QUOTE_FORM, limit, window)
    if limited:
        current_app.logger.warning('Quote form rate limit hit.')
        raise RateLimitError(seconds, f'Too many quote submissions. Please wait {seconds} seconds and try again.')
    register_attempt(SCOPE_QUOTE_FORM, window)

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = request.form.to_dict()
        payload['services_needed'] = request.form.getlist('services_needed')
    lead = leads.create_lead(payload)
    # Honeypot submissions get the same answer as real ones.
    return jsonify({'ok': True, 'message': QUOTE_RECEIVED_MESSAGE, 'lead_id': lead.id if lead else None}), 201


@public_bp.get('/api/public/quote-options')
def quote_options():
    return jsonify(QUOTE_FORM_OPTIONS)


# Blog
@public_bp.get('/api/public/blog')
def blog():
    return jsonify(public.blog_posts(request.args.to_dict()))


@public_bp.get('/api/public/blog/categories')
def blog_categories():
    return jsonify({'items': list(BLOG_CATEGORIES)})


@public_bp.get('/api/public/blog/<slug>')
def blog_post(slug):
    return jsonify(public.blog_post(slug))


# Pages and showcase
@public_bp.get('/api/public/pages/<slug>')
def page(slug):
    return jsonify(public.page(slug, request.args.get('preview_token')))


@public_bp.get('/api/public/projects')
def projects():
    return jsonify({'items': public.projects(request.args.to_dict())})


@public_bp.get('/api/public/projects/<slug>')
def project(slug):
    return jsonify(public.project(slug))


@public_bp.get('/api/public/testimonials')
def testimonials():
    return jsonify({'items': public.testimonials(request.args.to_dict())})


@public_bp.get('/api/public/services')
def services():
    return jsonify({'items': public.services()})


@public_bp.get('/api/public/services/<slug>')
def service(slug):
    return jsonify(public.service(slug))


@public_bp.get('/api/public/service-areas')
def service_areas():
    return jsonify({'items': public.service_areas()})


@public_bp.get('/api/public/service-areas/<slug>')
def service_area(slug):
    return jsonify(public.service_area(slug))


# Site
@public_bp.get('/api/public/theme')
def theme():
    return jsonify({'theme': public.theme()})


@public_bp.get('/api/public/settings')
def site_settings():
    return jsonify(public.site_settings())


@public_bp.get('/api/public/redirects/resolve')
def resolve_redirect():
    return jsonify(public.resolve_redirect(request.args.get('path', '')))


@public_bp.get('/uploads/<filename>')
def uploaded_file(filename):
    safe_filename, full_path = _safe_upload_path(filename)
    if not safe_filename or not full_path or not os.path.exists(full_path):
        abort(404)
    return send_from_directory(current_app.config['UPLOAD_FOLDER'], safe_filename, conditional=True, etag=True)
