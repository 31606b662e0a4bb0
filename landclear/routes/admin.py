from datetime import datetime, timezone
from functools import wraps

from flask import Blueprint, Response, current_app, jsonify, request, session
from flask_login import current_user, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash

from .. import leads, store
from ..access import ADMIN_ROOT, can_access, visible_navigation
from ..errors import AuthError, RateLimitError, ValidationError
from ..models import AdminUser, CmsPage, BlogPost, STATUS_PUBLISHED, db
from ..ratelimit import SCOPE_ADMIN_LOGIN, SCOPE_MEDIA_UPLOAD, clear_attempts, is_rate_limited, register_attempt
from ..site_data import ADMIN_DOCS
from ..utils import clean_text, parse_bool, utc_now_naive

admin_bp = Blueprint('admin', __name__)
AUTH_DUMMY_HASH = generate_password_hash('landclear::dummy-auth-check')


def nav_required(path):
    """Gate a view on the navigation path it belongs to.

    Unauthenticated callers get 401 before any policy evaluation; callers whose
    role cannot reach ``path`` get 403 and the view never runs.
    """
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                raise AuthError()
            if not can_access(current_user.role, path):
                current_app.logger.warning(
                    'Denied %s (%s) access to %s.', current_user.email, current_user.role, path
                )
                raise AuthError(forbidden=True)
            return view(*args, **kwargs)
        return wrapped
    return decorator


def json_body():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError(message='Expected a JSON object body.')
    return payload


def actor_name():
    return current_user.username if current_user.is_authenticated else 'System'


def serialize_user(user):
    return {
        'id': user.id,
        'email': user.email,
        'display_name': user.display_name,
        'role': user.role_key,
        'role_label': user.role_label,
    }


# Session
@admin_bp.post('/login')
def login():
    limit = current_app.config.get('ADMIN_LOGIN_LIMIT', 5)
    window = current_app.config.get('ADMIN_LOGIN_WINDOW_SECONDS', 300)
    limited, seconds = is_rate_limited(SCOPE_ADMIN_LOGIN, limit, window)
    if limited:
        raise RateLimitError(seconds, f'Too many login attempts. Try again in {seconds} seconds.')

    payload = request.get_json(silent=True)
    if payload is None:
        payload = request.form
    elif not isinstance(payload, dict):
        raise ValidationError(message='Expected a JSON object body.')
    email = clean_text(payload.get('email'), 200).lower()
    password = payload.get('password') or ''
    user = AdminUser.query.filter_by(email=email).first() if email else None
    password_ok = False
    if user:
        password_ok = user.check_password(password)
    else:
        # Keep response timing closer for unknown accounts.
        check_password_hash(AUTH_DUMMY_HASH, password)
    if user and password_ok and user.role_key:
        clear_attempts(SCOPE_ADMIN_LOGIN)
        csrf_token = session.get('_csrf_token')
        session.clear()
        if csrf_token:
            session['_csrf_token'] = csrf_token
        session.permanent = True
        login_user(user)
        user.last_login_at = utc_now_naive()
        db.session.commit()
        current_app.logger.info('Admin login succeeded for %s.', user.email)
        return jsonify({'authenticated': True, 'user': serialize_user(user)})

    attempts = register_attempt(SCOPE_ADMIN_LOGIN, window)
    remaining = max(0, limit - attempts)
    current_app.logger.warning('Admin login failed for %s.', email or '<blank>')
    raise AuthError(f'Invalid email or password. {remaining} attempt(s) remaining before temporary lock.')


@admin_bp.post('/logout')
def logout():
    if current_user.is_authenticated:
        logout_user()
    return jsonify({'authenticated': False})


@admin_bp.get('/me')
def me():
    if not current_user.is_authenticated:
        raise AuthError()
    return jsonify({'authenticated': True, 'user': serialize_user(current_user)})


@admin_bp.get('/navigation')
def navigation():
    if not current_user.is_authenticated:
        raise AuthError()
    expanded = {}
    for href in request.args.getlist('open'):
        expanded[href] = True
    for href in request.args.getlist('closed'):
        expanded[href] = False
    current_path = request.args.get('path') or ADMIN_ROOT
    return jsonify({'items': visible_navigation(current_user.role, current_path, expanded)})


@admin_bp.get('/access')
def access():
    if not current_user.is_authenticated:
        raise AuthError()
    path = request.args.get('path') or ADMIN_ROOT
    return jsonify({'path': path, 'allowed': can_access(current_user.role, path)})


# Dashboard
@admin_bp.get('/dashboard')
@nav_required(ADMIN_ROOT)
def dashboard():
    payload = {
        'user': serialize_user(current_user),
        'content': {
            'pages': CmsPage.query.count(),
            'published_pages': CmsPage.query.filter_by(status=STATUS_PUBLISHED).count(),
            'blog_posts': BlogPost.query.count(),
        },
    }
    if can_access(current_user.role, '/admin/leads'):
        payload['leads'] = leads.lead_stats()
    return jsonify(payload)


# Leads
@admin_bp.get('/leads')
@nav_required('/admin/leads')
def lead_list():
    return jsonify(leads.list_leads(request.args.to_dict()))


@admin_bp.get('/leads/stats')
@nav_required('/admin/leads')
def lead_stats():
    return jsonify(leads.lead_stats())


@admin_bp.get('/leads/export')
@admin_bp.get('/leads/export.csv')
@nav_required('/admin/leads')
def lead_export():
    csv_text = leads.export_leads_csv(request.args.to_dict(), actor=actor_name())
    stamp = datetime.now(timezone.utc).strftime('%Y%m%d')
    return Response(
        csv_text,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename="leads-{stamp}.csv"'},
    )


@admin_bp.get('/leads/<int:lead_id>')
@nav_required('/admin/leads')
def lead_detail(lead_id):
    return jsonify(leads.serialize_lead(leads.get_lead(lead_id)))


@admin_bp.patch('/leads/<int:lead_id>')
@nav_required('/admin/leads')
def lead_update(lead_id):
    lead = leads.update_lead(lead_id, json_body(), actor=actor_name())
    return jsonify(leads.serialize_lead(lead))


@admin_bp.get('/leads/<int:lead_id>/notes')
@nav_required('/admin/leads')
def lead_notes(lead_id):
    return jsonify({'items': leads.lead_notes(lead_id)})


@admin_bp.post('/leads/<int:lead_id>/notes')
@nav_required('/admin/leads')
def lead_add_note(lead_id):
    note = leads.add_note(lead_id, json_body().get('note'), author=actor_name())
    return jsonify(leads.serialize_note(note)), 201


@admin_bp.get('/leads/<int:lead_id>/activity')
@nav_required('/admin/leads')
def lead_activity(lead_id):
    return jsonify({'items': leads.lead_activity(lead_id)})


# Content resources
def register_resource(url, nav_path, entity_store, name, paginated=False):
    """Wire list/create/get/update/delete (and publish when supported) for a store."""
    guard = nav_required(nav_path)

    def list_items():
        filters = request.args.to_dict()
        if paginated:
            return jsonify(entity_store.paginate(filters))
        return jsonify({'items': entity_store.list(filters)})

    def create_item():
        entity = entity_store.create(json_body(), actor=current_user)
        return jsonify(entity_store.serialize(entity)), 201

    def get_item(item_id):
        return jsonify(entity_store.serialize(entity_store.get(item_id)))

    def update_item(item_id):
        entity = entity_store.update(item_id, json_body(), actor=current_user)
        return jsonify(entity_store.serialize(entity))

    def delete_item(item_id):
        entity_store.delete(item_id)
        return jsonify({'deleted': True, 'id': item_id})

    admin_bp.add_url_rule(url, f'{name}_list', guard(list_items), methods=['GET'])
    admin_bp.add_url_rule(url, f'{name}_create', guard(create_item), methods=['POST'])
    admin_bp.add_url_rule(f'{url}/<int:item_id>', f'{name}_get', guard(get_item), methods=['GET'])
    admin_bp.add_url_rule(f'{url}/<int:item_id>', f'{name}_update', guard(update_item), methods=['PATCH', 'PUT'])
    admin_bp.add_url_rule(f'{url}/<int:item_id>', f'{name}_delete', guard(delete_item), methods=['DELETE'])

    if entity_store.publish_attr:
        def publish_item(item_id):
            payload = request.get_json(silent=True) or {}
            if 'published' in payload:
                entity = entity_store.set_published(item_id, parse_bool(payload['published']), actor=current_user)
            else:
                entity = entity_store.toggle_publish(item_id, actor=current_user)
            return jsonify(entity_store.serialize(entity))

        admin_bp.add_url_rule(f'{url}/<int:item_id>/publish', f'{name}_publish', guard(publish_item), methods=['POST'])


register_resource('/crm/projects', '/admin/crm/projects', store.projects, 'projects', paginated=True)
register_resource('/blog/posts', '/admin/blog', store.blog_posts, 'blog_posts', paginated=True)
register_resource('/cms/pages', '/admin/cms/pages', store.pages, 'cms_pages', paginated=True)
register_resource('/cms/templates', '/admin/cms/templates', store.templates, 'cms_templates')
register_resource('/cms/blocks', '/admin/cms/blocks', store.blocks, 'cms_blocks')
register_resource('/cms/media', '/admin/cms/media', store.media, 'cms_media', paginated=True)
register_resource('/cms/themes', '/admin/cms/themes', store.themes, 'cms_themes')
register_resource('/cms/redirects', '/admin/cms/redirects', store.redirects, 'cms_redirects')
register_resource('/cms/testimonials', '/admin/cms/testimonials', store.testimonials, 'cms_testimonials')


@admin_bp.post('/crm/projects/from-lead/<int:lead_id>')
@nav_required('/admin/crm/projects')
def project_from_lead(lead_id):
    project = leads.convert_to_project(lead_id, request.get_json(silent=True) or {}, actor=actor_name())
    return jsonify(store.projects.serialize(project)), 201


@admin_bp.get('/cms/pages/<int:page_id>/versions')
@nav_required('/admin/cms/pages')
def page_versions(page_id):
    return jsonify({'items': store.pages.versions(page_id)})


@admin_bp.post('/cms/pages/<int:page_id>/versions/<int:version_id>/restore')
@nav_required('/admin/cms/pages')
def page_restore(page_id, version_id):
    page = store.pages.restore(page_id, version_id, actor=current_user)
    return jsonify(store.pages.serialize(page))


@admin_bp.post('/cms/pages/<int:page_id>/preview-token')
@nav_required('/admin/cms/pages')
def page_preview_token(page_id):
    return jsonify(store.pages.issue_preview_token(page_id))


@admin_bp.post('/cms/media/upload')
@nav_required('/admin/cms/media')
def media_upload():
    limit = current_app.config.get('MEDIA_UPLOAD_LIMIT', 10)
    window = current_app.config.get('MEDIA_UPLOAD_WINDOW_SECONDS', 60)
    limited, seconds = is_rate_limited(SCOPE_MEDIA_UPLOAD, limit, window)
    if limited:
        raise RateLimitError(seconds, 'Upload limit reached. Please wait a minute and try again.')
    register_attempt(SCOPE_MEDIA_UPLOAD, window)
    entity = store.media.upload(request.files.get('file'), request.form.to_dict())
    return jsonify(store.media.serialize(entity)), 201


@admin_bp.post('/cms/themes/<int:theme_id>/activate')
@nav_required('/admin/cms/themes')
def theme_activate(theme_id):
    return jsonify(store.themes.serialize(store.themes.activate(theme_id)))


# Branding edits the tokens of the active theme preset.
@admin_bp.get('/branding')
@nav_required('/admin/branding')
def branding():
    return jsonify({'theme': store.themes.active(), 'settings': store.settings.get_all()})


@admin_bp.put('/branding')
@nav_required('/admin/branding')
def branding_update():
    active = store.themes.active()
    if active is None:
        raise ValidationError(message='Activate a theme preset before editing branding.')
    tokens = json_body().get('tokens')
    entity = store.themes.update(active['id'], {'tokens': tokens}, actor=current_user)
    return jsonify({'theme': store.themes.serialize(entity)})


@admin_bp.get('/settings')
@nav_required('/admin/settings')
def settings():
    return jsonify(store.settings.get_all())


@admin_bp.put('/settings')
@nav_required('/admin/settings')
def settings_update():
    return jsonify(store.settings.put(json_body()))


@admin_bp.get('/docs')
@nav_required('/admin/docs')
def docs():
    return jsonify({'items': list(ADMIN_DOCS)})
