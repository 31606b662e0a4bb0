import os
from datetime import timedelta
from urllib.parse import urlparse

basedir = os.path.abspath(os.path.dirname(__file__))


def _is_managed_runtime():
    return bool(
        os.environ.get('RAILWAY_ENVIRONMENT')
        or os.environ.get('RAILWAY_PROJECT_ID')
        or os.environ.get('RENDER')
        or os.environ.get('RENDER_SERVICE_ID')
    )


def _is_production_runtime():
    flask_env = (os.environ.get('FLASK_ENV') or '').strip().lower()
    railway_env = (os.environ.get('RAILWAY_ENVIRONMENT') or '').strip().lower()
    render_env = (os.environ.get('RENDER_ENV') or '').strip().lower()
    return flask_env == 'production' or railway_env == 'production' or render_env == 'production'


def _as_bool(value, default=False):
    if value is None:
        return default
    return str(value).strip().lower() in {'1', 'true', 'yes', 'on'}


def _as_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value, default):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _database_url():
    raw = (os.environ.get('DATABASE_URL') or '').strip()
    if raw.startswith('postgres://'):
        raw = raw.replace('postgres://', 'postgresql://', 1)
    if raw:
        return raw
    return 'sqlite:///' + os.path.join(basedir, 'site.db')


def _database_engine_options(database_url):
    if not database_url.startswith('sqlite'):
        options = {
            'pool_pre_ping': True,
            'pool_recycle': 300,
        }
        parsed = urlparse(database_url)
        if parsed.scheme.startswith('postgresql'):
            connect_timeout_seconds = max(1, _as_int(os.environ.get('DB_CONNECT_TIMEOUT_SECONDS'), 5))
            statement_timeout_ms = max(1000, _as_int(os.environ.get('DB_STATEMENT_TIMEOUT_MS'), 8000))
            options['connect_args'] = {
                'connect_timeout': connect_timeout_seconds,
                'options': f'-c statement_timeout={statement_timeout_ms}',
            }
        return options
    return {}


class Config:
    SECRET_KEY = os.environ.get('SESSION_SECRET') or os.environ.get('SECRET_KEY') or ''
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_ENGINE_OPTIONS = _database_engine_options(SQLALCHEMY_DATABASE_URI)
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    UPLOAD_FOLDER = (os.environ.get('UPLOAD_FOLDER') or '').strip() or os.path.join(basedir, 'uploads')
    UPLOAD_URL_PREFIX = '/uploads'
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024  # 10MB max upload
    MAX_UPLOAD_IMAGE_PIXELS = _as_int(os.environ.get('MAX_UPLOAD_IMAGE_PIXELS'), 40_000_000)
    ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'webp'}
    ALLOWED_UPLOAD_MIME_TYPES = {'image/png', 'image/jpeg', 'image/webp'}
    MEDIA_UPLOAD_LIMIT = _as_int(os.environ.get('MEDIA_UPLOAD_LIMIT'), 10)
    MEDIA_UPLOAD_WINDOW_SECONDS = _as_int(os.environ.get('MEDIA_UPLOAD_WINDOW_SECONDS'), 60)

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_SECURE = _as_bool(
        os.environ.get('SESSION_COOKIE_SECURE'),
        ((os.environ.get('PREFERRED_URL_SCHEME') or '').lower() == 'https') or _is_production_runtime(),
    )
    PERMANENT_SESSION_LIFETIME = timedelta(hours=_as_int(os.environ.get('SESSION_LIFETIME_HOURS'), 24))
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = 'Lax'
    REMEMBER_COOKIE_SECURE = SESSION_COOKIE_SECURE
    TRUST_PROXY_HEADERS = _as_bool(os.environ.get('TRUST_PROXY_HEADERS'), _is_managed_runtime())
    PREFERRED_URL_SCHEME = os.environ.get('PREFERRED_URL_SCHEME') or ('https' if SESSION_COOKIE_SECURE else 'http')
    APP_BASE_URL = (os.environ.get('APP_BASE_URL') or '').rstrip('/')
    HSTS_ENABLED = _as_bool(os.environ.get('HSTS_ENABLED'), True)
    HSTS_MAX_AGE = _as_int(os.environ.get('HSTS_MAX_AGE'), 31536000)

    ADMIN_EMAIL = (os.environ.get('ADMIN_EMAIL') or 'admin@brushboss.com').strip().lower()
    ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD') or ''
    ADMIN_LOGIN_LIMIT = _as_int(os.environ.get('ADMIN_LOGIN_LIMIT'), 5)
    ADMIN_LOGIN_WINDOW_SECONDS = _as_int(os.environ.get('ADMIN_LOGIN_WINDOW_SECONDS'), 300)
    QUOTE_FORM_LIMIT = _as_int(os.environ.get('QUOTE_FORM_LIMIT'), 8)
    QUOTE_FORM_WINDOW_SECONDS = _as_int(os.environ.get('QUOTE_FORM_WINDOW_SECONDS'), 3600)
    PREVIEW_TOKEN_TTL_SECONDS = _as_int(os.environ.get('PREVIEW_TOKEN_TTL_SECONDS'), 900)

    # The list cache is per process; enable it only for single-process deployments.
    LIST_CACHE_TTL_SECONDS = max(0, _as_int(os.environ.get('LIST_CACHE_TTL_SECONDS'), 0))
    LIST_CACHE_MAX_ENTRIES = max(1, _as_int(os.environ.get('LIST_CACHE_MAX_ENTRIES'), 256))
    PUBLIC_CACHE_MAX_AGE = max(0, _as_int(os.environ.get('PUBLIC_CACHE_MAX_AGE'), 120))
    LEADS_DEFAULT_PAGE_SIZE = 20
    LEADS_MAX_PAGE_SIZE = 100
    SEED_SAMPLE_CONTENT = _as_bool(os.environ.get('SEED_SAMPLE_CONTENT'), True)

    SMTP_HOST = (os.environ.get('SMTP_HOST') or '').strip()
    SMTP_PORT = _as_int(os.environ.get('SMTP_PORT'), 587)
    SMTP_USERNAME = (os.environ.get('SMTP_USERNAME') or '').strip()
    SMTP_PASSWORD = os.environ.get('SMTP_PASSWORD') or ''
    SMTP_USE_TLS = _as_bool(os.environ.get('SMTP_USE_TLS'), True)
    SMTP_USE_SSL = _as_bool(os.environ.get('SMTP_USE_SSL'), False)
    MAIL_FROM = (os.environ.get('MAIL_FROM') or SMTP_USERNAME or 'no-reply@localhost').strip()
    LEAD_NOTIFICATION_EMAILS = os.environ.get('LEAD_NOTIFICATION_EMAILS') or ''
    MAILGUN_API_KEY = (os.environ.get('MAILGUN_API_KEY') or '').strip()
    MAILGUN_DOMAIN = (os.environ.get('MAILGUN_DOMAIN') or '').strip()

    SENTRY_DSN = (os.environ.get('SENTRY_DSN') or '').strip()
    SENTRY_ENVIRONMENT = (os.environ.get('SENTRY_ENVIRONMENT') or '').strip()
    SENTRY_TRACES_SAMPLE_RATE = _as_float(os.environ.get('SENTRY_TRACES_SAMPLE_RATE'), 0.0)
    LOG_JSON = _as_bool(os.environ.get('LOG_JSON'), True)
    LOG_LEVEL = (os.environ.get('LOG_LEVEL') or 'INFO').strip().upper()
