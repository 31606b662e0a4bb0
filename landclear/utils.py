"""Shared utility functions used across route modules."""
import ipaddress
import re
from datetime import datetime, timezone

from flask import request
from slugify import slugify

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def utc_now_naive():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def clean_text(value, max_length=255):
    if value is None:
        return ''
    return str(value).strip()[:max_length]


def escape_like(value):
    """Escape SQL LIKE wildcard characters."""
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def is_valid_email(value):
    return bool(EMAIL_RE.match(value or ''))


def make_slug(value, max_length=200):
    return slugify(value or '', max_length=max_length)


def parse_int(value, default=0, min_value=None, max_value=None):
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    if min_value is not None and parsed < min_value:
        return min_value
    if max_value is not None and parsed > max_value:
        return max_value
    return parsed


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {'1', 'true', 'yes', 'on'}


def parse_date(value):
    raw = clean_text(value, 40)
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def clean_string_list(values, max_items=50, max_length=120):
    if isinstance(values, str):
        values = values.split(',')
    if not isinstance(values, (list, tuple)):
        return []
    cleaned = []
    for item in values[:max_items]:
        text = clean_text(item, max_length)
        if text and text not in cleaned:
            cleaned.append(text)
    return cleaned


def isoformat(dt_value):
    return dt_value.isoformat() if dt_value else None


def normalized_ip(value):
    candidate = (value or '').split(',', 1)[0].strip()
    if not candidate:
        return ''
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return ''


def get_request_ip():
    # request.remote_addr is proxy-aware when ProxyFix is enabled by app config.
    remote_ip = normalized_ip(request.remote_addr)
    return remote_ip or 'unknown'


def normalize_path(value):
    """Strip query string, fragment and trailing slashes from a site path."""
    path = (value or '').strip().split('?', 1)[0].split('#', 1)[0]
    if not path.startswith('/'):
        path = '/' + path
    while len(path) > 1 and path.endswith('/'):
        path = path[:-1]
    return path
