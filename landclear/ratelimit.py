"""Per-IP fixed-window counters persisted in ``AuthRateLimitBucket``."""
from datetime import timedelta

from .models import AuthRateLimitBucket, db
from .utils import get_request_ip, utc_now_naive

SCOPE_ADMIN_LOGIN = 'admin_login'
SCOPE_QUOTE_FORM = 'quote_form'
SCOPE_MEDIA_UPLOAD = 'media_upload'


def get_bucket(scope, window_seconds):
    ip = get_request_ip()
    now = utc_now_naive()
    bucket = AuthRateLimitBucket.query.filter_by(scope=scope, ip=ip).first()
    if not bucket:
        bucket = AuthRateLimitBucket(
            scope=scope,
            ip=ip,
            count=0,
            reset_at=now + timedelta(seconds=window_seconds),
        )
        db.session.add(bucket)
        db.session.commit()
        return bucket
    if bucket.reset_at <= now:
        bucket.count = 0
        bucket.reset_at = now + timedelta(seconds=window_seconds)
        db.session.commit()
    return bucket


def is_rate_limited(scope, limit, window_seconds):
    """Return ``(limited, retry_after_seconds)`` for the caller's IP."""
    bucket = get_bucket(scope, window_seconds)
    if bucket.count < limit:
        return False, 0
    seconds = max(1, int((bucket.reset_at - utc_now_naive()).total_seconds()))
    return True, seconds


def register_attempt(scope, window_seconds):
    bucket = get_bucket(scope, window_seconds)
    bucket.count += 1
    db.session.commit()
    return bucket.count


def clear_attempts(scope):
    ip = get_request_ip()
    bucket = AuthRateLimitBucket.query.filter_by(scope=scope, ip=ip).first()
    if bucket:
        db.session.delete(bucket)
        db.session.commit()
