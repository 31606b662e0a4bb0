from datetime import datetime, timezone
import json
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()

STATUS_DRAFT = 'draft'
STATUS_PUBLISHED = 'published'
CONTENT_STATUSES = (STATUS_DRAFT, STATUS_PUBLISHED)

ROLE_SUPER_ADMIN = 'super_admin'
ROLE_ADMIN = 'admin'
ROLE_EDITOR = 'editor'
ROLE_SALES = 'sales'
USER_ROLE_CHOICES = (
    ROLE_SUPER_ADMIN,
    ROLE_ADMIN,
    ROLE_EDITOR,
    ROLE_SALES,
)
USER_ROLE_LABELS = {
    ROLE_SUPER_ADMIN: 'Super Admin',
    ROLE_ADMIN: 'Admin',
    ROLE_EDITOR: 'Editor',
    ROLE_SALES: 'Sales',
}

LEAD_STATUS_NEW = 'New'
LEAD_STATUS_CONTACTED = 'Contacted'
LEAD_STATUS_SCHEDULED = 'Scheduled'
LEAD_STATUS_WON = 'Won'
LEAD_STATUS_LOST = 'Lost'
LEAD_STATUSES = (
    LEAD_STATUS_NEW,
    LEAD_STATUS_CONTACTED,
    LEAD_STATUS_SCHEDULED,
    LEAD_STATUS_WON,
    LEAD_STATUS_LOST,
)

LEAD_ACTIVITY_CREATED = 'CREATED'
LEAD_ACTIVITY_STATUS_CHANGE = 'STATUS_CHANGE'
LEAD_ACTIVITY_NOTE_ADDED = 'NOTE_ADDED'
LEAD_ACTIVITY_ASSIGNED = 'ASSIGNED'
LEAD_ACTIVITY_EXPORTED = 'EXPORTED'

PAGE_TYPES = ('page', 'landing', 'service', 'city')
REDIRECT_CODES = (301, 302)


def utc_now_naive():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_user_role(value):
    candidate = (value or '').strip().lower()
    if candidate in USER_ROLE_CHOICES:
        return candidate
    return None


def normalize_lead_status(value):
    candidate = (value or '').strip().lower()
    for status in LEAD_STATUSES:
        if status.lower() == candidate:
            return status
    return None


def _loads(raw, fallback):
    try:
        value = json.loads(raw) if raw else fallback
    except (TypeError, ValueError):
        return fallback
    return value if isinstance(value, type(fallback)) else fallback


def _dumps(value):
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


class JsonFieldsMixin:
    """Expose `<name>_json` text columns as decoded Python values."""

    def get_json(self, name, fallback):
        return _loads(getattr(self, f'{name}_json'), fallback)

    def set_json(self, name, value):
        setattr(self, f'{name}_json', _dumps(value))


class AdminUser(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(200))
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(30), nullable=False, default=ROLE_EDITOR, index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    last_login_at = db.Column(db.DateTime)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def role_key(self):
        return normalize_user_role(self.role)

    @property
    def role_label(self):
        return USER_ROLE_LABELS.get(self.role_key, 'Unknown')

    @property
    def username(self):
        return self.display_name or self.email


class Lead(JsonFieldsMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(200), nullable=False)
    phone = db.Column(db.String(50), nullable=False)
    email = db.Column(db.String(200), nullable=False, index=True)
    job_address = db.Column(db.String(300), nullable=False)
    county = db.Column(db.String(80), nullable=False, index=True)
    services_needed_json = db.Column(db.Text, nullable=False, default='[]')
    property_type = db.Column(db.String(40), nullable=False)
    approximate_area = db.Column(db.String(40), nullable=False)
    access_notes = db.Column(db.Text)
    desired_outcome = db.Column(db.Text)
    timeline = db.Column(db.String(40), nullable=False)
    budget_comfort = db.Column(db.String(80), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=LEAD_STATUS_NEW, index=True)
    tags_json = db.Column(db.Text, nullable=False, default='[]')
    assigned_to = db.Column(db.String(200))
    last_contacted_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    notes = db.relationship(
        'LeadNote',
        backref='lead',
        lazy=True,
        cascade='all, delete-orphan',
        order_by='LeadNote.created_at.desc()',
    )
    activity = db.relationship(
        'LeadActivity',
        backref='lead',
        lazy=True,
        cascade='all, delete-orphan',
        order_by='LeadActivity.created_at.desc()',
    )

    __table_args__ = (
        db.Index('ix_lead_status_created', 'status', 'created_at'),
    )

    @property
    def services_needed(self):
        return self.get_json('services_needed', [])

    @property
    def tags(self):
        return self.get_json('tags', [])


class LeadNote(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    lead_id = db.Column(db.Integer, db.ForeignKey('lead.id'), nullable=False, index=True)
    note = db.Column(db.Text, nullable=False)
    author = db.Column(db.String(200), nullable=False, default='System')
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)


class LeadActivity(JsonFieldsMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    lead_id = db.Column(db.Integer, db.ForeignKey('lead.id'), index=True)
    type = db.Column(db.String(40), nullable=False, index=True)
    payload_json = db.Column(db.Text, nullable=False, default='{}')
    actor = db.Column(db.String(200), nullable=False, default='System')
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)

    __table_args__ = (
        db.Index('ix_lead_activity_lead_created', 'lead_id', 'created_at'),
    )


class CmsTemplate(JsonFieldsMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    blocks_json = db.Column(db.Text, nullable=False, default='[]')
    is_system = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class CmsPage(JsonFieldsMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(220), nullable=False)
    slug = db.Column(db.String(200), unique=True, nullable=False, index=True)
    page_type = db.Column(db.String(20), nullable=False, default='page', index=True)
    status = db.Column(db.String(20), nullable=False, default=STATUS_DRAFT, index=True)
    template_id = db.Column(db.Integer, db.ForeignKey('cms_template.id'), index=True)
    seo_json = db.Column(db.Text, nullable=False, default='{}')
    blocks_json = db.Column(db.Text, nullable=False, default='[]')
    published_at = db.Column(db.DateTime, index=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey('admin_user.id'), index=True)
    updated_by_id = db.Column(db.Integer, db.ForeignKey('admin_user.id'), index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive, index=True)

    __table_args__ = (
        db.Index('ix_cms_page_status_slug', 'status', 'slug'),
    )


class CmsPageVersion(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    page_id = db.Column(db.Integer, db.ForeignKey('cms_page.id'), nullable=False, index=True)
    version_number = db.Column(db.Integer, nullable=False)
    snapshot_json = db.Column(db.Text, nullable=False, default='{}')
    change_note = db.Column(db.String(260))
    created_by_id = db.Column(db.Integer, db.ForeignKey('admin_user.id'), index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)

    page = db.relationship(
        'CmsPage',
        backref=db.backref(
            'versions',
            lazy=True,
            cascade='all, delete-orphan',
            order_by='CmsPageVersion.version_number.desc()',
        ),
    )

    __table_args__ = (
        db.UniqueConstraint('page_id', 'version_number', name='uq_cms_page_version_page_number'),
    )


class CmsBlock(JsonFieldsMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(80), unique=True, nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(80), nullable=False, default='Other', index=True)
    icon = db.Column(db.String(80))
    description = db.Column(db.Text)
    default_props_json = db.Column(db.Text, nullable=False, default='{}')
    schema_json = db.Column(db.Text, nullable=False, default='{}')
    is_system = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class CmsMedia(JsonFieldsMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    url = db.Column(db.String(500), nullable=False)
    filename = db.Column(db.String(300), nullable=False)
    alt = db.Column(db.String(300))
    title = db.Column(db.String(300))
    width = db.Column(db.Integer)
    height = db.Column(db.Integer)
    mime_type = db.Column(db.String(100))
    size_bytes = db.Column(db.Integer)
    tags_json = db.Column(db.Text, nullable=False, default='[]')
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class CmsRedirect(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    from_path = db.Column(db.String(500), nullable=False, index=True)
    to_path = db.Column(db.String(500), nullable=False)
    code = db.Column(db.Integer, nullable=False, default=301)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class ThemePreset(JsonFieldsMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(80), unique=True, nullable=False, index=True)
    name = db.Column(db.String(180), nullable=False)
    description = db.Column(db.Text)
    tokens_json = db.Column(db.Text, nullable=False, default='{}')
    is_system = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=False, index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class Testimonial(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200))
    area = db.Column(db.String(200), index=True)
    quote = db.Column(db.Text, nullable=False)
    rating = db.Column(db.Integer)
    publish = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class CrmProject(JsonFieldsMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    slug = db.Column(db.String(300), unique=True, nullable=False, index=True)
    location = db.Column(db.String(200))
    summary = db.Column(db.Text)
    services_json = db.Column(db.Text, nullable=False, default='[]')
    before_after_json = db.Column(db.Text, nullable=False, default='[]')
    featured = db.Column(db.Boolean, nullable=False, default=False, index=True)
    publish = db.Column(db.Boolean, nullable=False, default=False, index=True)
    lead_id = db.Column(db.Integer, db.ForeignKey('lead.id'), unique=True, index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class BlogPost(JsonFieldsMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    slug = db.Column(db.String(300), unique=True, nullable=False, index=True)
    excerpt = db.Column(db.Text)
    content = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(120), nullable=False, default='', index=True)
    tags_json = db.Column(db.Text, nullable=False, default='[]')
    featured_image_url = db.Column(db.String(500))
    status = db.Column(db.String(20), nullable=False, default=STATUS_DRAFT, index=True)
    published_at = db.Column(db.DateTime, index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    __table_args__ = (
        db.Index('ix_blog_post_status_category', 'status', 'category'),
    )


class SiteSetting(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False)
    value = db.Column(db.Text, default='')


class AuthRateLimitBucket(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(80), nullable=False, index=True)
    ip = db.Column(db.String(64), nullable=False, index=True)
    count = db.Column(db.Integer, nullable=False, default=0)
    reset_at = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    __table_args__ = (
        db.UniqueConstraint('scope', 'ip', name='uq_auth_rate_limit_scope_ip'),
    )
