"""Content entity stores.

Every store wraps one model with validated CRUD, AND-combined list filters,
publish toggling and an optional in-process list cache. Mutations go
through ``_commit`` which invalidates the cache for that entity type.
"""
import json
import os
import threading
import time
import uuid
from datetime import datetime
from urllib.parse import urlsplit, urlunsplit

from flask import current_app
from itsdangerous import BadSignature, URLSafeTimedSerializer
from PIL import Image, UnidentifiedImageError
from sqlalchemy import case, func, or_, update
from sqlalchemy.exc import IntegrityError
from werkzeug.utils import secure_filename

from .errors import ConflictError, NotFoundError, ValidationError
from .models import (
    CONTENT_STATUSES,
    PAGE_TYPES,
    REDIRECT_CODES,
    STATUS_DRAFT,
    STATUS_PUBLISHED,
    BlogPost,
    CmsBlock,
    CmsMedia,
    CmsPage,
    CmsPageVersion,
    CmsRedirect,
    CmsTemplate,
    CrmProject,
    SiteSetting,
    Testimonial,
    ThemePreset,
    db,
)
from .site_data import BLOG_CATEGORIES
from .utils import (
    clean_text,
    escape_like,
    is_valid_email,
    isoformat,
    normalize_path,
    parse_bool,
    parse_date,
    parse_int,
    utc_now_naive,
)
from .validation import FieldCleaner

LIST_CACHE_KEY = 'landclear_list_cache'
BLOCK_KEY_CHARS = set('abcdefghijklmnopqrstuvwxyz0123456789_')
IMAGE_MIME_TYPES = {
    'png': {'image/png'},
    'jpg': {'image/jpeg'},
    'jpeg': {'image/jpeg'},
    'webp': {'image/webp'},
}


class ListCache:
    """Bounded TTL cache of serialized list results, shared by request threads.

    Expired entries are pruned on every insert and the oldest entry is evicted
    once ``max_entries`` is reached.
    """

    def __init__(self, max_entries=256):
        self.max_entries = max(1, int(max_entries))
        self._entries = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def get(self, key):
        now = time.monotonic()
        with self._lock:
            hit = self._entries.get(key)
            if hit is None:
                return None
            if hit[0] <= now:
                del self._entries[key]
                return None
            return hit[1]

    def set(self, key, value, ttl):
        now = time.monotonic()
        with self._lock:
            for stale in [k for k, (expires, _) in self._entries.items() if expires <= now]:
                del self._entries[stale]
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                # Oldest insert first.
                del self._entries[next(iter(self._entries))]
            self._entries[key] = (now + ttl, value)

    def invalidate(self, entity):
        with self._lock:
            for key in [key for key in self._entries if key[0] == entity]:
                del self._entries[key]


def _list_cache():
    return current_app.extensions[LIST_CACHE_KEY]


def invalidate_list_cache(entity):
    _list_cache().invalidate(entity)


def cached_list(entity, kind, filters, loader):
    """Serve ``loader()`` through the list cache; free-text searches are never cached."""
    ttl = current_app.config.get('LIST_CACHE_TTL_SECONDS', 0)
    if ttl <= 0 or filters.get('search'):
        return loader()
    key = (entity, kind, json.dumps(filters, sort_keys=True, default=str))
    cache = _list_cache()
    value = cache.get(key)
    if value is not None:
        return value
    value = loader()
    cache.set(key, value, ttl)
    return value


def clean_filters(filters):
    cleaned = {}
    for key, value in (filters or {}).items():
        if value is None:
            continue
        text = clean_text(value, 200)
        if text:
            cleaned[key] = text
    return cleaned


def pagination_payload(items, total, page, page_size):
    return {
        'items': items,
        'total': total,
        'page': page,
        'page_size': page_size,
        'total_pages': max(1, -(-total // page_size)) if page_size else 1,
    }


def _is_url_or_path(value):
    return value.startswith('/') or value.startswith('http://') or value.startswith('https://')


def _normalize_target(value):
    """Normalize the path of a site-relative target, keeping its query and fragment."""
    parts = urlsplit(value)
    return urlunsplit(('', '', normalize_path(parts.path), parts.query, parts.fragment))


class EntityStore:
    model = None
    entity = ''
    label = 'Item'
    fields = ()
    json_fields = {}
    search_columns = ()
    equality_filters = {}
    bool_filters = {}
    unique_attrs = ()
    publish_attr = None
    default_page_size = 20
    max_page_size = 100

    def ordering(self):
        return (self.model.created_at.desc(), self.model.id.desc())

    def clean(self, fields, instance=None):
        raise NotImplementedError

    # Reads

    def query(self, filters):
        query = self.model.query
        for name, attr in self.equality_filters.items():
            if name in filters:
                query = query.filter(getattr(self.model, attr) == filters[name])
        for name, attr in self.bool_filters.items():
            if name in filters:
                query = query.filter(getattr(self.model, attr) == parse_bool(filters[name]))
        search = filters.get('search')
        if search and self.search_columns:
            pattern = f'%{escape_like(search.lower())}%'
            query = query.filter(or_(*[
                func.lower(getattr(self.model, column)).like(pattern, escape='\\')
                for column in self.search_columns
            ]))
        return self.extra_filters(query, filters)

    def extra_filters(self, query, filters):
        return query

    def list(self, filters=None):
        filters = clean_filters(filters)

        def load():
            rows = self.query(filters).order_by(*self.ordering()).all()
            return [self.serialize(row) for row in rows]

        return cached_list(self.entity, 'list', filters, load)

    def paginate(self, filters=None):
        filters = clean_filters(filters)
        page = parse_int(filters.get('page'), 1, min_value=1)
        page_size = parse_int(filters.get('page_size'), self.default_page_size, 1, self.max_page_size)
        filters['page'], filters['page_size'] = page, page_size

        def load():
            query = self.query(filters)
            total = query.count()
            rows = query.order_by(*self.ordering()).offset((page - 1) * page_size).limit(page_size).all()
            return pagination_payload([self.serialize(row) for row in rows], total, page, page_size)

        return cached_list(self.entity, 'page', filters, load)

    def get(self, entity_id):
        entity = db.session.get(self.model, entity_id) if entity_id is not None else None
        if entity is None:
            raise NotFoundError(f'{self.label} not found')
        return entity

    def get_by(self, **criteria):
        entity = self.model.query.filter_by(**criteria).first()
        if entity is None:
            raise NotFoundError(f'{self.label} not found')
        return entity

    def is_published(self, entity):
        if self.publish_attr == 'status':
            return entity.status == STATUS_PUBLISHED
        return bool(getattr(entity, self.publish_attr, False))

    def serialize(self, entity):
        payload = {'id': entity.id}
        for attr in self.fields:
            value = getattr(entity, attr)
            payload[attr] = isoformat(value) if isinstance(value, datetime) else value
        for attr, kind in self.json_fields.items():
            payload[attr] = entity.get_json(attr, kind())
        payload['created_at'] = isoformat(entity.created_at)
        payload['updated_at'] = isoformat(entity.updated_at)
        return payload

    # Writes

    def create(self, fields, actor=None):
        values = self.clean(fields or {})
        self._check_unique(values)
        entity = self.model()
        self._assign(entity, values)
        self.before_create(entity, values, actor)
        db.session.add(entity)
        self._commit()
        return entity

    def update(self, entity_id, partial, actor=None):
        entity = self.get(entity_id)
        values = self.clean(partial or {}, instance=entity)
        self._check_unique(values, entity)
        self.before_update(entity, values, partial or {}, actor)
        self._assign(entity, values)
        self._commit()
        return entity

    def delete(self, entity_id):
        entity = self.get(entity_id)
        self.before_delete(entity)
        db.session.delete(entity)
        self._commit()

    def set_published(self, entity_id, flag, actor=None):
        if not self.publish_attr:
            raise ValidationError(message=f'{self.label} has no publish state.')
        if self.publish_attr == 'status':
            value = STATUS_PUBLISHED if flag else STATUS_DRAFT
        else:
            value = bool(flag)
        return self.update(entity_id, {self.publish_attr: value}, actor=actor)

    def toggle_publish(self, entity_id, actor=None):
        entity = self.get(entity_id)
        return self.set_published(entity_id, not self.is_published(entity), actor=actor)

    def before_create(self, entity, values, actor):
        pass

    def before_update(self, entity, values, partial, actor):
        pass

    def before_delete(self, entity):
        pass

    def _assign(self, entity, values):
        for attr, value in values.items():
            if attr in self.json_fields:
                entity.set_json(attr, value)
            else:
                setattr(entity, attr, value)
        if self.publish_attr == 'status' and entity.status == STATUS_PUBLISHED and not entity.published_at:
            entity.published_at = utc_now_naive()

    def _check_unique(self, values, instance=None):
        for attr in self.unique_attrs:
            if attr not in values:
                continue
            query = self.model.query.filter(getattr(self.model, attr) == values[attr])
            if instance is not None:
                query = query.filter(self.model.id != instance.id)
            if db.session.query(query.exists()).scalar():
                raise ConflictError(f'{self.label} {attr} "{values[attr]}" is already in use.', field=attr)

    def _commit(self):
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f'{self.label} conflicts with an existing record.')
        invalidate_list_cache(self.entity)


def _preview_serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt='cms-page-preview')


class PageStore(EntityStore):
    model = CmsPage
    entity = 'cms_pages'
    label = 'Page'
    fields = ('title', 'slug', 'page_type', 'status', 'template_id', 'published_at',
              'created_by_id', 'updated_by_id')
    json_fields = {'seo': dict, 'blocks': list}
    search_columns = ('title', 'slug')
    equality_filters = {'status': 'status', 'page_type': 'page_type'}
    unique_attrs = ('slug',)
    publish_attr = 'status'

    def ordering(self):
        return (CmsPage.updated_at.desc(), CmsPage.id.desc())

    def clean(self, fields, instance=None):
        cleaner = FieldCleaner(fields, creating=instance is None)
        title = cleaner.text('title', 220, required=True)
        cleaner.slug('slug', source=title)
        cleaner.choice('page_type', PAGE_TYPES, default='page')
        cleaner.choice('status', CONTENT_STATUSES, default=STATUS_DRAFT)
        template_id = cleaner.integer('template_id', min_value=1)
        if template_id and db.session.get(CmsTemplate, template_id) is None:
            cleaner.error('template_id', 'Template not found.')
        cleaner.mapping('seo')
        cleaner.sequence('blocks')
        return cleaner.done()

    def before_create(self, entity, values, actor):
        entity.created_by_id = getattr(actor, 'id', None)
        entity.updated_by_id = getattr(actor, 'id', None)

    def before_update(self, entity, values, partial, actor):
        self._record_version(entity, actor, partial.get('change_note'))
        entity.updated_by_id = getattr(actor, 'id', None)

    def snapshot(self, page):
        return {
            'title': page.title,
            'slug': page.slug,
            'page_type': page.page_type,
            'status': page.status,
            'template_id': page.template_id,
            'seo': page.get_json('seo', {}),
            'blocks': page.get_json('blocks', []),
        }

    def _record_version(self, page, actor, change_note=None):
        latest = db.session.query(func.max(CmsPageVersion.version_number)).filter(
            CmsPageVersion.page_id == page.id
        ).scalar() or 0
        version = CmsPageVersion(
            page_id=page.id,
            version_number=latest + 1,
            snapshot_json=json.dumps(self.snapshot(page), ensure_ascii=False, sort_keys=True),
            change_note=clean_text(change_note, 260) or None,
            created_by_id=getattr(actor, 'id', None),
        )
        db.session.add(version)
        return version

    def versions(self, page_id):
        page = self.get(page_id)
        rows = CmsPageVersion.query.filter_by(page_id=page.id).order_by(
            CmsPageVersion.version_number.desc(), CmsPageVersion.id.desc()
        ).all()
        return [self.serialize_version(row) for row in rows]

    def serialize_version(self, version):
        try:
            snapshot = json.loads(version.snapshot_json or '{}')
        except ValueError:
            snapshot = {}
        return {
            'id': version.id,
            'page_id': version.page_id,
            'version_number': version.version_number,
            'change_note': version.change_note,
            'created_by_id': version.created_by_id,
            'created_at': isoformat(version.created_at),
            'snapshot': snapshot,
        }

    def restore(self, page_id, version_id, actor=None):
        version = CmsPageVersion.query.filter_by(id=version_id, page_id=page_id).first()
        if version is None:
            raise NotFoundError('Page version not found')
        restored = dict(self.serialize_version(version)['snapshot'])
        restored['change_note'] = f'Restored from version {version.version_number}'
        return self.update(page_id, restored, actor=actor)

    def issue_preview_token(self, page_id):
        page = self.get(page_id)
        token = _preview_serializer().dumps({'page_id': page.id})
        return {
            'token': token,
            'slug': page.slug,
            'expires_in': current_app.config.get('PREVIEW_TOKEN_TTL_SECONDS', 900),
        }

    def preview_token_matches(self, page, token):
        if not token:
            return False
        max_age = current_app.config.get('PREVIEW_TOKEN_TTL_SECONDS', 900)
        try:
            data = _preview_serializer().loads(token, max_age=max_age)
        except BadSignature:
            return False
        return isinstance(data, dict) and data.get('page_id') == page.id


class TemplateStore(EntityStore):
    model = CmsTemplate
    entity = 'cms_templates'
    label = 'Template'
    fields = ('name', 'description', 'is_system')
    json_fields = {'blocks': list}
    search_columns = ('name', 'description')

    def ordering(self):
        return (CmsTemplate.name.asc(), CmsTemplate.id.asc())

    def clean(self, fields, instance=None):
        cleaner = FieldCleaner(fields, creating=instance is None)
        cleaner.text('name', 200, required=True)
        cleaner.text('description', 2000)
        cleaner.sequence('blocks')
        return cleaner.done()

    def before_delete(self, entity):
        if entity.is_system:
            raise ConflictError('System templates cannot be deleted.')
        if CmsPage.query.filter_by(template_id=entity.id).update({'template_id': None}):
            invalidate_list_cache(PageStore.entity)


class BlockStore(EntityStore):
    model = CmsBlock
    entity = 'cms_blocks'
    label = 'Block'
    fields = ('key', 'name', 'category', 'icon', 'description', 'is_system')
    json_fields = {'default_props': dict, 'schema': dict}
    search_columns = ('key', 'name', 'description')
    equality_filters = {'category': 'category'}
    unique_attrs = ('key',)

    def ordering(self):
        return (CmsBlock.category.asc(), CmsBlock.name.asc(), CmsBlock.id.asc())

    def clean(self, fields, instance=None):
        cleaner = FieldCleaner(fields, creating=instance is None)
        key = cleaner.text('key', 80, required=True)
        if key is not None:
            key = key.lower()
            if not key or not set(key) <= BLOCK_KEY_CHARS:
                cleaner.error('key', 'Use lowercase letters, numbers and underscores.')
            elif instance is not None and instance.is_system and key != instance.key:
                raise ConflictError('System block keys cannot be changed.')
            cleaner.values['key'] = key
        cleaner.text('name', 200, required=True)
        cleaner.text('category', 80)
        if instance is None and not cleaner.values.get('category'):
            cleaner.values['category'] = 'Other'
        cleaner.text('icon', 80)
        cleaner.text('description', 2000)
        cleaner.mapping('default_props')
        cleaner.mapping('schema')
        return cleaner.done()

    def before_delete(self, entity):
        if entity.is_system:
            raise ConflictError('System blocks cannot be deleted.')


class MediaStore(EntityStore):
    model = CmsMedia
    entity = 'cms_media'
    label = 'Media item'
    fields = ('url', 'filename', 'alt', 'title', 'width', 'height', 'mime_type', 'size_bytes')
    json_fields = {'tags': list}
    search_columns = ('filename', 'alt', 'title')
    equality_filters = {'mime_type': 'mime_type'}
    default_page_size = 24

    def clean(self, fields, instance=None):
        cleaner = FieldCleaner(fields, creating=instance is None)
        url = cleaner.text('url', 500, required=True)
        if url and not _is_url_or_path(url):
            cleaner.error('url', 'URL must start with /, http:// or https://.')
        cleaner.text('filename', 300)
        if instance is None and not cleaner.values.get('filename') and url:
            cleaner.values['filename'] = url.rstrip('/').rsplit('/', 1)[-1][:300] or 'media'
        cleaner.text('alt', 300)
        cleaner.text('title', 300)
        cleaner.integer('width', min_value=0)
        cleaner.integer('height', min_value=0)
        cleaner.text('mime_type', 100)
        cleaner.integer('size_bytes', min_value=0)
        cleaner.string_list('tags')
        return cleaner.done()

    def _inspect_upload(self, file):
        """Return ``(filename, width, height)`` for a safe image upload."""
        if not file or not file.filename:
            raise ValidationError({'file': 'Please choose a file to upload.'})
        filename = secure_filename(file.filename)
        allowed = current_app.config['ALLOWED_EXTENSIONS']
        if not filename or len(filename) > 180 or '.' not in filename:
            raise ValidationError({'file': 'Invalid file name.'})
        extension = filename.rsplit('.', 1)[1].lower()
        mime_type = (file.mimetype or '').split(';', 1)[0].lower()
        if (
            extension not in allowed
            or mime_type not in current_app.config.get('ALLOWED_UPLOAD_MIME_TYPES', set())
            or mime_type not in IMAGE_MIME_TYPES.get(extension, set())
        ):
            raise ValidationError({'file': 'Only JPEG, PNG and WebP images are allowed.'})

        max_pixels = max(1, int(current_app.config.get('MAX_UPLOAD_IMAGE_PIXELS', 40_000_000)))
        file.stream.seek(0)
        try:
            with Image.open(file.stream) as image:
                width, height = image.size
                if width < 1 or height < 1 or (width * height) > max_pixels:
                    raise ValidationError({'file': 'Image dimensions are not allowed.'})
                image.verify()
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError):
            raise ValidationError({'file': 'Invalid file type or unsafe file content.'})
        finally:
            file.stream.seek(0)
        return filename, width, height

    def upload(self, file, fields=None):
        filename, width, height = self._inspect_upload(file)
        stored_name = f'{uuid.uuid4().hex[:16]}_{filename}'
        full_path = os.path.join(current_app.config['UPLOAD_FOLDER'], stored_name)
        file.save(full_path)
        fields = dict(fields or {})
        values = {
            'url': f"{current_app.config.get('UPLOAD_URL_PREFIX', '/uploads')}/{stored_name}",
            'filename': filename,
            'alt': fields.get('alt') or '',
            'title': fields.get('title') or '',
            'width': width,
            'height': height,
            'mime_type': (file.mimetype or '').split(';', 1)[0].lower(),
            'size_bytes': os.path.getsize(full_path),
            'tags': fields.get('tags') or [],
        }
        try:
            return self.create(values)
        except Exception:
            os.remove(full_path)
            raise

    def stored_path(self, entity):
        prefix = current_app.config.get('UPLOAD_URL_PREFIX', '/uploads').rstrip('/') + '/'
        if not (entity.url or '').startswith(prefix):
            return None
        raw_name = entity.url[len(prefix):]
        safe_name = secure_filename(raw_name)
        if not safe_name or safe_name != raw_name:
            return None
        return os.path.join(current_app.config['UPLOAD_FOLDER'], safe_name)

    def delete(self, entity_id):
        entity = self.get(entity_id)
        path = self.stored_path(entity)
        db.session.delete(entity)
        self._commit()
        if path and os.path.exists(path):
            os.remove(path)


class RedirectStore(EntityStore):
    model = CmsRedirect
    entity = 'cms_redirects'
    label = 'Redirect'
    fields = ('from_path', 'to_path', 'code', 'is_active')
    search_columns = ('from_path', 'to_path')
    bool_filters = {'is_active': 'is_active'}

    def ordering(self):
        return (CmsRedirect.from_path.asc(), CmsRedirect.id.asc())

    def clean(self, fields, instance=None):
        cleaner = FieldCleaner(fields, creating=instance is None)
        from_path = cleaner.text('from_path', 500, required=True)
        if from_path:
            if not from_path.startswith('/'):
                cleaner.error('from_path', 'Source path must start with /.')
            else:
                from_path = normalize_path(from_path)
                if from_path == '/api' or from_path.startswith('/api/'):
                    cleaner.error('from_path', 'API paths cannot be redirected.')
                cleaner.values['from_path'] = from_path
        to_path = cleaner.text('to_path', 500, required=True)
        if to_path:
            if not _is_url_or_path(to_path):
                cleaner.error('to_path', 'Target must be a path or an http(s) URL.')
            elif to_path.startswith('/'):
                to_path = cleaner.values['to_path'] = _normalize_target(to_path)
        effective_from = cleaner.values.get('from_path', getattr(instance, 'from_path', None))
        effective_to = cleaner.values.get('to_path', getattr(instance, 'to_path', None))
        if effective_from and (effective_to or '').startswith('/') and effective_from == urlsplit(effective_to).path:
            cleaner.error('to_path', 'A redirect cannot point to itself.')
        code = cleaner.integer('code', default=301)
        if code is not None and code not in REDIRECT_CODES:
            cleaner.error('code', 'Redirect code must be 301 or 302.')
        cleaner.boolean('is_active', default=True)
        return cleaner.done()

    def create(self, fields, actor=None):
        entity = super().create(fields, actor=actor)
        duplicates = CmsRedirect.query.filter(
            CmsRedirect.from_path == entity.from_path,
            CmsRedirect.id != entity.id,
        ).count()
        if duplicates:
            current_app.logger.warning(
                'Redirect %s duplicates an existing source path %s; the oldest active redirect wins.',
                entity.id,
                entity.from_path,
            )
        return entity

    def active_map(self):
        def load():
            mapping = {}
            rows = CmsRedirect.query.filter_by(is_active=True).order_by(CmsRedirect.id.asc()).all()
            for row in rows:
                mapping.setdefault(row.from_path, {'to_path': row.to_path, 'code': row.code})
            return mapping

        return cached_list(self.entity, 'active', {}, load)

    def resolve(self, path):
        """First active redirect for ``path`` (oldest wins) or None."""
        return self.active_map().get(normalize_path(path))


class ThemeStore(EntityStore):
    model = ThemePreset
    entity = 'theme_presets'
    label = 'Theme preset'
    fields = ('key', 'name', 'description', 'is_system', 'is_active')
    json_fields = {'tokens': dict}
    search_columns = ('key', 'name')
    unique_attrs = ('key',)

    def ordering(self):
        return (ThemePreset.is_active.desc(), ThemePreset.name.asc(), ThemePreset.id.asc())

    def clean(self, fields, instance=None):
        cleaner = FieldCleaner(fields, creating=instance is None)
        name = cleaner.text('name', 180, required=True)
        cleaner.slug('key', source=name)
        if instance is not None and instance.is_system and cleaner.values.get('key', instance.key) != instance.key:
            raise ConflictError('System theme keys cannot be changed.')
        cleaner.text('description', 2000)
        cleaner.mapping('tokens')
        return cleaner.done()

    def activate(self, entity_id):
        target = self.get(entity_id)
        db.session.execute(
            update(ThemePreset)
            .values(is_active=case((ThemePreset.id == target.id, True), else_=False))
            .execution_options(synchronize_session=False)
        )
        self._commit()
        current_app.logger.info('Theme preset %s activated.', target.key)
        return self.get(entity_id)

    def active(self):
        preset = ThemePreset.query.filter_by(is_active=True).order_by(ThemePreset.id.asc()).first()
        return self.serialize(preset) if preset else None

    def before_delete(self, entity):
        if entity.is_system:
            raise ConflictError('System theme presets cannot be deleted.')
        if entity.is_active:
            raise ConflictError('Activate another theme before deleting the active one.')


class TestimonialStore(EntityStore):
    model = Testimonial
    entity = 'testimonials'
    label = 'Testimonial'
    fields = ('name', 'area', 'quote', 'rating', 'publish')
    search_columns = ('name', 'area', 'quote')
    equality_filters = {'area': 'area'}
    bool_filters = {'publish': 'publish'}
    publish_attr = 'publish'

    def clean(self, fields, instance=None):
        cleaner = FieldCleaner(fields, creating=instance is None)
        cleaner.text('name', 200)
        cleaner.text('area', 200)
        cleaner.text('quote', 2000, required=True)
        cleaner.integer('rating', min_value=1, max_value=5)
        cleaner.boolean('publish', default=True)
        return cleaner.done()


class ProjectStore(EntityStore):
    model = CrmProject
    entity = 'crm_projects'
    label = 'Project'
    fields = ('title', 'slug', 'location', 'summary', 'featured', 'publish', 'lead_id')
    json_fields = {'services': list, 'before_after': list}
    search_columns = ('title', 'location', 'summary')
    bool_filters = {'publish': 'publish', 'featured': 'featured'}
    unique_attrs = ('slug',)
    publish_attr = 'publish'

    def ordering(self):
        return (CrmProject.featured.desc(), CrmProject.created_at.desc(), CrmProject.id.desc())

    def extra_filters(self, query, filters):
        service = filters.get('service')
        if service:
            pattern = f'%{escape_like(json.dumps(service))}%'
            query = query.filter(CrmProject.services_json.like(pattern, escape='\\'))
        return query

    def clean(self, fields, instance=None):
        cleaner = FieldCleaner(fields, creating=instance is None)
        title = cleaner.text('title', 300, required=True)
        cleaner.slug('slug', source=title)
        cleaner.text('location', 200)
        cleaner.text('summary', 5000)
        cleaner.string_list('services', max_items=20, max_length=80)
        pairs = cleaner.sequence('before_after')
        if pairs is not None:
            cleaned_pairs = []
            for item in pairs[:20]:
                if not isinstance(item, dict):
                    cleaner.error('before_after', 'Each image must be an object with url and label.')
                    break
                url = clean_text(item.get('url'), 500)
                if not url or not _is_url_or_path(url):
                    cleaner.error('before_after', 'Each image needs a valid url.')
                    break
                cleaned_pairs.append({'url': url, 'label': clean_text(item.get('label'), 120)})
            cleaner.values['before_after'] = cleaned_pairs
        cleaner.boolean('featured', default=False)
        cleaner.boolean('publish', default=False)
        return cleaner.done()

    def create_for_lead(self, lead_id, fields):
        values = self.clean(fields)
        self._check_unique(values)
        entity = CrmProject(lead_id=lead_id)
        self._assign(entity, values)
        db.session.add(entity)
        self._commit()
        return entity

    def unique_slug(self, base):
        candidate = base
        suffix = 2
        while CrmProject.query.filter_by(slug=candidate).first() is not None:
            candidate = f'{base}-{suffix}'
            suffix += 1
        return candidate


class BlogPostStore(EntityStore):
    model = BlogPost
    entity = 'blog_posts'
    label = 'Blog post'
    fields = ('title', 'slug', 'excerpt', 'content', 'category', 'featured_image_url',
              'status', 'published_at')
    json_fields = {'tags': list}
    search_columns = ('title', 'excerpt', 'content')
    equality_filters = {'status': 'status', 'category': 'category'}
    unique_attrs = ('slug',)
    publish_attr = 'status'

    def ordering(self):
        return (func.coalesce(BlogPost.published_at, BlogPost.created_at).desc(), BlogPost.id.desc())

    def extra_filters(self, query, filters):
        tag = filters.get('tag')
        if tag:
            pattern = f'%{escape_like(json.dumps(tag))}%'
            query = query.filter(BlogPost.tags_json.like(pattern, escape='\\'))
        return query

    def clean(self, fields, instance=None):
        cleaner = FieldCleaner(fields, creating=instance is None)
        title = cleaner.text('title', 300, required=True)
        cleaner.slug('slug', source=title)
        cleaner.text('excerpt', 1000)
        cleaner.text('content', 100000, required=True)
        cleaner.choice('category', BLOG_CATEGORIES, required=True)
        cleaner.string_list('tags', max_items=20, max_length=60)
        image_url = cleaner.text('featured_image_url', 500)
        if image_url and not _is_url_or_path(image_url):
            cleaner.error('featured_image_url', 'Image URL must start with /, http:// or https://.')
        cleaner.choice('status', CONTENT_STATUSES, default=STATUS_DRAFT)
        if cleaner.has('published_at'):
            raw = cleaner.fields.get('published_at')
            published_at = parse_date(raw)
            if raw and published_at is None:
                cleaner.error('published_at', 'Use an ISO 8601 date.')
            cleaner.values['published_at'] = published_at
        return cleaner.done()


class SettingsStore:
    entity = 'site_settings'
    limits = {
        'company_name': 200,
        'tagline': 300,
        'phone': 80,
        'email': 200,
        'address': 400,
        'service_area': 300,
        'hours': 200,
        'facebook': 300,
        'instagram': 300,
        'meta_title': 300,
        'meta_description': 500,
    }

    def get_all(self):
        return cached_list(
            self.entity,
            'all',
            {},
            lambda: {setting.key: setting.value or '' for setting in SiteSetting.query.all()},
        )

    def put(self, values):
        values = values if isinstance(values, dict) else {}
        cleaned = {}
        errors = {}
        for key, limit in self.limits.items():
            if key in values:
                cleaned[key] = clean_text(values.get(key), limit)
        if cleaned.get('email') and not is_valid_email(cleaned['email']):
            errors['email'] = 'Please provide a valid email address.'
        for key in ('facebook', 'instagram'):
            if cleaned.get(key) and not cleaned[key].startswith(('http://', 'https://')):
                errors[key] = 'URL must start with http:// or https://.'
        if errors:
            raise ValidationError(errors)
        for key, value in cleaned.items():
            setting = SiteSetting.query.filter_by(key=key).first()
            if setting:
                setting.value = value
            else:
                db.session.add(SiteSetting(key=key, value=value))
        db.session.commit()
        invalidate_list_cache(self.entity)
        return self.get_all()


pages = PageStore()
templates = TemplateStore()
blocks = BlockStore()
media = MediaStore()
redirects = RedirectStore()
themes = ThemeStore()
testimonials = TestimonialStore()
projects = ProjectStore()
blog_posts = BlogPostStore()
settings = SettingsStore()
