"""Anonymous read side: only published content ever leaves these functions."""
from sqlalchemy import func

from . import store
from .errors import NotFoundError
from .models import STATUS_PUBLISHED, BlogPost, CmsPage, CrmProject
from .rendering import render_markdown
from .site_data import SERVICE_AREAS, SERVICES, get_service, get_service_area
from .utils import normalize_path

RELATED_POSTS_LIMIT = 3
PAGE_PRIVATE_FIELDS = ('created_by_id', 'updated_by_id')
PROJECT_PRIVATE_FIELDS = ('lead_id',)


def _pick(filters, allowed):
    filters = filters or {}
    return {key: filters.get(key) for key in allowed if filters.get(key)}


def _without(payload, hidden):
    return {key: value for key, value in payload.items() if key not in hidden}


def _post_summary(post):
    return {key: value for key, value in post.items() if key != 'content'}


def blog_posts(filters=None):
    filters = _pick(filters, ('category', 'search', 'tag', 'page', 'page_size'))
    filters['status'] = STATUS_PUBLISHED
    result = store.blog_posts.paginate(filters)
    return dict(result, items=[_post_summary(post) for post in result['items']])


def blog_post(slug):
    post = BlogPost.query.filter_by(slug=slug, status=STATUS_PUBLISHED).first()
    if post is None:
        raise NotFoundError('Post not found')
    related = BlogPost.query.filter(
        BlogPost.status == STATUS_PUBLISHED,
        BlogPost.category == post.category,
        BlogPost.id != post.id,
    ).order_by(
        func.coalesce(BlogPost.published_at, BlogPost.created_at).desc(),
        BlogPost.id.desc(),
    ).limit(RELATED_POSTS_LIMIT).all()
    payload = store.blog_posts.serialize(post)
    payload['html'] = render_markdown(post.content)
    payload['related'] = [_post_summary(store.blog_posts.serialize(item)) for item in related]
    return payload


def page(slug, preview_token=None):
    """Published page by slug; drafts only with a valid preview token."""
    entity = CmsPage.query.filter_by(slug=slug).first()
    if entity is None:
        raise NotFoundError('Page not found')
    payload = _without(store.pages.serialize(entity), PAGE_PRIVATE_FIELDS)
    if store.pages.is_published(entity):
        return payload
    if store.pages.preview_token_matches(entity, preview_token):
        payload['preview'] = True
        return payload
    raise NotFoundError('Page not found')


def projects(filters=None):
    filters = _pick(filters, ('featured', 'service', 'search'))
    filters['publish'] = 'true'
    return [_without(item, PROJECT_PRIVATE_FIELDS) for item in store.projects.list(filters)]


def project(slug):
    entity = CrmProject.query.filter_by(slug=slug, publish=True).first()
    if entity is None:
        raise NotFoundError('Project not found')
    return _without(store.projects.serialize(entity), PROJECT_PRIVATE_FIELDS)


def testimonials(filters=None):
    filters = _pick(filters, ('area',))
    filters['publish'] = 'true'
    return store.testimonials.list(filters)


def services():
    return [dict(service, related=list(service['related'])) for service in SERVICES]


def service(slug):
    info = get_service(slug)
    if info is None:
        raise NotFoundError('Service not found')
    return dict(
        info,
        related=[get_service(related) for related in info['related']],
        projects=projects({'service': slug}),
    )


def service_areas():
    return [dict(area) for area in SERVICE_AREAS]


def _mentions(value, needle):
    return needle.lower() in (value or '').lower()


def service_area(slug):
    area = get_service_area(slug)
    if area is None:
        raise NotFoundError('Service area not found')
    local_projects = [
        item for item in projects()
        if _mentions(item.get('location'), area['name']) or item.get('location') == area['county']
    ]
    local_testimonials = [
        item for item in testimonials()
        if _mentions(item.get('area'), area['name'])
    ]
    return dict(
        area,
        services=services(),
        projects=local_projects,
        testimonials=local_testimonials,
    )


def theme():
    return store.themes.active()


def resolve_redirect(path):
    match = store.redirects.resolve(path)
    if match is None:
        raise NotFoundError('No redirect for this path')
    return {'from_path': normalize_path(path), 'to_path': match['to_path'], 'code': match['code']}


def site_settings():
    return store.settings.get_all()
