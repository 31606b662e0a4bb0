"""Admin navigation tree and the role-based route access policy derived from it.

The tree is plain data: each entry is a dict tagged ``kind='leaf'`` or
``kind='group'``. Everything below is a pure function of (role, path), so the
same code drives the sidebar and the server-side route gate.
"""
from .models import ROLE_ADMIN, ROLE_EDITOR, ROLE_SALES, ROLE_SUPER_ADMIN, normalize_user_role
from .utils import normalize_path

ADMIN_ROOT = '/admin'

ALL_ROLES = frozenset({ROLE_SUPER_ADMIN, ROLE_ADMIN, ROLE_EDITOR, ROLE_SALES})
MANAGERS = frozenset({ROLE_SUPER_ADMIN, ROLE_ADMIN})
CONTENT_ROLES = MANAGERS | {ROLE_EDITOR}
SALES_ROLES = MANAGERS | {ROLE_SALES}


def leaf(title, href, icon, roles):
    return {'kind': 'leaf', 'title': title, 'href': href, 'icon': icon, 'roles': frozenset(roles)}


def group(title, href, icon, roles, children):
    return {
        'kind': 'group',
        'title': title,
        'href': href,
        'icon': icon,
        'roles': frozenset(roles),
        'children': tuple(children),
    }


ADMIN_NAVIGATION = (
    leaf('Dashboard', '/admin', 'layout-dashboard', ALL_ROLES),
    leaf('Leads', '/admin/leads', 'users', SALES_ROLES),
    group('CRM', '/admin/crm', 'briefcase', SALES_ROLES, [
        leaf('Projects', '/admin/crm/projects', 'folder-open', SALES_ROLES),
    ]),
    leaf('Blog', '/admin/blog', 'newspaper', CONTENT_ROLES),
    group('CMS', '/admin/cms', 'file-text', CONTENT_ROLES, [
        leaf('Pages', '/admin/cms/pages', 'file', CONTENT_ROLES),
        leaf('Templates', '/admin/cms/templates', 'layout-template', CONTENT_ROLES),
        leaf('Blocks', '/admin/cms/blocks', 'blocks', CONTENT_ROLES),
        leaf('Media', '/admin/cms/media', 'image', CONTENT_ROLES),
        leaf('Themes', '/admin/cms/themes', 'palette', CONTENT_ROLES),
        leaf('Redirects', '/admin/cms/redirects', 'corner-up-right', CONTENT_ROLES),
        leaf('Testimonials', '/admin/cms/testimonials', 'quote', CONTENT_ROLES),
    ]),
    leaf('Branding', '/admin/branding', 'palette', MANAGERS),
    leaf('Settings', '/admin/settings', 'settings', MANAGERS),
    leaf('Docs', '/admin/docs', 'book-open', CONTENT_ROLES),
)


def _role_sees(entry, role):
    return role in entry['roles']


def _visible_children(entry, role):
    return [child for child in entry['children'] if _role_sees(child, role)]


def allowed_paths(role, navigation=ADMIN_NAVIGATION):
    """Every admin path reachable by ``role``; empty for unauthenticated callers."""
    role = normalize_user_role(role)
    if role is None:
        return set()
    paths = {ADMIN_ROOT}
    for entry in navigation:
        if entry['kind'] == 'leaf':
            if _role_sees(entry, role):
                paths.add(entry['href'])
            continue
        children = _visible_children(entry, role)
        if children:
            paths.add(entry['href'])
            paths.update(child['href'] for child in children)
    return paths


def can_access(role, path, navigation=ADMIN_NAVIGATION):
    if normalize_user_role(role) is None:
        return False
    requested = normalize_path(path)
    for allowed in allowed_paths(role, navigation):
        if requested == allowed:
            return True
        # The dashboard root never grants its sub-paths.
        if allowed != ADMIN_ROOT and requested.startswith(allowed + '/'):
            return True
    return False


def is_under(path, base):
    requested = normalize_path(path)
    return requested == base or requested.startswith(base.rstrip('/') + '/')


def visible_navigation(role, current_path=ADMIN_ROOT, expanded=None, navigation=ADMIN_NAVIGATION):
    """Role-filtered sidebar entries in declaration order.

    ``expanded`` maps group hrefs to user-toggled booleans; groups without a
    toggle default to expanded only when ``current_path`` falls under them.
    """
    role = normalize_user_role(role)
    if role is None:
        return []
    expanded = expanded or {}
    current = normalize_path(current_path)
    items = []
    for entry in navigation:
        if entry['kind'] == 'leaf':
            if _role_sees(entry, role):
                items.append(_render_leaf(entry, current))
            continue
        children = _visible_children(entry, role)
        if not children and not _role_sees(entry, role):
            continue
        is_expanded = expanded.get(entry['href'])
        if is_expanded is None:
            is_expanded = is_under(current, entry['href'])
        items.append({
            'kind': 'group',
            'title': entry['title'],
            'href': entry['href'],
            'icon': entry['icon'],
            'expanded': bool(is_expanded),
            'active': is_under(current, entry['href']),
            'children': [_render_leaf(child, current) for child in children],
        })
    return items


def _render_leaf(entry, current):
    href = entry['href']
    if href == ADMIN_ROOT:
        active = current == ADMIN_ROOT
    else:
        active = is_under(current, href)
    return {
        'kind': 'leaf',
        'title': entry['title'],
        'href': href,
        'icon': entry['icon'],
        'active': active,
    }
