import secrets

from flask import current_app

from .models import (
    ROLE_SUPER_ADMIN,
    STATUS_PUBLISHED,
    AdminUser,
    BlogPost,
    CmsBlock,
    CmsTemplate,
    SiteSetting,
    Testimonial,
    ThemePreset,
    db,
    utc_now_naive,
)

DEFAULT_SETTINGS = {
    'company_name': 'Brush Boss Land Clearing',
    'tagline': 'Forestry mulching and land clearing across the Charlotte region',
    'phone': '(704) 555-0142',
    'email': 'info@brushboss.com',
    'address': 'Charlotte, NC',
    'service_area': 'Charlotte, NC and surrounding counties',
    'hours': 'Mon-Sat 7am-6pm',
    'meta_title': 'Brush Boss | Forestry Mulching & Land Clearing in Charlotte, NC',
    'meta_description': 'Forestry mulching, brush hogging, trail cutting and lot clearing for Charlotte-area homeowners, farms and builders.',
}

SYSTEM_BLOCKS = (
    {
        'key': 'hero',
        'name': 'Hero Section',
        'category': 'Layout',
        'icon': 'Layers',
        'description': 'Full-width hero banner with headline, subheadline, call-to-action button, and background image.',
        'default_props': {
            'headline': 'Professional Land Clearing & Forestry Mulching',
            'subheadline': 'Expert brush clearing, forestry mulching, and land management across the Charlotte, NC region.',
            'primary_cta_text': 'Get a Free Quote',
            'primary_cta_href': '/quote',
            'image_url': '/images/hero-land-clearing.jpg',
            'image_alt': 'Forestry mulching equipment clearing overgrown property',
        },
        'fields': (
            ('headline', 'Headline', 'text'),
            ('subheadline', 'Sub-headline', 'textarea'),
            ('primary_cta_text', 'Button Text', 'text'),
            ('primary_cta_href', 'Button Link', 'text'),
            ('image_url', 'Image URL', 'text'),
            ('image_alt', 'Image Alt Text', 'text'),
        ),
    },
    {
        'key': 'rich_text',
        'name': 'Rich Text',
        'category': 'Content',
        'icon': 'FileText',
        'description': 'Free-form rich text content block for paragraphs, headings, lists, and inline media.',
        'default_props': {'content': '## Section heading\n\nWrite your content here.'},
        'fields': (('content', 'Content', 'textarea'),),
    },
    {
        'key': 'image_banner',
        'name': 'Image Banner',
        'category': 'Media',
        'icon': 'Image',
        'description': 'Full-width image banner with optional overlay text and configurable height.',
        'default_props': {'image_url': '', 'alt': '', 'overlay_text': '', 'height': 'md'},
        'fields': (
            ('image_url', 'Image URL', 'text'),
            ('alt', 'Alt Text', 'text'),
            ('overlay_text', 'Overlay Text', 'text'),
            ('height', 'Banner Height', 'select'),
        ),
    },
    {
        'key': 'feature_grid',
        'name': 'Feature Grid',
        'category': 'Layout',
        'icon': 'Grid3x3',
        'description': 'Grid of feature cards with icons, titles, and descriptions.',
        'default_props': {
            'heading': 'Why Choose Us',
            'features': [
                {'title': 'Heavy-Duty Equipment', 'description': 'Commercial-grade forestry mulchers and track loaders.', 'icon': 'Truck'},
                {'title': 'One-Pass Clearing', 'description': 'Brush and small trees become ground cover in a single pass.', 'icon': 'Zap'},
                {'title': 'Erosion Protection', 'description': 'Mulch stays on-site to hold soil in place.', 'icon': 'Shield'},
            ],
        },
        'fields': (('heading', 'Heading', 'text'), ('features', 'Features', 'list')),
    },
    {
        'key': 'cta_band',
        'name': 'Call to Action Band',
        'category': 'Marketing',
        'icon': 'Megaphone',
        'description': 'Full-width call-to-action strip with heading, description, and button.',
        'default_props': {
            'heading': 'Ready to Reclaim Your Land?',
            'description': "Whether it's a half-acre lot or a 50-acre parcel, we have the equipment to get it done right.",
            'button_text': 'Get a Free Quote',
            'button_href': '/quote',
        },
        'fields': (
            ('heading', 'Heading', 'text'),
            ('description', 'Description', 'textarea'),
            ('button_text', 'Button Text', 'text'),
            ('button_href', 'Button Link', 'text'),
        ),
    },
    {
        'key': 'project_gallery',
        'name': 'Project Gallery',
        'category': 'Dynamic',
        'icon': 'FolderOpen',
        'description': 'Published portfolio projects with before/after images from the CRM.',
        'default_props': {'heading': 'Recent Projects', 'limit': 6},
        'fields': (('heading', 'Heading', 'text'), ('limit', 'Number of projects', 'number')),
    },
)

_BASE_TOKENS = {
    'font': {'family': 'Inter', 'headings_weight': '700', 'body_weight': '400'},
    'radius': {'card': '0.5rem', 'button': '0.375rem'},
    'shadow': {'card': '0 1px 3px rgba(0,0,0,0.1)', 'button': '0 1px 2px rgba(0,0,0,0.05)'},
}

THEME_PRESETS = (
    {
        'key': 'forestry-pro',
        'name': 'Forestry Pro',
        'description': 'Brand colors from the logo: Green, Orange, and Slate.',
        'is_active': True,
        'colors': {
            'primary': '24 97% 46%', 'secondary': '137 38% 21%', 'accent': '215 25% 40%',
            'bg': '210 20% 98%', 'surface': '0 0% 100%', 'text': '215 25% 15%',
        },
        'components': {'button_style': 'solid', 'nav_style': 'transparent'},
    },
    {
        'key': 'blue-steel',
        'name': 'Blue Steel',
        'description': 'Professional blue and dark slate palette for a corporate, trustworthy feel.',
        'is_active': False,
        'colors': {
            'primary': '215 70% 45%', 'secondary': '220 25% 30%', 'accent': '200 80% 55%',
            'bg': '220 15% 97%', 'surface': '220 10% 100%', 'text': '220 20% 12%',
        },
        'components': {'button_style': 'solid', 'nav_style': 'filled'},
    },
    {
        'key': 'forest-green',
        'name': 'Forest Green',
        'description': 'Deep green nature-inspired theme evoking forests and outdoor work.',
        'is_active': False,
        'colors': {
            'primary': '145 55% 32%', 'secondary': '160 30% 25%', 'accent': '80 60% 45%',
            'bg': '120 10% 97%', 'surface': '120 8% 100%', 'text': '150 15% 12%',
        },
        'components': {'button_style': 'solid', 'nav_style': 'transparent'},
    },
)

SYSTEM_TEMPLATES = (
    {
        'name': 'Service Landing',
        'description': 'Hero, feature grid, rich text and a quote call to action.',
        'blocks': ['hero', 'feature_grid', 'rich_text', 'cta_band'],
    },
    {
        'name': 'City Landing',
        'description': 'Local hero, project gallery and call to action for a service area.',
        'blocks': ['hero', 'rich_text', 'project_gallery', 'cta_band'],
    },
)

SAMPLE_TESTIMONIALS = (
    ('Mike R.', 'Waxhaw, NC', 'Cleared 3 acres of overgrown brush in a single day. The mulch ground cover is already holding the soil in place.', 5),
    ('Sarah T.', 'Mooresville, NC', 'Professional crew, serious equipment, and fair pricing. The trails through our back 5 acres are perfect for our UTVs.', 5),
    ('James K.', 'Indian Trail, NC', 'Kudzu and privet had swallowed our fence line. The fence is visible again for the first time in years.', 5),
)

SAMPLE_POSTS = (
    {
        'title': 'Forestry Mulching in Charlotte, NC: What to Expect',
        'slug': 'forestry-mulching-charlotte-nc',
        'category': 'Forestry Mulching',
        'excerpt': 'How single-pass mulching works and why it suits Piedmont properties.',
        'content': '## How it works\n\nA mulching head grinds brush and saplings into **natural ground cover**.\n\n- No hauling\n- No burn piles\n- Less erosion',
        'tags': ['forestry mulching', 'charlotte'],
    },
    {
        'title': 'Storm Cleanup: Clearing Downed Trees and Brush',
        'slug': 'storm-cleanup-charlotte',
        'category': 'Storm Cleanup',
        'excerpt': 'What to do after a storm leaves your property buried in debris.',
        'content': '## Safety first\n\nStay clear of *downed lines* and call the utility before any work starts.\n\n## Clearing the debris\n\nMulching turns limbs and brush into ground cover on-site.',
        'tags': ['storm cleanup'],
    },
    {
        'title': 'Choosing the Right Pricing Option',
        'slug': 'choosing-right-pricing-option',
        'category': 'Pricing',
        'excerpt': 'Half-day, full-day or per-acre: how to pick the right fit.',
        'content': '## Half-day or full-day?\n\nSmall residential lots usually fit a half day. Dense 1-3 acre properties are best value as a full day.',
        'tags': ['pricing'],
    },
)


def _schema(fields):
    return {'fields': [{'key': key, 'label': label, 'type': kind} for key, label, kind in fields]}


def seed_admin_user():
    email = current_app.config.get('ADMIN_EMAIL') or 'admin@brushboss.com'
    env_password = current_app.config.get('ADMIN_PASSWORD') or ''
    admin = AdminUser.query.filter_by(email=email).first()
    if admin:
        # Keep the seeded account in sync with the configured password.
        if env_password and not admin.check_password(env_password):
            admin.set_password(env_password)
        return admin
    if AdminUser.query.first() is not None:
        return None
    if not env_password:
        env_password = secrets.token_urlsafe(16)
        current_app.logger.warning(
            'ADMIN_PASSWORD not set. Seeded %s with a random password. '
            'Set ADMIN_PASSWORD and restart to rotate it to a known value.',
            email,
        )
    admin = AdminUser(email=email, display_name='Site Owner', role=ROLE_SUPER_ADMIN)
    admin.set_password(env_password)
    db.session.add(admin)
    return admin


def seed_settings():
    existing = {setting.key for setting in SiteSetting.query.all()}
    for key, value in DEFAULT_SETTINGS.items():
        if key not in existing:
            db.session.add(SiteSetting(key=key, value=value))


def seed_system_blocks():
    existing = {block.key for block in CmsBlock.query.all()}
    for block in SYSTEM_BLOCKS:
        if block['key'] in existing:
            continue
        row = CmsBlock(
            key=block['key'],
            name=block['name'],
            category=block['category'],
            icon=block['icon'],
            description=block['description'],
            is_system=True,
        )
        row.set_json('default_props', block['default_props'])
        row.set_json('schema', _schema(block['fields']))
        db.session.add(row)


def seed_templates():
    if CmsTemplate.query.filter_by(is_system=True).first() is not None:
        return
    for template in SYSTEM_TEMPLATES:
        blocks = [{'type': key, 'props': {}} for key in template['blocks']]
        row = CmsTemplate(name=template['name'], description=template['description'], is_system=True)
        row.set_json('blocks', blocks)
        db.session.add(row)


def seed_theme_presets():
    if ThemePreset.query.first() is not None:
        return
    for preset in THEME_PRESETS:
        tokens = dict(_BASE_TOKENS, colors=preset['colors'], components=preset['components'])
        row = ThemePreset(
            key=preset['key'],
            name=preset['name'],
            description=preset['description'],
            is_system=True,
            is_active=preset['is_active'],
        )
        row.set_json('tokens', tokens)
        db.session.add(row)


def seed_sample_content():
    if Testimonial.query.first() is None:
        for name, area, quote, rating in SAMPLE_TESTIMONIALS:
            db.session.add(Testimonial(name=name, area=area, quote=quote, rating=rating, publish=True))
    if BlogPost.query.first() is None:
        now = utc_now_naive()
        for post in SAMPLE_POSTS:
            row = BlogPost(
                title=post['title'],
                slug=post['slug'],
                category=post['category'],
                excerpt=post['excerpt'],
                content=post['content'],
                status=STATUS_PUBLISHED,
                published_at=now,
            )
            row.set_json('tags', post['tags'])
            db.session.add(row)


def seed_database():
    seed_admin_user()
    seed_settings()
    seed_system_blocks()
    seed_templates()
    seed_theme_presets()
    if current_app.config.get('SEED_SAMPLE_CONTENT', True):
        seed_sample_content()
    db.session.commit()
