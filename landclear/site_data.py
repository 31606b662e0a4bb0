"""Static marketing data and the quote form option lists."""

COUNTIES = (
    'Mecklenburg',
    'Union',
    'Cabarrus',
    'Gaston',
    'Iredell',
    'York (SC)',
    'Lancaster (SC)',
    'Other',
)
TIMELINE_OPTIONS = ('ASAP', 'This month', 'Next 30-60 days', 'Flexible')
PROPERTY_TYPES = ('Residential', 'Commercial', 'Farm', 'HOA', 'Other')
AREA_OPTIONS = (
    'Under 1/4 acre',
    '1/4-1/2 acre',
    '1/2-1 acre',
    '1-3 acres',
    '3-5 acres',
    '5+ acres',
)
BUDGET_OPTIONS = (
    "I'm exploring options",
    'I want the best value',
    'I need it done right',
)
BLOG_CATEGORIES = (
    'Forestry Mulching',
    'Land Clearing',
    'Brush Removal',
    'Lot Clearing',
    'Storm Cleanup',
    'Stump Grinding',
    'Driveway/Trail Cutting',
    'Pricing',
)

SERVICES = (
    {
        'slug': 'forestry-mulching',
        'title': 'Forestry Mulching',
        'summary': 'Single-pass land clearing that grinds brush, saplings, and undergrowth into natural mulch on-site.',
        'related': ('trail-cutting', 'hillside-mulching', 'brush-hogging'),
    },
    {
        'slug': 'trail-cutting',
        'title': 'Trail Cutting',
        'summary': 'Custom access lanes, hunting trails, and paths cut through wooded and overgrown property.',
        'related': ('forestry-mulching', 'hillside-mulching', 'brush-hogging'),
    },
    {
        'slug': 'hillside-mulching',
        'title': 'Hillside Mulching',
        'summary': "Specialized brush clearing on steep slopes and uneven terrain where standard equipment can't go.",
        'related': ('forestry-mulching', 'trail-cutting', 'invasive-growth-removal'),
    },
    {
        'slug': 'brush-hogging',
        'title': 'Brush Hogging',
        'summary': 'Heavy-duty rotary mowing for overgrown fields, pastures, and open areas.',
        'related': ('forestry-mulching', 'fence-line-clearing', 'invasive-growth-removal'),
    },
    {
        'slug': 'fence-line-clearing',
        'title': 'Fence Line Clearing',
        'summary': 'Vegetation removal along property boundaries, fence lines, and easements.',
        'related': ('forestry-mulching', 'invasive-growth-removal', 'brush-hogging'),
    },
    {
        'slug': 'invasive-growth-removal',
        'title': 'Invasive Growth Removal',
        'summary': 'Targeted removal of kudzu, privet, honeysuckle, wisteria, and other invasive species.',
        'related': ('forestry-mulching', 'fence-line-clearing', 'hillside-mulching'),
    },
)
SERVICE_SLUGS = tuple(service['slug'] for service in SERVICES)

SERVICE_AREAS = (
    {'slug': 'charlotte', 'name': 'Charlotte', 'county': 'Mecklenburg', 'state': 'NC'},
    {'slug': 'huntersville', 'name': 'Huntersville', 'county': 'Mecklenburg', 'state': 'NC'},
    {'slug': 'concord', 'name': 'Concord', 'county': 'Cabarrus', 'state': 'NC'},
    {'slug': 'matthews', 'name': 'Matthews', 'county': 'Mecklenburg', 'state': 'NC'},
    {'slug': 'mint-hill', 'name': 'Mint Hill', 'county': 'Mecklenburg', 'state': 'NC'},
    {'slug': 'fort-mill', 'name': 'Fort Mill', 'county': 'York (SC)', 'state': 'SC'},
    {'slug': 'belmont', 'name': 'Belmont', 'county': 'Gaston', 'state': 'NC'},
    {'slug': 'waxhaw', 'name': 'Waxhaw', 'county': 'Union', 'state': 'NC'},
    {'slug': 'indian-trail', 'name': 'Indian Trail', 'county': 'Union', 'state': 'NC'},
    {'slug': 'monroe', 'name': 'Monroe', 'county': 'Union', 'state': 'NC'},
    {'slug': 'lake-norman', 'name': 'Lake Norman', 'county': 'Other', 'state': 'NC'},
    {'slug': 'mooresville', 'name': 'Mooresville', 'county': 'Iredell', 'state': 'NC'},
)

QUOTE_FORM_OPTIONS = {
    'counties': COUNTIES,
    'services': [{'slug': service['slug'], 'title': service['title']} for service in SERVICES],
    'property_types': PROPERTY_TYPES,
    'approximate_areas': AREA_OPTIONS,
    'timelines': TIMELINE_OPTIONS,
    'budget_comfort': BUDGET_OPTIONS,
}

ADMIN_DOCS = (
    {
        'slug': 'page-builder',
        'title': 'Page Builder Overview',
        'body': 'Pages are built from an ordered list of blocks. Each update keeps the previous '
                'state as a version that can be restored from the page history.',
    },
    {
        'slug': 'preview-tokens',
        'title': 'Preview Tokens (Draft Preview)',
        'body': 'POST /api/admin/cms/pages/<id>/preview-token returns a signed token valid for 15 minutes. '
                'Open /api/public/pages/<slug>?preview_token=TOKEN to view the draft.',
    },
    {
        'slug': 'roles',
        'title': 'Authentication & Authorization',
        'body': 'Super admins and admins see everything. Editors manage blog and CMS content. '
                'Sales users work leads and CRM projects.',
    },
    {
        'slug': 'leads',
        'title': 'Lead Management',
        'body': 'Quote form submissions arrive as New leads. Status changes, notes, assignment '
                'and exports are recorded in the lead activity log.',
    },
    {
        'slug': 'redirects',
        'title': 'URL Redirects',
        'body': 'Active redirects answer matching site paths with a 301 or 302. When two redirects '
                'share a source path the oldest one wins.',
    },
)


def get_service(slug):
    for service in SERVICES:
        if service['slug'] == slug:
            return service
    return None


def get_service_area(slug):
    for area in SERVICE_AREAS:
        if area['slug'] == slug:
            return area
    return None
