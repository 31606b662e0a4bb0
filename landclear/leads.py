"""Lead intake from the public quote form and the staff sales pipeline.

Status changes are permissive: any status may follow any other,
and every change is written to the lead's activity log.
"""
import csv
import io
import json
from datetime import timedelta

from flask import current_app
from sqlalchemy import func, or_

from . import store
from .errors import ConflictError, NotFoundError, ValidationError
from .models import (
    LEAD_ACTIVITY_ASSIGNED,
    LEAD_ACTIVITY_CREATED,
    LEAD_ACTIVITY_EXPORTED,
    LEAD_ACTIVITY_NOTE_ADDED,
    LEAD_ACTIVITY_STATUS_CHANGE,
    LEAD_STATUS_NEW,
    LEAD_STATUSES,
    CrmProject,
    Lead,
    LeadActivity,
    LeadNote,
    db,
    normalize_lead_status,
)
from .notifications import send_lead_notification
from .site_data import (
    AREA_OPTIONS,
    BUDGET_OPTIONS,
    COUNTIES,
    PROPERTY_TYPES,
    SERVICE_SLUGS,
    TIMELINE_OPTIONS,
    get_service,
)
from .utils import (
    clean_string_list,
    clean_text,
    escape_like,
    is_valid_email,
    isoformat,
    make_slug,
    parse_date,
    parse_int,
    utc_now_naive,
)
from .validation import FieldCleaner

HONEYPOT_FIELD = 'company'
EXPORT_COLUMNS = (
    ('id', 'ID'),
    ('created_at', 'Created'),
    ('full_name', 'Name'),
    ('phone', 'Phone'),
    ('email', 'Email'),
    ('job_address', 'Job Address'),
    ('county', 'County'),
    ('services_needed', 'Services'),
    ('property_type', 'Property Type'),
    ('approximate_area', 'Approximate Area'),
    ('timeline', 'Timeline'),
    ('budget_comfort', 'Budget'),
    ('status', 'Status'),
    ('tags', 'Tags'),
    ('assigned_to', 'Assigned To'),
    ('last_contacted_at', 'Last Contacted'),
    ('access_notes', 'Access Notes'),
    ('desired_outcome', 'Desired Outcome'),
)


def serialize_lead(lead):
    return {
        'id': lead.id,
        'full_name': lead.full_name,
        'phone': lead.phone,
        'email': lead.email,
        'job_address': lead.job_address,
        'county': lead.county,
        'services_needed': lead.services_needed,
        'property_type': lead.property_type,
        'approximate_area': lead.approximate_area,
        'access_notes': lead.access_notes,
        'desired_outcome': lead.desired_outcome,
        'timeline': lead.timeline,
        'budget_comfort': lead.budget_comfort,
        'status': lead.status,
        'tags': lead.tags,
        'assigned_to': lead.assigned_to,
        'last_contacted_at': isoformat(lead.last_contacted_at),
        'created_at': isoformat(lead.created_at),
        'updated_at': isoformat(lead.updated_at),
    }


def serialize_note(note):
    return {
        'id': note.id,
        'lead_id': note.lead_id,
        'note': note.note,
        'author': note.author,
        'created_at': isoformat(note.created_at),
    }


def serialize_activity(entry):
    return {
        'id': entry.id,
        'lead_id': entry.lead_id,
        'type': entry.type,
        'payload': entry.get_json('payload', {}),
        'actor': entry.actor,
        'created_at': isoformat(entry.created_at),
    }


def _log_activity(lead_id, activity_type, payload=None, actor=None):
    entry = LeadActivity(lead_id=lead_id, type=activity_type, actor=actor or 'System')
    entry.set_json('payload', payload or {})
    db.session.add(entry)
    return entry


def get_lead(lead_id):
    lead = db.session.get(Lead, lead_id) if lead_id is not None else None
    if lead is None:
        raise NotFoundError('Lead not found')
    return lead


def is_honeypot_tripped(fields):
    return bool(clean_text((fields or {}).get(HONEYPOT_FIELD), 200))


def clean_quote_form(fields):
    cleaner = FieldCleaner(fields, creating=True)
    cleaner.text('full_name', 200, required=True)
    cleaner.text('phone', 50, required=True)
    email = cleaner.text('email', 200, required=True)
    if email and not is_valid_email(email):
        cleaner.error('email', 'Please enter a valid email address.')
    elif email:
        cleaner.values['email'] = email.lower()
    cleaner.text('job_address', 300, required=True)
    cleaner.choice('county', COUNTIES, required=True)
    services = cleaner.string_list('services_needed', max_items=len(SERVICE_SLUGS), max_length=80, required=True)
    if services and any(slug not in SERVICE_SLUGS for slug in services):
        cleaner.error('services_needed', 'Unknown service selected.')
    cleaner.choice('property_type', PROPERTY_TYPES, required=True)
    cleaner.choice('approximate_area', AREA_OPTIONS, required=True)
    cleaner.text('access_notes', 4000)
    cleaner.text('desired_outcome', 4000)
    cleaner.choice('timeline', TIMELINE_OPTIONS, required=True)
    cleaner.choice('budget_comfort', BUDGET_OPTIONS, required=True)
    return cleaner.done()


def create_lead(fields):
    """Store a quote form submission as a New lead.

    Returns None when the honeypot field is filled; the caller answers those
    submissions exactly like real ones.
    """
    if is_honeypot_tripped(fields):
        current_app.logger.info('Quote form honeypot triggered; submission discarded.')
        return None
    values = clean_quote_form(fields)
    lead = Lead(
        full_name=values['full_name'],
        phone=values['phone'],
        email=values['email'],
        job_address=values['job_address'],
        county=values['county'],
        property_type=values['property_type'],
        approximate_area=values['approximate_area'],
        access_notes=values.get('access_notes') or None,
        desired_outcome=values.get('desired_outcome') or None,
        timeline=values['timeline'],
        budget_comfort=values['budget_comfort'],
        status=LEAD_STATUS_NEW,
    )
    lead.set_json('services_needed', values['services_needed'])
    lead.set_json('tags', [])
    db.session.add(lead)
    db.session.flush()
    _log_activity(lead.id, LEAD_ACTIVITY_CREATED, {'source': 'quote_form'})
    db.session.commit()
    current_app.logger.info('Lead %s created from quote form (%s).', lead.id, lead.county)
    send_lead_notification(lead)
    return lead


def _apply_status(lead, status, actor):
    normalized = normalize_lead_status(status)
    if normalized is None:
        raise ValidationError({'status': 'Choose one of: ' + ', '.join(LEAD_STATUSES)})
    if normalized != lead.status:
        _log_activity(lead.id, LEAD_ACTIVITY_STATUS_CHANGE, {'from': lead.status, 'to': normalized}, actor)
        lead.status = normalized


def update_lead(lead_id, partial, actor=None):
    lead = get_lead(lead_id)
    partial = partial if isinstance(partial, dict) else {}
    errors = {}
    if 'last_contacted_at' in partial:
        raw = partial.get('last_contacted_at')
        contacted_at = parse_date(raw)
        if raw and contacted_at is None:
            errors['last_contacted_at'] = 'Use an ISO 8601 date.'
    if errors:
        raise ValidationError(errors)

    if 'status' in partial:
        _apply_status(lead, partial.get('status'), actor)
    if 'tags' in partial:
        lead.set_json('tags', clean_string_list(partial.get('tags'), max_items=20, max_length=60))
    if 'assigned_to' in partial:
        assigned_to = clean_text(partial.get('assigned_to'), 200) or None
        if assigned_to != lead.assigned_to:
            _log_activity(lead.id, LEAD_ACTIVITY_ASSIGNED, {'from': lead.assigned_to, 'to': assigned_to}, actor)
            lead.assigned_to = assigned_to
    if 'last_contacted_at' in partial:
        lead.last_contacted_at = contacted_at
    db.session.commit()
    return lead


def _filtered_query(filters):
    filters = filters or {}
    errors = {}
    query = Lead.query

    raw_status = clean_text(filters.get('status'), 40)
    if raw_status:
        status = normalize_lead_status(raw_status)
        if status is None:
            errors['status'] = 'Unknown lead status.'
        else:
            query = query.filter(Lead.status == status)
    county = clean_text(filters.get('county'), 80)
    if county:
        query = query.filter(Lead.county == county)
    service = clean_text(filters.get('service'), 80)
    if service:
        pattern = f'%{escape_like(json.dumps(service))}%'
        query = query.filter(Lead.services_needed_json.like(pattern, escape='\\'))
    search = clean_text(filters.get('search'), 120)
    if search:
        pattern = f'%{escape_like(search.lower())}%'
        query = query.filter(or_(
            func.lower(Lead.full_name).like(pattern, escape='\\'),
            func.lower(Lead.email).like(pattern, escape='\\'),
            func.lower(Lead.phone).like(pattern, escape='\\'),
        ))

    raw_from = clean_text(filters.get('date_from'), 40)
    if raw_from:
        date_from = parse_date(raw_from)
        if date_from is None:
            errors['date_from'] = 'Use an ISO 8601 date.'
        else:
            query = query.filter(Lead.created_at >= date_from)
    raw_to = clean_text(filters.get('date_to'), 40)
    if raw_to:
        date_to = parse_date(raw_to)
        if date_to is None:
            errors['date_to'] = 'Use an ISO 8601 date.'
        elif len(raw_to) == 10:
            # A bare date includes the whole day.
            query = query.filter(Lead.created_at < date_to + timedelta(days=1))
        else:
            query = query.filter(Lead.created_at <= date_to)

    if errors:
        raise ValidationError(errors)
    return query.order_by(Lead.created_at.desc(), Lead.id.desc())


def list_leads(filters=None):
    filters = filters or {}
    page = parse_int(filters.get('page'), 1, min_value=1)
    page_size = parse_int(
        filters.get('page_size'),
        current_app.config.get('LEADS_DEFAULT_PAGE_SIZE', 20),
        min_value=1,
        max_value=current_app.config.get('LEADS_MAX_PAGE_SIZE', 100),
    )
    query = _filtered_query(filters)
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * page_size).limit(page_size).all()
    return store.pagination_payload([serialize_lead(lead) for lead in rows], total, page, page_size)


def _csv_cell(value):
    if isinstance(value, list):
        value = '; '.join(str(item) for item in value)
    text = '' if value is None else str(value)
    # Keep spreadsheet apps from evaluating user input as formulas.
    if text[:1] in ('=', '+', '-', '@'):
        text = "'" + text
    return text


def export_leads_csv(filters=None, actor=None):
    """Serialize every lead matching ``filters`` (no pagination) as CSV text."""
    rows = _filtered_query(filters).all()
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow([label for _, label in EXPORT_COLUMNS])
    for lead in rows:
        data = serialize_lead(lead)
        writer.writerow([_csv_cell(data[key]) for key, _ in EXPORT_COLUMNS])
    applied = {key: value for key, value in (filters or {}).items() if value and key not in ('page', 'page_size')}
    _log_activity(None, LEAD_ACTIVITY_EXPORTED, {'count': len(rows), 'filters': applied}, actor)
    db.session.commit()
    current_app.logger.info('Exported %s leads.', len(rows))
    return buffer.getvalue()


def add_note(lead_id, note, author=None):
    lead = get_lead(lead_id)
    text = clean_text(note, 5000)
    if not text:
        raise ValidationError({'note': 'Note cannot be empty.'})
    entry = LeadNote(lead_id=lead.id, note=text, author=author or 'System')
    db.session.add(entry)
    _log_activity(lead.id, LEAD_ACTIVITY_NOTE_ADDED, {'preview': text[:120]}, author)
    db.session.commit()
    return entry


def lead_notes(lead_id):
    lead = get_lead(lead_id)
    rows = LeadNote.query.filter_by(lead_id=lead.id).order_by(LeadNote.created_at.desc(), LeadNote.id.desc()).all()
    return [serialize_note(note) for note in rows]


def lead_activity(lead_id):
    lead = get_lead(lead_id)
    rows = LeadActivity.query.filter_by(lead_id=lead.id).order_by(
        LeadActivity.created_at.desc(), LeadActivity.id.desc()
    ).all()
    return [serialize_activity(entry) for entry in rows]


def lead_stats():
    week_ago = utc_now_naive() - timedelta(days=7)
    pipeline = {status: 0 for status in LEAD_STATUSES}
    for status, count in db.session.query(Lead.status, func.count(Lead.id)).group_by(Lead.status).all():
        pipeline[status] = count
    return {
        'total': Lead.query.count(),
        'new_this_week': Lead.query.filter(Lead.created_at >= week_ago).count(),
        'pipeline': pipeline,
    }


def convert_to_project(lead_id, fields=None, actor=None):
    """Create an unpublished CRM project from a lead; one project per lead."""
    lead = get_lead(lead_id)
    existing = CrmProject.query.filter_by(lead_id=lead.id).first()
    if existing is not None:
        raise ConflictError('Lead has already been converted to a project.', project_id=existing.id)

    fields = fields if isinstance(fields, dict) else {}
    services = lead.services_needed
    primary = get_service(services[0]) if services else None
    default_title = f"{primary['title'] if primary else 'Land Clearing'} in {lead.county}"
    title = clean_text(fields.get('title'), 300) or default_title
    values = {
        'title': title,
        'slug': store.projects.unique_slug(make_slug(clean_text(fields.get('slug'), 200) or title) or 'project'),
        'location': clean_text(fields.get('location'), 200) or lead.county,
        'summary': clean_text(fields.get('summary'), 5000) or lead.desired_outcome or '',
        'services': services,
        'publish': False,
    }
    project = store.projects.create_for_lead(lead.id, values)
    current_app.logger.info('Lead %s converted to project %s.', lead.id, project.id)
    return project
