import base64
import smtplib
import urllib.error
import urllib.parse
import urllib.request
from email.message import EmailMessage

from flask import current_app, has_request_context, request

from .site_data import get_service


def _safe_header_value(value, max_length=240):
    # Strip CR/LF so user input cannot inject headers.
    cleaned = ' '.join((value or '').replace('\r', ' ').replace('\n', ' ').split())
    return cleaned[:max_length]


def _split_recipients(raw):
    recipients = []
    seen = set()
    for item in (raw or '').split(','):
        cleaned = _safe_header_value(item, max_length=320)
        normalized = cleaned.lower()
        if cleaned and normalized not in seen:
            recipients.append(cleaned)
            seen.add(normalized)
    return recipients


def _resolve_base_url():
    configured = (current_app.config.get('APP_BASE_URL') or '').rstrip('/')
    if configured:
        return configured
    if has_request_context():
        return (request.host_url or '').rstrip('/')
    return ''


def _lead_admin_url(lead_id):
    return f"{_resolve_base_url()}/admin/leads/{lead_id}"


def _send_via_mailgun(subject, body, recipients, mail_from):
    """Send through the Mailgun HTTP API; None when Mailgun is not configured."""
    api_key = (current_app.config.get('MAILGUN_API_KEY') or '').strip()
    domain = (current_app.config.get('MAILGUN_DOMAIN') or '').strip()
    if not api_key or not domain:
        return None

    url = f"https://api.mailgun.net/v3/{domain}/messages"
    data = urllib.parse.urlencode({
        'from': mail_from,
        'to': ', '.join(recipients),
        'subject': subject,
        'text': body,
    }).encode('utf-8')
    auth = base64.b64encode(f"api:{api_key}".encode()).decode()

    req = urllib.request.Request(url, data=data, method='POST')
    req.add_header('Authorization', f'Basic {auth}')
    try:
        with urllib.request.urlopen(req, timeout=15):  # nosec B310
            current_app.logger.info('Mailgun lead notification sent.')
            return True
    except urllib.error.HTTPError as e:
        error_body = e.read().decode('utf-8', errors='replace')
        current_app.logger.error('Mailgun API error %s: %s', e.code, error_body)
        return False
    except (urllib.error.URLError, OSError):
        current_app.logger.exception('Mailgun email delivery failed.')
        return False


def _send_via_smtp(subject, body, recipients, mail_from):
    host = (current_app.config.get('SMTP_HOST') or '').strip()
    if not host:
        return None

    port = int(current_app.config.get('SMTP_PORT') or 587)
    username = current_app.config.get('SMTP_USERNAME') or ''
    password = current_app.config.get('SMTP_PASSWORD') or ''
    use_ssl = bool(current_app.config.get('SMTP_USE_SSL'))
    use_tls = bool(current_app.config.get('SMTP_USE_TLS'))

    message = EmailMessage()
    message['Subject'] = subject
    message['From'] = mail_from
    message['To'] = ', '.join(recipients)
    message.set_content(body)

    try:
        if use_ssl:
            smtp = smtplib.SMTP_SSL(host=host, port=port, timeout=12)
        else:
            smtp = smtplib.SMTP(host=host, port=port, timeout=12)
        with smtp:
            if use_tls and not use_ssl:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(message)
        return True
    except (smtplib.SMTPException, OSError):
        current_app.logger.exception('SMTP email delivery failed.')
        return False


def _send_email(subject, body, recipients):
    if not recipients:
        return False

    mail_from = _safe_header_value(current_app.config.get('MAIL_FROM') or 'no-reply@localhost', max_length=254)
    safe_subject = _safe_header_value(subject, max_length=240)

    result = _send_via_mailgun(safe_subject, body, recipients, mail_from)
    if result is not None:
        return result
    result = _send_via_smtp(safe_subject, body, recipients, mail_from)
    if result is not None:
        return result

    current_app.logger.info('No email provider configured (set MAILGUN_API_KEY+MAILGUN_DOMAIN or SMTP_HOST).')
    return False


def _service_titles(slugs):
    titles = []
    for slug in slugs:
        service = get_service(slug)
        titles.append(service['title'] if service else slug)
    return ', '.join(titles) or 'Not provided'


def send_lead_notification(lead):
    recipients = _split_recipients(current_app.config.get('LEAD_NOTIFICATION_EMAILS'))
    if not recipients:
        return False

    name = _safe_header_value(lead.full_name, max_length=120) or 'Website visitor'
    subject = f"[Website] New quote request: {name} ({lead.county})"
    body = "\n".join([
        "A new quote request has been received.",
        "",
        f"Name: {lead.full_name}",
        f"Phone: {lead.phone}",
        f"Email: {lead.email}",
        f"Job address: {lead.job_address}",
        f"County: {lead.county}",
        f"Services: {_service_titles(lead.services_needed)}",
        f"Property type: {lead.property_type}",
        f"Approximate area: {lead.approximate_area}",
        f"Timeline: {lead.timeline}",
        f"Budget: {lead.budget_comfort}",
        "",
        "Access notes:",
        lead.access_notes or "None",
        "",
        "Desired outcome:",
        lead.desired_outcome or "None",
        "",
        f"Admin URL: {_lead_admin_url(lead.id)}",
    ])
    return _send_email(subject, body, recipients)
