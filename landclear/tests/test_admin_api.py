import csv
import io

from landclear.models import LeadActivity, ThemePreset, db

QUOTE_PAYLOAD = {
    "full_name": "Casey Morgan",
    "phone": "704-555-0100",
    "email": "casey@example.com",
    "job_address": "55 Ridge Ln, Concord, NC",
    "county": "Cabarrus",
    "services_needed": ["trail-cutting"],
    "property_type": "Farm",
    "approximate_area": "3-5 acres",
    "timeline": "Flexible",
    "budget_comfort": "I need it done right",
}


def submit_quote(client, headers, **changes):
    response = client.post("/api/public/leads", json=dict(QUOTE_PAYLOAD, **changes), headers=headers)
    assert response.status_code == 201
    return response.get_json()["lead_id"]


# Authentication and role gating

def test_admin_endpoints_require_login(client):
    response = client.get("/api/admin/leads")
    assert response.status_code == 401
    assert response.get_json()["authenticated"] is False
    assert response.headers["Cache-Control"] == "no-store"
    assert "noindex" in response.headers["X-Robots-Tag"]


def test_login_rejects_bad_password(client, csrf):
    response = client.post(
        "/api/admin/login",
        json={"email": "admin@brushboss.com", "password": "wrong"},
        headers=csrf(client),
    )
    assert response.status_code == 401
    assert "attempt(s) remaining" in response.get_json()["error"]


def test_login_is_rate_limited(app_factory, csrf):
    app = app_factory({"ADMIN_LOGIN_LIMIT": 2})
    client = app.test_client()
    headers = csrf(client)
    for _ in range(2):
        client.post("/api/admin/login", json={"email": "nobody@example.com", "password": "x"}, headers=headers)
    response = client.post(
        "/api/admin/login",
        json={"email": "admin@brushboss.com", "password": "admin123"},
        headers=headers,
    )
    assert response.status_code == 429

def test_login_rejects_non_object_json_body(client, csrf):
    response = client.post("/api/admin/login", json=["admin@brushboss.com", "admin123"], headers=csrf(client))
    assert response.status_code == 400
    assert response.get_json()["error"] == "Expected a JSON object body."



def test_me_and_logout(client, login_as):
    headers = login_as(client)
    me = client.get("/api/admin/me").get_json()
    assert me["user"]["role"] == "super_admin"

    assert client.post("/api/admin/logout", headers=headers).status_code == 200
    assert client.get("/api/admin/me").status_code == 401


def test_sales_role_is_forbidden_from_cms(client, login_as):
    login_as(client, "sales")
    assert client.get("/api/admin/leads").status_code == 200
    response = client.get("/api/admin/cms/pages")
    assert response.status_code == 403
    assert response.get_json()["code"] == "forbidden"
    assert client.get("/api/admin/settings").status_code == 403


def test_editor_role_is_forbidden_from_leads(client, login_as):
    login_as(client, "editor")
    assert client.get("/api/admin/cms/pages").status_code == 200
    assert client.get("/api/admin/leads").status_code == 403
    assert client.get("/api/admin/leads/export.csv").status_code == 403


def test_navigation_endpoint_filters_by_role(client, login_as):
    login_as(client, "sales")
    items = client.get("/api/admin/navigation?path=/admin/crm/projects").get_json()["items"]
    assert [item["title"] for item in items] == ["Dashboard", "Leads", "CRM"]
    assert items[2]["expanded"] is True

    access = client.get("/api/admin/access?path=/admin/cms/pages").get_json()
    assert access == {"path": "/admin/cms/pages", "allowed": False}


def test_dashboard_includes_lead_stats_for_managers(client, login_as):
    login_as(client)
    payload = client.get("/api/admin/dashboard").get_json()
    assert payload["leads"]["pipeline"]["New"] == 0
    assert payload["content"]["blog_posts"] == 3


# CMS

def test_page_update_keeps_versions_and_restores(client, login_as):
    headers = login_as(client)
    created = client.post(
        "/api/admin/cms/pages",
        json={"title": "Land Clearing Concord", "page_type": "city", "blocks": [{"type": "hero", "props": {}}]},
        headers=headers,
    )
    assert created.status_code == 201
    page = created.get_json()
    assert page["slug"] == "land-clearing-concord"
    assert page["status"] == "draft"

    updated = client.patch(
        f"/api/admin/cms/pages/{page['id']}",
        json={"title": "Forestry Mulching Concord", "change_note": "Retitle"},
        headers=headers,
    )
    assert updated.get_json()["title"] == "Forestry Mulching Concord"

    versions = client.get(f"/api/admin/cms/pages/{page['id']}/versions").get_json()["items"]
    assert len(versions) == 1
    assert versions[0]["change_note"] == "Retitle"
    assert versions[0]["snapshot"]["title"] == "Land Clearing Concord"

    restored = client.post(
        f"/api/admin/cms/pages/{page['id']}/versions/{versions[0]['id']}/restore",
        headers=headers,
    )
    assert restored.get_json()["title"] == "Land Clearing Concord"
    versions = client.get(f"/api/admin/cms/pages/{page['id']}/versions").get_json()["items"]
    assert len(versions) == 2
    assert versions[0]["change_note"] == "Restored from version 1"


def test_publish_toggle_records_a_version(client, login_as):
    headers = login_as(client)
    page = client.post("/api/admin/cms/pages", json={"title": "About Us"}, headers=headers).get_json()
    published = client.post(f"/api/admin/cms/pages/{page['id']}/publish", headers=headers).get_json()
    assert published["status"] == "published"
    assert published["published_at"]
    versions = client.get(f"/api/admin/cms/pages/{page['id']}/versions").get_json()["items"]
    assert versions[0]["snapshot"]["status"] == "draft"


def test_draft_page_needs_preview_token(client, login_as):
    headers = login_as(client)
    page = client.post("/api/admin/cms/pages", json={"title": "Spring Specials"}, headers=headers).get_json()
    assert client.get("/api/public/pages/spring-specials").status_code == 404

    token = client.post(f"/api/admin/cms/pages/{page['id']}/preview-token", headers=headers).get_json()["token"]
    preview = client.get(f"/api/public/pages/spring-specials?preview_token={token}")
    assert preview.status_code == 200
    assert preview.get_json()["preview"] is True
    assert "created_by_id" not in preview.get_json()
    assert preview.headers["Cache-Control"] == "no-store"

    assert client.get("/api/public/pages/spring-specials?preview_token=forged").status_code == 404


def test_duplicate_slug_is_a_conflict(client, login_as):
    headers = login_as(client)
    assert client.post("/api/admin/cms/pages", json={"title": "Pricing"}, headers=headers).status_code == 201
    response = client.post("/api/admin/cms/pages", json={"title": "Pricing"}, headers=headers)
    assert response.status_code == 409
    assert response.get_json()["field"] == "slug"


def test_page_create_validation_errors(client, login_as):
    headers = login_as(client)
    response = client.post("/api/admin/cms/pages", json={"page_type": "castle"}, headers=headers)
    assert response.status_code == 400
    assert set(response.get_json()["fields"]) == {"title", "page_type"}


def test_deleting_missing_records_returns_404(client, login_as):
    headers = login_as(client)
    for url in ("/api/admin/cms/pages/999", "/api/admin/cms/blocks/999", "/api/admin/blog/posts/999"):
        assert client.delete(url, headers=headers).status_code == 404


def test_system_blocks_cannot_be_deleted(client, login_as):
    headers = login_as(client)
    blocks = client.get("/api/admin/cms/blocks").get_json()["items"]
    hero = [block for block in blocks if block["key"] == "hero"][0]
    assert hero["is_system"] is True
    assert client.delete(f"/api/admin/cms/blocks/{hero['id']}", headers=headers).status_code == 409

    custom = client.post(
        "/api/admin/cms/blocks",
        json={"key": "faq_list", "name": "FAQ List", "default_props": {"items": []}},
        headers=headers,
    )
    assert custom.status_code == 201
    assert client.delete(f"/api/admin/cms/blocks/{custom.get_json()['id']}", headers=headers).status_code == 200


def test_theme_activation_keeps_a_single_active_preset(app, client, login_as):
    headers = login_as(client)
    themes = client.get("/api/admin/cms/themes").get_json()["items"]
    target = [theme for theme in themes if theme["key"] == "blue-steel"][0]

    response = client.post(f"/api/admin/cms/themes/{target['id']}/activate", headers=headers)
    assert response.status_code == 200
    assert response.get_json()["is_active"] is True

    with app.app_context():
        active = ThemePreset.query.filter_by(is_active=True).all()
        assert [preset.key for preset in active] == ["blue-steel"]

    assert client.get("/api/public/theme").get_json()["theme"]["key"] == "blue-steel"
    assert client.delete(f"/api/admin/cms/themes/{target['id']}", headers=headers).status_code == 409

def test_activating_the_active_theme_or_any_of_many_keeps_one_active(app, client, login_as):
    headers = login_as(client)
    for name in ("Autumn Clay", "Night Crew"):
        created = client.post(
            "/api/admin/cms/themes",
            json={"name": name, "tokens": {"colors": {"primary": "10 50% 40%"}}},
            headers=headers,
        )
        assert created.status_code == 201
    themes = client.get("/api/admin/cms/themes").get_json()["items"]
    assert len(themes) == 5
    by_key = {theme["key"]: theme["id"] for theme in themes}

    for key in ("forestry-pro", "forestry-pro", "night-crew", "autumn-clay", "forest-green"):
        response = client.post(f"/api/admin/cms/themes/{by_key[key]}/activate", headers=headers)
        assert response.status_code == 200
        with app.app_context():
            active = ThemePreset.query.filter_by(is_active=True).all()
            assert [preset.key for preset in active] == [key]
        assert client.get("/api/public/theme").get_json()["theme"]["key"] == key



def test_branding_updates_active_theme_tokens(client, login_as):
    headers = login_as(client)
    response = client.put(
        "/api/admin/branding",
        json={"tokens": {"colors": {"primary": "20 80% 40%"}}},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.get_json()["theme"]["tokens"]["colors"]["primary"] == "20 80% 40%"


def test_site_redirect_is_applied_to_matching_requests(client, login_as):
    headers = login_as(client)
    created = client.post(
        "/api/admin/cms/redirects",
        json={"from_path": "/old-services/", "to_path": "/services", "code": 301},
        headers=headers,
    )
    assert created.status_code == 201
    assert created.get_json()["from_path"] == "/old-services"

    resolved = client.get("/api/public/redirects/resolve?path=/old-services").get_json()
    assert resolved == {"from_path": "/old-services", "to_path": "/services", "code": 301}

    response = client.get("/old-services")
    assert response.status_code == 301
    assert response.headers["Location"].endswith("/services")


def test_first_created_redirect_wins_for_duplicate_sources(client, login_as):
    headers = login_as(client)
    client.post("/api/admin/cms/redirects", json={"from_path": "/old", "to_path": "/first"}, headers=headers)
    client.post("/api/admin/cms/redirects", json={"from_path": "/old", "to_path": "/second"}, headers=headers)
    assert client.get("/api/public/redirects/resolve?path=/old").get_json()["to_path"] == "/first"


def test_redirect_validation(client, login_as):
    headers = login_as(client)
    self_loop = client.post("/api/admin/cms/redirects", json={"from_path": "/a", "to_path": "/a"}, headers=headers)
    assert self_loop.status_code == 400
    api_path = client.post("/api/admin/cms/redirects", json={"from_path": "/api/x", "to_path": "/b"}, headers=headers)
    assert api_path.status_code == 400
    bad_code = client.post(
        "/api/admin/cms/redirects",
        json={"from_path": "/c", "to_path": "/d", "code": 307},
        headers=headers,
    )
    assert bad_code.status_code == 400

def test_temporary_redirect_round_trip(client, login_as):
    headers = login_as(client)
    created = client.post(
        "/api/admin/cms/redirects",
        json={"from_path": "/spring-special", "to_path": "/services/forestry-mulching", "code": 302},
        headers=headers,
    )
    assert created.status_code == 201

    resolved = client.get("/api/public/redirects/resolve?path=/spring-special").get_json()
    assert resolved["code"] == 302

    response = client.get("/spring-special")
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/services/forestry-mulching")


def test_redirect_target_keeps_query_and_fragment(client, login_as):
    headers = login_as(client)
    created = client.post(
        "/api/admin/cms/redirects",
        json={"from_path": "/flyer", "to_path": "/quote/?utm_source=flyer#form"},
        headers=headers,
    )
    assert created.status_code == 201
    assert created.get_json()["to_path"] == "/quote?utm_source=flyer#form"

    resolved = client.get("/api/public/redirects/resolve?path=/flyer").get_json()
    assert resolved["to_path"] == "/quote?utm_source=flyer#form"

    response = client.get("/flyer")
    assert response.headers["Location"].endswith("/quote?utm_source=flyer#form")

    self_loop = client.post(
        "/api/admin/cms/redirects",
        json={"from_path": "/a", "to_path": "/a?x=1"},
        headers=headers,
    )
    assert self_loop.status_code == 400



def test_blog_filters_combine(client, login_as):
    headers = login_as(client)
    client.post(
        "/api/admin/blog/posts",
        json={"title": "Storm Prep Checklist", "content": "Draft body", "category": "Storm Cleanup"},
        headers=headers,
    )
    both = client.get("/api/admin/blog/posts?status=published&category=Storm%20Cleanup").get_json()
    assert [post["slug"] for post in both["items"]] == ["storm-cleanup-charlotte"]

    drafts = client.get("/api/admin/blog/posts?status=draft&category=Storm%20Cleanup").get_json()
    assert [post["slug"] for post in drafts["items"]] == ["storm-prep-checklist"]

    none = client.get("/api/admin/blog/posts?status=draft&category=Pricing").get_json()
    assert none["total"] == 0

def test_unpublished_content_stays_off_the_public_api(client, login_as):
    headers = login_as(client)
    draft = client.post(
        "/api/admin/blog/posts",
        json={"title": "Winter Burn Ban Notes", "content": "Not ready", "category": "Storm Cleanup"},
        headers=headers,
    )
    assert draft.status_code == 201
    assert draft.get_json()["status"] == "draft"

    listed = client.get("/api/public/blog").get_json()
    assert "winter-burn-ban-notes" not in [post["slug"] for post in listed["items"]]
    assert client.get("/api/public/blog/winter-burn-ban-notes").status_code == 404

    hidden = client.post(
        "/api/admin/cms/testimonials",
        json={"name": "Robin", "quote": "Still deciding on a review.", "rating": 4, "publish": False},
        headers=headers,
    )
    assert hidden.status_code == 201
    quotes = [item["quote"] for item in client.get("/api/public/testimonials").get_json()["items"]]
    assert "Still deciding on a review." not in quotes
    assert len(quotes) == 3



def test_settings_update_validates_email(client, login_as):
    headers = login_as(client)
    bad = client.put("/api/admin/settings", json={"email": "nope"}, headers=headers)
    assert bad.status_code == 400
    good = client.put("/api/admin/settings", json={"phone": "(704) 555-0000"}, headers=headers)
    assert good.get_json()["phone"] == "(704) 555-0000"
    assert client.get("/api/public/settings").get_json()["phone"] == "(704) 555-0000"


def test_docs_are_available_to_editors(client, login_as):
    login_as(client, "editor")
    docs = client.get("/api/admin/docs").get_json()["items"]
    assert docs[0]["slug"] == "page-builder"


# Leads and CRM

def test_submitted_lead_appears_in_admin_list(client, csrf, login_as):
    lead_id = submit_quote(client, csrf(client))
    login_as(client)
    assert [item["id"] for item in client.get("/api/admin/leads").get_json()["items"]] == [lead_id]
    payload = client.get("/api/admin/leads?status=New").get_json()
    assert payload["total"] == 1
    assert payload["items"][0]["id"] == lead_id
    assert client.get("/api/admin/leads?county=Union").get_json()["total"] == 0


def test_lead_status_change_and_notes_are_logged(client, csrf, login_as):
    lead_id = submit_quote(client, csrf(client))
    headers = login_as(client)

    updated = client.patch(
        f"/api/admin/leads/{lead_id}",
        json={"status": "Scheduled", "assigned_to": "Jordan", "tags": ["priority"]},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.get_json()["status"] == "Scheduled"

    # Any status may follow any other.
    assert client.patch(f"/api/admin/leads/{lead_id}", json={"status": "New"}, headers=headers).status_code == 200
    assert client.patch(f"/api/admin/leads/{lead_id}", json={"status": "Maybe"}, headers=headers).status_code == 400

    note = client.post(f"/api/admin/leads/{lead_id}/notes", json={"note": "Called, left voicemail"}, headers=headers)
    assert note.status_code == 201
    assert note.get_json()["author"] == "Site Owner"

    types = [entry["type"] for entry in client.get(f"/api/admin/leads/{lead_id}/activity").get_json()["items"]]
    assert sorted(types) == ["ASSIGNED", "CREATED", "NOTE_ADDED", "STATUS_CHANGE", "STATUS_CHANGE"]


def test_lead_list_rejects_bad_date_filters(client, login_as):
    login_as(client)
    response = client.get("/api/admin/leads?date_from=yesterday")
    assert response.status_code == 400
    assert "date_from" in response.get_json()["fields"]


def test_export_includes_every_matching_lead(app, client, csrf, login_as):
    headers = csrf(client)
    for index in range(3):
        submit_quote(client, headers, full_name=f"Lead {index}", email=f"lead{index}@example.com")
    login_as(client)

    response = client.get("/api/admin/leads/export.csv?page_size=1")
    assert response.status_code == 200
    assert response.mimetype == "text/csv"
    assert "attachment" in response.headers["Content-Disposition"]
    rows = list(csv.reader(io.StringIO(response.get_data(as_text=True))))
    assert rows[0][:3] == ["ID", "Created", "Name"]
    assert len(rows) == 4

    with app.app_context():
        exported = LeadActivity.query.filter_by(type="EXPORTED").one()
        assert exported.lead_id is None
        assert exported.get_json("payload", {})["count"] == 3


def test_export_neutralizes_spreadsheet_formulas(client, csrf, login_as):
    submit_quote(client, csrf(client), full_name="=HYPERLINK(\"x\")")
    login_as(client)
    rows = list(csv.reader(io.StringIO(client.get("/api/admin/leads/export").get_data(as_text=True))))
    assert rows[1][2].startswith("'=")


def test_lead_converts_to_project_only_once(client, csrf, login_as):
    lead_id = submit_quote(client, csrf(client))
    headers = login_as(client)

    first = client.post(f"/api/admin/crm/projects/from-lead/{lead_id}", headers=headers)
    assert first.status_code == 201
    project = first.get_json()
    assert project["lead_id"] == lead_id
    assert project["publish"] is False
    assert project["title"] == "Trail Cutting in Cabarrus"

    second = client.post(f"/api/admin/crm/projects/from-lead/{lead_id}", headers=headers)
    assert second.status_code == 409
    assert second.get_json()["project_id"] == project["id"]


def test_published_projects_hide_lead_link(client, csrf, login_as):
    lead_id = submit_quote(client, csrf(client))
    headers = login_as(client)
    project = client.post(f"/api/admin/crm/projects/from-lead/{lead_id}", headers=headers).get_json()
    assert client.get(f"/api/public/projects/{project['slug']}").status_code == 404

    client.post(f"/api/admin/crm/projects/{project['id']}/publish", json={"published": True}, headers=headers)
    public_project = client.get(f"/api/public/projects/{project['slug']}").get_json()
    assert "lead_id" not in public_project
    listed = client.get("/api/public/projects?service=trail-cutting").get_json()["items"]
    assert [item["slug"] for item in listed] == [project["slug"]]
