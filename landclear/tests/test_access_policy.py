from landclear.access import ADMIN_NAVIGATION, allowed_paths, can_access, visible_navigation


def _titles(items):
    return [item["title"] for item in items]


def test_every_role_reaches_the_dashboard():
    for role in ("super_admin", "admin", "editor", "sales"):
        assert can_access(role, "/admin")


def test_unknown_or_missing_role_reaches_nothing():
    assert allowed_paths(None) == set()
    assert allowed_paths("janitor") == set()
    assert not can_access(None, "/admin")
    assert not can_access("janitor", "/admin/leads")


def test_sales_sees_leads_and_crm_but_not_cms():
    assert can_access("sales", "/admin/leads")
    assert can_access("sales", "/admin/leads/42")
    assert can_access("sales", "/admin/crm/projects/7/edit")
    assert not can_access("sales", "/admin/cms/pages")
    assert not can_access("sales", "/admin/blog")
    assert not can_access("sales", "/admin/settings")
    assert not can_access("sales", "/admin/branding")


def test_editor_sees_content_but_not_sales_or_settings():
    assert can_access("editor", "/admin/cms/pages/3")
    assert can_access("editor", "/admin/blog")
    assert can_access("editor", "/admin/docs")
    assert not can_access("editor", "/admin/leads")
    assert not can_access("editor", "/admin/crm/projects")
    assert not can_access("editor", "/admin/branding")
    assert not can_access("editor", "/admin/settings")


def test_managers_reach_every_navigation_path():
    for role in ("super_admin", "admin"):
        for entry in ADMIN_NAVIGATION:
            assert can_access(role, entry["href"])
            for child in entry.get("children", []):
                assert can_access(role, child["href"])


def test_dashboard_root_does_not_grant_sub_paths():
    assert not can_access("editor", "/admin/leads")
    assert not can_access("sales", "/admin/unknown-section")


def test_prefix_match_requires_a_path_boundary():
    assert not can_access("sales", "/admin/leadsx")
    assert can_access("sales", "/admin/leads/")
    assert can_access("sales", "/admin/leads?status=New")


def test_navigation_is_filtered_by_role():
    assert _titles(visible_navigation("sales", "/admin")) == ["Dashboard", "Leads", "CRM"]
    editor_titles = _titles(visible_navigation("editor", "/admin"))
    assert "Leads" not in editor_titles
    assert "CMS" in editor_titles
    assert "Settings" not in editor_titles
    assert visible_navigation(None, "/admin") == []


def test_group_expands_for_current_path_unless_toggled():
    items = {item["href"]: item for item in visible_navigation("admin", "/admin/cms/pages/5")}
    assert items["/admin/cms"]["expanded"] is True
    assert items["/admin/cms"]["active"] is True
    assert items["/admin/crm"]["expanded"] is False

    pages = [child for child in items["/admin/cms"]["children"] if child["href"] == "/admin/cms/pages"][0]
    assert pages["active"] is True

    toggled = {
        item["href"]: item
        for item in visible_navigation("admin", "/admin/cms/pages", {"/admin/cms": False, "/admin/crm": True})
    }
    assert toggled["/admin/cms"]["expanded"] is False
    assert toggled["/admin/crm"]["expanded"] is True


def test_dashboard_leaf_is_only_active_on_the_root():
    items = visible_navigation("admin", "/admin/leads")
    assert items[0]["href"] == "/admin"
    assert items[0]["active"] is False
    assert visible_navigation("admin", "/admin")[0]["active"] is True
