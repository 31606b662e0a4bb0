import io
import os
import threading

import pytest
from PIL import Image

from landclear import store
from landclear.store import LIST_CACHE_KEY, ListCache
from landclear.errors import ConflictError, NotFoundError, ValidationError
from landclear.models import CmsPage, Testimonial, db


def png_bytes(size=(4, 3)):
    buffer = io.BytesIO()
    Image.new("RGB", size, (30, 120, 60)).save(buffer, format="PNG")
    buffer.seek(0)
    return buffer


def test_list_cache_is_invalidated_on_write(app_factory):
    app = app_factory({"LIST_CACHE_TTL_SECONDS": 30})
    with app.app_context():
        before = store.testimonials.list()
        # Direct writes bypass the store, so the cached list stays stale.
        db.session.add(Testimonial(name="Pat", area="Concord, NC", quote="Great crew.", rating=5, publish=True))
        db.session.commit()
        assert len(store.testimonials.list()) == len(before)

        store.testimonials.create({"quote": "Fast and tidy.", "rating": 4})
        assert len(store.testimonials.list()) == len(before) + 2


def test_list_cache_is_off_by_default(app):
    with app.app_context():
        before = len(store.testimonials.list())
        db.session.add(Testimonial(name="Lee", area="Matthews, NC", quote="On time.", rating=5, publish=True))
        db.session.commit()
        assert len(store.testimonials.list()) == before + 1
        assert len(app.extensions[LIST_CACHE_KEY]) == 0


def test_list_cache_skips_searches_and_stays_bounded(app_factory):
    app = app_factory({"LIST_CACHE_TTL_SECONDS": 30, "LIST_CACHE_MAX_ENTRIES": 5})
    client = app.test_client()
    cache = app.extensions[LIST_CACHE_KEY]

    for index in range(20):
        assert client.get(f"/api/public/blog?search=zz{index}").status_code == 200
    assert len(cache) == 0

    for index in range(20):
        assert client.get(f"/api/public/blog?page={index + 1}").status_code == 200
        assert len(cache) <= 5


def test_list_cache_evicts_oldest_and_prunes_expired():
    cache = ListCache(max_entries=2)
    cache.set(("blog_posts", "list", "a"), 1, ttl=60)
    cache.set(("blog_posts", "list", "b"), 2, ttl=60)
    cache.set(("blog_posts", "list", "c"), 3, ttl=60)
    assert len(cache) == 2
    assert cache.get(("blog_posts", "list", "a")) is None
    assert cache.get(("blog_posts", "list", "c")) == 3

    cache.set(("testimonials", "list", "x"), 4, ttl=-1)
    assert cache.get(("testimonials", "list", "x")) is None
    cache.set(("testimonials", "list", "y"), 5, ttl=60)
    assert ("testimonials", "list", "x") not in cache._entries

    cache.invalidate("blog_posts")
    assert len(cache) == 1


def test_list_cache_invalidation_is_safe_during_concurrent_writes():
    cache = ListCache(max_entries=10000)
    errors = []
    stop = threading.Event()

    def writer():
        index = 0
        try:
            while not stop.is_set():
                cache.set(("blog_posts", "list", str(index)), index, ttl=60)
                index += 1
        except Exception as exc:
            errors.append(exc)

    thread = threading.Thread(target=writer)
    thread.start()
    try:
        for _ in range(500):
            cache.invalidate("blog_posts")
    finally:
        stop.set()
        thread.join()
    assert errors == []


def test_testimonial_rating_must_be_one_to_five(app):
    with app.app_context():
        with pytest.raises(ValidationError) as excinfo:
            store.testimonials.create({"quote": "Too good", "rating": 6})
        assert "rating" in excinfo.value.fields


def test_pagination_payload_reports_total_pages(app):
    with app.app_context():
        for index in range(5):
            store.pages.create({"title": f"Page {index}"})
        payload = store.pages.paginate({"page": "2", "page_size": "2"})
        assert payload["total"] == 5
        assert payload["total_pages"] == 3
        assert len(payload["items"]) == 2


def test_deleting_a_template_detaches_its_pages(app):
    with app.app_context():
        template = store.templates.create({"name": "Seasonal Promo", "blocks": [{"type": "hero"}]})
        page = store.pages.create({"title": "Fall Promo", "template_id": template.id})
        store.templates.delete(template.id)
        assert db.session.get(CmsPage, page.id).template_id is None
        with pytest.raises(NotFoundError):
            store.templates.get(template.id)


def test_system_templates_and_keys_are_protected(app):
    with app.app_context():
        system_template = [item for item in store.templates.list() if item["is_system"]][0]
        with pytest.raises(ConflictError):
            store.templates.delete(system_template["id"])

        hero = store.blocks.get_by(key="hero")
        with pytest.raises(ConflictError):
            store.blocks.update(hero.id, {"key": "hero_v2"})


def test_page_rejects_unknown_template(app):
    with app.app_context():
        with pytest.raises(ValidationError) as excinfo:
            store.pages.create({"title": "Orphan", "template_id": 999})
        assert "template_id" in excinfo.value.fields


def test_media_upload_stores_image_and_delete_removes_file(client, login_as, app):
    headers = login_as(client)
    response = client.post(
        "/api/admin/cms/media/upload",
        data={"file": (png_bytes(), "Site Photo.png"), "alt": "Cleared lot"},
        headers=headers,
        content_type="multipart/form-data",
    )
    assert response.status_code == 201
    media = response.get_json()
    assert media["width"] == 4
    assert media["height"] == 3
    assert media["url"].startswith("/uploads/")
    assert media["url"].endswith("_Site_Photo.png")

    served = client.get(media["url"])
    assert served.status_code == 200
    served.close()

    stored_name = media["url"].rsplit("/", 1)[1]
    stored_path = os.path.join(app.config["UPLOAD_FOLDER"], stored_name)
    assert os.path.exists(stored_path)
    assert client.delete(f"/api/admin/cms/media/{media['id']}", headers=headers).status_code == 200
    assert not os.path.exists(stored_path)


def test_media_upload_rejects_non_images(client, login_as):
    headers = login_as(client)
    response = client.post(
        "/api/admin/cms/media/upload",
        data={"file": (io.BytesIO(b"not really a png"), "fake.png")},
        headers=headers,
        content_type="multipart/form-data",
    )
    assert response.status_code == 400
    assert "file" in response.get_json()["fields"]


def test_uploads_route_rejects_path_tricks(client):
    assert client.get("/uploads/..%2Fsecret.txt").status_code == 404
