from datetime import datetime

import httpx
import pytest
from sqlalchemy import func, select, update

import linkhub.services.link
import linkhub.services.registry
from linkhub.core.config import get_settings
from linkhub.models import Deeplink, Link, ShortLink

IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 15_0 like Mac OS X)"
CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}

DEEPLINK_PAYLOAD = {
    "title": "Get the app",
    "original_url": "https://example.com",
    "ios_url": "https://apps.apple.com/app/test",
    "android_url": "play.google.com/store/apps/details?id=com.test",
    "user_agent_rules": [{"pattern": "Instagram", "url": "instagram://user?username=test"}],
}


async def count_rows(session_factory, model) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(model))
        return result.scalar_one()


async def test_create_short_link(auth_client: httpx.AsyncClient, session_factory):
    response = await auth_client.post("/api/v1/links/short", json={"url": "example.com/page"})

    assert response.status_code == 201
    data = response.json()
    assert data["original_url"] == "https://example.com/page"
    assert data["link_type"] == "plain"
    assert len(data["short_code"]) == 6
    assert data["short_url"] == f"https://linkhub.test/l/{data['short_code']}"
    assert await count_rows(session_factory, ShortLink) == 1

    redirect = await auth_client.get(f"/l/{data['short_code']}")
    assert redirect.headers["location"] == "https://example.com/page"


async def test_create_short_link_requires_auth(client: httpx.AsyncClient):
    response = await client.post("/api/v1/links/short", json={"url": "https://example.com"})

    assert response.status_code == 401


async def test_create_short_link_rejects_invalid_url(auth_client):
    response = await auth_client.post("/api/v1/links/short", json={"url": "ftp://example.com"})

    assert response.status_code == 422


async def test_create_deeplink(auth_client, session_factory):
    response = await auth_client.post("/api/v1/links/deeplink", json=DEEPLINK_PAYLOAD)

    assert response.status_code == 201
    data = response.json()
    assert data["link_type"] == "deeplink"
    assert data["url"] == "https://example.com"
    assert data["deeplink"]["ios_url"] == "https://apps.apple.com/app/test"
    assert data["deeplink"]["android_url"] == "https://play.google.com/store/apps/details?id=com.test"
    assert data["deeplink"]["user_agent_rules"] == [
        {"pattern": "Instagram", "url": "instagram://user?username=test"}
    ]

    async with session_factory() as session:
        short_link = (await session.execute(select(ShortLink))).scalar_one()
        assert short_link.short_code == data["short_code"]
        assert str(short_link.link_id) == data["id"]
        assert await session.scalar(select(func.count()).select_from(Deeplink)) == 1

    redirect = await auth_client.get(f"/l/{data['short_code']}", headers={"User-Agent": IPHONE})
    assert redirect.headers["location"] == "https://apps.apple.com/app/test"


async def test_create_qr_code(auth_client):
    response = await auth_client.post("/api/v1/links/qr-code", json={"url": "menu.example", "title": "Menu"})

    assert response.status_code == 201
    data = response.json()
    assert data["link_type"] == "qr"
    assert data["url"] == "https://menu.example"
    assert data["deeplink"] is None

    redirect = await auth_client.get(f"/l/{data['short_code']}")
    assert redirect.headers["location"] == "https://menu.example"


async def test_create_fails_when_codes_exhausted(auth_client, monkeypatch, session_factory):
    async def always_taken(session, short_code: str) -> bool:
        return True

    monkeypatch.setattr(linkhub.services.link, "is_short_code_taken", always_taken)

    response = await auth_client.post("/api/v1/links/short", json={"url": "https://example.com"})

    assert response.status_code == 500
    assert response.json()["detail"] == "Unable to generate unique short code"
    assert await count_rows(session_factory, ShortLink) == 0


async def test_create_is_rate_limited(auth_client, rate_limiters, session_factory):
    rate_limiters.qr_code.allow = 0

    response = await auth_client.post("/api/v1/links/qr-code", json={"url": "menu.example", "title": "Menu"})

    assert response.status_code == 429
    assert "X-RateLimit-Reset" in response.headers
    assert await count_rows(session_factory, Link) == 0


async def test_list_links_in_display_order(auth_client):
    first = await auth_client.post("/api/v1/links/qr-code", json={"url": "one.example", "title": "One"})
    second = await auth_client.post("/api/v1/links/deeplink", json=DEEPLINK_PAYLOAD)

    response = await auth_client.get("/api/v1/links")

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["pages"] == 1
    assert [item["id"] for item in data["items"]] == [first.json()["id"], second.json()["id"]]


async def test_get_link_of_another_user_is_not_found(auth_client, db_session):
    from linkhub.models import Profile

    other = Profile(email="other@example.com", username="other")
    db_session.add(other)
    await db_session.flush()
    link = Link(user_id=other.id, title="Theirs", url="https://theirs.example")
    db_session.add(link)
    await db_session.commit()

    response = await auth_client.get(f"/api/v1/links/{link.id}")

    assert response.status_code == 404


async def test_update_deeplink_targets(auth_client):
    created = (await auth_client.post("/api/v1/links/deeplink", json=DEEPLINK_PAYLOAD)).json()

    response = await auth_client.patch(
        f"/api/v1/links/{created['id']}",
        json={"title": "New title", "deeplink": {"ios_url": "https://ios.example/new"}},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["title"] == "New title"
    assert data["deeplink"]["ios_url"] == "https://ios.example/new"
    assert data["deeplink"]["android_url"] == "https://play.google.com/store/apps/details?id=com.test"

    redirect = await auth_client.get(f"/l/{created['short_code']}", headers={"User-Agent": IPHONE})
    assert redirect.headers["location"] == "https://ios.example/new"


async def test_update_deeplink_targets_on_plain_link_fails(auth_client):
    created = (await auth_client.post("/api/v1/links/qr-code", json={"url": "menu.example", "title": "Menu"})).json()

    response = await auth_client.patch(
        f"/api/v1/links/{created['id']}",
        json={"deeplink": {"ios_url": "https://ios.example"}},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Link is not a deeplink"


async def test_deactivated_link_redirects_home(auth_client):
    created = (await auth_client.post("/api/v1/links/deeplink", json=DEEPLINK_PAYLOAD)).json()

    await auth_client.patch(f"/api/v1/links/{created['id']}", json={"is_active": False})
    redirect = await auth_client.get(f"/l/{created['short_code']}")

    assert redirect.headers["location"] == "/"


async def test_soft_delete_keeps_rows_and_stops_redirects(auth_client, session_factory):
    created = (await auth_client.post("/api/v1/links/deeplink", json=DEEPLINK_PAYLOAD)).json()

    response = await auth_client.delete(f"/api/v1/links/{created['id']}")

    assert response.status_code == 204
    redirect = await auth_client.get(f"/l/{created['short_code']}")
    assert redirect.headers["location"] == "/"
    assert await count_rows(session_factory, Link) == 1
    assert await count_rows(session_factory, ShortLink) == 1


async def test_hard_delete_removes_rows(auth_client, session_factory):
    created = (await auth_client.post("/api/v1/links/deeplink", json=DEEPLINK_PAYLOAD)).json()

    response = await auth_client.delete(f"/api/v1/links/{created['id']}", params={"hard": "true"})

    assert response.status_code == 204
    assert await count_rows(session_factory, Link) == 0
    assert await count_rows(session_factory, ShortLink) == 0


async def test_cleanup_requires_cron_secret(client):
    response = await client.post("/api/v1/maintenance/cleanup-inactive")

    assert response.status_code == 401


async def test_cleanup_purges_old_inactive_links(client, db_session, profile, session_factory):
    long_ago = datetime(2020, 1, 1)
    stale = Link(
        user_id=profile.id,
        title="Stale",
        url="https://stale.example",
        link_type="deeplink",
        short_code="stale1",
        is_active=False,
        updated_at=long_ago,
    )
    db_session.add(stale)
    await db_session.flush()
    db_session.add_all(
        [
            Deeplink(link_id=stale.id, original_url="https://stale.example"),
            ShortLink(
                user_id=profile.id,
                link_id=stale.id,
                short_code="stale1",
                original_url="https://stale.example",
                link_type="deeplink",
                is_active=False,
                updated_at=long_ago,
            ),
            Link(
                user_id=profile.id,
                title="Recently removed",
                url="https://recent.example",
                is_active=False,
            ),
            Link(
                user_id=profile.id,
                title="Old but active",
                url="https://active.example",
                updated_at=long_ago,
            ),
        ]
    )
    await db_session.commit()

    response = await client.post("/api/v1/maintenance/cleanup-inactive", headers=CRON_HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["deleted_links"] == 1
    assert data["deleted_short_links"] == 1
    assert await count_rows(session_factory, Link) == 2
    assert await count_rows(session_factory, Deeplink) == 0
    assert await count_rows(session_factory, ShortLink) == 0


@pytest.mark.parametrize("path", ["/api/v1/health", "/"])
async def test_health_and_root(client, path):
    response = await client.get(path)

    assert response.status_code == 200


async def test_null_active_flag_leaves_link_unchanged(auth_client):
    created = (await auth_client.post("/api/v1/links/deeplink", json=DEEPLINK_PAYLOAD)).json()

    response = await auth_client.patch(f"/api/v1/links/{created['id']}", json={"is_active": None})

    assert response.status_code == 200
    assert response.json()["is_active"] is True
    redirect = await auth_client.get(f"/l/{created['short_code']}", headers={"User-Agent": IPHONE})
    assert redirect.headers["location"] == "https://apps.apple.com/app/test"


async def test_create_retries_when_insert_hits_taken_code(auth_client, db_session, profile, monkeypatch):
    db_session.add(ShortLink(user_id=profile.id, short_code="taken1", original_url="https://old.example"))
    await db_session.commit()
    candidates = iter(["taken1", "fresh1"])

    async def never_taken(session, short_code: str) -> bool:
        return False

    monkeypatch.setattr(linkhub.services.link, "is_short_code_taken", never_taken)
    monkeypatch.setattr(linkhub.services.registry, "generate", lambda length=6: next(candidates))

    response = await auth_client.post("/api/v1/links/short", json={"url": "https://new.example"})

    assert response.status_code == 201
    assert response.json()["short_code"] == "fresh1"
    redirect = await auth_client.get("/l/taken1")
    assert redirect.headers["location"] == "https://old.example"


async def test_create_fails_after_repeated_insert_conflicts(
    auth_client, db_session, profile, monkeypatch, session_factory
):
    db_session.add(ShortLink(user_id=profile.id, short_code="taken1", original_url="https://old.example"))
    await db_session.commit()
    produced: list[str] = []

    async def never_taken(session, short_code: str) -> bool:
        return False

    def always_taken_code(length: int = 6) -> str:
        produced.append("taken1")
        return "taken1"

    monkeypatch.setattr(linkhub.services.link, "is_short_code_taken", never_taken)
    monkeypatch.setattr(linkhub.services.registry, "generate", always_taken_code)

    response = await auth_client.post("/api/v1/links/short", json={"url": "https://new.example"})

    assert response.status_code == 500
    assert response.json()["detail"] == "Unable to generate unique short code"
    assert len(produced) == get_settings().short_code_insert_attempts
    assert await count_rows(session_factory, ShortLink) == 1


async def test_short_link_create_ignores_title(auth_client):
    response = await auth_client.post(
        "/api/v1/links/short",
        json={"url": "https://example.com", "title": "Not stored"},
    )

    assert response.status_code == 201
    assert "title" not in response.json()


async def test_list_short_links(auth_client):
    first = (await auth_client.post("/api/v1/links/short", json={"url": "https://one.example"})).json()
    await auth_client.post("/api/v1/links/deeplink", json=DEEPLINK_PAYLOAD)

    response = await auth_client.get("/api/v1/links/short")

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert [item["id"] for item in data["items"]] == [first["id"]]


async def test_update_short_link_destination(auth_client):
    created = (await auth_client.post("/api/v1/links/short", json={"url": "https://one.example"})).json()

    response = await auth_client.patch(
        f"/api/v1/links/short/{created['id']}",
        json={"url": "two.example", "is_active": None},
    )

    assert response.status_code == 200
    assert response.json()["original_url"] == "https://two.example"
    assert response.json()["is_active"] is True
    redirect = await auth_client.get(f"/l/{created['short_code']}")
    assert redirect.headers["location"] == "https://two.example"


async def test_deactivated_short_link_redirects_home(auth_client):
    created = (await auth_client.post("/api/v1/links/short", json={"url": "https://one.example"})).json()

    await auth_client.patch(f"/api/v1/links/short/{created['id']}", json={"is_active": False})
    redirect = await auth_client.get(f"/l/{created['short_code']}")

    assert redirect.headers["location"] == "/"


async def test_deeplink_entry_is_not_managed_as_short_link(auth_client, session_factory):
    await auth_client.post("/api/v1/links/deeplink", json=DEEPLINK_PAYLOAD)
    async with session_factory() as session:
        entry = (await session.execute(select(ShortLink))).scalar_one()

    response = await auth_client.delete(f"/api/v1/links/short/{entry.id}")

    assert response.status_code == 404


async def test_soft_deleted_short_link_is_purged_after_retention(auth_client, client, session_factory):
    created = (await auth_client.post("/api/v1/links/short", json={"url": "https://one.example"})).json()

    response = await auth_client.delete(f"/api/v1/links/short/{created['id']}")
    assert response.status_code == 204
    assert (await auth_client.get(f"/l/{created['short_code']}")).headers["location"] == "/"

    async with session_factory() as session:
        await session.execute(update(ShortLink).values(updated_at=datetime(2020, 1, 1)))
        await session.commit()

    cleanup = await client.post("/api/v1/maintenance/cleanup-inactive", headers=CRON_HEADERS)

    assert cleanup.json()["deleted_short_links"] == 1
    assert await count_rows(session_factory, ShortLink) == 0


async def test_hard_delete_short_link(auth_client, session_factory):
    created = (await auth_client.post("/api/v1/links/short", json={"url": "https://one.example"})).json()

    response = await auth_client.delete(f"/api/v1/links/short/{created['id']}", params={"hard": "true"})

    assert response.status_code == 204
    assert await count_rows(session_factory, ShortLink) == 0


async def test_security_headers(client):
    api = await client.get("/api/v1/health")
    redirect = await client.get("/l/nope42")

    assert "default-src 'self'" in api.headers["content-security-policy"]
    assert redirect.headers["content-security-policy"] == "default-src 'none'; frame-ancestors 'none'"
    assert redirect.headers["x-robots-tag"].startswith("noindex")
