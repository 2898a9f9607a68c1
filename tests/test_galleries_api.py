"""
Tests for photographer accounts, galleries, share link management and
health probes.
"""
from datetime import datetime, timedelta

import pytest

from gallery_api.models.share import ShareLink
from gallery_api.utils.prometheus_metrics import ready
from gallery_api.utils.security import create_access_token


class TestAuth:
    async def test_register_and_login(self, client):
        response = await client.post(
            "/auth/register",
            json={"email": "new@example.com", "username": "newbie", "password": "long-enough-pw"},
        )
        assert response.status_code == 201
        assert "hashed_password" not in response.json()

        response = await client.post(
            "/auth/login", json={"email": "new@example.com", "password": "long-enough-pw"}
        )
        assert response.status_code == 200
        token = response.json()["access_token"]

        response = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.json()["username"] == "newbie"

    async def test_duplicate_email(self, client, photographer):
        response = await client.post(
            "/auth/register",
            json={"email": photographer.email, "username": "someone", "password": "long-enough-pw"},
        )
        assert response.status_code == 400

    @pytest.mark.parametrize(
        "email, password",
        [("photographer@example.com", "wrong-password"), ("nobody@example.com", "correct-horse-battery")],
    )
    async def test_bad_credentials(self, client, photographer, email, password):
        response = await client.post("/auth/login", json={"email": email, "password": password})
        assert response.status_code == 401

    async def test_me_requires_token(self, client, database):
        assert (await client.get("/auth/me")).status_code == 401
        response = await client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestGalleries:
    async def test_create_and_list(self, client, auth_headers):
        response = await client.post(
            "/galleries",
            json={"title": "Portraits", "inviteOnly": True, "requirePassword": True, "password": "studio"},
            headers=auth_headers,
        )
        assert response.status_code == 201
        body = response.json()
        assert body["inviteOnly"] is True
        assert body["hasPassword"] is True
        assert "password" not in body

        response = await client.get("/galleries", headers=auth_headers)
        assert [g["title"] for g in response.json()] == ["Portraits"]

    async def test_password_protection_needs_a_password(self, client, auth_headers):
        response = await client.post(
            "/galleries", json={"title": "Locked", "requirePassword": True}, headers=auth_headers
        )
        assert response.status_code == 400

    async def test_update_policy(self, client, auth_headers, make_gallery):
        gallery = await make_gallery()
        expires = (datetime.utcnow() + timedelta(days=7)).isoformat()

        response = await client.patch(
            f"/galleries/{gallery.id}",
            json={"inviteOnly": True, "expirationDate": expires, "description": "Final selects"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["inviteOnly"] is True
        assert body["expirationDate"] is not None
        assert body["description"] == "Final selects"

        response = await client.patch(
            f"/galleries/{gallery.id}",
            json={"clearExpiration": True, "description": ""},
            headers=auth_headers,
        )
        assert response.json()["expirationDate"] is None
        assert response.json()["description"] is None

    async def test_add_photos_appends(self, client, auth_headers, make_gallery):
        gallery = await make_gallery(photos=2)

        response = await client.post(
            f"/galleries/{gallery.id}/photos",
            json={"photos": [{"filename": "late.jpg", "url": "https://cdn.example.com/late.jpg"}]},
            headers=auth_headers,
        )

        assert response.status_code == 201
        assert response.json()[0]["order"] == 3
        response = await client.get(f"/galleries/{gallery.id}", headers=auth_headers)
        assert response.json()["photoCount"] == 3

    async def test_delete(self, client, auth_headers, make_gallery, make_share_link):
        gallery = await make_gallery()
        link = await make_share_link(gallery)

        response = await client.delete(f"/galleries/{gallery.id}", headers=auth_headers)
        assert response.status_code == 204

        assert (await client.get(f"/galleries/{gallery.id}", headers=auth_headers)).status_code == 404
        assert (await client.get(f"/share/{link.token}")).status_code == 404

    async def test_requires_auth(self, client, database):
        assert (await client.get("/galleries")).status_code == 401

    async def test_other_photographer_sees_404(self, client, other_photographer, make_gallery):
        gallery = await make_gallery()
        headers = {"Authorization": f"Bearer {create_access_token(other_photographer.id)}"}

        assert (await client.get(f"/galleries/{gallery.id}", headers=headers)).status_code == 404
        assert (await client.get(f"/galleries/{gallery.id}/share-links", headers=headers)).status_code == 404


class TestShareLinks:
    async def test_create(self, client, auth_headers, make_gallery):
        gallery = await make_gallery()

        response = await client.post(
            f"/galleries/{gallery.id}/share-links",
            json={"name": "Family", "password": "secret", "maxViews": 5, "expiresInDays": 3},
            headers=auth_headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["hasPassword"] is True
        assert body["maxViews"] == 5
        assert body["viewCount"] == 0
        assert body["isActive"] is True
        assert body["expiresAt"] is not None
        assert body["shareUrl"].endswith(f"/share/{body['token']}")
        assert len(body["token"]) >= 43

    async def test_list_shows_exhausted_links_inactive(self, client, auth_headers, make_gallery, make_share_link):
        gallery = await make_gallery()
        link = await make_share_link(gallery, max_views=1)
        await client.get(f"/share/{link.token}")

        response = await client.get(f"/galleries/{gallery.id}/share-links", headers=auth_headers)

        [item] = response.json()
        assert item["viewCount"] == 1
        assert item["isActive"] is False

    async def test_delete(self, client, auth_headers, make_gallery, make_share_link, fetch):
        gallery = await make_gallery()
        link = await make_share_link(gallery)

        response = await client.delete(
            f"/galleries/{gallery.id}/share-links/{link.id}", headers=auth_headers
        )

        assert response.status_code == 204
        assert await fetch(ShareLink, link.id) is None

    async def test_delete_unknown(self, client, auth_headers, make_gallery):
        gallery = await make_gallery()
        response = await client.delete(f"/galleries/{gallery.id}/share-links/999", headers=auth_headers)
        assert response.status_code == 404


class TestHealth:
    async def test_probes(self, client):
        assert (await client.get("/health")).json()["status"] == "healthy"
        assert (await client.get("/health/liveness")).json() == {"status": "alive"}
        assert (await client.get("/health/readiness")).json() == {"status": "ready"}

    async def test_not_ready_while_shutting_down(self, client):
        ready.set(0)
        try:
            assert (await client.get("/health/readiness")).status_code == 503
            assert (await client.get("/health")).status_code == 503
        finally:
            ready.set(1)
