"""
Tests for the invitation endpoints.
"""
from datetime import datetime, timedelta

import pytest

from gallery_api.models.invitation import Invitation
from gallery_api.utils.security import create_access_token


@pytest.fixture
async def gallery(make_gallery):
    return await make_gallery(invite_only=True)


class TestCreateInvitation:
    async def test_defaults(self, client, auth_headers, gallery):
        response = await client.post(
            "/invitations/create", json={"galleryId": gallery.id}, headers=auth_headers
        )

        assert response.status_code == 201
        body = response.json()
        assert body["type"] == "multi_use"
        assert body["status"] == "active"
        assert body["usageCount"] == 0
        assert body["maxUsage"] is None
        assert body["code"] == body["code"].upper()
        assert body["inviteUrl"].endswith(f"/invite/{body['code']}")
        expires_at = datetime.fromisoformat(body["expiresAt"])
        assert timedelta(days=29) < expires_at - datetime.utcnow() <= timedelta(days=30)
        assert body["permissions"] == {
            "canView": True,
            "canFavorite": True,
            "canComment": False,
            "canDownload": False,
            "canRequestPurchase": True,
        }

    @pytest.mark.parametrize(
        "payload, expected_type",
        [
            ({"maxUsage": 1}, "single_use"),
            ({"maxUsage": 5}, "multi_use"),
            ({"expiresAt": "2099-01-01T00:00:00Z"}, "time_limited"),
            ({"type": "single_use"}, "single_use"),
        ],
    )
    async def test_type_inference(self, client, auth_headers, gallery, payload, expected_type):
        response = await client.post(
            "/invitations/create", json={"galleryId": gallery.id, **payload}, headers=auth_headers
        )

        assert response.status_code == 201
        assert response.json()["type"] == expected_type

    async def test_single_use_caps_usage_at_one(self, client, auth_headers, gallery):
        response = await client.post(
            "/invitations/create",
            json={"galleryId": gallery.id, "type": "single_use"},
            headers=auth_headers,
        )
        assert response.json()["maxUsage"] == 1

        response = await client.post(
            "/invitations/create",
            json={"galleryId": gallery.id, "type": "single_use", "maxUsage": 3},
            headers=auth_headers,
        )
        assert response.status_code == 400

    async def test_expiry_in_the_past(self, client, auth_headers, gallery):
        past = (datetime.utcnow() - timedelta(days=1)).isoformat()
        response = await client.post(
            "/invitations/create",
            json={"galleryId": gallery.id, "expiresAt": past},
            headers=auth_headers,
        )
        assert response.status_code == 400

    async def test_recipient_bound_invitation_is_pending(self, client, auth_headers, gallery):
        response = await client.post(
            "/invitations/create",
            json={"galleryId": gallery.id, "clientEmail": "client@example.com", "clientName": "Kim"},
            headers=auth_headers,
        )
        assert response.json()["status"] == "pending"

    async def test_requires_auth(self, client, gallery):
        response = await client.post("/invitations/create", json={"galleryId": gallery.id})
        assert response.status_code == 401

    async def test_other_photographers_gallery(self, client, other_photographer, gallery):
        response = await client.post(
            "/invitations/create",
            json={"galleryId": gallery.id},
            headers={"Authorization": f"Bearer {create_access_token(other_photographer.id)}"},
        )
        assert response.status_code == 404


async def test_send_invitation(client, auth_headers, gallery):
    response = await client.post(
        "/invitations/send",
        json={"galleryId": gallery.id, "recipientEmail": "client@example.com", "maxUsage": 2},
        headers=auth_headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["emailQueued"] is True
    assert body["invitation"]["clientEmail"] == "client@example.com"
    assert body["invitation"]["status"] == "pending"
    assert body["invitation"]["maxUsage"] == 2


async def test_list_and_get(client, auth_headers, gallery, make_invitation):
    first = await make_invitation(gallery)
    second = await make_invitation(gallery, max_usage=3)

    response = await client.get(f"/invitations/gallery/{gallery.id}", headers=auth_headers)
    assert response.status_code == 200
    assert {item["id"] for item in response.json()} == {first.id, second.id}

    response = await client.get(f"/invitations/{second.id}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["maxUsage"] == 3


async def test_listing_reports_effective_status(client, auth_headers, gallery, make_invitation):
    now = datetime.utcnow()
    await make_invitation(gallery, now=now - timedelta(days=2), expires_at=now - timedelta(days=1))

    response = await client.get(f"/invitations/gallery/{gallery.id}", headers=auth_headers)

    assert [item["status"] for item in response.json()] == ["expired"]


class TestRevokeAndDelete:
    async def test_revoke(self, client, auth_headers, gallery, make_invitation, fetch):
        invitation = await make_invitation(gallery)

        response = await client.post(f"/invitations/{invitation.id}/revoke", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "revoked"
        assert (await fetch(Invitation, invitation.id)).status == "revoked"

        response = await client.post(f"/invitations/{invitation.id}/revoke", headers=auth_headers)
        assert response.status_code == 409

    async def test_revoked_invitation_no_longer_opens_the_gallery(
        self, client, auth_headers, gallery, make_share_link, make_invitation
    ):
        link = await make_share_link(gallery)
        invitation = await make_invitation(gallery)
        await client.post(f"/invitations/{invitation.id}/revoke", headers=auth_headers)

        response = await client.get(f"/share/{link.token}", params={"invite": invitation.code})

        assert response.status_code == 403
        assert response.json()["invitationInvalid"] is True

    async def test_delete(self, client, auth_headers, gallery, make_invitation, fetch):
        invitation = await make_invitation(gallery)

        response = await client.delete(f"/invitations/{invitation.id}", headers=auth_headers)

        assert response.status_code == 204
        assert await fetch(Invitation, invitation.id) is None

    async def test_only_the_owner(self, client, other_photographer, gallery, make_invitation):
        invitation = await make_invitation(gallery)
        headers = {"Authorization": f"Bearer {create_access_token(other_photographer.id)}"}

        assert (await client.get(f"/invitations/{invitation.id}", headers=headers)).status_code == 404
        assert (await client.post(f"/invitations/{invitation.id}/revoke", headers=headers)).status_code == 404
        assert (await client.delete(f"/invitations/{invitation.id}", headers=headers)).status_code == 404


class TestValidateInvitation:
    async def test_valid_code(self, client, gallery, make_invitation, fetch):
        invitation = await make_invitation(
            gallery, max_usage=3, client_name="Ana", permissions={"canDownload": True}
        )

        response = await client.get(f"/invitations/validate/{invitation.code.lower()}")

        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is True
        assert body["code"] == invitation.code
        assert body["status"] == "active"
        assert body["gallery"] == {"id": gallery.id, "title": "Wedding", "description": None}
        assert body["clientName"] == "Ana"
        assert body["usesRemaining"] == 3
        assert body["permissions"]["canDownload"] is True
        assert (await fetch(Invitation, invitation.id)).usage_count == 0

    async def test_checking_a_code_does_not_use_it(
        self, client, gallery, make_share_link, make_invitation
    ):
        link = await make_share_link(gallery)
        invitation = await make_invitation(gallery, type="single_use")

        for _ in range(3):
            response = await client.get(f"/invitations/validate/{invitation.code}")
            assert response.json()["valid"] is True

        response = await client.get(f"/share/{link.token}", params={"invite": invitation.code})
        assert response.status_code == 200

        body = (await client.get(f"/invitations/validate/{invitation.code}")).json()
        assert body["valid"] is False
        assert body["status"] == "expired"
        assert body["usesRemaining"] == 0

    async def test_lapsed_code_reads_expired_without_a_write(
        self, client, gallery, make_invitation, fetch
    ):
        now = datetime.utcnow()
        invitation = await make_invitation(
            gallery, now=now - timedelta(days=2), expires_at=now - timedelta(days=1)
        )

        body = (await client.get(f"/invitations/validate/{invitation.code}")).json()

        assert body["valid"] is False
        assert body["status"] == "expired"
        assert (await fetch(Invitation, invitation.id)).status == "active"

    async def test_revoked_code(self, client, auth_headers, gallery, make_invitation):
        invitation = await make_invitation(gallery)
        await client.post(f"/invitations/{invitation.id}/revoke", headers=auth_headers)

        body = (await client.get(f"/invitations/validate/{invitation.code}")).json()

        assert body["valid"] is False
        assert body["status"] == "revoked"

    async def test_unknown_code(self, client, gallery):
        response = await client.get("/invitations/validate/NOPE2345")
        assert response.status_code == 404


class TestUpdateInvitation:
    async def test_update_permissions_and_limits(
        self, client, auth_headers, gallery, make_share_link, make_invitation, fetch
    ):
        link = await make_share_link(gallery)
        invitation = await make_invitation(gallery, max_usage=2)
        await client.get(f"/share/{link.token}", params={"invite": invitation.code})
        expires_at = (datetime.utcnow() + timedelta(days=3)).isoformat()

        response = await client.put(
            f"/invitations/{invitation.id}",
            json={
                "clientName": "Ana",
                "permissions": {"canDownload": True, "canFavorite": False},
                "maxUsage": 5,
                "expiresAt": expires_at,
                "usageCount": 0,
                "status": "pending",
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["clientName"] == "Ana"
        assert body["permissions"]["canDownload"] is True
        assert body["permissions"]["canFavorite"] is False
        assert body["maxUsage"] == 5
        assert body["usageCount"] == 1
        assert body["status"] == "active"
        stored = await fetch(Invitation, invitation.id)
        assert stored.usage_count == 1
        assert stored.expires_at == datetime.fromisoformat(expires_at)

    async def test_cap_below_uses_made(
        self, client, auth_headers, gallery, make_share_link, make_invitation
    ):
        link = await make_share_link(gallery)
        invitation = await make_invitation(gallery, max_usage=5)
        await client.get(f"/share/{link.token}", params={"invite": invitation.code})
        await client.get(f"/share/{link.token}", params={"invite": invitation.code})

        response = await client.put(
            f"/invitations/{invitation.id}", json={"maxUsage": 1}, headers=auth_headers
        )

        assert response.status_code == 400

    async def test_single_use_cap_stays_one(self, client, auth_headers, gallery, make_invitation):
        invitation = await make_invitation(gallery, type="single_use")

        response = await client.put(
            f"/invitations/{invitation.id}", json={"maxUsage": 4}, headers=auth_headers
        )

        assert response.status_code == 400

    async def test_time_limited_keeps_its_expiry(self, client, auth_headers, gallery, make_invitation):
        invitation = await make_invitation(
            gallery, type="time_limited", expires_at=datetime.utcnow() + timedelta(days=1)
        )

        response = await client.put(
            f"/invitations/{invitation.id}", json={"clearExpiration": True}, headers=auth_headers
        )

        assert response.status_code == 400

    async def test_expiry_in_the_past(self, client, auth_headers, gallery, make_invitation):
        invitation = await make_invitation(gallery)
        past = (datetime.utcnow() - timedelta(hours=1)).isoformat()

        response = await client.put(
            f"/invitations/{invitation.id}", json={"expiresAt": past}, headers=auth_headers
        )

        assert response.status_code == 400

    async def test_revoked_invitation_stays_closed(
        self, client, auth_headers, gallery, make_share_link, make_invitation, fetch
    ):
        link = await make_share_link(gallery)
        invitation = await make_invitation(gallery)
        await client.post(f"/invitations/{invitation.id}/revoke", headers=auth_headers)

        response = await client.put(
            f"/invitations/{invitation.id}",
            json={"expiresAt": (datetime.utcnow() + timedelta(days=10)).isoformat()},
            headers=auth_headers,
        )

        assert response.status_code == 409
        assert (await fetch(Invitation, invitation.id)).status == "revoked"
        response = await client.get(f"/share/{link.token}", params={"invite": invitation.code})
        assert response.status_code == 403

    async def test_lapsed_invitation_cannot_be_extended(
        self, client, auth_headers, gallery, make_invitation
    ):
        now = datetime.utcnow()
        invitation = await make_invitation(
            gallery, now=now - timedelta(days=2), expires_at=now - timedelta(days=1)
        )

        response = await client.put(
            f"/invitations/{invitation.id}",
            json={"expiresAt": (now + timedelta(days=10)).isoformat()},
            headers=auth_headers,
        )

        assert response.status_code == 409

    async def test_only_the_owner(self, client, other_photographer, gallery, make_invitation):
        invitation = await make_invitation(gallery)
        headers = {"Authorization": f"Bearer {create_access_token(other_photographer.id)}"}

        response = await client.put(
            f"/invitations/{invitation.id}", json={"clientName": "Mallory"}, headers=headers
        )

        assert response.status_code == 404


class TestResendInvitation:
    async def test_resend(self, client, auth_headers, gallery, make_invitation, fetch):
        invitation = await make_invitation(gallery, client_email="client@example.com")

        response = await client.post(f"/invitations/{invitation.id}/resend", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["emailQueued"] is True
        assert body["invitation"]["code"] == invitation.code
        assert body["invitation"]["status"] == "pending"
        stored = await fetch(Invitation, invitation.id)
        assert stored.code == invitation.code
        assert stored.usage_count == 0

    async def test_without_recipient(self, client, auth_headers, gallery, make_invitation):
        invitation = await make_invitation(gallery)

        response = await client.post(f"/invitations/{invitation.id}/resend", headers=auth_headers)

        assert response.status_code == 400

    async def test_revoked_invitation(self, client, auth_headers, gallery, make_invitation):
        invitation = await make_invitation(gallery, client_email="client@example.com")
        await client.post(f"/invitations/{invitation.id}/revoke", headers=auth_headers)

        response = await client.post(f"/invitations/{invitation.id}/resend", headers=auth_headers)

        assert response.status_code == 409

    async def test_only_the_owner(self, client, other_photographer, gallery, make_invitation):
        invitation = await make_invitation(gallery, client_email="client@example.com")
        headers = {"Authorization": f"Bearer {create_access_token(other_photographer.id)}"}

        response = await client.post(f"/invitations/{invitation.id}/resend", headers=headers)

        assert response.status_code == 404
