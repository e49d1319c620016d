"""
Registration and password reset tests.

Verifies:
- codes are emailed, stored only as HMACs and single use
- existing users and live pending registrations block a new registration
- expired registrations are replaced
- password reset accepts only the latest unexpired code and revokes sessions
"""

import re
from datetime import timedelta

import pytest

from marketplace.errors import AlreadyExists, NotFound
from marketplace.extensions import db
from marketplace.models import PasswordReset, PendingUser, User, UserInvite
from marketplace.services import password_service, refresh_service, register_service

from conftest import PASSWORD


def _code_from(outbox, index=-1):
    return re.search(r"code is (\S+)\.", outbox[index][2]).group(1)


class TestRegistration:
    def test_register_and_confirm(self, client, db_session, outbox):
        resp = client.post("/register", json={"email": " New@Example.com "})
        assert resp.status_code == 200
        assert outbox[0][0] == "new@example.com"

        code = _code_from(outbox)
        assert len(code) == 6
        pending = db.session.query(PendingUser).filter_by(email="new@example.com").one()
        assert code not in pending.code_hash

        confirm = client.post("/register/confirm", json={
            "email": "new@example.com",
            "registration_code": code.lower(),
            "password": PASSWORD,
        })
        assert confirm.status_code == 201
        assert set(confirm.get_json()) == {"access_token", "refresh_token"}

        user = db.session.query(User).filter_by(email="new@example.com").one()
        assert user.role == "user"
        assert user.password_hash != PASSWORD
        assert db.session.get(PendingUser, pending.id).used is True

    def test_code_is_single_use(self, db_session):
        _, code = register_service.register("once@example.com")
        register_service.confirm("once@example.com", code, PASSWORD)
        with pytest.raises(NotFound):
            register_service.confirm("once@example.com", code, PASSWORD)

    def test_wrong_code(self, client, db_session, outbox):
        client.post("/register", json={"email": "a@example.com"})
        resp = client.post("/register/confirm", json={
            "email": "a@example.com",
            "registration_code": "ZZZZZZ" if _code_from(outbox) != "ZZZZZZ" else "YYYYYY",
            "password": PASSWORD,
        })
        assert resp.status_code == 404
        assert db.session.query(User).count() == 0

    def test_weak_password(self, client, db_session, outbox):
        client.post("/register", json={"email": "a@example.com"})
        resp = client.post("/register/confirm", json={
            "email": "a@example.com",
            "registration_code": _code_from(outbox),
            "password": "short",
        })
        assert resp.status_code == 400

    def test_existing_user_blocked(self, client, user, outbox):
        resp = client.post("/register", json={"email": user.email})
        assert resp.status_code == 409
        assert outbox == []

    def test_live_pending_blocks(self, db_session):
        register_service.register("a@example.com")
        with pytest.raises(AlreadyExists):
            register_service.register("a@example.com")

    def test_expired_pending_replaced(self, db_session):
        first, old_code = register_service.register("a@example.com")
        first.expires_at = first.expires_at - timedelta(days=4)
        db.session.commit()

        _, new_code = register_service.register("a@example.com")
        assert db.session.query(PendingUser).count() == 1
        user = register_service.confirm("a@example.com", new_code, PASSWORD)
        assert user.email == "a@example.com"

    def test_expired_code_rejected(self, db_session):
        pending, code = register_service.register("a@example.com")
        pending.expires_at = pending.expires_at - timedelta(days=4)
        db.session.commit()
        with pytest.raises(NotFound):
            register_service.confirm("a@example.com", code, PASSWORD)

    @pytest.mark.parametrize("email", ["", "not-an-email", "a@b", "x" * 250 + "@example.com"])
    def test_invalid_email(self, client, db_session, email):
        assert client.post("/register", json={"email": email}).status_code == 400


class TestPasswordReset:
    def _request(self, client, email="buyer@example.com"):
        return client.post("/users/password-reset", json={"email": email})

    def test_reset_flow(self, client, user, outbox):
        _, old_refresh = refresh_service.create_refresh_token(user.id)
        assert self._request(client).status_code == 200
        code = _code_from(outbox)

        resp = client.post("/users/password-reset/confirm", json={
            "email": user.email,
            "reset_code": code,
            "password": "NewPassword456",
        })
        assert resp.status_code == 200

        login = client.post("/users/login", json={"email": user.email, "password": "NewPassword456"})
        assert login.status_code == 200
        old_login = client.post("/users/login", json={"email": user.email, "password": PASSWORD})
        assert old_login.status_code == 401
        assert client.post("/users/refresh-token", json={"refresh_token": old_refresh}).status_code == 401

    def test_unknown_email_same_answer(self, client, db_session, outbox):
        resp = self._request(client, "ghost@example.com")
        assert resp.status_code == 200
        assert outbox == []

    def test_only_latest_code_accepted(self, client, user, outbox):
        self._request(client)
        self._request(client)
        first, latest = _code_from(outbox, 0), _code_from(outbox, 1)

        if first != latest:
            stale = client.post("/users/password-reset/confirm", json={
                "email": user.email, "reset_code": first, "password": "NewPassword456",
            })
            assert stale.status_code == 400

        ok = client.post("/users/password-reset/confirm", json={
            "email": user.email, "reset_code": latest, "password": "NewPassword456",
        })
        assert ok.status_code == 200

        reuse = client.post("/users/password-reset/confirm", json={
            "email": user.email, "reset_code": latest, "password": "OtherPassword789",
        })
        assert reuse.status_code == 400

    def test_expired_code(self, client, user, outbox):
        self._request(client)
        reset = db.session.query(PasswordReset).filter_by(user_id=user.id).one()
        reset.expires_at = reset.expires_at - timedelta(minutes=16)
        db.session.commit()

        resp = client.post("/users/password-reset/confirm", json={
            "email": user.email, "reset_code": _code_from(outbox), "password": "NewPassword456",
        })
        assert resp.status_code == 400


class TestInvitations:
    def _invite(self, client, headers, email="invited@example.com", role="user"):
        return client.post("/register/invite", json={"email": email, "role": role}, headers=headers)

    def _accept(self, client, code, password=PASSWORD):
        return client.post("/register/invite/confirm", json={"registration_code": code, "password": password})

    def test_invite_and_accept(self, client, admin_headers, outbox):
        resp = self._invite(client, admin_headers, email=" Invited@Example.com ", role="admin")
        assert resp.status_code == 201
        assert resp.get_json()["role"] == "admin"
        assert outbox[0][0] == "invited@example.com"

        invited = db.session.query(User).filter_by(email="invited@example.com").one()
        assert invited.password_hash is None
        assert client.post("/users/login", json={"email": "invited@example.com", "password": PASSWORD}).status_code == 401

        accepted = self._accept(client, _code_from(outbox).lower())
        assert accepted.status_code == 200
        assert set(accepted.get_json()) == {"access_token", "refresh_token"}

        login = client.post("/users/login", json={"email": "invited@example.com", "password": PASSWORD})
        assert login.status_code == 200
        assert db.session.query(UserInvite).one().used is True

    def test_code_is_single_use(self, client, admin_headers, outbox):
        self._invite(client, admin_headers)
        code = _code_from(outbox)
        assert self._accept(client, code).status_code == 200
        assert self._accept(client, code, "OtherPassword789").status_code == 400

    def test_unknown_code(self, client, db_session):
        assert self._accept(client, "ABC123").status_code == 400

    def test_weak_password_keeps_invite(self, client, admin_headers, outbox):
        self._invite(client, admin_headers)
        assert self._accept(client, _code_from(outbox), "short").status_code == 400
        assert db.session.query(UserInvite).one().used is False

    def test_requires_admin(self, client, user_headers):
        assert self._invite(client, user_headers).status_code == 403
        assert self._invite(client, {}).status_code == 401

    @pytest.mark.parametrize("role", ["guest", "owner", ""])
    def test_rejects_role(self, client, admin_headers, role):
        assert self._invite(client, admin_headers, role=role).status_code == 400

    def test_existing_user_blocked(self, client, admin_headers, user, outbox):
        assert self._invite(client, admin_headers, email=user.email).status_code == 409
        assert outbox == []

    def test_live_invite_blocks_reinvite(self, client, admin_headers, outbox):
        self._invite(client, admin_headers)
        assert self._invite(client, admin_headers).status_code == 409

    def test_expired_invite(self, client, admin_headers, outbox):
        self._invite(client, admin_headers)
        old_code = _code_from(outbox)
        invite = db.session.query(UserInvite).one()
        invite.expires_at = invite.expires_at - timedelta(hours=73)
        db.session.commit()

        assert self._accept(client, old_code).status_code == 400

        assert self._invite(client, admin_headers, role="admin").status_code == 201
        assert db.session.query(UserInvite).count() == 1
        assert db.session.query(User).filter_by(email="invited@example.com").one().role == "admin"
        assert self._accept(client, _code_from(outbox)).status_code == 200

    def test_invited_email_blocks_self_registration(self, client, admin_headers, outbox):
        self._invite(client, admin_headers)
        assert client.post("/register", json={"email": "invited@example.com"}).status_code == 409

    def test_pending_registration_blocks_invite(self, client, admin_headers, outbox):
        register_service.register("invited@example.com")
        assert self._invite(client, admin_headers).status_code == 409

    def test_reset_not_offered_before_acceptance(self, client, admin_headers, outbox):
        self._invite(client, admin_headers)
        assert password_service.request_reset("invited@example.com") is None
