from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from fastapi import HTTPException

from packhouse.auth import Principal, Role, SessionState, home_path_for, require_role
from packhouse.models import PrincipalRole
from packhouse.security.passwords import hash_password, verify_and_rehash
from packhouse.security.sessions import load_auth_session


def _db_returning(row):
    result = SimpleNamespace(one_or_none=lambda: row)
    return SimpleNamespace(execute=lambda _statement: result)


def _stored_session(*, expires_in: timedelta, revoked: bool = False) -> SimpleNamespace:
    now = datetime.now(tz=timezone.utc)
    return SimpleNamespace(
        expires_at=now + expires_in,
        revoked_at=now if revoked else None,
        last_seen_at=None,
    )


def _stored_principal(role: PrincipalRole = PrincipalRole.GRADING) -> SimpleNamespace:
    return SimpleNamespace(id=4, username='clasificacion', role=role, active=True)


class LoadAuthSessionTests(unittest.TestCase):
    def test_missing_token_is_anonymous(self) -> None:
        self.assertEqual(load_auth_session(_db_returning(None), None).state, SessionState.ANONYMOUS)
        self.assertEqual(load_auth_session(_db_returning(None), 'unknown').state, SessionState.ANONYMOUS)

    def test_valid_session_slides_expiry(self) -> None:
        web_session = _stored_session(expires_in=timedelta(minutes=1))
        before = web_session.expires_at

        auth_session = load_auth_session(_db_returning((web_session, _stored_principal())), 'token')

        self.assertTrue(auth_session.is_authenticated)
        self.assertEqual(auth_session.principal.role, Role.GRADING)
        self.assertGreater(web_session.expires_at, before)
        self.assertIsNotNone(web_session.last_seen_at)

    def test_revoked_session_is_signed_out(self) -> None:
        web_session = _stored_session(expires_in=timedelta(hours=1), revoked=True)

        auth_session = load_auth_session(_db_returning((web_session, _stored_principal())), 'token')

        self.assertEqual(auth_session.state, SessionState.SIGNED_OUT)
        self.assertFalse(auth_session.is_authenticated)

    def test_expired_session_is_anonymous(self) -> None:
        web_session = _stored_session(expires_in=timedelta(minutes=-1))

        auth_session = load_auth_session(_db_returning((web_session, _stored_principal())), 'token')

        self.assertEqual(auth_session.state, SessionState.ANONYMOUS)


class PasswordTests(unittest.TestCase):
    def test_hash_round_trip(self) -> None:
        hashed = hash_password('secretariapass')

        self.assertEqual(verify_and_rehash('secretariapass', hashed), (True, None))
        self.assertFalse(verify_and_rehash('otra', hashed)[0])


class RoleGuardTests(unittest.TestCase):
    def _principal(self, role: Role) -> Principal:
        return Principal(id=1, username='u', role=role, active=True)

    def test_allowed_role_and_admin_pass(self) -> None:
        guard = require_role(Role.SECRETARY)

        self.assertEqual(guard(self._principal(Role.SECRETARY)).role, Role.SECRETARY)
        self.assertEqual(guard(self._principal(Role.ADMIN)).role, Role.ADMIN)

    def test_other_roles_are_forbidden(self) -> None:
        guard = require_role(Role.SECRETARY)

        with self.assertRaises(HTTPException) as ctx:
            guard(self._principal(Role.RECEPTION))
        self.assertEqual(ctx.exception.status_code, 403)

    def test_home_paths(self) -> None:
        self.assertEqual(home_path_for(Role.RECEPTION), '/intake')
        self.assertEqual(home_path_for(Role.GRADING), '/grading')
        self.assertEqual(home_path_for(Role.SECRETARY), '/sales')
        self.assertEqual(home_path_for(Role.ADMIN), '/admin')


if __name__ == '__main__':
    unittest.main()
