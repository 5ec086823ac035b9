"""
tests/test_jwt_startup — JWT Secret Validation & Token Verification
====================================================================
The API must refuse to start when JWT_SECRET is missing, blank, too short,
or a known weak default, and must reject tokens it cannot verify.
"""

from __future__ import annotations

import os
from unittest.mock import patch

import jwt
import pytest

from lorekeeper.api import deps
from lorekeeper.errors import AuthorizationError


class TestJWTSecretValidation:
    """Prove that _load_jwt_secret() rejects bad secrets and accepts good ones."""

    def test_rejects_missing_secret(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("JWT_SECRET", None)
            with pytest.raises(RuntimeError, match="JWT_SECRET environment variable is not set"):
                deps._load_jwt_secret()

    def test_rejects_empty_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": ""}):
            with pytest.raises(RuntimeError, match="JWT_SECRET environment variable is not set"):
                deps._load_jwt_secret()

    def test_rejects_known_weak_default(self):
        with patch.dict(os.environ, {"JWT_SECRET": "lorekeeper-dev-secret-change-me"}):
            with pytest.raises(RuntimeError, match="known weak default"):
                deps._load_jwt_secret()

    def test_rejects_short_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": "tooshort"}):
            with pytest.raises(RuntimeError, match="too short"):
                deps._load_jwt_secret()

    def test_accepts_strong_secret(self):
        good_secret = "a" * 64
        with patch.dict(os.environ, {"JWT_SECRET": good_secret}):
            assert deps._load_jwt_secret() == good_secret


class TestVerifyToken:
    def test_extracts_subject_and_email(self):
        token = jwt.encode(
            {"sub": "abc", "email": "a@b.com"}, deps.JWT_SECRET, algorithm=deps.JWT_ALGORITHM,
        )
        identity = deps.verify_token(token)
        assert identity == deps.VerifiedIdentity(subject_id="abc", email="a@b.com")

    def test_wrong_signature(self):
        token = jwt.encode({"sub": "abc"}, "b" * 64, algorithm=deps.JWT_ALGORITHM)
        with pytest.raises(AuthorizationError) as exc:
            deps.verify_token(token)
        assert exc.value.status_code == 401

    def test_missing_subject(self):
        token = jwt.encode({"email": "a@b.com"}, deps.JWT_SECRET, algorithm=deps.JWT_ALGORITHM)
        with pytest.raises(AuthorizationError, match="missing subject"):
            deps.verify_token(token)

    def test_audience_enforced_when_configured(self):
        token = jwt.encode(
            {"sub": "abc", "aud": "other"}, deps.JWT_SECRET, algorithm=deps.JWT_ALGORITHM,
        )
        with patch.dict(os.environ, {"IDENTITY_AUDIENCE": "lorekeeper"}):
            with pytest.raises(AuthorizationError):
                deps.verify_token(token)
