"""Tests for the identity provider seam."""
import pytest

from notesmart.exceptions import ErrorCode, UnauthenticatedError
from notesmart.identity import (IdentityProvider, MappingIdentityProvider,
                                resolve_user_id)


class TestMappingIdentityProvider:
    def test_reads_subject_claim(self):
        assert MappingIdentityProvider().get_current_user_id({"sub": "user-one"}) == "user-one"

    def test_custom_key(self):
        provider = MappingIdentityProvider(key="uid")
        assert provider.get_current_user_id({"uid": 42}) == "42"

    @pytest.mark.parametrize("context", [None, {}, {"other": "x"}])
    def test_missing_identity(self, context):
        assert MappingIdentityProvider().get_current_user_id(context) is None

    def test_satisfies_protocol(self):
        assert isinstance(MappingIdentityProvider(), IdentityProvider)


class TestResolveUserId:
    def test_resolves(self):
        assert resolve_user_id(MappingIdentityProvider(), {"sub": "user-one"}) == "user-one"

    @pytest.mark.parametrize("context", [None, {"sub": None}, {"sub": "  "}])
    def test_unauthenticated(self, context):
        with pytest.raises(UnauthenticatedError) as exc_info:
            resolve_user_id(MappingIdentityProvider(), context)
        assert exc_info.value.code == ErrorCode.UNAUTHENTICATED

    def test_custom_provider(self):
        class HeaderProvider:
            def get_current_user_id(self, context):
                return context.get("X-User")

        assert resolve_user_id(HeaderProvider(), {"X-User": "abc"}) == "abc"
