"""
Document Gateway: Identity and Bookkeeping Unit Tests
======================================================

What we test:
    ✅ Generated keys follow `{prefix}-{millis}`
    ✅ Key validation (empty, over-long)
    ✅ createdAt / updatedAt / id stamping on create
    ✅ Partial update merge never touches id or createdAt
    ✅ Key regeneration on collision, bounded
    ✅ User field rules (email, role)
"""

import re
from unittest.mock import AsyncMock

import pytest

from docgateway.exceptions import DocumentExistsError, ValidationError
from docgateway.schemas.user import check_user_fields
from docgateway.services.metadata import (
    CREATED_AT,
    UPDATED_AT,
    generate_key,
    insert_with_generated_key,
    merge_update,
    stamp_new,
    validate_key,
)
from docgateway.services.store_base import MutationResult, MutationToken


class TestKeys:

    def test_generated_key_format(self):
        """Generated keys should be prefix, dash, 13-digit millis."""
        assert re.fullmatch(r"user-\d{13}", generate_key("user"))

    def test_validate_key_accepts_normal_key(self):
        """Ordinary key should pass validation unchanged."""
        assert validate_key("doc-1") == "doc-1"

    @pytest.mark.parametrize("key", ["", "   "])
    def test_validate_key_rejects_blank(self, key):
        """Blank keys should fail on the key field."""
        with pytest.raises(ValidationError) as exc_info:
            validate_key(key)
        assert exc_info.value.field == "key"

    def test_validate_key_counts_utf8_bytes(self):
        """Length limit should apply to UTF-8 bytes, not characters."""
        # 125 two-byte characters fit exactly; one more does not
        assert validate_key("é" * 125)
        with pytest.raises(ValidationError):
            validate_key("é" * 126)


class TestStamping:

    def test_stamp_new_sets_id_and_timestamps(self):
        """New document should get its id and equal createdAt / updatedAt."""
        doc = stamp_new({"name": "Ana"}, "user-1", "id")

        assert doc["id"] == "user-1"
        assert doc["name"] == "Ana"
        assert doc[CREATED_AT] == doc[UPDATED_AT]

    def test_stamp_new_overrides_caller_metadata(self):
        """Caller-supplied id and createdAt should be overwritten."""
        doc = stamp_new({"documentId": "fake", CREATED_AT: 1}, "doc-5", "documentId")

        assert doc["documentId"] == "doc-5"
        assert doc[CREATED_AT] != 1

    def test_stamp_new_does_not_mutate_payload(self):
        """Stamping should copy the payload."""
        payload = {"name": "Ana"}
        stamp_new(payload, "user-1", "id")
        assert payload == {"name": "Ana"}


class TestMergeUpdate:

    def test_merge_keeps_unmentioned_fields(self):
        """Merge should keep fields the update does not mention and refresh updatedAt."""
        current = {"id": "user-1", "name": "Ana", "email": "a@x.com", CREATED_AT: 10, UPDATED_AT: 10}

        merged = merge_update(current, {"name": "Bo"})

        assert merged["name"] == "Bo"
        assert merged["email"] == "a@x.com"
        assert merged[UPDATED_AT] > 10

    def test_merge_ignores_protected_fields(self):
        """Merge should drop id and createdAt from the update."""
        current = {"id": "user-1", CREATED_AT: 10, UPDATED_AT: 10}

        merged = merge_update(current, {"id": "user-999", CREATED_AT: 0, "role": "admin"})

        assert merged["id"] == "user-1"
        assert merged[CREATED_AT] == 10
        assert merged["role"] == "admin"


def _result(seq=1):
    return MutationResult(cas=5, mutation_token=MutationToken("test-bucket", 1, seq))


class TestGeneratedKeyInsert:

    @pytest.mark.asyncio
    async def test_retries_with_new_key_after_collision(self):
        """Key collision should retry the insert under a new key."""
        store = AsyncMock()
        store.insert.side_effect = [DocumentExistsError(key="doc-1"), _result()]

        key, document, result = await insert_with_generated_key(
            store, "doc", lambda k: {"documentId": k}
        )

        assert store.insert.await_count == 2
        assert document["documentId"] == key
        assert re.fullmatch(r"doc-\d+", key)
        assert result.cas == 5

    @pytest.mark.asyncio
    async def test_gives_up_after_configured_attempts(self):
        """Persistent collisions should give up after the configured attempts."""
        store = AsyncMock()
        store.insert.side_effect = DocumentExistsError(key="doc-1")

        with pytest.raises(DocumentExistsError):
            await insert_with_generated_key(store, "doc", lambda k: {})

        assert store.insert.await_count == 3


class TestUserFields:

    def test_valid_user_passes(self):
        """Well-formed user fields should pass."""
        check_user_fields({"name": "Ana", "email": "a@x.com", "role": "admin"})

    def test_fields_are_optional(self):
        """Omitted user fields should not be required."""
        check_user_fields({"name": "Ana"})

    def test_bad_email(self):
        """Malformed email should fail on the email field."""
        with pytest.raises(ValidationError) as exc_info:
            check_user_fields({"email": "not-an-email"})
        assert exc_info.value.field == "email"
        assert "valid email" in exc_info.value.message

    def test_bad_role(self):
        """Unknown role should fail and list the accepted roles."""
        with pytest.raises(ValidationError) as exc_info:
            check_user_fields({"role": "root"})
        assert exc_info.value.field == "role"
        assert "admin" in exc_info.value.message
