"""
Tests for core.security.context - Principal and EvaluationContext
"""
from datetime import datetime
from types import SimpleNamespace

from core.security.context import EvaluationContext, Principal
from core.security.legacy_roles import LegacyRole


class TestPrincipal:
    def test_from_user_uses_enum_value(self):
        user = SimpleNamespace(id=4, role=LegacyRole.PROPERTY_MANAGER,
                               organization_id=1, property_id=2, department_id=None)
        principal = Principal.from_user(user)
        assert principal == Principal(user_id=4, role="PROPERTY_MANAGER",
                                      organization_id=1, property_id=2)

    def test_from_user_with_plain_role(self):
        principal = Principal.from_user(SimpleNamespace(id=5, role="STAFF"))
        assert principal.role == "STAFF"
        assert principal.organization_id is None


class TestEvaluationContext:
    def test_from_request_data(self):
        context = EvaluationContext.from_request_data(
            {"property_id": "3"},
            {"organizationId": 1, "userId": 9, "resourceId": "12"},
        )
        assert context.property_id == 3
        assert context.organization_id == 1
        assert context.resource_owner_id == 9
        assert context.resource_id == 12
        assert context.department_id is None

    def test_first_source_wins(self):
        context = EvaluationContext.from_request_data({"department_id": 4}, {"department_id": 8})
        assert context.department_id == 4

    def test_invalid_values_are_skipped(self):
        context = EvaluationContext.from_request_data(
            {"department_id": "front-office"}, None, {"department_id": "6"}
        )
        assert context.department_id == 6

    def test_merged(self):
        base = EvaluationContext(organization_id=1, property_id=2, metadata={"a": 1})
        merged = base.merged(EvaluationContext(property_id=5, metadata={"b": 2}))
        assert merged.organization_id == 1
        assert merged.property_id == 5
        assert merged.metadata == {"a": 1, "b": 2}
        assert base.merged(None) is base

    def test_cache_fingerprint(self):
        a = EvaluationContext(organization_id=1, department_id=2)
        b = EvaluationContext(organization_id=1, department_id=3)
        assert a.cache_fingerprint() != b.cache_fingerprint()
        assert a.cache_fingerprint() == EvaluationContext(organization_id=1, department_id=2).cache_fingerprint()

    def test_cache_fingerprint_includes_time_to_the_minute(self):
        morning = EvaluationContext(current_time=datetime(2026, 3, 2, 10, 0, 5))
        assert morning.cache_fingerprint() == EvaluationContext(
            current_time=datetime(2026, 3, 2, 10, 0, 40)
        ).cache_fingerprint()
        assert morning.cache_fingerprint() != EvaluationContext(
            current_time=datetime(2026, 3, 2, 22, 0)
        ).cache_fingerprint()
        assert morning.cache_fingerprint() != EvaluationContext().cache_fingerprint()
