"""
core/security/conditions.py

Conditional grants.

Two kinds of conditions narrow an otherwise matching permission:

- stored conditions, attached to a permission (PermissionCondition rows) or to a
  role/user grant, evaluated by type through ConditionEvaluator instances
- request conditions, attached to a required permission at the call site
  (sameDepartment, sameProperty, sameOrganization, isOwner)
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional
import logging

from core.security.context import EvaluationContext, Principal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConditionResult:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOWED = ConditionResult(allowed=True)


@dataclass(frozen=True)
class StoredCondition:
    """
    A condition attached to a permission grant

    Attributes:
        condition_type: evaluator key ("time", "department", "resource_owner")
        value: evaluator parameters
        description: human readable text used in denial reasons
    """

    condition_type: str
    value: Mapping[str, Any]
    description: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "StoredCondition":
        return cls(
            condition_type=str(data.get("condition_type") or data.get("conditionType") or ""),
            value=dict(data.get("value") or {}),
            description=data.get("description"),
        )


class ConditionEvaluator(ABC):
    """Evaluates one stored condition type"""

    condition_type: str = ""

    @abstractmethod
    def evaluate(
        self,
        condition: StoredCondition,
        principal: Principal,
        context: EvaluationContext,
    ) -> bool:
        pass


def parse_time_of_day(text: str) -> float:
    """`HH:MM` as fractional hours"""
    hours, _, minutes = str(text).partition(":")
    return int(hours) + int(minutes or 0) / 60


class TimeWindowEvaluator(ConditionEvaluator):
    """Current time of day within [startTime, endTime], inclusive"""

    condition_type = "time"

    def evaluate(self, condition, principal, context) -> bool:
        now = context.current_time or datetime.now()
        current = now.hour + now.minute / 60
        start = parse_time_of_day(condition.value.get("startTime", "00:00"))
        end = parse_time_of_day(condition.value.get("endTime", "23:59"))
        return start <= current <= end


class DepartmentEvaluator(ConditionEvaluator):
    condition_type = "department"

    def evaluate(self, condition, principal, context) -> bool:
        allowed = {str(d) for d in condition.value.get("departments") or []}
        if context.department_id is None:
            return False
        return str(context.department_id) in allowed


class ResourceOwnerEvaluator(ConditionEvaluator):
    condition_type = "resource_owner"

    def evaluate(self, condition, principal, context) -> bool:
        return context.resource_id is not None and context.resource_id == principal.user_id


class ConditionRegistry:
    """Stored condition evaluators keyed by condition type"""

    def __init__(self):
        self._evaluators: Dict[str, ConditionEvaluator] = {}

    def register(self, evaluator: ConditionEvaluator) -> None:
        self._evaluators[evaluator.condition_type] = evaluator

    def get(self, condition_type: str) -> Optional[ConditionEvaluator]:
        return self._evaluators.get(condition_type)

    def evaluate_all(
        self,
        conditions: Iterable[StoredCondition],
        principal: Principal,
        context: EvaluationContext,
    ) -> ConditionResult:
        """All conditions must pass; unknown types are skipped"""
        for condition in conditions:
            evaluator = self.get(condition.condition_type)
            if evaluator is None:
                logger.warning(f"Unknown condition type: {condition.condition_type}")
                continue
            if not evaluator.evaluate(condition, principal, context):
                label = condition.description or condition.condition_type
                return ConditionResult(allowed=False, reason=f"Condition failed: {label}")
        return ALLOWED


condition_registry = ConditionRegistry()
condition_registry.register(TimeWindowEvaluator())
condition_registry.register(DepartmentEvaluator())
condition_registry.register(ResourceOwnerEvaluator())


# request condition key -> (principal attribute, context attribute, denial reason)
_REQUEST_CONDITIONS = {
    "sameDepartment": (
        "department_id", "department_id",
        "User is not in the same department as the resource",
    ),
    "sameProperty": (
        "property_id", "property_id",
        "User is not in the same property as the resource",
    ),
    "sameOrganization": (
        "organization_id", "organization_id",
        "User is not in the same organization as the resource",
    ),
    "isOwner": (
        "user_id", "resource_owner_id",
        "User is not the owner of the resource",
    ),
}


def evaluate_request_conditions(
    conditions: Optional[Mapping[str, Any]],
    principal: Principal,
    context: EvaluationContext,
) -> ConditionResult:
    """
    Evaluate call-site conditions against the request context

    A condition whose flag is falsy, or whose target id is absent from the
    context, is skipped.
    """
    for key, enabled in (conditions or {}).items():
        spec = _REQUEST_CONDITIONS.get(key)
        if spec is None:
            logger.warning(f"Unknown condition: {key}")
            continue
        if not enabled:
            continue
        principal_attr, context_attr, reason = spec
        target = getattr(context, context_attr)
        if target is None:
            continue
        if getattr(principal, principal_attr) != target:
            return ConditionResult(allowed=False, reason=reason)
    return ALLOWED


__all__ = [
    "ConditionResult",
    "StoredCondition",
    "ConditionEvaluator",
    "TimeWindowEvaluator",
    "DepartmentEvaluator",
    "ResourceOwnerEvaluator",
    "ConditionRegistry",
    "condition_registry",
    "evaluate_request_conditions",
    "parse_time_of_day",
]
