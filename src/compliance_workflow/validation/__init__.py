"""
Phase validators.

Importing this package registers the built-in Clarify, Plan, Implement and
Verify validators in ``DEFAULT_VALIDATOR_REGISTRY``.
"""

from compliance_workflow.validation.base import (
    DEFAULT_VALIDATOR_REGISTRY,
    PhaseValidator,
    ValidatorFactory,
    ValidatorRegistration,
    ValidatorRegistry,
    build_verdict,
    register_builtin_validator,
)
from compliance_workflow.validation.clarify import ClarifyValidator
from compliance_workflow.validation.implement import ImplementValidator
from compliance_workflow.validation.plan import PlanDocument, PlannedChange, PlanValidator, parse_plan
from compliance_workflow.validation.verify import VerifyValidator

__all__ = [
    "ClarifyValidator",
    "DEFAULT_VALIDATOR_REGISTRY",
    "ImplementValidator",
    "PhaseValidator",
    "PlanDocument",
    "PlanValidator",
    "PlannedChange",
    "ValidatorFactory",
    "ValidatorRegistration",
    "ValidatorRegistry",
    "VerifyValidator",
    "build_verdict",
    "parse_plan",
    "register_builtin_validator",
]
