"""Status snapshots and final compliance reports."""

from compliance_workflow.reporting.report import ComplianceReport, ReportedViolation, StatusReport

__all__ = ["ComplianceReport", "ReportedViolation", "StatusReport"]
