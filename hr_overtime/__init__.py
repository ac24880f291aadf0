"""Overtime requests, approvals and payroll handoff for the HR dashboard."""

__version__ = "0.1.0"
