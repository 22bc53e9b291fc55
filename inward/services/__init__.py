"""Workflow services: tenant resolution, access control, lifecycle, financials, notifications."""
