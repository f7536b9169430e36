"""Governance - security alerting."""
