"""Pieces shared by the customer-facing and customer-management services."""
