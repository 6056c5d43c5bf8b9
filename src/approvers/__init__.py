"""Approvers: ordered approver rows resolved against a directory service."""

__version__ = "0.1.0"
