"""Outbound notifications to the site owner."""
