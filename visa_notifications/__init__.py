"""Notification delivery and retry engine for the visa application portal."""
