"""Helpdesk HTTP API."""
