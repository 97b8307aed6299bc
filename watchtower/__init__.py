"""Watchtower: sidecar monitor and backup-mode API for a primary service."""

__version__ = "0.1.0"
