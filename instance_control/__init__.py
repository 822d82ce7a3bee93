"""
Instance Control
================

Client-side control layer for multi-provider VPS instances.

This package provides:
- Provider adapters normalizing Linode and DigitalOcean records
- Canonical instance status and progress estimation
- Backup pricing, schedules and transfer accounting
- Reverse DNS edit state and firewall attach/detach bookkeeping
- A lock-guarded action orchestrator with optimistic updates
"""

__version__ = "0.1.0"
