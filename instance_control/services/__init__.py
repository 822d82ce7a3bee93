"""
Instance Control Services

Domain services used by the view builder and the action orchestrator:
- backups: backup pricing, schedules and transfer usage
- networking: rDNS edit state and display policy
- firewall: attach/detach validation and optimistic edits
- catalog: upstream plan and region catalogs
"""

from .backups import BackupAccounting, BackupCost, TransferSummary, TransferUsage
from .catalog import CatalogService, normalize_region_list, parse_allowed_regions
from .firewall import FirewallManager, FirewallRequestError, FirewallUnavailable, MissingAttachmentReference
from .networking import EditState, InvalidEditTransition, NetworkReconciler, RdnsEdit

__all__ = [
    "BackupAccounting",
    "BackupCost",
    "TransferSummary",
    "TransferUsage",
    "CatalogService",
    "normalize_region_list",
    "parse_allowed_regions",
    "FirewallManager",
    "FirewallRequestError",
    "FirewallUnavailable",
    "MissingAttachmentReference",
    "EditState",
    "InvalidEditTransition",
    "NetworkReconciler",
    "RdnsEdit",
]
