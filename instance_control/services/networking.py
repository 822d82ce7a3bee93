"""
Network Reconciler
==================

Per-address reverse DNS edit state and the white-label display policy.

Edit lifecycle, one per address key:
    idle -> editing -> saving -> idle       (save succeeded)
                       saving -> editing    (save failed, attempted value kept)

Display policy: an rDNS value counts as configured only when it sits under
the platform's branded base domain. Provider default names are never shown.
"""

import logging
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterable, Optional

from ..providers.base import AddressFamily, NetworkAddress, to_str

logger = logging.getLogger(__name__)

RDNS_PLACEHOLDER = "Setting up…"

HOSTNAME_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")
MAX_HOSTNAME_LENGTH = 253


class EditState(Enum):
    IDLE = "idle"
    EDITING = "editing"
    SAVING = "saving"


class InvalidEditTransition(Exception):
    """Raised when an rDNS edit is moved out of order (e.g. saved twice)."""
    def __init__(self, address: str, state: EditState, attempted: str):
        self.address = address
        self.state = state
        super().__init__(f"Cannot {attempted} rDNS for {address} while {state.value}")


@dataclass(frozen=True)
class RdnsEdit:
    address: str
    state: EditState = EditState.IDLE
    value: Optional[str] = None
    error: Optional[str] = None


def is_valid_hostname(value: str) -> bool:
    if not value or len(value) > MAX_HOSTNAME_LENGTH:
        return False
    labels = value[:-1].split(".") if value.endswith(".") else value.split(".")
    return all(HOSTNAME_LABEL.match(label) for label in labels)


def normalize_rdns_value(value) -> Optional[str]:
    """
    Trim an rDNS value for submission; blank means "clear the record".

    Raises:
        ValueError: If a non-blank value is not a valid hostname
    """
    text = to_str(value)
    if text is None:
        return None
    if not is_valid_hostname(text):
        raise ValueError(f"Invalid hostname: {text}")
    return text


def _under_domain(name: str, domain: str) -> bool:
    name = name.lower().rstrip(".")
    domain = domain.lower().strip().strip(".")
    if not domain:
        return False
    return name == domain or name.endswith("." + domain)


def rdns_editable(addresses: Iterable[NetworkAddress]) -> bool:
    """An instance allows rDNS edits if any IPv4 address is editable or it has a SLAAC address."""
    for address in addresses:
        if address.family == AddressFamily.IPV4 and address.editable:
            return True
        if address.family == AddressFamily.IPV6 and address.assignment == "slaac":
            return True
    return False


class NetworkReconciler:
    """Tracks rDNS edits per address and decides how rDNS values are displayed."""

    def __init__(self, base_domain: str, default_suffixes: Iterable[str] = ()):
        self.base_domain = base_domain
        self.default_suffixes = tuple(s for s in default_suffixes if to_str(s))
        self._edits: Dict[str, RdnsEdit] = {}

    def set_base_domain(self, base_domain: Optional[str]) -> None:
        if to_str(base_domain):
            self.base_domain = base_domain.strip()

    # =========================================
    # DISPLAY POLICY
    # =========================================

    def is_configured(self, rdns: Optional[str]) -> bool:
        value = to_str(rdns)
        if value is None:
            return False
        if any(_under_domain(value, suffix) for suffix in self.default_suffixes):
            return False
        return _under_domain(value, self.base_domain)

    def display_rdns(self, rdns: Optional[str]) -> str:
        """The rDNS value as customers should see it."""
        if self.is_configured(rdns):
            return rdns.strip()
        return RDNS_PLACEHOLDER

    # =========================================
    # EDIT STATE
    # =========================================

    def edit_state(self, address: str) -> RdnsEdit:
        return self._edits.get(address) or RdnsEdit(address=address)

    def begin_edit(self, address: str, current: Optional[str] = None) -> RdnsEdit:
        edit = self.edit_state(address)
        if edit.state == EditState.SAVING:
            raise InvalidEditTransition(address, edit.state, "edit")
        if edit.state == EditState.EDITING:
            return edit
        edit = RdnsEdit(address=address, state=EditState.EDITING, value=current)
        self._edits[address] = edit
        return edit

    def update_draft(self, address: str, value: Optional[str]) -> RdnsEdit:
        edit = self.edit_state(address)
        if edit.state != EditState.EDITING:
            raise InvalidEditTransition(address, edit.state, "change")
        edit = replace(edit, value=value)
        self._edits[address] = edit
        return edit

    def cancel_edit(self, address: str) -> RdnsEdit:
        edit = self.edit_state(address)
        if edit.state == EditState.SAVING:
            raise InvalidEditTransition(address, edit.state, "cancel")
        self._edits.pop(address, None)
        return RdnsEdit(address=address)

    def begin_save(self, address: str, value: Optional[str]) -> RdnsEdit:
        """Move to saving; a save straight from idle is an implicit edit."""
        edit = self.edit_state(address)
        if edit.state == EditState.SAVING:
            raise InvalidEditTransition(address, edit.state, "save")
        edit = RdnsEdit(address=address, state=EditState.SAVING, value=value)
        self._edits[address] = edit
        return edit

    def complete_save(self, address: str) -> RdnsEdit:
        self._edits.pop(address, None)
        logger.info(f"rDNS saved for {address}", extra={"resource_id": address, "category": "rdns"})
        return RdnsEdit(address=address)

    def fail_save(self, address: str, message: str) -> RdnsEdit:
        """Back to editing with the attempted value kept for a retry."""
        attempted = self.edit_state(address).value
        edit = RdnsEdit(address=address, state=EditState.EDITING, value=attempted, error=message)
        self._edits[address] = edit
        return edit
