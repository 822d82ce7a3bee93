"""
Firewall Manager
================

Attach/detach bookkeeping for instance firewalls.

- Attach only offers firewalls not already attached to the instance
- Detach needs the attachment device id, which is distinct from the firewall id
- Local edits only touch the attachment relation; rules are owned upstream
"""

from dataclasses import replace
from typing import Iterable, List, Optional, Sequence, Tuple

from ..providers.base import Firewall, FirewallAttachment, to_str


class FirewallRequestError(ValueError):
    """Base for attach/detach requests rejected before any network call."""
    pass


class MissingAttachmentReference(FirewallRequestError):
    def __init__(self, firewall_id: str):
        self.firewall_id = firewall_id
        super().__init__(f"Firewall {firewall_id} has no attachment device id; cannot detach")


class FirewallUnavailable(FirewallRequestError):
    def __init__(self, firewall_id: str):
        self.firewall_id = firewall_id
        super().__init__(f"Firewall {firewall_id} is not available to attach")


class FirewallManager:
    """Validates firewall requests and computes optimistic attachment state."""

    def available_firewalls(
        self,
        all_firewalls: Iterable[Firewall],
        attached: Iterable[Firewall],
    ) -> List[Firewall]:
        """Firewalls that can still be attached: all minus attached."""
        attached_ids = {fw.id for fw in attached}
        return [fw for fw in all_firewalls if fw.id not in attached_ids]

    def validate_attach(
        self,
        firewall_id: Optional[str],
        all_firewalls: Iterable[Firewall],
        attached: Iterable[Firewall],
    ) -> Firewall:
        """
        Resolve an attach request to one of the available firewalls.

        Raises:
            FirewallRequestError: If no firewall was selected
            FirewallUnavailable: If the firewall is unknown or already attached
        """
        firewall_id = to_str(firewall_id)
        if firewall_id is None:
            raise FirewallRequestError("Select a firewall to attach")

        for firewall in self.available_firewalls(all_firewalls, attached):
            if firewall.id == firewall_id:
                return firewall
        raise FirewallUnavailable(firewall_id)

    def validate_detach(self, firewall_id: Optional[str], device_id: Optional[str]) -> Tuple[str, str]:
        firewall_id = to_str(firewall_id)
        if firewall_id is None:
            raise FirewallRequestError("Select a firewall to detach")

        device_id = to_str(device_id)
        if device_id is None:
            raise MissingAttachmentReference(firewall_id)
        return firewall_id, device_id

    # =========================================
    # OPTIMISTIC EDITS
    # =========================================

    def with_attached(
        self,
        attached: Sequence[Firewall],
        firewall: Firewall,
        instance_id: str,
    ) -> Tuple[Firewall, ...]:
        """
        Attached list with ``firewall`` added.

        The device id is unknown until the next fetch, so the optimistic
        attachment carries only the instance reference.
        """
        pending = replace(
            firewall,
            attachment=FirewallAttachment(device_id=None, entity_id=str(instance_id)),
        )
        return tuple(attached) + (pending,)

    def without_attached(self, attached: Sequence[Firewall], firewall_id: str) -> Tuple[Firewall, ...]:
        return tuple(fw for fw in attached if fw.id != firewall_id)
