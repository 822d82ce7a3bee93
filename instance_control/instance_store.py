"""
Instance Store
==============

Shared in-memory store for canonical instance views.

Only two writers exist: fetch results (via ``apply_fetch``) and the action
orchestrator's optimistic updates (via ``update``). Views are immutable;
every change replaces the stored record.

Callers ``watch`` the instances they care about. A fetch that completes for
an instance nobody watches any more, or one that has been hidden after a
confirmed delete, is discarded.
"""

from dataclasses import replace
from typing import Dict, List, Optional, Set
import logging

from .instance_view import InstanceView
from .providers.base import InstanceStatus

logger = logging.getLogger(__name__)


class InstanceStore:
    """
    Event-loop local store of InstanceView records.

    All access happens on one asyncio loop, so no lock is needed: no method
    awaits, and each runs to completion before another task is scheduled.
    """

    def __init__(self):
        self._views: Dict[str, InstanceView] = {}
        self._watched: Set[str] = set()
        self._hidden: Set[str] = set()

    # =========================================
    # WATCH SET
    # =========================================

    def watch(self, instance_id: str) -> None:
        self._watched.add(instance_id)

    def unwatch(self, instance_id: str) -> None:
        """Stop caring about an instance; its view is dropped."""
        self._watched.discard(instance_id)
        self._views.pop(instance_id, None)

    def is_watched(self, instance_id: str) -> bool:
        return instance_id in self._watched and instance_id not in self._hidden

    # =========================================
    # READS
    # =========================================

    def get(self, instance_id: str) -> Optional[InstanceView]:
        if instance_id in self._hidden:
            return None
        return self._views.get(instance_id)

    def list_views(self) -> List[InstanceView]:
        return [view for key, view in self._views.items() if key not in self._hidden]

    # =========================================
    # WRITES
    # =========================================

    def apply_fetch(self, instance_id: str, view: InstanceView) -> bool:
        """
        Store a freshly fetched view.

        Returns:
            False if the response was stale and discarded
        """
        if not self.is_watched(instance_id):
            logger.debug(f"Discarding stale fetch for {instance_id}", extra={"resource_id": instance_id})
            return False
        self._views[instance_id] = view
        logger.debug(
            f"Stored {instance_id}: status={view.status.value}, progress={view.progress}",
            extra={"resource_id": instance_id},
        )
        return True

    def update(self, instance_id: str, **changes) -> Optional[InstanceView]:
        """Replace fields on the stored view."""
        view = self.get(instance_id)
        if view is None:
            logger.warning(f"Instance {instance_id} not found for update", extra={"resource_id": instance_id})
            return None
        view = replace(view, **changes)
        self._views[instance_id] = view
        return view

    def set_status(
        self,
        instance_id: str,
        status: InstanceStatus,
        progress: Optional[float] = None,
    ) -> Optional[InstanceView]:
        view = self.get(instance_id)
        if view is None:
            return None
        return self.update(
            instance_id,
            instance=replace(view.instance, status=status),
            progress=progress,
        )

    def hide(self, instance_id: str) -> None:
        """The server confirmed the instance is gone; never show it again."""
        self._hidden.add(instance_id)
        self._views.pop(instance_id, None)
        logger.info(f"Instance {instance_id} no longer exists, hiding", extra={"resource_id": instance_id})

    def is_hidden(self, instance_id: str) -> bool:
        return instance_id in self._hidden
