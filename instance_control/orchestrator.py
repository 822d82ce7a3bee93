"""
Action Orchestrator
===================

Mutation dispatcher for live instances.

Every dispatch goes through the same steps:
1. Validate the payload (no lock, no network call on failure)
2. Check action legality against the current canonical status
3. Check the lock table for (resource, category); reject if held
4. Take the lock and apply the optimistic change to the store
5. Call the console API
6. On failure revert the optimistic change, release the lock and return
   the error (unexpected exceptions are reverted too, then re-raised);
   on success release the lock and schedule a silent re-fetch

Steps 1-4 run without awaiting, so two dispatches racing on one event loop
can never both pass the lock check.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

from pydantic import ValidationError

from .actions import (
    PAYLOAD_MODELS,
    ActionCategory,
    ActionRequest,
    ActionResult,
    ActionState,
    BackupRequest,
    ErrorKind,
    FirewallRequest,
    HostnameRequest,
    PowerRequest,
    RdnsRequest,
)
from .config import ConsoleConfig
from .instance_store import InstanceStore
from .instance_view import InstanceView, InstanceViewBuilder
from .logging_config import log_context
from .providers.base import BackupSchedule, Firewall, InstanceStatus
from .services.firewall import FirewallManager, FirewallRequestError, MissingAttachmentReference
from .services.networking import NetworkReconciler
from .state_machine import PowerAction, heuristic_progress, is_action_legal, optimistic_status
from .transport import ConsoleAPIError, ConsoleClient, ConsoleNotFoundError, ConsoleTransportError

logger = logging.getLogger(__name__)


class IllegalActionError(Exception):
    """The action is not permitted from the instance's current status."""
    pass


def _noop(*args) -> None:
    return None


@dataclass
class PreparedAction:
    """A validated action, ready to run once the lock is taken."""
    action: str
    lock_resource: str
    call: Callable[[], Awaitable[Any]]
    apply: Callable[[], None] = _noop
    revert: Callable[[], None] = _noop
    on_success: Callable[[], None] = _noop
    on_failure: Callable[[str], None] = _noop


def validation_message(error: ValidationError) -> str:
    """First pydantic error as one readable line."""
    first = error.errors()[0]
    message = first.get("msg", "Invalid request")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    field_name = ".".join(str(part) for part in first.get("loc", ()))
    return f"{field_name}: {message}" if field_name else message


class ActionOrchestrator:
    """
    Dispatches mutating actions with per-resource locks.

    Lock keys are coarse: one per instance for power, backup and hostname
    actions, one per firewall id for attach/detach, one per address for
    rDNS edits. Unrelated keys never block each other.
    """

    def __init__(
        self,
        client: ConsoleClient,
        store: Optional[InstanceStore] = None,
        builder: Optional[InstanceViewBuilder] = None,
        reconciler: Optional[NetworkReconciler] = None,
        firewalls: Optional[FirewallManager] = None,
        config: Optional[ConsoleConfig] = None,
    ):
        self.config = config or ConsoleConfig()
        self.client = client
        self.store = store or InstanceStore()
        self.builder = builder or InstanceViewBuilder(self.config)
        self.reconciler = reconciler or NetworkReconciler(
            self.config.networking.rdns_base_domain,
            self.config.networking.default_rdns_suffixes,
        )
        self.firewalls = firewalls or FirewallManager()

        self._locks: Dict[Tuple[str, ActionCategory], ActionRequest] = {}
        self._refresh_tasks: Set[asyncio.Task] = set()

    # =========================================
    # LOCK TABLE
    # =========================================

    def is_locked(self, lock_resource: str, category: Union[ActionCategory, str]) -> bool:
        return (lock_resource, ActionCategory(category)) in self._locks

    def pending_requests(self) -> List[ActionRequest]:
        return list(self._locks.values())

    # =========================================
    # DISPATCH
    # =========================================

    async def dispatch(
        self,
        resource_id: str,
        category: Union[ActionCategory, str],
        payload: Optional[Dict[str, Any]] = None,
    ) -> ActionResult:
        """
        Run one mutating action against an instance.

        Args:
            resource_id: Instance id the action targets
            category: power, backup, firewall, rdns or hostname
            payload: Category-specific request body

        Returns:
            ActionResult; expected failures never raise
        """
        try:
            category = ActionCategory(category)
        except ValueError:
            logger.info(
                f"Rejected unknown action category '{category}'",
                extra=log_context(resource_id=resource_id),
            )
            return ActionResult.failure(ErrorKind.VALIDATION_FAILED, f"Unknown action category: {category}")

        log_extra = log_context(resource_id=resource_id, category=category)

        try:
            request_model = PAYLOAD_MODELS[category].model_validate(payload or {})
            prepared = getattr(self, f"_prepare_{category.value}")(resource_id, request_model)
        except ValidationError as e:
            return self._rejected(ErrorKind.VALIDATION_FAILED, validation_message(e), log_extra)
        except MissingAttachmentReference as e:
            return self._rejected(ErrorKind.MISSING_ATTACHMENT_REFERENCE, str(e), log_extra)
        except FirewallRequestError as e:
            return self._rejected(ErrorKind.VALIDATION_FAILED, str(e), log_extra)
        except IllegalActionError as e:
            return self._rejected(ErrorKind.ILLEGAL_ACTION, str(e), log_extra)

        key = (prepared.lock_resource, category)
        log_extra["action"] = prepared.action
        if key in self._locks:
            return self._rejected(
                ErrorKind.ACTION_IN_PROGRESS,
                f"A {category.value} action is already in progress for {prepared.lock_resource}",
                log_extra,
            )

        request = ActionRequest(
            resource_id=resource_id,
            category=category,
            action=prepared.action,
            lock_resource=prepared.lock_resource,
        )
        self._locks[key] = request
        logger.info(f"Dispatching {category.value}/{prepared.action} for {resource_id}", extra=log_extra)

        applied = False
        try:
            prepared.apply()
            applied = True
            await prepared.call()
        except ConsoleTransportError as e:
            return self._failed(prepared, request, ErrorKind.TRANSPORT_FAILURE, e.message, log_extra)
        except ConsoleAPIError as e:
            return self._failed(prepared, request, ErrorKind.PROVIDER_FAILURE, e.message, log_extra)
        except BaseException as e:
            # Unexpected errors still undo the optimistic change before propagating
            request.state = ActionState.ERROR
            if applied:
                prepared.revert()
                prepared.on_failure(str(e) or type(e).__name__)
            logger.warning(
                f"{category.value}/{prepared.action} aborted for {resource_id}: {type(e).__name__}",
                extra=log_extra,
            )
            raise
        finally:
            self._locks.pop(key, None)

        request.state = ActionState.SUCCESS
        prepared.on_success()
        self._schedule_refresh(resource_id)
        return ActionResult.success(request)

    def _failed(
        self,
        prepared: PreparedAction,
        request: ActionRequest,
        error_kind: ErrorKind,
        message: str,
        log_extra: Dict[str, Any],
    ) -> ActionResult:
        request.state = ActionState.ERROR
        prepared.revert()
        prepared.on_failure(message)
        logger.warning(
            f"{request.category.value}/{request.action} failed for {request.resource_id}: {message}",
            extra=dict(log_extra, error_kind=error_kind.value),
        )
        return ActionResult.failure(error_kind, message, request)

    def _rejected(self, error_kind: ErrorKind, message: str, log_extra: Dict[str, Any]) -> ActionResult:
        logger.info(
            f"Rejected {log_extra.get('category')} action: {message}",
            extra=dict(log_extra, error_kind=error_kind.value),
        )
        return ActionResult.failure(error_kind, message)

    # =========================================
    # PER-CATEGORY PREPARATION
    # =========================================

    def _prepare_power(self, instance_id: str, payload: PowerRequest) -> PreparedAction:
        action = PowerAction(payload.action)
        view = self.store.get(instance_id)
        status = view.status if view else InstanceStatus.UNKNOWN
        if not is_action_legal(action, status):
            raise IllegalActionError(f"Cannot {action.value} an instance that is {status.value}")

        target = optimistic_status(action.value)
        return PreparedAction(
            action=action.value,
            lock_resource=instance_id,
            call=lambda: self.client.power(instance_id, action.value),
            apply=lambda: self._apply_status(instance_id, target),
            revert=lambda: self._revert_status(instance_id, target, view),
        )

    def _prepare_backup(self, instance_id: str, payload: BackupRequest) -> PreparedAction:
        view = self.store.get(instance_id)
        action = payload.action

        if action in ("snapshot", "restore"):
            target = optimistic_status(action)
            if action == "restore":
                call = lambda: self.client.restore_backup(instance_id, payload.backup_id)
            else:
                data = {"label": payload.label} if payload.label else {}
                call = lambda: self.client.backup_action(instance_id, "snapshot", data)
            return PreparedAction(
                action=action,
                lock_resource=instance_id,
                call=call,
                apply=lambda: self._apply_status(instance_id, target),
                revert=lambda: self._revert_status(instance_id, target, view),
            )

        if action == "schedule":
            changes = {"schedule": BackupSchedule(day=payload.day, window=payload.window)}
            data = {"day": payload.day, "window": payload.window}
        else:
            changes = {"enabled": action == "enable"}
            data = {}

        return PreparedAction(
            action=action,
            lock_resource=instance_id,
            call=lambda: self.client.backup_action(instance_id, action, data),
            apply=lambda: self._apply_backups(instance_id, changes),
            revert=lambda: self._revert_backups(instance_id, changes, view),
        )

    def _prepare_firewall(self, instance_id: str, payload: FirewallRequest) -> PreparedAction:
        view = self.store.get(instance_id)

        if payload.action == "detach":
            firewall_id, device_id = self.firewalls.validate_detach(payload.firewall_id, payload.device_id)
            call = lambda: self.client.detach_firewall(instance_id, firewall_id, device_id)
            optimistic = self.firewalls.without_attached(view.firewalls, firewall_id) if view else None
        else:
            if view is None:
                raise FirewallRequestError(f"Instance {instance_id} is not loaded")
            firewall = self.firewalls.validate_attach(payload.firewall_id, view.firewall_options, view.firewalls)
            firewall_id = firewall.id
            call = lambda: self.client.attach_firewall(instance_id, firewall_id)
            optimistic = self.firewalls.with_attached(view.firewalls, firewall, instance_id)

        return PreparedAction(
            action=payload.action,
            lock_resource=firewall_id,
            call=call,
            apply=lambda: self._apply_firewalls(instance_id, optimistic),
            revert=lambda: self._revert_firewalls(instance_id, optimistic, view),
        )

    def _prepare_rdns(self, instance_id: str, payload: RdnsRequest) -> PreparedAction:
        address, value = payload.address, payload.rdns
        return PreparedAction(
            action="update" if value else "clear",
            lock_resource=address,
            call=lambda: self.client.update_rdns(instance_id, address, value),
            apply=lambda: self.reconciler.begin_save(address, value),
            on_success=lambda: self.reconciler.complete_save(address),
            on_failure=lambda message: self.reconciler.fail_save(address, message),
        )

    def _prepare_hostname(self, instance_id: str, payload: HostnameRequest) -> PreparedAction:
        view = self.store.get(instance_id)
        hostname = payload.hostname

        def apply() -> None:
            if view is not None:
                self.store.update(instance_id, instance=replace(view.instance, label=hostname))

        def revert() -> None:
            current = self.store.get(instance_id)
            if current is not None and view is not None and current.instance.label == hostname:
                self.store.update(instance_id, instance=replace(current.instance, label=view.instance.label))

        return PreparedAction(
            action="rename",
            lock_resource=instance_id,
            call=lambda: self.client.update_hostname(instance_id, hostname),
            apply=apply,
            revert=revert,
        )

    # =========================================
    # OPTIMISTIC STATE
    # =========================================

    def _apply_status(self, instance_id: str, target: InstanceStatus) -> None:
        self.store.set_status(instance_id, target, progress=heuristic_progress(target))

    def _revert_status(self, instance_id: str, target: InstanceStatus, previous: Optional[InstanceView]) -> None:
        """Undo an optimistic status unless a fetch has already replaced it."""
        current = self.store.get(instance_id)
        if current is None or previous is None or current.status != target:
            return
        self.store.set_status(instance_id, previous.status, progress=previous.progress)

    def _apply_backups(self, instance_id: str, changes: Dict[str, Any]) -> None:
        view = self.store.get(instance_id)
        if view is not None:
            self.store.update(instance_id, backups=replace(view.backups, **changes))

    def _revert_backups(self, instance_id: str, changes: Dict[str, Any], previous: Optional[InstanceView]) -> None:
        current = self.store.get(instance_id)
        if current is None or previous is None:
            return
        if any(getattr(current.backups, name) != value for name, value in changes.items()):
            return
        restored = {name: getattr(previous.backups, name) for name in changes}
        self.store.update(instance_id, backups=replace(current.backups, **restored))

    def _apply_firewalls(self, instance_id: str, attached: Optional[Tuple[Firewall, ...]]) -> None:
        if attached is not None and self.store.get(instance_id) is not None:
            self.store.update(instance_id, firewalls=attached)

    def _revert_firewalls(
        self,
        instance_id: str,
        attached: Optional[Tuple[Firewall, ...]],
        previous: Optional[InstanceView],
    ) -> None:
        current = self.store.get(instance_id)
        if current is None or previous is None or current.firewalls != attached:
            return
        self.store.update(instance_id, firewalls=previous.firewalls)

    # =========================================
    # FETCHING
    # =========================================

    async def load(self, instance_id: str) -> Optional[InstanceView]:
        """Start watching an instance and fetch it."""
        self.store.watch(instance_id)
        return await self.refresh(instance_id)

    async def load_networking_config(self) -> str:
        """Fetch the branded rDNS base domain; keeps the configured one on failure."""
        try:
            domain = await self.client.get_rdns_base_domain()
        except ConsoleAPIError as e:
            logger.warning(f"Failed to read networking config, using {self.reconciler.base_domain}: {e.message}")
            return self.reconciler.base_domain
        self.reconciler.set_base_domain(domain)
        return self.reconciler.base_domain

    async def refresh(self, instance_id: str) -> Optional[InstanceView]:
        """
        Re-fetch an instance and store the result.

        A 404 hides the instance. Other failures are logged and leave the
        stored view untouched.
        """
        try:
            payload = await self.client.get_instance(instance_id)
        except ConsoleNotFoundError:
            self.store.hide(instance_id)
            return None
        except ConsoleAPIError as e:
            logger.warning(f"Refresh of {instance_id} failed: {e.message}", extra=log_context(resource_id=instance_id))
            return None

        try:
            view = self.builder.build(payload)
        except ValueError as e:
            logger.warning(f"Unreadable detail for {instance_id}: {e}", extra=log_context(resource_id=instance_id))
            return None

        if not self.store.apply_fetch(instance_id, view):
            return None
        return view

    def _schedule_refresh(self, instance_id: str) -> None:
        task = asyncio.create_task(self.refresh(instance_id))
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    async def wait_for_refreshes(self) -> None:
        """Wait for every scheduled re-fetch to settle."""
        while self._refresh_tasks:
            await asyncio.gather(*list(self._refresh_tasks), return_exceptions=True)

    # =========================================
    # QUERIES
    # =========================================

    def available_firewalls(self, instance_id: str) -> List[Firewall]:
        view = self.store.get(instance_id)
        if view is None:
            return []
        return self.firewalls.available_firewalls(view.firewall_options, view.firewalls)
