"""Administrative operations on bindings.

Each operation takes a binding id and returns a plain dict with an
``errors`` list plus operation-specific fields. Nothing raises across this
boundary, so callers can render failures without special-casing.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import SecretStr

from vcsbridge.audit import AuditEvent, AuditLogger
from vcsbridge.automation.models import AutomationBindingStatus
from vcsbridge.errors import VCSBridgeError
from vcsbridge.github.auth import AuthHeaderBuilder
from vcsbridge.github.models import Binding
from vcsbridge.github.registry import BindingRegistry
from vcsbridge.github.webhook.reconciler import OperationResult, Reconciler
from vcsbridge.github.webhook.security import generate_secret


logger = logging.getLogger(__name__)


class AdminOperations:
    """get-info, synchronize, check-synchro, stop-synchronization, revoke-token.

    Local edits go through the reconciler write hooks so that ``auto``
    bindings converge with the provider as soon as they change.
    """

    def __init__(
        self,
        bindings: BindingRegistry,
        reconciler: Reconciler,
        auth: AuthHeaderBuilder,
        *,
        audit_logger: Optional[AuditLogger] = None,
    ) -> None:
        self.bindings = bindings
        self.reconciler = reconciler
        self.auth = auth
        self.audit_logger = audit_logger

    def get_info(self, binding_id: str) -> Dict[str, Any]:
        return self._run(binding_id, "get_info", self.reconciler.refresh_external_data)

    def synchronize(self, binding_id: str) -> Dict[str, Any]:
        return self._run(binding_id, "synchronize", self.reconciler.synchronize)

    def check_synchro(self, binding_id: str) -> Dict[str, Any]:
        return self._run(binding_id, "check_synchro", self.reconciler.check)

    def stop_synchronization(self, binding_id: str) -> Dict[str, Any]:
        return self._run(binding_id, "stop_synchronization", self.reconciler.delete_synchronization)

    def revoke_token(self, binding_id: str) -> Dict[str, Any]:
        try:
            binding = self.bindings.get(binding_id)
        except VCSBridgeError as exc:
            return {"errors": [exc.message]}
        if not binding.connector_id:
            return {"errors": [f"Binding {binding_id} has no connector"]}
        self.auth.revoke(binding.connector_id)
        self._audit(binding_id, "revoke_token", "success", {"connector_id": binding.connector_id})
        return {"errors": [], "connector_id": binding.connector_id, "revoked": True}

    # ------------------------------------------------------------------
    # Local edits
    # ------------------------------------------------------------------

    def rotate_secret(self, binding_id: str, secret: Optional[str] = None) -> Dict[str, Any]:
        """Replace the binding secret; ``auto`` bindings push it right away."""
        value = secret or generate_secret()

        def rotate(binding: Binding) -> OperationResult:
            binding.secret = SecretStr(value)
            return self.reconciler.on_binding_changed(binding, secret_rotated=True)

        return self._run(binding_id, "rotate_secret", rotate)

    def set_automation_status(self, binding_id: str, automation_id: str, active: bool) -> Dict[str, Any]:
        """Enable or disable one automation of a binding and re-derive its status."""
        status = AutomationBindingStatus.ACTIVE if active else AutomationBindingStatus.INACTIVE

        def toggle(binding: Binding) -> OperationResult:
            for link in binding.automations:
                if link.automation_id == automation_id:
                    link.status = status
                    return self.reconciler.on_automations_changed(binding)
            return OperationResult(
                "set_automation_status",
                errors=[f"Automation {automation_id} is not bound to {binding_id}"],
            )

        return self._run(binding_id, "set_automation_status", toggle)

    def remove_binding(self, binding_id: str) -> Dict[str, Any]:
        """Delete the remote webhook, then the local binding."""
        try:
            binding = self.bindings.get(binding_id)
            result = self.reconciler.on_binding_deleted(binding)
            self.bindings.remove(binding_id)
        except VCSBridgeError as exc:
            return {"errors": [exc.message]}
        except Exception as exc:
            logger.exception(
                "Administrative operation failed",
                extra={"binding_id": binding_id, "operation": "remove_binding"},
            )
            return {"errors": [f"Unexpected error: {exc}"]}
        self._audit(binding_id, "remove_binding", "failed" if result.has_error else "success", {})
        return {"errors": list(result.errors), "data": result.data, "removed": True}

    def _run(
        self,
        binding_id: str,
        name: str,
        operation: Callable[[Binding], OperationResult],
    ) -> Dict[str, Any]:
        outcome: List[OperationResult] = []
        try:
            binding = self.bindings.update(binding_id, lambda item: outcome.append(operation(item)))
        except VCSBridgeError as exc:
            return {"errors": [exc.message]}
        except Exception as exc:
            logger.exception("Administrative operation failed", extra={"binding_id": binding_id, "operation": name})
            return {"errors": [f"Unexpected error: {exc}"]}

        result = outcome[0]
        self._audit(
            binding_id,
            name,
            "failed" if result.has_error else "success",
            {"status": binding.status.value},
        )
        return {
            "errors": list(result.errors),
            "status": binding.status.value,
            "data": result.data,
            "url": binding.url,
        }

    def _audit(self, binding_id: str, action: str, status: str, metadata: Dict[str, object]) -> None:
        if self.audit_logger is None:
            return
        self.audit_logger.record(
            AuditEvent(source="binding_admin", action=action, status=status, binding_id=binding_id, metadata=metadata)
        )


__all__ = ["AdminOperations"]
