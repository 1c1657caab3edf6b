"""Permission guards shared by the REST layer and the custom measure service.

Global permissions live on the user (``admin``, ``gateadmin``); project
administration is granted per component through ``component_permissions``.
``admin`` implies every other permission.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from qualitygate.auth import AuthContext
from qualitygate.errors import Forbidden
from qualitygate.models import ComponentPermissionModel, GlobalPermission

# ---------------------------------------------------------------------------
# Component permission constants
# ---------------------------------------------------------------------------

PROJECT_ADMIN: str = "admin"
PROJECT_USER: str = "user"


def require_global_permission(auth: AuthContext, permission: str) -> None:
    """Raise ``Forbidden`` unless *auth* holds *permission* globally."""
    if not auth.has_global_permission(permission):
        raise Forbidden(f"Insufficient privileges: '{permission}' permission is required")


def has_component_permission(
    session: Session, auth: AuthContext, component_uuid: str, permission: str
) -> bool:
    if auth.user_uuid is None:
        return False
    row = session.execute(
        select(ComponentPermissionModel.id).where(
            ComponentPermissionModel.user_uuid == auth.user_uuid,
            ComponentPermissionModel.component_uuid == component_uuid,
            ComponentPermissionModel.permission == permission,
        )
    ).first()
    return row is not None


def check_component_admin(session: Session, auth: AuthContext, component_uuid: str) -> None:
    """System administrators and administrators of the component pass; others get 403."""
    if auth.has_global_permission(GlobalPermission.ADMINISTER.value):
        return
    if has_component_permission(session, auth, component_uuid, PROJECT_ADMIN):
        return
    raise Forbidden("Insufficient privileges: administer permission on the project is required")
