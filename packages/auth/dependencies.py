from typing import Annotated, Optional
from fastapi import Depends, HTTPException, status, Header

from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.auth.models.domain.roles import OrganizationRole

logger = get_logger(__name__)


def _parse_id(value: Optional[str], header: str) -> Optional[int]:
    if value is None or not value.strip():
        return None
    try:
        parsed = int(value.strip())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"{header} header is invalid",
        )
    if parsed <= 0:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"{header} header is invalid",
        )
    return parsed


@trace_span
async def get_current_user(
    x_user_id: Annotated[Optional[str], Header()] = None,
    x_organization_id: Annotated[Optional[str], Header()] = None,
    x_organization_roles: Annotated[Optional[str], Header()] = None,
    x_user_email: Annotated[Optional[str], Header()] = None,
) -> AuthenticatedUser:
    """
    Get the caller from the identity headers set by the trusted gateway.

    The organization is optional here; the role list is collapsed into a
    single role once, so nothing downstream parses raw role strings.
    """
    user_id = _parse_id(x_user_id, "X-User-Id")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header missing",
        )

    return AuthenticatedUser(
        user_id=user_id,
        organization_id=_parse_id(x_organization_id, "X-Organization-Id"),
        role=OrganizationRole.from_tokens(x_organization_roles),
        email=x_user_email.strip().lower() if x_user_email and x_user_email.strip() else None,
    )


@trace_span
async def get_current_active_user(
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    """Get current user acting inside an organization."""
    if current_user.organization_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Organization-Id header missing",
        )
    logger.info(
        f"Request for organization_id={current_user.organization_id} user_id={current_user.user_id}"
    )
    return current_user


@trace_span
async def get_billing_admin_user(
    current_user: AuthenticatedUser = Depends(get_current_active_user),
) -> AuthenticatedUser:
    """Get current user, who must be allowed to manage billing (OWNER or ADMIN)."""
    if not current_user.can_manage_billing:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions"
        )
    return current_user


@trace_span
async def get_member_admin_user(
    current_user: AuthenticatedUser = Depends(get_current_active_user),
) -> AuthenticatedUser:
    """Get current user, who must be allowed to manage members."""
    if not current_user.role.can_manage_members:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions"
        )
    return current_user
