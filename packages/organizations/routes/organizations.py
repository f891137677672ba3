"""
Organization API routes.

Thin endpoints over OrganizationService; seat and organization limits are
enforced by the service before anything is written.
"""

from fastapi import APIRouter, Depends, Response, status

from packages.auth.dependencies import (
    get_current_active_user,
    get_current_user,
    get_member_admin_user,
)
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.organizations.models.schemas.organization import (
    InvitationCreateRequest,
    InvitationResponse,
    MemberResponse,
    OrganizationCreateRequest,
    OrganizationResponse,
)
from packages.organizations.services.organization_service import OrganizationService

router = APIRouter()


def get_organization_service() -> OrganizationService:
    return OrganizationService()


# ============================================================================
# Organizations
# ============================================================================


@router.post(
    "/organizations",
    response_model=OrganizationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_organization(
    request: OrganizationCreateRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    organization_service: OrganizationService = Depends(get_organization_service),
):
    """Create an organization owned by the caller, starting on the FREE plan."""
    return await organization_service.create_organization(
        current_user.user_id, request.name
    )


@router.get("/organizations/current/members", response_model=list[MemberResponse])
async def list_members(
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    organization_service: OrganizationService = Depends(get_organization_service),
):
    return await organization_service.list_members(current_user.organization_id)


@router.delete(
    "/organizations/current/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def remove_member(
    user_id: int,
    current_user: AuthenticatedUser = Depends(get_member_admin_user),
    organization_service: OrganizationService = Depends(get_organization_service),
):
    await organization_service.remove_member(
        current_user.organization_id, user_id, removed_by_user_id=current_user.user_id
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Invitations
# ============================================================================


@router.get(
    "/organizations/current/invitations", response_model=list[InvitationResponse]
)
async def list_invitations(
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    organization_service: OrganizationService = Depends(get_organization_service),
):
    return await organization_service.list_invitations(current_user.organization_id)


@router.post(
    "/organizations/current/invitations",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def invite_member(
    request: InvitationCreateRequest,
    current_user: AuthenticatedUser = Depends(get_member_admin_user),
    organization_service: OrganizationService = Depends(get_organization_service),
):
    """Invite someone by email. Refused with 429 when the plan has no free seat."""
    return await organization_service.invite_member(
        current_user.organization_id,
        current_user.user_id,
        request.email,
        role=request.role,
    )


@router.post("/invitations/{invitation_id}/accept", response_model=MemberResponse)
async def accept_invitation(
    invitation_id: int,
    current_user: AuthenticatedUser = Depends(get_current_user),
    organization_service: OrganizationService = Depends(get_organization_service),
):
    return await organization_service.accept_invitation(invitation_id, current_user)
