"""
Pydantic models for API request/response validation.
"""

from datetime import date, datetime
from typing import Optional, List, Literal
from pydantic import BaseModel, Field, ConfigDict, model_validator


PlanName = Literal["gratis", "basico", "completo"]


class ErrorResponse(BaseModel):
    """Error body returned for service errors."""

    detail: str
    kind: Optional[str] = None


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class ProfileSummary(BaseModel):
    """Public view of another user's profile."""

    id: str
    name: str
    location: Optional[str] = None
    avatar_url: Optional[str] = None
    phone_number: Optional[str] = None


class ProfileResponse(BaseModel):
    """The caller's own profile."""

    id: str
    name: str
    location: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    avatar_url: Optional[str] = None
    phone_number: Optional[str] = None
    start_date: Optional[str] = None
    user_plan: PlanName = "gratis"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class LocationUpdate(BaseModel):
    """Set both coordinates, or clear both with nulls."""

    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    location: Optional[str] = Field(None, max_length=200)

    @model_validator(mode="after")
    def coordinates_paired(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be set together")
        return self


class PlanResponse(BaseModel):
    user_plan: PlanName
    is_admin: bool = False


class PageAccessResponse(BaseModel):
    path: str
    required_plan: Optional[PlanName] = None
    user_plan: PlanName
    can_access: bool


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------


class TeamCreate(BaseModel):
    """Request to create a team."""

    name: Optional[str] = Field(None, max_length=100)
    max_members: int = Field(14, ge=1, le=100)
    whatsapp_link: Optional[str] = Field(None, max_length=500)
    avatar_url: Optional[str] = None


class TeamUpdate(BaseModel):
    """Leader edits. Only fields present in the request are changed."""

    name: Optional[str] = Field(None, max_length=100)
    whatsapp_link: Optional[str] = Field(None, max_length=500)


class TeamMemberResponse(BaseModel):
    id: int
    team_id: str
    user_id: str
    role: Literal["leader", "member"]
    joined_at: Optional[datetime] = None
    profile: Optional[ProfileSummary] = None
    email: Optional[str] = None


class TeamResponse(BaseModel):
    """Team snapshot with members."""

    id: str
    name: Optional[str] = None
    display_name: str
    created_by: str
    max_members: int
    effective_capacity: int
    member_count: int
    capacity_label: str
    is_full: bool
    whatsapp_link: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    members: List[TeamMemberResponse] = []


class LeaveTeamResponse(BaseModel):
    team_deleted: bool
    new_leader_id: Optional[str] = None
    team: Optional[TeamResponse] = None


class TeamDistanceResponse(BaseModel):
    team_id: str
    total_km: float


# ---------------------------------------------------------------------------
# Invitations and join requests
# ---------------------------------------------------------------------------


class InvitationCreate(BaseModel):
    invitee_id: str


class InvitationResponse(BaseModel):
    id: int
    team_id: str
    team_name: str
    inviter_id: str
    inviter_name: Optional[str] = None
    invitee_id: str
    invitee_name: Optional[str] = None
    status: Literal["pending", "accepted", "declined"]
    created_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None


class AcceptInvitationResponse(BaseModel):
    invitation: InvitationResponse
    team: TeamResponse


class JoinRequestResponse(BaseModel):
    id: int
    team_id: str
    team_name: str
    requester_id: str
    requester: Optional[ProfileSummary] = None
    status: Literal["pending", "accepted", "declined"]
    created_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None


class AcceptJoinRequestResponse(BaseModel):
    join_request: JoinRequestResponse
    team: TeamResponse


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class NearbyUserResponse(BaseModel):
    id: str
    name: str
    location: Optional[str] = None
    avatar_url: Optional[str] = None
    latitude: float
    longitude: float
    distance_miles: float
    team_id: Optional[str] = None
    team_name: Optional[str] = None
    is_team_leader: bool = False
    team_max_members: Optional[int] = None


class AvailableTeamResponse(BaseModel):
    id: str
    name: Optional[str] = None
    display_name: str
    avatar_url: Optional[str] = None
    member_count: int
    effective_capacity: int
    capacity_label: str
    distance_miles: float


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class PlanUpdate(BaseModel):
    plan: PlanName


class AdminTeamMemberAdd(BaseModel):
    user_id: str


class AdminUserResponse(BaseModel):
    """Profile with email and rollups."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    location: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    avatar_url: Optional[str] = None
    phone_number: Optional[str] = None
    start_date: Optional[date] = None
    user_plan: Optional[str] = None
    created_at: Optional[datetime] = None
    email: str
    total_points: float
    total_km: float


class AdminTeamMemberResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    user_id: str
    role: Optional[str] = None
    joined_at: Optional[datetime] = None
    profile: Optional[dict] = None


class AdminTeamResponse(BaseModel):
    id: str
    name: Optional[str] = None
    display_name: str
    created_by: str
    max_members: int
    effective_capacity: int
    whatsapp_link: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None
    members: List[AdminTeamMemberResponse] = []
    member_count: int
    total_points: float
    total_km: float
