import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel

from .models import ProjectStatus, Role, UserStatus


class CamelModel(BaseModel):
    """Documents are snake_case; the JSON the UI speaks is camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Bids
class BidOut(CamelModel):
    provider_id: str
    amount: float
    created_at: Optional[datetime.datetime] = None

class AcceptedBidOut(CamelModel):
    provider_id: str
    amount: float

class BidsResponse(CamelModel):
    bids: List[BidOut]
    deadline: datetime.datetime
    accepted_bid: Optional[AcceptedBidOut] = None

class PlaceBidRequest(CamelModel):
    amount: float

class PlaceBidResponse(CamelModel):
    ok: bool = True
    bids_count: int
    lowest_bid: float

class AcceptBidRequest(CamelModel):
    provider_id: str
    amount: float

class AcceptBidResponse(CamelModel):
    ok: bool = True
    accepted_bid: AcceptedBidOut


# Projects
class ProjectCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    budget_min: float = Field(..., ge=0)
    budget_max: float = Field(..., ge=0)
    deadline: datetime.datetime
    category: str = Field(..., min_length=1, max_length=100)

    @model_validator(mode="after")
    def check_budget_range(self):
        if self.budget_min > self.budget_max:
            raise ValueError("budgetMin must not exceed budgetMax")
        return self

class ProjectSummary(CamelModel):
    id: str
    buyer_id: str
    buyer_email: Optional[str] = None
    title: str
    description: str
    budget_min: float
    budget_max: float
    deadline: datetime.datetime
    category: str
    created_at: datetime.datetime
    updated_at: Optional[datetime.datetime] = None
    accepted_bid: Optional[AcceptedBidOut] = None
    bids_count: int = 0
    lowest_bid: Optional[float] = None
    is_open: bool
    status: ProjectStatus

class ProjectDetail(ProjectSummary):
    bids: List[BidOut] = []

class ProjectOverview(CamelModel):
    items: List[ProjectSummary]
    total: int
    page: int
    page_size: int

class BuyerProjects(CamelModel):
    items: List[ProjectDetail]

class ProviderBidItem(ProjectSummary):
    my_bids: List[BidOut] = []
    my_lowest_bid: Optional[float] = None
    won: bool = False

class ProviderBids(CamelModel):
    items: List[ProviderBidItem]


# Users
class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: Literal["buyer", "provider"]

class UserOut(CamelModel):
    id: str
    email: str
    role: Role
    status: UserStatus
    created_at: Optional[datetime.datetime] = None

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut

class UserPage(CamelModel):
    items: List[UserOut]
    total: int
    page: int
    page_size: int

class BanRequest(BaseModel):
    action: Literal["BAN", "UNBAN"]
    reason: Optional[str] = Field(None, max_length=500)

class BanResponse(CamelModel):
    ok: bool = True
    status: UserStatus
    mail_delivered: Optional[bool] = None
