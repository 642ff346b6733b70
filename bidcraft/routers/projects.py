from fastapi import APIRouter, Depends, Query, Request, status
from typing import Optional

from bidcraft.auction import AuctionEngine
from bidcraft.models import Role
from bidcraft.routers.auth import require_role
from bidcraft.schemas import (
    AcceptBidRequest,
    AcceptBidResponse,
    BidsResponse,
    PlaceBidRequest,
    PlaceBidResponse,
    ProjectCreate,
    ProjectDetail,
    ProjectOverview,
)

router = APIRouter(prefix="/api/projects", tags=["Projects"])

# Helper functions
def get_engine(request: Request) -> AuctionEngine:
    return request.app.state.engine

# Routes
@router.post("", response_model=ProjectDetail, status_code=status.HTTP_201_CREATED)
async def create_project(
    project: ProjectCreate,
    current_user: dict = Depends(require_role(Role.BUYER)),
    engine: AuctionEngine = Depends(get_engine),
):
    created = await engine.create_project(
        buyer_id=current_user["id"],
        title=project.title,
        description=project.description,
        budget_min=project.budget_min,
        budget_max=project.budget_max,
        deadline=project.deadline,
        category=project.category,
    )
    return await engine.get_project(created["id"])

@router.get("/overview", response_model=ProjectOverview)
async def projects_overview(
    page: int = Query(1, description="1-based page number"),
    page_size: int = Query(10, alias="pageSize", description="Items per page, at most 50"),
    category: Optional[str] = Query(None, description="Exact category filter"),
    q: Optional[str] = Query(None, description="Free-text match on title or description"),
    sort_key: str = Query("createdAt", alias="sortKey"),
    sort_order: str = Query("descend", alias="sortOrder"),
    engine: AuctionEngine = Depends(get_engine),
):
    """Paginated project listing with bid aggregates for the public board."""
    return await engine.list_overview(
        q=q or "",
        category=category or "",
        sort_key=sort_key,
        sort_order=sort_order,
        page=page,
        page_size=page_size,
    )

@router.get("/{project_id}", response_model=ProjectDetail)
async def get_project(project_id: str, engine: AuctionEngine = Depends(get_engine)):
    return await engine.get_project(project_id)

@router.get("/{project_id}/bids", response_model=BidsResponse)
async def list_bids(project_id: str, engine: AuctionEngine = Depends(get_engine)):
    return await engine.get_bids(project_id)

@router.post("/{project_id}/bids", response_model=PlaceBidResponse)
async def place_bid(
    project_id: str,
    bid: PlaceBidRequest,
    current_user: dict = Depends(require_role(Role.PROVIDER, "Only providers can bid")),
    engine: AuctionEngine = Depends(get_engine),
):
    placement = await engine.place_bid(project_id, current_user["id"], bid.amount)
    return PlaceBidResponse(bids_count=placement.bids_count, lowest_bid=placement.lowest_bid)

@router.patch("/{project_id}/accept", response_model=AcceptBidResponse)
async def accept_bid(
    project_id: str,
    payload: AcceptBidRequest,
    current_user: dict = Depends(require_role(Role.BUYER, "Only buyers can accept bids")),
    engine: AuctionEngine = Depends(get_engine),
):
    accepted = await engine.accept_bid(project_id, current_user["id"], payload.provider_id, payload.amount)
    return AcceptBidResponse(accepted_bid=accepted)
