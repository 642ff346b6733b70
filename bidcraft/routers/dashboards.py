from fastapi import APIRouter, Depends

from bidcraft.auction import AuctionEngine
from bidcraft.routers.auth import get_current_buyer, get_current_provider
from bidcraft.routers.projects import get_engine
from bidcraft.schemas import BuyerProjects, ProviderBids

router = APIRouter(prefix="/api", tags=["Dashboards"])

@router.get("/buyer/projects", response_model=BuyerProjects)
async def buyer_projects(
    current_user: dict = Depends(get_current_buyer),
    engine: AuctionEngine = Depends(get_engine),
):
    """Projects owned by the calling buyer, newest first, bids included."""
    return {"items": await engine.list_buyer_projects(current_user["id"])}

@router.get("/provider/bids", response_model=ProviderBids)
async def provider_bids(
    current_user: dict = Depends(get_current_provider),
    engine: AuctionEngine = Depends(get_engine),
):
    """Projects the calling provider has bid on, with their own bids and outcome."""
    return {"items": await engine.list_provider_bids(current_user["id"])}
