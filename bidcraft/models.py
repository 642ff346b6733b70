import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Role(str, Enum):
    ADMIN = "admin"
    BUYER = "buyer"
    PROVIDER = "provider"


class UserStatus(str, Enum):
    ACTIVE = "active"
    BANNED = "banned"


class ProjectStatus(str, Enum):
    OPEN = "open"
    AWAITING_ACCEPTANCE = "awaiting_acceptance"
    CLOSED = "closed"


def lowest_bid(bids: Optional[List[Dict[str, Any]]]) -> Optional[float]:
    amounts = [bid["amount"] for bid in bids or []]
    return min(amounts) if amounts else None


def sorted_bids(bids: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    # Stored in insertion order; readers always see them cheapest first.
    return sorted(bids or [], key=lambda bid: bid["amount"])


def project_status(project: Dict[str, Any], now: datetime.datetime) -> ProjectStatus:
    """Bidding state derived from the stored document and the current time.

    Nothing ever writes this state back: once the deadline passes a project
    is awaiting acceptance simply because every reader compares against the
    clock.
    """
    if project.get("accepted_bid"):
        return ProjectStatus.CLOSED
    if project["deadline"] > now:
        return ProjectStatus.OPEN
    return ProjectStatus.AWAITING_ACCEPTANCE


def is_open(project: Dict[str, Any], now: datetime.datetime) -> bool:
    return project_status(project, now) is ProjectStatus.OPEN


def format_amount(amount: float) -> str:
    if float(amount).is_integer():
        return str(int(amount))
    return str(amount)
