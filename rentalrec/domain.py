"""
Domain Snapshots for the Rental Recommendation Engine.

Read-only views of users, vehicles, bookings and reviews as supplied by the
persistence layer, plus the interaction events tracked in-process.

The engine never mutates these objects. Equality and hashing of users and
items go through their ids so they can be collected in sets and dict keys.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional


# ============================================================================
# Enumerations
# ============================================================================

class VehicleCategory(str, Enum):
    """Vehicle body/segment used for grouping and type similarity."""
    SEDAN = "SEDAN"
    SUV = "SUV"
    HATCHBACK = "HATCHBACK"
    LUXURY = "LUXURY"
    SPORTS = "SPORTS"
    CONVERTIBLE = "CONVERTIBLE"
    VAN = "VAN"
    TRUCK = "TRUCK"
    COMPACT = "COMPACT"


class FuelType(str, Enum):
    PETROL = "PETROL"
    DIESEL = "DIESEL"
    ELECTRIC = "ELECTRIC"
    HYBRID = "HYBRID"
    PLUGIN_HYBRID = "PLUGIN_HYBRID"
    CNG = "CNG"
    LPG = "LPG"
    HYDROGEN = "HYDROGEN"


class InteractionType(str, Enum):
    IMPRESSION = "IMPRESSION"
    CLICK = "CLICK"
    BOOKING = "BOOKING"
    SEARCH = "SEARCH"


# ============================================================================
# Entities
# ============================================================================

@dataclass(eq=False)
class Item:
    """
    A rentable vehicle.

    Attributes:
        id: Vehicle id
        category: Body/segment category
        fuel_type: Fuel or energy source
        transmission: Free-text transmission ("Automatic", "Manual", ...)
        seats: Seat count
        luggage_capacity: Number of bags
        daily_price: Daily rental price
        features: Feature labels ("GPS", "Bluetooth", ...)
        rating: Aggregate rating in [0, 5]
        review_count: Number of reviews behind ``rating``
        is_available: Whether the vehicle can currently be rented
        make: Manufacturer, used by search matching
        model: Model name, used by search matching
        location: Pickup branch, used by location recommendations
    """
    id: int
    category: VehicleCategory
    fuel_type: FuelType
    transmission: str
    seats: int
    luggage_capacity: int
    daily_price: float
    features: List[str] = field(default_factory=list)
    rating: float = 0.0
    review_count: int = 0
    is_available: bool = True
    make: str = ""
    model: str = ""
    location: Optional[str] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Item):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(("item", self.id))

    def __repr__(self) -> str:
        return f"Item(id={self.id}, category={self.category.value}, rating={self.rating})"


@dataclass(eq=False)
class Booking:
    """A completed or upcoming rental of one item by one user."""
    user_id: int
    item: Item
    start_date: date
    end_date: date
    total_price: float
    pickup_location: str
    created_at: datetime

    @property
    def item_id(self) -> int:
        return self.item.id

    @property
    def duration_days(self) -> int:
        return (self.end_date - self.start_date).days


@dataclass(eq=False)
class Review:
    user_id: int
    item_id: int
    rating: int
    comment: Optional[str] = None


@dataclass(eq=False)
class User:
    """
    A platform user with booking and review history.

    ``bookings`` and ``reviews`` are ordered as the persistence layer
    returns them (oldest first).
    """
    id: int
    bookings: List[Booking] = field(default_factory=list)
    reviews: List[Review] = field(default_factory=list)
    created_at: Optional[datetime] = None
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or f"User {self.id}"

    def booked_item_ids(self) -> set:
        return {b.item_id for b in self.bookings}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, User):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(("user", self.id))

    def __repr__(self) -> str:
        return f"User(id={self.id}, bookings={len(self.bookings)}, reviews={len(self.reviews)})"


@dataclass(frozen=True)
class InteractionEvent:
    """Tracked user interaction (impression, click, booking, search)."""
    user_id: int
    item_id: Optional[int]
    type: InteractionType
    detail: str
    timestamp: datetime


# ============================================================================
# Scores
# ============================================================================

@dataclass(frozen=True)
class UserSimilarityScore:
    user: User
    score: float

    def __repr__(self) -> str:
        return f"UserSimilarityScore(user={self.user.id}, similarity={self.score:.3f})"


@dataclass(frozen=True)
class ItemSimilarityScore:
    item: Item
    score: float

    def __repr__(self) -> str:
        return f"ItemSimilarityScore(item={self.item.id}, similarity={self.score:.3f})"
