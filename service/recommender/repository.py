"""
Catalog Repository.

Read-only access to users, vehicles, bookings and reviews. The persistence
layer implements ``CatalogRepository``; ``InMemoryCatalogRepository`` backs
embedded use and tests.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional
import threading
import logging

from rentalrec.domain import Booking, Item, Review, User

logger = logging.getLogger(__name__)


class CatalogRepository(ABC):
    """Source of domain snapshots consumed by the orchestrator."""

    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]:
        """Return the user or None if unknown."""

    @abstractmethod
    def list_users(self) -> List[User]:
        """Return every user."""

    @abstractmethod
    def get_item(self, item_id: int) -> Optional[Item]:
        """Return the item or None if unknown."""

    @abstractmethod
    def list_items(self, available_only: bool = False) -> List[Item]:
        """Return every item, optionally only the available ones."""

    def list_bookings(self) -> List[Booking]:
        return [b for user in self.list_users() for b in user.bookings]

    def list_reviews(self) -> List[Review]:
        return [r for user in self.list_users() for r in user.reviews]

    def count_users(self) -> int:
        return len(self.list_users())


class InMemoryCatalogRepository(CatalogRepository):
    """
    Dict-backed repository.

    Example:
        >>> repo = InMemoryCatalogRepository(users=[alice, bob], items=catalog)
        >>> repo.get_user(alice.id)
    """

    def __init__(
        self,
        users: Optional[Iterable[User]] = None,
        items: Optional[Iterable[Item]] = None
    ):
        self._users: Dict[int, User] = {u.id: u for u in (users or [])}
        self._items: Dict[int, Item] = {i.id: i for i in (items or [])}
        self._lock = threading.Lock()

        logger.info(
            f"InMemoryCatalogRepository initialized: "
            f"{len(self._users)} users, {len(self._items)} items"
        )

    def get_user(self, user_id: int) -> Optional[User]:
        return self._users.get(user_id)

    def list_users(self) -> List[User]:
        with self._lock:
            return sorted(self._users.values(), key=lambda u: u.id)

    def get_item(self, item_id: int) -> Optional[Item]:
        return self._items.get(item_id)

    def list_items(self, available_only: bool = False) -> List[Item]:
        with self._lock:
            items = sorted(self._items.values(), key=lambda i: i.id)
        if available_only:
            return [i for i in items if i.is_available]
        return items

    def count_users(self) -> int:
        return len(self._users)

    # ------------------------------------------------------------------------
    # Mutation (used by loaders and tests)
    # ------------------------------------------------------------------------

    def add_user(self, user: User) -> None:
        with self._lock:
            self._users[user.id] = user

    def add_item(self, item: Item) -> None:
        with self._lock:
            self._items[item.id] = item

    def remove_user(self, user_id: int) -> bool:
        with self._lock:
            return self._users.pop(user_id, None) is not None

    def remove_item(self, item_id: int) -> bool:
        with self._lock:
            return self._items.pop(item_id, None) is not None
