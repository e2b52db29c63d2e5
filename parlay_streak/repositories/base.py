"""
Base repository class for data access layer.

Repositories own every query and every conditional (compare-and-swap)
update; services never build SQL themselves. Conditional updates return
the number of rows matched so the caller can tell whether it won a race.

Example:
    class GameRepository(BaseRepository[Game]):
        def find_by_external_id(self, external_id: str) -> Optional[Game]:
            return self.where_first(Game.external_id == external_id)
"""
import uuid
from abc import ABC
from typing import TypeVar, Generic, Type, Optional, List

from sqlalchemy.orm import Query, Session

from parlay_streak.utils.timezone import utc_now

T = TypeVar("T")


def new_id() -> str:
    return str(uuid.uuid4())


class BaseRepository(Generic[T], ABC):
    """
    Base repository class providing common data access methods.

    Attributes:
        model_type: The SQLAlchemy model class this repository manages
        db: The database session
    """

    def __init__(self, model_type: Type[T], db: Session):
        self.model_type = model_type
        self.db = db

    # ========================================================================
    # CRUD Operations
    # ========================================================================

    def find_by_id(self, id: str) -> Optional[T]:
        """Find a single record by ID."""
        return self.db.query(self.model_type).filter(self.model_type.id == id).first()

    def create(self, **kwargs) -> T:
        """
        Create a new record.

        Fills ``id`` and the timestamp columns when the model has them and
        the caller did not pass them.

        Returns:
            The created record (added to the session, not yet committed)
        """
        now = utc_now()
        kwargs.setdefault("id", new_id())
        if hasattr(self.model_type, "created_at"):
            kwargs.setdefault("created_at", now)
        if hasattr(self.model_type, "updated_at"):
            kwargs.setdefault("updated_at", now)
        instance = self.model_type(**kwargs)
        self.db.add(instance)
        return instance

    def delete(self, instance: T) -> None:
        self.db.delete(instance)

    # ========================================================================
    # Query Builders
    # ========================================================================

    def query(self) -> Query:
        """Get a new query object for this model."""
        return self.db.query(self.model_type)

    def where(self, *criterion) -> List[T]:
        """Filter records using SQLAlchemy expressions."""
        return self.db.query(self.model_type).filter(*criterion).all()

    def where_first(self, *criterion) -> Optional[T]:
        """Filter records using SQLAlchemy expressions and return first match."""
        return self.db.query(self.model_type).filter(*criterion).first()

    # ========================================================================
    # Conditional Updates
    # ========================================================================

    def update_where(self, values: dict, *criterion) -> int:
        """
        ``UPDATE <table> SET values WHERE criterion``.

        Returns:
            Number of rows matched; 0 means another writer got there first
        """
        return self.db.query(self.model_type).filter(*criterion).update(
            values, synchronize_session=False
        )

