"""Metadata store: persistence of queued files, library files and keywords.

MetadataStore defines the operations the rest of the package relies on;
SqlMetadataStore implements them on the Flask-SQLAlchemy session. All
methods must be called from the request (or app-context) thread; worker
threads never touch the session.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Iterable, Optional
import logging

from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError

from librarian import db
from librarian.lib.errors import StoreError
from librarian.lib.records import (
    CanonicalRecord,
    FileChange,
    KeywordData,
    KeywordLocation,
    LibraryEntry,
    QueueEntry,
)
from librarian.lib.timestamp import ensure_utc
from librarian.models import (
    City,
    Country,
    Keyword,
    KeywordCategory,
    LibraryFile,
    Location,
    QueuedFile,
    State,
)

logger = logging.getLogger(__name__)


def _to_db_datetime(dt: Optional[datetime]) -> Optional[datetime]:
    """Store instants as naive UTC."""
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db_datetime(dt: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(dt) if dt is not None else None


class MetadataStore(ABC):
    """Persistence operations used by upload, editing and commit."""

    # Queue
    @abstractmethod
    def get_queue_entries(self, ids: Optional[Iterable[int]] = None) -> list[QueueEntry]: ...

    @abstractmethod
    def add_queue_entry(self, record: CanonicalRecord, name: str, thumbnail_path: str) -> QueueEntry: ...

    @abstractmethod
    def update_queue_entries(self, changes: list[FileChange]) -> None: ...

    @abstractmethod
    def delete_queue_entries(self, ids: Iterable[int]) -> None: ...

    @abstractmethod
    def count_queue_entries(self, ids: Optional[Iterable[int]] = None) -> int: ...

    # Library
    @abstractmethod
    def get_library_entries(self) -> list[LibraryEntry]: ...

    @abstractmethod
    def insert_library_entries(self, entries: list[LibraryEntry]) -> list[int]: ...

    # Keywords
    @abstractmethod
    def get_keywords(self, names: Optional[Iterable[str]] = None) -> list[KeywordData]: ...

    @abstractmethod
    def add_keyword(self, keyword: KeywordData) -> int: ...

    @abstractmethod
    def count_keywords(self, ids: Optional[Iterable[int]] = None) -> int: ...

    @abstractmethod
    def count_keywords_by_category(
        self,
        categories: Iterable[str],
        ids: Optional[Iterable[int]] = None
    ) -> dict[str, int]: ...

    @abstractmethod
    def get_folder_label_keywords(self, subset_ids: Optional[Iterable[int]] = None) -> list[str]: ...


class SqlMetadataStore(MetadataStore):
    """MetadataStore backed by the application's SQLAlchemy session."""

    def __init__(self, session=None):
        self.session = session or db.session

    # ------------------------------------------------------------------
    # Conversion helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _queue_entry(file: QueuedFile) -> QueueEntry:
        return QueueEntry(
            id=file.id,
            name=file.name,
            path=file.path,
            thumbnail_path=file.thumbnail_path,
            mime_type=file.mime_type,
            capture_datetime=_from_db_datetime(file.capture_datetime),
            timezone=file.timezone,
            title=file.title,
            latitude=file.latitude,
            longitude=file.longitude,
            altitude=file.altitude,
            keywords=[kw.name for kw in file.keywords],
            keyword_ids=[kw.id for kw in file.keywords],
        )

    @staticmethod
    def _library_entry(file: LibraryFile) -> LibraryEntry:
        return LibraryEntry(
            id=file.id,
            name=file.name,
            path=file.path,
            mime_type=file.mime_type,
            capture_datetime=_from_db_datetime(file.capture_datetime),
            timezone=file.timezone,
            title=file.title,
            latitude=file.latitude,
            longitude=file.longitude,
            altitude=file.altitude,
            keywords=[kw.name for kw in file.keywords],
            keyword_ids=[kw.id for kw in file.keywords],
        )

    @staticmethod
    def _keyword_data(keyword: Keyword) -> KeywordData:
        location = None
        if keyword.location is not None:
            loc = keyword.location
            location = KeywordLocation(
                country=loc.country.name,
                state=loc.state.name if loc.state else None,
                city=loc.city.name if loc.city else None,
                latitude=loc.latitude,
                longitude=loc.longitude,
                altitude=loc.altitude,
            )
        return KeywordData(
            id=keyword.id,
            name=keyword.name,
            category=keyword.category.value,
            is_folder_label=keyword.is_folder_label,
            location=location,
        )

    def _keywords_by_id(self, ids: Iterable[int]) -> list[Keyword]:
        ids = list(ids)
        if not ids:
            return []
        return list(self.session.scalars(db.select(Keyword).where(Keyword.id.in_(ids))))

    def _commit(self, action: str):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Store transaction failed ({action}): {e}", exc_info=True)
            raise StoreError(f"Failed to {action}: {e}") from e

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def get_queue_entries(self, ids=None) -> list[QueueEntry]:
        """Queued files ordered by capture time (files without one last)."""
        query = db.select(QueuedFile)
        if ids is not None:
            query = query.where(QueuedFile.id.in_(list(ids)))
        query = query.order_by(QueuedFile.capture_datetime.is_(None), QueuedFile.capture_datetime, QueuedFile.id)
        return [self._queue_entry(file) for file in self.session.scalars(query)]

    def add_queue_entry(self, record: CanonicalRecord, name: str, thumbnail_path: str) -> QueueEntry:
        """
        Insert a freshly uploaded file.

        Keywords found in the file's metadata are linked when a keyword with
        that name exists; unknown names are skipped with a warning.
        """
        file = QueuedFile(
            name=name,
            path=record.path,
            thumbnail_path=str(thumbnail_path),
            mime_type=record.mime_type,
            capture_datetime=_to_db_datetime(record.capture_datetime),
            timezone=record.timezone,
            title=record.title,
            latitude=record.latitude,
            longitude=record.longitude,
            altitude=record.altitude,
        )

        if record.keywords:
            known = list(self.session.scalars(db.select(Keyword).where(Keyword.name.in_(record.keywords))))
            file.keywords = known
            unknown = set(record.keywords) - {kw.name for kw in known}
            if unknown:
                logger.warning(f"{name} has unknown keywords: {sorted(unknown)}")

        self.session.add(file)
        self._commit('add queued file')
        return self._queue_entry(file)

    def update_queue_entries(self, changes: list[FileChange]) -> None:
        """Apply user edits in a single transaction."""
        if not changes:
            return

        for change in changes:
            file = self.session.get(QueuedFile, change.id)
            if file is None:
                self.session.rollback()
                raise StoreError(f"Queued file {change.id} not found")

            file.capture_datetime = _to_db_datetime(change.capture_datetime)
            file.timezone = change.timezone
            file.title = change.title
            file.latitude = change.latitude
            file.longitude = change.longitude
            file.altitude = change.altitude
            file.keywords = self._keywords_by_id(change.keyword_ids)

        self._commit('update queued files')
        logger.debug(f"Updated {len(changes)} queued files")

    def delete_queue_entries(self, ids) -> None:
        ids = list(ids)
        if not ids:
            return
        for file in self.session.scalars(db.select(QueuedFile).where(QueuedFile.id.in_(ids))):
            self.session.delete(file)
        self._commit('delete queued files')

    def count_queue_entries(self, ids=None) -> int:
        query = db.select(func.count(QueuedFile.id))
        if ids is not None:
            query = query.where(QueuedFile.id.in_(list(ids)))
        return self.session.execute(query).scalar_one()

    # ------------------------------------------------------------------
    # Library
    # ------------------------------------------------------------------

    def get_library_entries(self) -> list[LibraryEntry]:
        query = db.select(LibraryFile).order_by(LibraryFile.capture_datetime, LibraryFile.id)
        return [self._library_entry(file) for file in self.session.scalars(query)]

    def insert_library_entries(self, entries: list[LibraryEntry]) -> list[int]:
        """
        Insert committed files and their keyword links in one transaction.

        Returns:
            New library file ids, in input order

        Raises:
            StoreError: If anything fails; nothing is inserted in that case
        """
        try:
            files = []
            for entry in entries:
                if entry.capture_datetime is None or not entry.timezone:
                    raise ValueError(f"Library file {entry.name} lacks date/time or timezone")
                file = LibraryFile(
                    name=entry.name,
                    path=entry.path,
                    mime_type=entry.mime_type,
                    capture_datetime=_to_db_datetime(entry.capture_datetime),
                    timezone=entry.timezone,
                    title=entry.title,
                    latitude=entry.latitude,
                    longitude=entry.longitude,
                    altitude=entry.altitude,
                    keywords=self._keywords_by_id(entry.keyword_ids),
                )
                self.session.add(file)
                files.append(file)
            self.session.flush()
        except (SQLAlchemyError, ValueError) as e:
            self.session.rollback()
            logger.error(f"Inserting library files failed: {e}", exc_info=True)
            raise StoreError(f"Failed to insert library files: {e}") from e

        self._commit('insert library files')
        return [file.id for file in files]

    # ------------------------------------------------------------------
    # Keywords
    # ------------------------------------------------------------------

    def get_keywords(self, names=None) -> list[KeywordData]:
        """Keywords with their locations, sorted by category, place and name."""
        query = (
            db.select(Keyword)
            .outerjoin(Keyword.location)
            .outerjoin(Location.country)
            .outerjoin(Location.state)
            .outerjoin(Location.city)
        )
        if names is not None:
            query = query.where(Keyword.name.in_(list(names)))
        query = query.order_by(Keyword.category, Country.name, State.name, City.name, Keyword.name)
        return [self._keyword_data(kw) for kw in self.session.scalars(query)]

    def _get_or_create(self, model, name: str):
        instance = self.session.scalars(db.select(model).where(model.name == name)).first()
        if instance is None:
            instance = model(name=name)
            self.session.add(instance)
        return instance

    def add_keyword(self, keyword: KeywordData) -> int:
        """
        Create a keyword. Location keywords get their own location row;
        city, state and country rows are reused by name.

        Returns:
            ID of the new keyword
        """
        category = KeywordCategory(keyword.category)
        location = None

        if category == KeywordCategory.LOCATION:
            data = keyword.location
            if data is None:
                raise StoreError(f"Location keyword {keyword.name} has no location")
            location = Location(
                country=self._get_or_create(Country, data.country),
                state=self._get_or_create(State, data.state) if data.state else None,
                city=self._get_or_create(City, data.city) if data.city else None,
                latitude=data.latitude,
                longitude=data.longitude,
                altitude=data.altitude,
            )
            self.session.add(location)

        kw = Keyword(
            name=keyword.name,
            category=category,
            is_folder_label=keyword.is_folder_label,
            location=location,
        )
        self.session.add(kw)
        self._commit(f"add keyword {keyword.name}")
        logger.info(f"Added keyword {kw.name} ({category.value})")
        return kw.id

    def count_keywords(self, ids=None) -> int:
        query = db.select(func.count(Keyword.id))
        if ids is not None:
            query = query.where(Keyword.id.in_(list(ids)))
        return self.session.execute(query).scalar_one()

    def count_keywords_by_category(self, categories, ids=None) -> dict[str, int]:
        """Number of keywords per category, restricted to `ids` when given."""
        categories = [KeywordCategory(c) for c in categories]
        query = (
            db.select(Keyword.category, func.count(Keyword.id))
            .where(Keyword.category.in_(categories))
            .group_by(Keyword.category)
        )
        if ids is not None:
            query = query.where(Keyword.id.in_(list(ids)))
        counts = {category.value: 0 for category in categories}
        for category, count in self.session.execute(query):
            counts[category.value] = count
        return counts

    def get_folder_label_keywords(self, subset_ids=None) -> list[str]:
        """
        Folder label names in ascending priority: other categories, then
        Group, then Album (ties by name).
        """
        priority = case(
            (Keyword.category == KeywordCategory.ALBUM, 3),
            (Keyword.category == KeywordCategory.GROUP, 2),
            else_=1,
        )
        query = db.select(Keyword.name).where(Keyword.is_folder_label.is_(True))
        if subset_ids is not None:
            query = query.where(Keyword.id.in_(list(subset_ids)))
        query = query.order_by(priority, Keyword.name)
        return list(self.session.scalars(query))
