"""SQLAlchemy database models for the media librarian.

Defines the schema for queued files, library files, keywords and the
locations attached to location keywords.
Uses SQLAlchemy 2.x type-safe patterns with Mapped and mapped_column.
"""
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Optional, List
from sqlalchemy import Integer, String, DateTime, Float, Text, Boolean, ForeignKey, Index
from sqlalchemy import CheckConstraint, Enum as SQLEnum, event
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.engine import Engine
from librarian import db


# ============================================================================
# Enums
# ============================================================================

class KeywordCategory(str, PyEnum):
    """Category of a keyword."""
    ALBUM = "Album"
    GROUP = "Group"
    LOCATION = "Location"
    PERSON = "Person"
    ANIMAL = "Animal"
    OTHER = "Other"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# ============================================================================
# Association Tables
# ============================================================================

queued_files_keywords = db.Table('queued_files_keywords',
    db.Column('file_id', Integer, ForeignKey('queued_files.id', ondelete='CASCADE'), primary_key=True),
    db.Column('keyword_id', Integer, ForeignKey('keywords.id', ondelete='CASCADE'), primary_key=True)
)

library_files_keywords = db.Table('library_files_keywords',
    db.Column('file_id', Integer, ForeignKey('library_files.id', ondelete='CASCADE'), primary_key=True),
    db.Column('keyword_id', Integer, ForeignKey('keywords.id', ondelete='RESTRICT'), primary_key=True)
)


# ============================================================================
# Location models
# ============================================================================

class Country(db.Model):
    __tablename__ = 'countries'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    def __repr__(self):
        return f"<Country {self.id}: {self.name}>"


class State(db.Model):
    __tablename__ = 'states'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    def __repr__(self):
        return f"<State {self.id}: {self.name}>"


class City(db.Model):
    __tablename__ = 'cities'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    def __repr__(self):
        return f"<City {self.id}: {self.name}>"


class Location(db.Model):
    """GPS location owned by a single location keyword.

    Coordinates belong to the keyword, not to the city/state/country, so two
    keywords may share a city but point at different coordinates.
    """
    __tablename__ = 'locations'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # A city is only allowed when the state is known
    city_id: Mapped[Optional[int]] = mapped_column(ForeignKey('cities.id', ondelete='RESTRICT'))
    state_id: Mapped[Optional[int]] = mapped_column(ForeignKey('states.id', ondelete='RESTRICT'))
    country_id: Mapped[int] = mapped_column(ForeignKey('countries.id', ondelete='RESTRICT'), nullable=False)

    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    altitude: Mapped[Optional[float]] = mapped_column(Float)

    city: Mapped[Optional["City"]] = relationship()
    state: Mapped[Optional["State"]] = relationship()
    country: Mapped["Country"] = relationship()

    __table_args__ = (
        CheckConstraint('state_id IS NOT NULL OR city_id IS NULL', name='city_no_state_check'),
        CheckConstraint('latitude >= -90.0 AND latitude <= 90.0', name='latitude_range_check'),
        CheckConstraint('longitude >= -180.0 AND longitude <= 180.0', name='longitude_range_check'),
    )

    def __repr__(self):
        return f"<Location {self.id}: {self.latitude}, {self.longitude}>"


# ============================================================================
# Keywords
# ============================================================================

class Keyword(db.Model):
    """Keyword attached to queued and library files."""
    __tablename__ = 'keywords'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Keyword names are globally unique
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    category: Mapped[KeywordCategory] = mapped_column(
        SQLEnum(KeywordCategory, values_callable=_enum_values, native_enum=False),
        nullable=False
    )
    is_folder_label: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Set if and only if category is Location
    location_id: Mapped[Optional[int]] = mapped_column(ForeignKey('locations.id', ondelete='RESTRICT'))
    location: Mapped[Optional["Location"]] = relationship()

    __table_args__ = (
        CheckConstraint(
            "(category = 'Location' AND location_id IS NOT NULL) OR "
            "(category != 'Location' AND location_id IS NULL)",
            name='location_check'
        ),
    )

    def __repr__(self):
        return f"<Keyword {self.id}: {self.name} ({self.category.value})>"


# ============================================================================
# Files
# ============================================================================

class QueuedFile(db.Model):
    """Uploaded file awaiting review and commit to the library."""
    __tablename__ = 'queued_files'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Original upload name and current location on disk
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    path: Mapped[str] = mapped_column(String(500), nullable=False)
    thumbnail_path: Mapped[str] = mapped_column(String(500), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)

    # Capture instant stored as naive UTC
    capture_datetime: Mapped[Optional[datetime]] = mapped_column(DateTime)
    timezone: Mapped[Optional[str]] = mapped_column(String(64))

    title: Mapped[Optional[str]] = mapped_column(Text)
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)
    altitude: Mapped[Optional[float]] = mapped_column(Float)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    keywords: Mapped[List["Keyword"]] = relationship(secondary=queued_files_keywords)

    __table_args__ = (
        Index('ix_queued_files_capture_datetime', 'capture_datetime'),
    )

    def __repr__(self):
        return f"<QueuedFile {self.id}: {self.name}>"


class LibraryFile(db.Model):
    """File committed to the library. Never modified after insertion."""
    __tablename__ = 'library_files'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Final file name and directory relative to the library root
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    path: Mapped[str] = mapped_column(String(500), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)

    capture_datetime: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)

    title: Mapped[Optional[str]] = mapped_column(Text)
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)
    altitude: Mapped[Optional[float]] = mapped_column(Float)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    keywords: Mapped[List["Keyword"]] = relationship(secondary=library_files_keywords)

    __table_args__ = (
        Index('ix_library_files_capture_datetime', 'capture_datetime'),
        CheckConstraint(
            '(latitude IS NULL AND longitude IS NULL) OR (latitude IS NOT NULL AND longitude IS NOT NULL)',
            name='gps_pair_check'
        ),
    )

    def __repr__(self):
        return f"<LibraryFile {self.id}: {self.path}/{self.name}>"


# ============================================================================
# SQLite Foreign Key Enforcement
# ============================================================================

@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite connections."""
    if type(dbapi_conn).__module__.startswith('sqlite3'):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
