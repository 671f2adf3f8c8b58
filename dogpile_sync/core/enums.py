"""Enums for listing, shelter and sync run fields."""

from enum import Enum


class ListingStatus(str, Enum):
    """Lifecycle status of an adoptable-dog listing."""

    PENDING = "pending"
    AVAILABLE = "available"
    ADOPTED = "adopted"
    RESERVED = "reserved"
    REMOVED = "removed"


# Statuses the circuit breaker counts and the staleness sweep may remove.
ACTIVE_STATUSES = frozenset({ListingStatus.PENDING, ListingStatus.AVAILABLE})


class ShelterStatus(str, Enum):
    """Operational status of a shelter source."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class SyncRunStatus(str, Enum):
    """User-visible status derived from a sync run record."""

    RUNNING = "running"
    ERROR = "error"
    SUCCESS = "success"


class Sex(str, Enum):
    """Dog sex."""

    MALE = "male"
    FEMALE = "female"
    UNKNOWN = "unknown"


class SizeValue(str, Enum):
    """Dog size classification."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class AgeCategory(str, Enum):
    """Coarse age bracket estimated from photos."""

    PUPPY = "puppy"
    YOUNG = "young"
    ADULT = "adult"
    SENIOR = "senior"


class FurLength(str, Enum):
    """Fur length."""

    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class FurType(str, Enum):
    """Fur texture."""

    SMOOTH = "smooth"
    WIRE = "wire"
    CURLY = "curly"
    DOUBLE = "double"


class ColorPattern(str, Enum):
    """Coat color pattern."""

    SOLID = "solid"
    SPOTTED = "spotted"
    BRINDLE = "brindle"
    MERLE = "merle"
    BICOLOR = "bicolor"
    TRICOLOR = "tricolor"
    SABLE = "sable"
    TUXEDO = "tuxedo"


class EarType(str, Enum):
    """Ear carriage."""

    FLOPPY = "floppy"
    ERECT = "erect"
    SEMI = "semi"


class TailType(str, Enum):
    """Tail shape."""

    LONG = "long"
    SHORT = "short"
    DOCKED = "docked"
    CURLED = "curled"


class BioTone(str, Enum):
    """Tone of a generated bio."""

    HOPEFUL = "hopeful"
    URGENT = "urgent"
    GENTLE = "gentle"


class ReindexOp(str, Enum):
    """Operation carried by a search reindex job."""

    UPSERT = "upsert"
    DELETE = "delete"
