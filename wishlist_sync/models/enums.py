from enum import StrEnum


class WishType(StrEnum):
    INDIVIDUAL = "individual"
    FULL_LOOK = "full_look"

    @classmethod
    def parse(cls, value: object) -> "WishType | None":
        """Return the wish type for *value*, or None when it is not one.

        ``part_of_look`` rows are written by the bulk "whole look" action and
        count as full-look wishes.
        """
        if isinstance(value, cls):
            return value
        if value == "part_of_look":
            return cls.FULL_LOOK
        try:
            return cls(str(value))
        except ValueError:
            return None

    @classmethod
    def normalize(cls, value: object) -> "WishType":
        """Map a remote ``wish_type`` value onto the local enum.

        Anything missing or unrecognised is an individual wish.
        """
        return cls.parse(value) or cls.INDIVIDUAL


class OperationKind(StrEnum):
    ADD = "add"
    REMOVE = "remove"


class MutationState(StrEnum):
    IDLE = "idle"
    OPTIMISTIC_APPLIED = "optimistic_applied"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"
    PENDING_SYNC = "pending_sync"
    REJECTED = "rejected"


class ErrorKind(StrEnum):
    VALIDATION = "validation"
    NETWORK = "network"
    UNKNOWN = "unknown"


class NoticeKind(StrEnum):
    ADDED = "added"
    ADDED_OFFLINE = "added_offline"
    DUPLICATE_REJECTED = "duplicate_rejected"
    ADD_FAILED = "add_failed"
    REMOVED = "removed"
    REMOVE_FAILED = "remove_failed"
    QUEUE_POSITION = "queue_position"
    LOADED_FROM_CACHE = "loaded_from_cache"
    SYNCED = "synced"
