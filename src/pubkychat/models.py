"""Models for pubkychat profiles and follows."""

import json
from dataclasses import dataclass
from typing import Optional


@dataclass
class Profile:
    """Profile information published by a user."""
    name: str
    bio: Optional[str] = None
    image: Optional[str] = None
    status: Optional[str] = None

    @classmethod
    def from_json(cls, data: bytes) -> Optional["Profile"]:
        """Parse a profile record; returns None if it is not a valid profile."""
        try:
            record = json.loads(data)
        except (ValueError, RecursionError):
            return None

        if not isinstance(record, dict) or not isinstance(record.get("name"), str):
            return None

        optional = {}
        for field_name in ("bio", "image", "status"):
            value = record.get(field_name)
            if value is not None and not isinstance(value, str):
                return None
            optional[field_name] = value

        return cls(name=record["name"], **optional)


@dataclass
class FollowedUser:
    """A user that is being followed."""
    pubky: str
    name: Optional[str] = None
