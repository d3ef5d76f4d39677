"""Data models for floating IP reservations."""

from collections.abc import Iterable

from pydantic import BaseModel, Field


class IPAssignment(BaseModel):
    """A single binding of a reserved address to a device."""

    id: str
    address: str | None = None
    device_id: str | None = None

    @classmethod
    def from_api_dict(cls, data: dict) -> "IPAssignment":
        """Parse an assignment from the Metal API format.

        The device is only referenced through ``assigned_to.href``, for example
        ``/metal/v1/devices/<uuid>``.
        """
        device_id = None
        href = (data.get("assigned_to") or {}).get("href")
        if href:
            device_id = href.rstrip("/").rsplit("/", 1)[-1]
        return cls(id=data["id"], address=data.get("address"), device_id=device_id)


class IPReservation(BaseModel):
    """Floating IP reservation together with its current assignments."""

    id: str
    address: str
    tags: list[str] = Field(default_factory=list)
    assignments: list[IPAssignment] = Field(default_factory=list)

    def has_all_tags(self, tags: Iterable[str]) -> bool:
        """Return True if every tag in ``tags`` is carried by this reservation."""
        return set(tags).issubset(self.tags)

    @classmethod
    def from_api_dict(cls, data: dict) -> "IPReservation":
        """Parse a reservation from the Metal API format."""
        return cls(
            id=data["id"],
            address=data["address"],
            tags=data.get("tags") or [],
            assignments=[IPAssignment.from_api_dict(a) for a in data.get("assignments") or []],
        )
