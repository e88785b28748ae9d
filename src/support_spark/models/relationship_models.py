"""
# Supporter Relationship Models

A supporter relationship is a directed edge from a member (the owner of a journey) to a
supporter. Its lifecycle is:

```
pending --accept--> active --revoke--> revoked
pending --revoke/decline--> revoked
```

No transition leaves `revoked`. Re-inviting after revocation creates a new record, so
the history of earlier relationships is preserved.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class RelationshipStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    REVOKED = "revoked"


# States that count towards the one-open-relationship-per-pair rule.
OPEN_STATUSES = (RelationshipStatus.PENDING, RelationshipStatus.ACTIVE)


class SupporterRelationship(BaseModel):
    """
    Stored relationship record.

    `supporter_id` is bound when the invited contact is (or becomes) a registered member;
    it is always set once the relationship is active. Each transition records its own
    timestamp.
    """

    relationship_id: str
    owner_id: str
    supporter_contact: str
    supporter_id: Optional[str] = None
    status: RelationshipStatus = RelationshipStatus.PENDING
    created_at: datetime
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def is_expired(self, now: datetime) -> bool:
        """Only pending invitations expire."""
        return self.status == RelationshipStatus.PENDING and now >= self.expires_at

    class Config:
        json_schema_extra = {
            "example": {
                "relationship_id": "rel_abc123def456",
                "owner_id": "mem_123",
                "supporter_contact": "james@example.com",
                "supporter_id": "mem_456",
                "status": "active",
                "created_at": "2024-01-01T00:00:00Z",
                "expires_at": "2024-01-15T00:00:00Z",
                "accepted_at": "2024-01-02T00:00:00Z",
                "revoked_at": None,
                "revoked_by": None,
            }
        }


class InviteSupporterRequest(BaseModel):
    """Request model for inviting a supporter by email."""

    contact: EmailStr = Field(..., description="Email address of the person to invite")

    @field_validator("contact")
    @classmethod
    def normalise_contact(cls, v):
        return v.strip().lower()


class RelationshipView(BaseModel):
    """A relationship enriched with the display name of the other party."""

    relationship: SupporterRelationship
    counterpart_name: Optional[str] = None


class SupportersOverview(BaseModel):
    """
    Everything the caller needs for the supporters page.

    *   **my_supporters**: relationships where the caller is the owner.
    *   **supporting**: relationships where the caller is the supporter, including
        pending invitations addressed to them.
    """

    my_supporters: List[RelationshipView] = Field(default_factory=list)
    supporting: List[RelationshipView] = Field(default_factory=list)
