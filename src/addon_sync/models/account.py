"""
Remote account model.

Credentials are stored encrypted; ``auth_key`` and ``password`` hold
ciphertext produced by the configured ``CredentialCipher``.
"""

from dataclasses import dataclass, field
from datetime import datetime

from addon_sync.models.addon import AddonDescriptor
from addon_sync.models.library import from_iso, to_iso, utcnow

STATUS_ACTIVE = "active"
STATUS_ERROR = "error"


@dataclass
class AccountRef:
    """Account id plus its encrypted credential, as taken by bulk operations."""

    id: str
    auth_key: str


@dataclass
class Account:
    id: str
    name: str
    auth_key: str
    email: str | None = None
    password: str | None = None
    addons: list[AddonDescriptor] = field(default_factory=list)
    last_sync: datetime = field(default_factory=utcnow)
    status: str = STATUS_ACTIVE

    def ref(self) -> AccountRef:
        return AccountRef(id=self.id, auth_key=self.auth_key)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "authKey": self.auth_key,
            "addons": [a.to_dict() for a in self.addons],
            "lastSync": to_iso(self.last_sync),
            "status": self.status,
        }
        if self.email is not None:
            data["email"] = self.email
        if self.password is not None:
            data["password"] = self.password
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Account":
        return cls(
            id=data["id"],
            name=data["name"],
            auth_key=data.get("authKey", ""),
            email=data.get("email"),
            password=data.get("password"),
            addons=[AddonDescriptor.from_dict(a) for a in data.get("addons", [])],
            last_sync=from_iso(data.get("lastSync")) or utcnow(),
            status=data.get("status", STATUS_ACTIVE),
        )
