from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from hangouts.core.MessageTypes import ConversationParticipantData, Entity, ParticipantId
from shared.envelope import DecodeError


@dataclass(frozen=True)
class UserID:
    """A chat user identifier; two namespaces for the same account."""
    chat_id: str
    gaia_id: str

    @classmethod
    def from_participant_id(cls, participant_id: Optional[ParticipantId]) -> 'UserID':
        if participant_id is None or participant_id.chat_id is None or participant_id.gaia_id is None:
            raise DecodeError(f"Incomplete participant id: {participant_id!r}")
        return cls(chat_id=participant_id.chat_id, gaia_id=participant_id.gaia_id)


@dataclass(frozen=True, eq=False)
class User:
    """
    A chat user.

    Immutable; a changed profile produces a new record. Two users are equal
    when their ids are equal.
    """
    DEFAULT_NAME = "Unknown"

    id: UserID
    name_components: Tuple[str, ...]
    photo_url: Optional[str] = None
    emails: Tuple[str, ...] = ()
    is_self: bool = False

    @classmethod
    def create(cls, user_id: UserID, full_name: Optional[str] = None,
               photo_url: Optional[str] = None, emails: Optional[List[str]] = None,
               is_self: bool = False) -> 'User':
        """Build a user, splitting the display name into components.

        The server sends protocol-relative photo URLs ("//lh3..."), so they are
        prefixed with "https:".
        """
        name = full_name or cls.DEFAULT_NAME
        return cls(
            id=user_id,
            name_components=tuple(name.split()),
            photo_url=f"https:{photo_url}" if photo_url else None,
            emails=tuple(emails or ()),
            is_self=is_self,
        )

    @classmethod
    def from_entity(cls, entity: Entity, self_user_id: Optional[UserID]) -> 'User':
        """From a full Entity. Without ``self_user_id`` this is the self user."""
        user_id = UserID.from_participant_id(entity.id)
        props = entity.properties
        return cls.create(
            user_id,
            full_name=props.display_name if props else None,
            photo_url=props.photo_url if props else None,
            emails=list(props.email) if props else [],
            is_self=self_user_id is None or self_user_id == user_id,
        )

    @classmethod
    def from_participant_data(cls, data: ConversationParticipantData,
                              self_user_id: Optional[UserID]) -> 'User':
        """From per-conversation participant data: only a fallback name."""
        user_id = UserID.from_participant_id(data.id)
        return cls.create(
            user_id,
            full_name=data.fallback_name,
            is_self=self_user_id is None or self_user_id == user_id,
        )

    @property
    def full_name(self) -> str:
        return " ".join(self.name_components)

    @property
    def first_name(self) -> str:
        return self.name_components[0] if self.name_components else ""

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, User):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


@dataclass
class UserList:
    """Every user known to the session, keyed by id."""
    self_user: User
    users: Dict[UserID, User] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.users[self.self_user.id] = self.self_user

    def add_entity(self, entity: Entity) -> User:
        """Add or replace a user from a full entity."""
        user = User.from_entity(entity, self.self_user.id)
        self.users[user.id] = user
        return user

    def add_participant(self, data: ConversationParticipantData) -> User:
        """Add a user from participant data unless one is already known."""
        user_id = UserID.from_participant_id(data.id)
        existing = self.users.get(user_id)
        if existing is not None:
            return existing
        user = User.from_participant_data(data, self.self_user.id)
        self.users[user_id] = user
        return user

    def get(self, user_id: UserID) -> User:
        """Return the user, or a placeholder named DEFAULT_NAME if unknown."""
        user = self.users.get(user_id)
        if user is None:
            return User.create(user_id, is_self=user_id == self.self_user.id)
        return user

    def __contains__(self, user_id: object) -> bool:
        return user_id in self.users

    def __len__(self) -> int:
        return len(self.users)

    def __iter__(self) -> Iterator[User]:
        return iter(self.users.values())

    def list_sorted(self) -> List[User]:
        return sorted(self.users.values(), key=lambda u: (not u.is_self, u.full_name.lower()))
