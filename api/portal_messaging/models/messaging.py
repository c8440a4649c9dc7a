"""Canonical messaging models and the normalization boundary.

Employment-service payloads are loosely shaped: identifiers arrive as ``id``,
``_id`` or ``ID``, timestamps carry Go's nanosecond precision, and list
endpoints occasionally return ``null``. Every payload is turned into one of
the models below right after the HTTP call; nothing downstream sees raw dicts.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
UNKNOWN_NAME = "Unknown"

_ID_KEYS = ("id", "_id", "ID", "Id")
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")
_DATETIME = TypeAdapter(datetime)

ModelT = TypeVar("ModelT", bound=BaseModel)


def stringify_id(value: Any) -> str:
    """Render an identifier value (string, number or ``{"$oid": ...}``) as str."""
    if value is None:
        return ""
    if isinstance(value, dict):
        value = value.get("$oid", "")
    return str(value).strip()


def parse_timestamp(value: Any) -> datetime:
    """Parse a backend timestamp into an aware UTC datetime.

    Accepts datetimes, RFC 3339 strings (including nanosecond fractions and a
    trailing ``Z``) and Unix timestamps in seconds or milliseconds. Missing or
    unparseable values map to the Unix epoch so the message still sorts.
    """
    if value is None or value == "":
        return EPOCH
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e11 else value
        try:
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.warning("Out-of-range timestamp %r, using epoch", value)
            return EPOCH
    else:
        # Go emits up to nine fraction digits; datetimes hold six.
        text = _FRACTION_RE.sub(r"\1", str(value).strip())
        try:
            parsed = _DATETIME.validate_python(text)
        except ValidationError:
            logger.warning("Unparseable timestamp %r, using epoch", value)
            return EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _coalesce_id(data: Any) -> Any:
    if not isinstance(data, dict):
        return data
    if data.get("id"):
        return data
    for key in _ID_KEYS[1:]:
        if data.get(key):
            return {**data, "id": data[key]}
    return data


def _full_name(first: Optional[str], last: Optional[str]) -> str:
    return f"{first or ''} {last or ''}".strip()


class Message(BaseModel):
    """A single message between two participants."""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    sender_id: str = ""
    receiver_id: str = ""
    job_listing_id: Optional[str] = None
    content: str = ""
    sent_at: datetime = EPOCH
    read: bool = False

    # Enriched locally, never sent back to the backend
    is_sent: bool = False
    sender_name: Optional[str] = None
    receiver_name: Optional[str] = None
    job_position: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_keys(cls, data: Any) -> Any:
        return _coalesce_id(data)

    @field_validator("id", "sender_id", "receiver_id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return stringify_id(v)

    @field_validator("job_listing_id", mode="before")
    @classmethod
    def coerce_optional_id(cls, v: Any) -> Optional[str]:
        return stringify_id(v) or None

    @field_validator("content", mode="before")
    @classmethod
    def coerce_content(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("sent_at", mode="before")
    @classmethod
    def coerce_sent_at(cls, v: Any) -> datetime:
        return parse_timestamp(v)

    @field_validator("read", mode="before")
    @classmethod
    def coerce_read(cls, v: Any) -> bool:
        return bool(v)

    @property
    def counterparty_id(self) -> str:
        """Id of the participant on the other side, relative to the viewer."""
        return self.receiver_id if self.is_sent else self.sender_id

    @property
    def counterparty_name(self) -> Optional[str]:
        return self.receiver_name if self.is_sent else self.sender_name


class Employer(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    firm_name: Optional[str] = None
    profile_pic_base64: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_keys(cls, data: Any) -> Any:
        return _coalesce_id(data)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return stringify_id(v)

    @property
    def display_name(self) -> str:
        return (
            (self.firm_name or "").strip()
            or _full_name(self.first_name, self.last_name)
            or "Employer"
        )


class Candidate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    user_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    profile_pic_base64: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_keys(cls, data: Any) -> Any:
        data = _coalesce_id(data)
        if isinstance(data, dict) and isinstance(data.get("user"), dict):
            # Some responses nest the auth user instead of flattening it.
            user = data["user"]
            data = {
                **data,
                "user_id": data.get("user_id") or stringify_id(
                    user.get("id") or user.get("_id")
                ),
                "email": data.get("email") or user.get("email"),
            }
        return data

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return stringify_id(v)

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_user_id(cls, v: Any) -> Optional[str]:
        return stringify_id(v) or None

    @property
    def display_name(self) -> str:
        return _full_name(self.first_name, self.last_name) or "Candidate"


class JobListing(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    poster_id: Optional[str] = None
    position: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_keys(cls, data: Any) -> Any:
        return _coalesce_id(data)

    @field_validator("id", "poster_id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return stringify_id(v)


class CandidateProfile(BaseModel):
    """Contact card shown next to a conversation with a candidate."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    @classmethod
    def from_candidate(cls, candidate: Candidate) -> "CandidateProfile":
        return cls(
            first_name=candidate.first_name,
            last_name=candidate.last_name,
            email=candidate.email,
            phone=candidate.phone,
            city=candidate.city,
            country=candidate.country,
        )


class Identity(BaseModel):
    """Human-facing identity of a participant."""

    model_config = ConfigDict(frozen=True)

    name: str = UNKNOWN_NAME
    firm_name: Optional[str] = None
    profile_picture: Optional[str] = None
    candidate_profile: Optional[CandidateProfile] = None

    @classmethod
    def from_employer(cls, employer: Employer) -> "Identity":
        return cls(
            name=employer.display_name,
            firm_name=(employer.firm_name or "").strip() or None,
            profile_picture=employer.profile_pic_base64 or None,
        )

    @classmethod
    def from_candidate(cls, candidate: Candidate) -> "Identity":
        return cls(
            name=candidate.display_name,
            profile_picture=candidate.profile_pic_base64 or None,
            candidate_profile=CandidateProfile.from_candidate(candidate),
        )


UNKNOWN_IDENTITY = Identity()


class Conversation(BaseModel):
    """All messages exchanged between the viewer and one counterparty."""

    counterparty_id: str
    counterparty_name: str = UNKNOWN_NAME
    counterparty_firm_name: Optional[str] = None
    counterparty_profile_picture: Optional[str] = None
    candidate_profile: Optional[CandidateProfile] = None
    messages: List[Message] = Field(default_factory=list)
    last_message: Message
    unread_count: int = 0
    job_position: Optional[str] = None


def _parse_list(model: Type[ModelT], payload: Any, label: str) -> List[ModelT]:
    if payload is None:
        return []
    if not isinstance(payload, list):
        logger.warning("Expected a list of %s, got %s", label, type(payload).__name__)
        return []

    parsed: List[ModelT] = []
    for item in payload:
        if not isinstance(item, dict):
            logger.warning("Skipping non-object %s entry: %r", label, item)
            continue
        try:
            parsed.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning("Skipping malformed %s entry: %s", label, e)
    return parsed


def _parse_one(model: Type[ModelT], payload: Any) -> Optional[ModelT]:
    if not isinstance(payload, dict) or not payload:
        return None
    return model.model_validate(payload)


def parse_messages(payload: Any, *, is_sent: bool = False) -> List[Message]:
    """Normalize a message list and tag each entry with its direction."""
    messages = _parse_list(Message, payload, "message")
    return [m.model_copy(update={"is_sent": is_sent}) for m in messages]


def parse_message(payload: Any) -> Optional[Message]:
    return _parse_one(Message, payload)


def parse_employers(payload: Any) -> List[Employer]:
    return _parse_list(Employer, payload, "employer")


def parse_employer(payload: Any) -> Optional[Employer]:
    """Single employer, or None when the body carries no employer id."""
    employer = _parse_one(Employer, payload)
    if employer is None or not employer.id:
        return None
    return employer


def parse_candidates(payload: Any) -> List[Candidate]:
    return _parse_list(Candidate, payload, "candidate")


def parse_job_listing(payload: Any) -> Optional[JobListing]:
    return _parse_one(JobListing, payload)


def message_payload(
    sender_id: str,
    receiver_id: str,
    content: str,
    job_listing_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Body for ``POST /messages``."""
    body: Dict[str, Any] = {
        "sender_id": sender_id,
        "receiver_id": receiver_id,
        "content": content,
    }
    if job_listing_id:
        body["job_listing_id"] = job_listing_id
    return body
