"""
Declared shapes for every untrusted payload the gateway reads.

Nothing downstream touches a nested field of an inbound body without going
through one of these models first; `validate()` turns pydantic's exception
into a tagged `Valid | Invalid` result.
"""

from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from va_gateway.results import Invalid, Valid, Validation

M = TypeVar("M", bound=BaseModel)

EVENT_ID_PATTERN = r"^[A-Za-z0-9_.:-]{1,128}$"
SUPPORT_ID_PATTERN = r"^SUP-[0-9A-F]{8}$"
SLUG_PATTERN = r"^[a-z0-9](?:[a-z0-9-]{0,62}[a-z0-9])$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
URL_PATTERN = r"^https?://\S+$"

UTM_PREFIX = "utm_"


def validate(model: Type[M], data: Any) -> Validation:
    if not isinstance(data, dict):
        return Invalid("Expected a JSON object")
    try:
        return Valid(model.model_validate(data))
    except ValidationError as e:
        err = e.errors()[0]
        loc = ".".join(str(part) for part in err.get("loc", ())) or None
        kind = err.get("type")
        if kind == "missing":
            return Invalid("Missing required field", loc)
        if kind == "extra_forbidden":
            return Invalid("Unknown field", loc)
        return Invalid("Invalid field", loc)


# ---------------------------------------------------------------------------
# Stripe event shapes
# ---------------------------------------------------------------------------
# Only the fields the gateway reads are declared; Stripe sends many more.


class StripeEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(pattern=EVENT_ID_PATTERN)
    type: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def data_object(self) -> Dict[str, Any]:
        obj = self.data.get("object")
        return obj if isinstance(obj, dict) else {}


class CustomerDetails(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: Optional[str] = None


class CheckoutSession(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    customer: Optional[str] = None
    payment_intent: str = Field(min_length=1, max_length=255)
    payment_link: Optional[str] = None
    payment_status: Optional[str] = None
    status: Optional[str] = None
    customer_details: Optional[CustomerDetails] = None
    customer_email: Optional[str] = None

    @property
    def email(self) -> Optional[str]:
        if self.customer_details and self.customer_details.email:
            return self.customer_details.email
        return self.customer_email


class PaymentIntent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1, max_length=255)
    status: Optional[str] = None


class Charge(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    payment_intent: Optional[str] = Field(default=None, max_length=255)
    receipt_url: Optional[str] = None
    status: Optional[str] = None


# ---------------------------------------------------------------------------
# Form submissions
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    email: str = Field(max_length=254, pattern=EMAIL_PATTERN)

    @field_validator("email")
    @classmethod
    def _lower(cls, v: str) -> str:
        return v.lower()


class SupportMessage(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    eventId: str = Field(pattern=EVENT_ID_PATTERN)
    subject: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=5000)
    category: Optional[str] = Field(default=None, max_length=64)
    priority: Optional[Literal["low", "normal", "high", "urgent"]] = None
    pageUrl: Optional[str] = Field(default=None, max_length=2048, pattern=URL_PATTERN)
    supportId: Optional[str] = Field(default=None, pattern=SUPPORT_ID_PATTERN)


def split_utm(data: Dict[str, Any]) -> Validation:
    """
    Separate `utm_*` attribution fields from a support submission.

    Returns Valid((fields, utm)) or Invalid when a utm value is not a short string.
    """
    fields: Dict[str, Any] = {}
    utm: Dict[str, str] = {}
    for key, value in data.items():
        if key.startswith(UTM_PREFIX):
            if not isinstance(value, str) or len(value) > 200:
                return Invalid("Invalid field", key)
            utm[key] = value
        else:
            fields[key] = value
    return Valid((fields, utm))


class PublishForm(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    eventId: str = Field(pattern=EVENT_ID_PATTERN)
    slug: str = Field(pattern=SLUG_PATTERN)
    displayName: str = Field(min_length=1, max_length=100)
    headline: Optional[str] = Field(default=None, max_length=160)
    bio: Optional[str] = Field(default=None, max_length=5000)
    skills: List[str] = Field(default_factory=list, max_length=20)
    location: Optional[str] = Field(default=None, max_length=100)
    hourlyRate: Optional[float] = Field(default=None, ge=0, le=10000)
    contactUrl: Optional[str] = Field(default=None, max_length=2048, pattern=URL_PATTERN)

    @field_validator("skills", mode="before")
    @classmethod
    def _split_skills(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v
