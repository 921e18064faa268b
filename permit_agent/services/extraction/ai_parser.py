"""
AI Parser Service

OpenAI-compatible client that turns permit page text into structured
permit data. Works with any provider exposing the OpenAI chat API
(OpenRouter, Google AI Studio, a local Ollama).

The model's JSON is never trusted as-is: it is validated into
``AIParsedData`` and every entry that fails validation is dropped
individually. A payload that cannot be salvaged at all is an
``AIServiceError``.

All settings optional - get_ai_parser() returns None if AI not configured.
"""

import json
import re
from typing import Any

import structlog
from bs4 import BeautifulSoup
from openai import AsyncOpenAI
from pydantic import BaseModel, Field, ValidationError, field_validator
from tenacity import retry, stop_after_attempt, wait_exponential

from permit_agent.core.config import Settings, get_settings, settings
from permit_agent.core.errors import AIServiceError
from permit_agent.core.models import (
    Address,
    ContactInfo,
    FeeUnit,
    FileType,
    PermitCategory,
    PermitFee,
    PermitForm,
    PermitType,
)
from permit_agent.services.cache import QualityCache
from permit_agent.services.extraction.content_extractor import parse_address_text, parse_amount
from permit_agent.services.url_utils import absolute_url

logger = structlog.get_logger()


# =============================================================================
# Validated response shape
# =============================================================================


def _keep_valid(model: type[BaseModel], items: Any) -> list:
    """Validate list items one by one, dropping the ones that fail."""
    if not isinstance(items, list):
        return []
    valid = []
    for item in items:
        try:
            valid.append(model.model_validate(item))
        except ValidationError:
            continue
    return valid


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class AIFee(BaseModel):
    type: str = Field(min_length=1)
    amount: float = Field(ge=0, allow_inf_nan=False)
    unit: FeeUnit = FeeUnit.FLAT
    description: str = ""

    @field_validator("amount", mode="before")
    @classmethod
    def parse_money(cls, v: Any) -> Any:
        if isinstance(v, str):
            parsed = parse_amount(v)
            if parsed is None:
                raise ValueError("unparseable amount")
            return parsed
        return v

    @field_validator("unit", mode="before")
    @classmethod
    def coerce_unit(cls, v: Any) -> FeeUnit:
        return FeeUnit.coerce(v)

    @field_validator("description", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> str:
        return v or ""


class AIPermit(BaseModel):
    name: str = Field(min_length=1)
    category: PermitCategory = PermitCategory.OTHER
    description: str = ""
    requirements: list[str] = Field(default_factory=list)
    processing_time: str | None = None
    fees: list[AIFee] = Field(default_factory=list)

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, v: Any) -> PermitCategory:
        return PermitCategory.coerce(v)

    @field_validator("fees", mode="before")
    @classmethod
    def drop_bad_fees(cls, v: Any) -> list:
        return _keep_valid(AIFee, v)

    @field_validator("requirements", mode="before")
    @classmethod
    def clean_requirements(cls, v: Any) -> list[str]:
        if not isinstance(v, list):
            return []
        return [s.strip() for s in v if isinstance(s, str) and s.strip()]

    @field_validator("description", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> str:
        return v or ""

    @field_validator("processing_time", mode="before")
    @classmethod
    def to_optional_str(cls, v: Any) -> str | None:
        return _optional_str(v)


class AIForm(BaseModel):
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    description: str = ""

    @field_validator("description", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> str:
        return v or ""


class AIContact(BaseModel):
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    hours: str | None = None

    @field_validator("phone", "email", "address", "hours", mode="before")
    @classmethod
    def to_optional_str(cls, v: Any) -> str | None:
        return _optional_str(v)


class AIParsedData(BaseModel):
    """Validated text-understanding result."""
    permits: list[AIPermit] = Field(default_factory=list)
    forms: list[AIForm] = Field(default_factory=list)
    fees: list[AIFee] = Field(default_factory=list)
    contact: AIContact | None = None
    requirements: list[str] = Field(default_factory=list)
    processing_times: dict[str, str] = Field(default_factory=dict)
    data_quality: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("permits", mode="before")
    @classmethod
    def drop_bad_permits(cls, v: Any) -> list:
        return _keep_valid(AIPermit, v)

    @field_validator("forms", mode="before")
    @classmethod
    def drop_bad_forms(cls, v: Any) -> list:
        return _keep_valid(AIForm, v)

    @field_validator("fees", mode="before")
    @classmethod
    def drop_bad_fees(cls, v: Any) -> list:
        return _keep_valid(AIFee, v)

    @field_validator("contact", mode="before")
    @classmethod
    def drop_bad_contact(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else None

    @field_validator("requirements", mode="before")
    @classmethod
    def clean_requirements(cls, v: Any) -> list[str]:
        if not isinstance(v, list):
            return []
        return [s.strip() for s in v if isinstance(s, str) and s.strip()]

    @field_validator("processing_times", mode="before")
    @classmethod
    def clean_processing_times(cls, v: Any) -> dict[str, str]:
        if not isinstance(v, dict):
            return {}
        return {str(k): str(val) for k, val in v.items() if val not in (None, "")}

    @field_validator("data_quality", mode="before")
    @classmethod
    def clamp_quality(cls, v: Any) -> float:
        try:
            return min(1.0, max(0.0, float(v)))
        except (TypeError, ValueError):
            return 0.0

    # -------------------------------------------------------------------------
    # Conversion to domain models
    # -------------------------------------------------------------------------

    def to_fees(self) -> list[PermitFee]:
        all_fees = list(self.fees)
        for permit in self.permits:
            all_fees.extend(permit.fees)
        return [
            PermitFee(type=f.type, amount=f.amount, unit=f.unit, description=f.description)
            for f in all_fees
        ]

    def to_permits(self, id_prefix: str = "ai") -> list[PermitType]:
        return [
            PermitType(
                id=f"{id_prefix}-{i}",
                name=p.name,
                category=p.category,
                description=p.description,
                requirements=list(p.requirements),
                processing_time=p.processing_time,
                fees=[
                    PermitFee(type=f.type, amount=f.amount, unit=f.unit, description=f.description)
                    for f in p.fees
                ],
            )
            for i, p in enumerate(self.permits)
        ]

    def to_forms(self, base_url: str) -> list[PermitForm]:
        forms = []
        for f in self.forms:
            url = absolute_url(base_url, f.url)
            if url is None:
                continue
            lower = url.lower()
            file_type = FileType.PDF if lower.endswith(".pdf") else FileType.ONLINE
            forms.append(PermitForm(name=f.name, url=url, file_type=file_type, description=f.description))
        return forms

    def to_contact(self) -> ContactInfo:
        if self.contact is None:
            return ContactInfo()
        address: Address | None = None
        if self.contact.address:
            address = parse_address_text(self.contact.address) or Address(street=self.contact.address)
        return ContactInfo(phone=self.contact.phone, email=self.contact.email, address=address)


# =============================================================================
# Quality scoring
# =============================================================================


def score_data_quality(
    permits: int = 0,
    forms: int = 0,
    has_phone: bool = False,
    has_email: bool = False,
    has_address: bool = False,
    requirements: int = 0,
    processing_times: int = 0,
) -> float:
    """
    Completeness score in [0, 1].

    permits 30 (5 each), forms 20 (5 each), contact 20 (phone 7, email 7,
    address 6), requirements 15 (3 each), processing times 15 (7.5 each).
    """
    score = 0.0
    score += min(permits * 5, 30)
    score += min(forms * 5, 20)
    score += (7 if has_phone else 0) + (7 if has_email else 0) + (6 if has_address else 0)
    score += min(requirements * 3, 15)
    score += min(processing_times * 7.5, 15)
    return min(1.0, max(0.0, score / 100))


def score_heuristic_quality(
    permits: list[PermitType],
    forms: list[PermitForm],
    contact: ContactInfo,
    requirements: list[str],
    processing_times: dict[str, str],
) -> float:
    """Same completeness formula, applied to heuristic results."""
    return score_data_quality(
        permits=len(permits),
        forms=len(forms),
        has_phone=bool(contact.phone),
        has_email=bool(contact.email),
        has_address=contact.address is not None,
        requirements=len(requirements),
        processing_times=len(processing_times),
    )


def parse_ai_response(raw: Any) -> AIParsedData | None:
    """Validate a decoded JSON payload; None if nothing usable remains."""
    if not isinstance(raw, dict):
        return None
    try:
        data = AIParsedData.model_validate(raw)
    except ValidationError:
        return None

    contact = data.contact
    data.data_quality = score_data_quality(
        permits=len(data.permits),
        forms=len(data.forms),
        has_phone=bool(contact and contact.phone),
        has_email=bool(contact and contact.email),
        has_address=bool(contact and contact.address),
        requirements=len(data.requirements),
        processing_times=len(data.processing_times),
    )
    return data


# =============================================================================
# Client
# =============================================================================

PARSE_PROMPT = """You extract building permit information from a government web page.
Return a single JSON object with these keys:
- "permits": list of {"name", "category" (one of building, electrical, plumbing, mechanical,
  zoning, demolition, sign, business, other), "description", "requirements" (list of strings),
  "processing_time", "fees": list of {"type", "amount" (number), "unit" (flat, per_sqft,
  per_hour, per_unit, percentage), "description"}}
- "forms": list of {"name", "url", "description"}
- "fees": list of fees not tied to a specific permit, same shape as above
- "contact": {"phone", "email", "address", "hours"}
- "requirements": list of general requirements
- "processing_times": object mapping permit type to a duration string
Only include information that is explicitly present. Use empty lists when unknown."""


def html_to_text(content: str) -> str:
    """Strip markup, scripts and styles; collapse whitespace."""
    if "<" not in content:
        return re.sub(r"\s+", " ", content).strip()
    soup = BeautifulSoup(content, "lxml")
    for tag in soup(["script", "style", "noscript", "svg"]):
        tag.decompose()
    return re.sub(r"\s+", " ", soup.get_text(" ", strip=True)).strip()


class AIParser:
    """OpenAI-compatible text-understanding client."""

    def __init__(self, settings: Settings | None = None, cache: QualityCache | None = None):
        self.settings = settings or get_settings()
        if not self.settings.ai_enabled:
            raise RuntimeError("AI parsing not configured. Set AI_API_URL and AI_MODEL.")

        self.client = AsyncOpenAI(
            base_url=self.settings.ai_api_url,
            api_key=self.settings.ai_api_key or "ollama",  # Ollama needs non-empty string
        )
        self.model = self.settings.ai_model
        self.cache = cache
        self.log = logger.bind(component="AIParser", model=self.model)

    @retry(
        stop=stop_after_attempt(settings.ai_retries),
        wait=wait_exponential(
            multiplier=settings.ai_backoff // 2,
            min=settings.ai_backoff // 2,
            max=settings.ai_backoff * 2,
        ),
        reraise=True,
    )
    async def _complete(self, text: str, url: str) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": PARSE_PROMPT},
                {"role": "user", "content": f"Source URL: {url}\n\n{text}"},
            ],
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""

    async def parse(self, content: str, url: str) -> AIParsedData:
        """
        Parse page content into validated structured data.

        Raises:
            AIServiceError: the service failed or returned nothing usable
        """
        if self.cache is not None:
            cached = self.cache.get_understanding(url, content)
            if cached is not None:
                self.log.debug("ai_parse_cache_hit", url=url[:80])
                return cached

        text = html_to_text(content)[: self.settings.ai_max_content_chars]
        if not text:
            raise AIServiceError("no text content to parse")

        self.log.info("ai_parse_start", url=url[:80], content_len=len(text))

        try:
            raw = await self._complete(text, url)
        except Exception as e:
            self.log.warning("ai_parse_request_error", url=url[:80], error=str(e))
            raise AIServiceError(f"AI request failed: {e}") from e

        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as e:
            self.log.warning("ai_parse_json_error", error=str(e), content=raw[:300])
            raise AIServiceError(f"AI returned invalid JSON: {e}") from e

        data = parse_ai_response(decoded)
        if data is None:
            raise AIServiceError("AI response had no usable structure")

        self.log.info(
            "ai_parse_success",
            url=url[:80],
            permits=len(data.permits),
            forms=len(data.forms),
            quality=round(data.data_quality, 2),
        )

        if self.cache is not None:
            self.cache.set_understanding(url, content, data, quality=data.data_quality)
        return data


def get_ai_parser(
    settings: Settings | None = None,
    cache: QualityCache | None = None,
) -> AIParser | None:
    """
    Get AI parser if configured, else None.

    Returns:
        AIParser instance or None if AI not configured
    """
    settings = settings or get_settings()
    if not settings.ai_enabled:
        logger.debug("ai_not_configured", msg="Using heuristic-only extraction")
        return None
    return AIParser(settings=settings, cache=cache)
