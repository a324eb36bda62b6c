import re
from datetime import datetime

import models
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

URL_PATTERN = re.compile(
    r"https?://"
    r"[\w.-]+\.[a-z]{2,}"          # host
    r"(:\d{1,5})?"                 # port
    r"(/[\w/.~%+:@!$&'()*,;=-]*)?" # path
    r"(\?[\w/.~%+:@!$&'()*,;=?-]*)?"  # query
    r"(#[\w/.~%+:@!$&'()*,;=?-]*)?",  # fragment
    re.IGNORECASE,
)
CODE_PATTERN = re.compile(r"[A-Za-z0-9]{4,10}")
MAX_URL_LENGTH = 2048
MAX_EXPIRY_DAYS = 36500


def is_valid_url(url: str | None) -> bool:
    return bool(url) and len(url) <= MAX_URL_LENGTH and URL_PATTERN.fullmatch(url) is not None


def is_valid_code(code: str | None) -> bool:
    return bool(code) and CODE_PATTERN.fullmatch(code) is not None


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---------- Requests ----------
class UrlCreate(CamelModel):
    url: str | None = None
    custom_code: str | None = None
    expires_in_days: int | None = Field(default=None, gt=0, le=MAX_EXPIRY_DAYS)


class UrlUpdate(CamelModel):
    url: str | None = None
    api_key: str | None = None


class UrlDelete(CamelModel):
    api_key: str | None = None


# ---------- Responses ----------
def record_fields(link: models.ShortUrl, base_url: str) -> dict:
    return {
        "id": link.id,
        "url": link.original_url,
        "short_code": link.short_code,
        "short_url": f"{base_url}/{link.short_code}",
        "access_count": link.access_count,
        "created_at": link.created_at,
        "updated_at": link.updated_at,
        "expires_at": link.expires_at,
    }


class UrlBase(CamelModel):
    id: int
    url: str
    short_code: str
    short_url: str
    created_at: datetime
    updated_at: datetime
    expires_at: datetime | None = None


class UrlOut(UrlBase):
    access_count: int


class UrlCreated(UrlOut):
    qr_code: str


class UrlDetails(UrlBase):
    """Public view of a link: no access count, plus the QR image."""
    qr_code: str


class AccessLogOut(CamelModel):
    accessed_at: datetime
    ip_address: str


class UrlStats(UrlOut):
    access_logs: list[AccessLogOut]


class HealthOut(BaseModel):
    status: str
    env: str
    database: str


class ErrorOut(BaseModel):
    error: str
