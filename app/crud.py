from datetime import datetime, timedelta, timezone

import models
from shortcode import MAX_ATTEMPTS, Exhausted, generate_short_code
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

# Path segments owned by fixed routes; never hand these out as codes
RESERVED_CODES = {"shorten", "health", "docs", "redoc"}


class CodeTakenError(Exception):
    def __init__(self, code: str):
        super().__init__(f"Short code '{code}' is already in use")
        self.code = code


class CodeGenerationError(Exception):
    def __init__(self, attempts: int):
        super().__init__(f"Failed to generate unique short code after {attempts} attempts")
        self.attempts = attempts


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_expired(link: models.ShortUrl, now: datetime | None = None) -> bool:
    if link.expires_at is None:
        return False
    expires_at = link.expires_at
    # SQLite hands timestamps back naive; they are stored as UTC
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at < (now or utcnow())


def code_exists(db: Session, code: str) -> bool:
    if code in RESERVED_CODES:
        return True
    return db.scalar(select(models.ShortUrl.id).filter_by(short_code=code)) is not None


def get_link(db: Session, code: str) -> models.ShortUrl | None:
    return db.scalar(select(models.ShortUrl).filter_by(short_code=code))


def get_link_by_url(db: Session, url: str) -> models.ShortUrl | None:
    return db.scalar(
        select(models.ShortUrl).filter_by(original_url=url).order_by(models.ShortUrl.id).limit(1)
    )


def create_link(
    db: Session,
    url: str,
    custom_code: str | None = None,
    expires_in_days: int | None = None,
    code_length: int = 6,
) -> tuple[models.ShortUrl, bool]:
    """Insert a link for `url`, or return the one that already exists.

    Returns (link, created). Raises CodeTakenError when the custom code is in
    use and CodeGenerationError when no free code could be drawn.
    """
    existing = get_link_by_url(db, url)
    if existing:
        return existing, False

    expires_at = utcnow() + timedelta(days=expires_in_days) if expires_in_days else None

    if custom_code:
        if code_exists(db, custom_code):
            raise CodeTakenError(custom_code)
        link = _insert_link(db, url, custom_code, expires_at)
        if link is None:
            raise CodeTakenError(custom_code)
        return link, True

    # A generated code can still lose the race to a concurrent insert; draw again
    for _ in range(MAX_ATTEMPTS):
        result = generate_short_code(lambda candidate: code_exists(db, candidate), length=code_length)
        if isinstance(result, Exhausted):
            raise CodeGenerationError(result.attempts)
        link = _insert_link(db, url, result.code, expires_at)
        if link is not None:
            return link, True
    raise CodeGenerationError(MAX_ATTEMPTS)


def _insert_link(db: Session, url: str, code: str, expires_at: datetime | None) -> models.ShortUrl | None:
    """Insert and commit; None when the unique index on short_code rejects the row."""
    link = models.ShortUrl(original_url=url, short_code=code, expires_at=expires_at)
    db.add(link)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return None
    db.refresh(link)
    return link


def record_access(db: Session, link: models.ShortUrl, ip_address: str) -> None:
    db.add(models.AccessLog(url_id=link.id, ip_address=ip_address))
    db.execute(
        update(models.ShortUrl)
        .where(models.ShortUrl.id == link.id)
        .values(access_count=models.ShortUrl.access_count + 1)
    )
    db.commit()


def get_access_logs(db: Session, link: models.ShortUrl) -> list[models.AccessLog]:
    return list(
        db.scalars(
            select(models.AccessLog)
            .filter_by(url_id=link.id)
            .order_by(models.AccessLog.accessed_at, models.AccessLog.id)
        )
    )


def update_link(db: Session, code: str, url: str) -> models.ShortUrl | None:
    link = get_link(db, code)
    if not link:
        return None
    link.original_url = url
    db.commit()
    db.refresh(link)
    return link


def delete_link(db: Session, code: str) -> bool:
    link = get_link(db, code)
    if not link:
        return False
    db.delete(link)
    db.commit()
    return True
