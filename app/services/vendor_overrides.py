"""Vendor-override site set with an explicit read-through cache.

The set is owned by the ingestion service (`replace_override_sites`), which
also invalidates the cache. Routing only ever asks `contains(site_code)`.
"""

from __future__ import annotations

import logging

from redis import RedisError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.redis import get_redis
from app.db.models.vendor_override import VendorOverrideSite
from app.utils.rows import normalize_site_code

logger = logging.getLogger("fault_routing.vendor_overrides")

_KEY = "fault_routing:vendor_override_sites"
# redis drops empty sets, so a marker member records "loaded, possibly empty"
_LOADED = "__loaded__"


class VendorOverrideCache:
    def __init__(self, db: Session, ttl_seconds: int | None = None):
        self.db = db
        self.ttl = ttl_seconds if ttl_seconds is not None else settings.VENDOR_OVERRIDE_TTL_SECONDS

    def _from_db(self, site_code: str) -> bool:
        q = self.db.query(VendorOverrideSite.id).filter(VendorOverrideSite.site_code == site_code)
        return q.first() is not None

    def _warm(self, r) -> None:
        codes = [c for (c,) in self.db.query(VendorOverrideSite.site_code).all()]
        pipe = r.pipeline()
        pipe.delete(_KEY)
        pipe.sadd(_KEY, _LOADED, *codes)
        pipe.expire(_KEY, self.ttl)
        pipe.execute()
        logger.info("Vendor override cache loaded (%d sites)", len(codes))

    def contains(self, site_code: str) -> bool:
        code = normalize_site_code(site_code)
        if not code:
            return False
        r = get_redis()
        if r is None:
            return self._from_db(code)
        try:
            if not r.exists(_KEY):
                self._warm(r)
            return bool(r.sismember(_KEY, code))
        except RedisError as exc:
            logger.warning("Vendor override cache unavailable, reading DB: %s", exc)
            return self._from_db(code)

    @staticmethod
    def invalidate() -> None:
        r = get_redis()
        if r is None:
            return
        try:
            r.delete(_KEY)
        except RedisError as exc:
            logger.warning("Vendor override cache invalidation failed: %s", exc)


def list_override_sites(db: Session) -> list[str]:
    return [c for (c,) in db.query(VendorOverrideSite.site_code).order_by(VendorOverrideSite.site_code).all()]


def replace_override_sites(db: Session, site_codes, source: str = "") -> list[str]:
    """Replace the whole set (ingestion refresh) and drop the cached copy."""
    codes = sorted({normalize_site_code(c) for c in site_codes if normalize_site_code(c)})
    db.query(VendorOverrideSite).delete(synchronize_session=False)
    for code in codes:
        db.add(VendorOverrideSite(site_code=code, source=source))
    db.commit()
    VendorOverrideCache.invalidate()
    logger.info("Vendor override set replaced (%d sites, source=%s)", len(codes), source or "-")
    return codes
