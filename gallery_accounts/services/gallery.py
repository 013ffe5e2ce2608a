from __future__ import annotations

from typing import Any
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_accounts.models import (
    CuratedFeed, Package, PackageRegistration, User, curated_feed_managers, package_owners,
)


def version_sort_key(version: str):
    """1.10.0 > 1.9.0, and a stable release > its prereleases."""
    release, _, prerelease = version.partition("-")
    parts = tuple(int(p) if p.isdigit() else 0 for p in release.split("."))
    return parts, prerelease == "", prerelease


async def curated_feed_names(session: AsyncSession, user_id: uuid.UUID) -> list[str]:
    res = await session.execute(
        select(CuratedFeed.name)
        .join(curated_feed_managers, curated_feed_managers.c.curated_feed_key == CuratedFeed.curated_feed_key)
        .where(curated_feed_managers.c.user_id == user_id)
        .order_by(CuratedFeed.name)
    )
    return list(res.scalars().all())


async def _owned_packages(session: AsyncSession, user_id: uuid.UUID, *, listed_only: bool = False):
    stmt = (
        select(Package, PackageRegistration)
        .join(PackageRegistration, Package.registration_key == PackageRegistration.registration_key)
        .join(package_owners, package_owners.c.registration_key == PackageRegistration.registration_key)
        .where(package_owners.c.user_id == user_id)
        .order_by(PackageRegistration.id)
    )
    if listed_only:
        stmt = stmt.where(Package.listed.is_(True))
    res = await session.execute(stmt)
    return res.all()


async def packages_for_owner(session: AsyncSession, user_id: uuid.UUID) -> list[dict[str, Any]]:
    rows = await _owned_packages(session, user_id)
    out = []
    for pkg, reg in rows:
        out.append(
            {
                "id": reg.id,
                "version": pkg.version,
                "listed": pkg.listed,
                # the registration total, not the single version
                "download_count": reg.download_count,
            }
        )
    out.sort(key=lambda p: (p["id"], version_sort_key(p["version"])))
    return out


async def public_profile(session: AsyncSession, user: User) -> dict[str, Any]:
    """Listed packages only, latest version per package id."""
    latest: dict[str, tuple[Package, PackageRegistration]] = {}
    for pkg, reg in await _owned_packages(session, user.user_id, listed_only=True):
        current = latest.get(reg.id)
        if current is None or version_sort_key(pkg.version) > version_sort_key(current[0].version):
            latest[reg.id] = (pkg, reg)

    packages = [
        {"id": reg.id, "version": pkg.version, "total_download_count": reg.download_count}
        for pkg, reg in sorted(latest.values(), key=lambda row: row[1].id)
    ]
    return {
        "username": user.username,
        "email_address": user.email_address if user.email_allowed else None,
        "packages": packages,
        "total_package_download_count": sum(p["total_download_count"] for p in packages),
    }
