"""
Discovery Module - Manager.

Resolves an address to a Jurisdiction without prior knowledge of its
domain:
1. Generate candidate hostnames for the city, then the county, then the state
2. Batch-validate them
3. Accept the first accessible candidate
4. Find its permit portal

Returning None is a normal outcome when every strategy is exhausted.
"""

import re
from typing import Protocol

import structlog

from permit_agent.core.config import Settings, get_settings
from permit_agent.core.models import Address, Jurisdiction, JurisdictionType
from permit_agent.services.discovery.candidates import candidate_urls, generate_candidates
from permit_agent.services.discovery.portals import PortalDiscovery, best_portal
from permit_agent.services.discovery.validator import BatchUrlValidator
from permit_agent.services.fetcher import Fetcher

logger = structlog.get_logger()


class GeocodingService(Protocol):
    """Resolves a free-form address. Injected by the caller; no implementation here."""

    async def geocode(self, address: Address) -> Address | None: ...


def jurisdiction_id(jurisdiction_type: JurisdictionType, name: str, state: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return f"{jurisdiction_type.value}-{slug}-{state.lower()}"


class DiscoveryManager:
    """
    Finds a jurisdiction's official site and permit portal.

    Usage:
        manager = DiscoveryManager(fetcher)
        jurisdiction = await manager.discover(Address(city="Austin", state="TX"))
    """

    def __init__(
        self,
        fetcher: Fetcher,
        settings: Settings | None = None,
        geocoder: GeocodingService | None = None,
    ):
        self.fetcher = fetcher
        self.settings = settings or get_settings()
        self.geocoder = geocoder
        self.validator = BatchUrlValidator(
            fetcher,
            concurrency=self.settings.validation_concurrency,
            timeout=self.settings.head_timeout,
        )
        self.portals = PortalDiscovery(fetcher, self.validator)
        self.log = logger.bind(component="DiscoveryManager")

    def _targets(self, address: Address) -> list[tuple[JurisdictionType, str]]:
        targets = []
        if address.city:
            targets.append((JurisdictionType.CITY, address.city))
        if address.county:
            targets.append((JurisdictionType.COUNTY, address.county))
        if address.state:
            targets.append((JurisdictionType.STATE, address.state))
        return targets

    async def discover(self, address: Address) -> Jurisdiction | None:
        if self.geocoder is not None:
            try:
                address = await self.geocoder.geocode(address) or address
            except Exception as e:
                self.log.warning("Geocoding failed", error=str(e))

        for jurisdiction_type, name in self._targets(address):
            hosts = generate_candidates(name, address.state, jurisdiction_type)
            self.log.info("Validating candidates", type=jurisdiction_type.value, name=name, count=len(hosts))

            hit = await self.validator.first_accessible(candidate_urls(hosts))
            if hit is None:
                continue

            website = hit.final_url or hit.url
            portals = await self.portals.discover(website)
            portal = best_portal(portals)

            self.log.info(
                "Jurisdiction discovered",
                type=jurisdiction_type.value,
                website=website,
                permit_url=portal.url if portal else None,
            )
            return Jurisdiction(
                id=jurisdiction_id(jurisdiction_type, name, address.state),
                name=name,
                type=jurisdiction_type,
                address=address,
                website=website,
                permit_url=portal.url if portal else None,
            )

        self.log.info("No jurisdiction found", address=str(address))
        return None


async def discover_jurisdiction(
    fetcher: Fetcher,
    address: Address,
    settings: Settings | None = None,
) -> Jurisdiction | None:
    """Convenience wrapper around DiscoveryManager.discover()."""
    return await DiscoveryManager(fetcher, settings=settings).discover(address)
