"""
MaxMind GeoLite2 lookups.

The databases are optional: a missing or unreadable file leaves the matching
reader unset and /lookup simply omits that part of the geo block. Downloading
and refreshing the files is handled outside this service.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import geoip2.database
from geoip2.errors import AddressNotFoundError
from maxminddb import InvalidDatabaseError

logger = logging.getLogger(__name__)


@dataclass
class GeoIpReaders:
    city: Optional[Any]
    asn: Optional[Any]
    city_path: str
    asn_path: str

    def close(self):
        for reader in (self.city, self.asn):
            if reader is not None:
                reader.close()

    def status(self) -> Dict[str, Any]:
        return {
            "cityDbPath": self.city_path,
            "asnDbPath": self.asn_path,
            "cityLoaded": self.city is not None,
            "asnLoaded": self.asn is not None,
        }


def _open_reader(path: str):
    if not os.path.isfile(path):
        logger.info(f"GeoIP database not found at {path}; skipping")
        return None
    try:
        return geoip2.database.Reader(path)
    except (OSError, InvalidDatabaseError) as exc:
        logger.warning(f"Could not open GeoIP database {path}: {exc}")
        return None


def open_geoip_readers(directory: str, city_mmdb: str, asn_mmdb: str) -> GeoIpReaders:
    city_path = os.path.join(directory, city_mmdb)
    asn_path = os.path.join(directory, asn_mmdb)
    return GeoIpReaders(
        city=_open_reader(city_path),
        asn=_open_reader(asn_path),
        city_path=city_path,
        asn_path=asn_path,
    )


def _city_block(record) -> Dict[str, Any]:
    subdivision = record.subdivisions[0] if record.subdivisions else None
    location = record.location
    block = {
        "continent": record.continent.name,
        "country": record.country.name,
        "country_iso_code": record.country.iso_code,
        "registered_country": record.registered_country.name,
        "region": subdivision.name if subdivision else None,
        "region_iso_code": subdivision.iso_code if subdivision else None,
        "city": record.city.name,
        "postal": record.postal.code,
    }
    if location is not None and location.latitude is not None:
        block["location"] = {
            "latitude": location.latitude,
            "longitude": location.longitude,
            "time_zone": location.time_zone,
            "accuracy_radius": location.accuracy_radius,
        }
    return block


def lookup_geo(readers: Optional[GeoIpReaders], ip: str) -> Dict[str, Any]:
    """ASN and city details for ``ip``; empty dict when nothing is known."""
    out: Dict[str, Any] = {}
    if readers is None:
        return out

    if readers.asn is not None:
        try:
            asn = readers.asn.asn(ip)
        except AddressNotFoundError:
            asn = None
        if asn is not None:
            out["asn"] = {
                "autonomous_system_number": asn.autonomous_system_number,
                "autonomous_system_organization": asn.autonomous_system_organization,
            }

    if readers.city is not None:
        try:
            city = readers.city.city(ip)
        except AddressNotFoundError:
            city = None
        if city is not None:
            out["city"] = _city_block(city)

    return out
