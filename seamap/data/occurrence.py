"""
Species occurrence loading from the OBIS v3 API.

Records are queried with the area of interest as a WKT geometry and an
optional year range, paged with the ``after`` cursor, parsed into
`OccurrenceRecord`s (rows without usable coordinates are dropped) and
returned as points in the AOI's CRS.
"""

import logging
from typing import Any, Dict, List, Optional

import geopandas as gpd
from tqdm import tqdm

from seamap.data.services import ServiceClient
from seamap.errors import ConfigurationError, MalformedResponseError
from seamap.geometry import GEOGRAPHIC_CRS, ensure_crs, to_wkt
from seamap.schema import OccurrenceRecord, records_to_geodataframe

logger = logging.getLogger(__name__)

OBIS_URL = "https://api.obis.org/v3/occurrence"
OBIS_FIELDS = "id,scientificName,species,decimalLongitude,decimalLatitude,individualCount,date_year"
MAX_PAGE_SIZE = 10000


def build_query(
    aoi: gpd.GeoDataFrame,
    start_year: Optional[int] = None,
    end_year: Optional[int] = None,
    taxon: Optional[str] = None,
) -> Dict[str, Any]:
    """Builds the OBIS query parameters for the area of interest and year range."""
    if start_year is not None and end_year is not None and end_year < start_year:
        raise ConfigurationError(f"end_year ({end_year}) is before start_year ({start_year})")
    params: Dict[str, Any] = {"geometry": to_wkt(aoi), "fields": OBIS_FIELDS}
    if start_year is not None:
        params["startdate"] = f"{int(start_year)}-01-01"
    if end_year is not None:
        params["enddate"] = f"{int(end_year)}-12-31"
    if taxon:
        params["scientificname"] = taxon
    return params


def parse_results(payload: Any, url: str = OBIS_URL) -> List[Dict[str, Any]]:
    """Extracts the result rows from an OBIS payload."""
    if not isinstance(payload, dict) or not isinstance(payload.get("results"), list):
        raise MalformedResponseError(
            f"OBIS response has no 'results' list: {str(payload)[:200]}", service="obis", url=url
        )
    return payload["results"]


def parse_records(rows: List[Dict[str, Any]]) -> List[OccurrenceRecord]:
    """Parses OBIS rows into records, dropping rows without valid coordinates."""
    records = []
    dropped = 0
    for row in rows:
        record = OccurrenceRecord.from_obis(row)
        if record is None:
            dropped += 1
            continue
        records.append(record)
    if dropped:
        logger.warning(f"Dropped {dropped} occurrence record(s) without valid coordinates")
    return records


def fetch_occurrence_rows(
    client: ServiceClient,
    params: Dict[str, Any],
    page_size: int = 5000,
    max_records: Optional[int] = None,
    url: str = OBIS_URL,
) -> List[Dict[str, Any]]:
    """Pages through OBIS results until exhausted or `max_records` rows are collected."""
    if not 0 < page_size <= MAX_PAGE_SIZE:
        raise ConfigurationError(f"page_size must be in (0, {MAX_PAGE_SIZE}], got {page_size}")

    rows: List[Dict[str, Any]] = []
    after = None
    with tqdm(desc="Downloading occurrences", unit="records", disable=None) as pbar:
        while True:
            size = page_size if max_records is None else min(page_size, max_records - len(rows))
            if size <= 0:
                break
            page_params = {**params, "size": size}
            if after is not None:
                page_params["after"] = after
            payload = client.get_json(url, params=page_params)
            page = parse_results(payload, url=url)
            if pbar.total is None and isinstance(payload.get("total"), int):
                pbar.total = payload["total"] if max_records is None else min(payload["total"], max_records)
            rows.extend(page)
            pbar.update(len(page))
            if len(page) < size:
                break
            after = page[-1].get("id")
            if after is None:
                logger.warning("OBIS page has no record id to continue from; stopping pagination.")
                break
    return rows


def fetch_occurrences(
    aoi: gpd.GeoDataFrame,
    start_year: Optional[int] = None,
    end_year: Optional[int] = None,
    taxon: Optional[str] = None,
    page_size: int = 5000,
    max_records: Optional[int] = None,
    mask: bool = False,
    client: Optional[ServiceClient] = None,
    url: str = OBIS_URL,
) -> gpd.GeoDataFrame:
    """
    Downloads occurrence records inside the area of interest.

    Args:
        aoi: Area of interest in a projected CRS.
        start_year: First year to include; None for no lower bound.
        end_year: Last year to include; None for no upper bound.
        taxon: Optional scientific name to restrict the query to.
        page_size: Records per request.
        max_records: Stop after this many records.
        mask: Keep only points inside the AOI (OBIS matches on the
            geometry already, this drops records on the edge).
        client: HTTP client; one is created and closed here if not given.

    Returns:
        GeoDataFrame with `species`, `count`, `year` and `record_id` columns
        in the AOI's CRS. Zero matches gives an empty frame.
    """
    params = build_query(aoi, start_year=start_year, end_year=end_year, taxon=taxon)
    logger.info(f"Querying OBIS (years {start_year}-{end_year}, taxon {taxon})")

    if client is None:
        client = ServiceClient(service="obis")
    with client:
        rows = fetch_occurrence_rows(client, params, page_size=page_size, max_records=max_records, url=url)

    records = parse_records(rows)
    occurrences = records_to_geodataframe(records, OccurrenceRecord, crs=GEOGRAPHIC_CRS)
    occurrences = ensure_crs(occurrences, aoi.crs)
    if mask and len(occurrences):
        occurrences = occurrences[occurrences.within(aoi.geometry.union_all())].copy()
    logger.info(f"Loaded {len(occurrences)} occurrence records")
    return occurrences
