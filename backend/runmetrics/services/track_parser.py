"""GPX track parsing.

Turns GPX markup (1.0 or 1.1, any namespace) into a canonical RunRecord.
Malformed documents and documents without a single track point yield None;
the caller decides how to report the failed file.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from lxml import etree

from runmetrics.core.constants import DEFAULT_TRACK_NAME
from runmetrics.core.time_utils import parse_iso8601
from runmetrics.schemas.run import GeoPoint, RunOrigin, RunRecord, Track
from runmetrics.services.geo import summarize_tracks

logger = logging.getLogger(__name__)

# No DTD/entity expansion and no network access while parsing uploads
_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)


def _strip_namespaces(root) -> None:
    # Some exporters qualify every element, so match on local names only
    for elem in root.iter():
        if isinstance(elem.tag, str) and "}" in elem.tag:
            elem.tag = elem.tag.split("}", 1)[1]


def _child_text(elem, tag: str) -> Optional[str]:
    child = elem.find(tag)
    if child is None or child.text is None:
        return None
    text = child.text.strip()
    return text or None


def _to_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def parse_gpx(content: bytes | str, source_file: str, now: datetime | None = None) -> Optional[RunRecord]:
    """Parse a GPX document into a RunRecord, or None if it holds no usable track.

    - Elevation defaults to 0 when absent or not numeric.
    - Points whose lat/lon are not numeric are skipped.
    - Points without a timestamp get the parse time; the record is then
      flagged `timestamps_complete=False`.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    if not content or not content.strip():
        logger.info("GPX parse failed for %s: empty document", source_file)
        return None
    try:
        root = etree.fromstring(content, parser=_PARSER)
    except etree.XMLSyntaxError as e:
        logger.info("GPX parse failed for %s: %s", source_file, e)
        return None
    if root is None:
        logger.info("GPX parse failed for %s: no root element", source_file)
        return None

    _strip_namespaces(root)
    parse_time = now or datetime.now(timezone.utc)
    missing_times = 0

    tracks: list[Track] = []
    for trk in root.iter("trk"):
        points: list[GeoPoint] = []
        for trkpt in trk.iter("trkpt"):
            lat = _to_float(trkpt.get("lat"))
            lon = _to_float(trkpt.get("lon"))
            if lat is None or lon is None:
                continue
            ele = _to_float(_child_text(trkpt, "ele"))
            ts = parse_iso8601(_child_text(trkpt, "time"))
            if ts is None:
                missing_times += 1
                ts = parse_time
            points.append(
                GeoPoint(latitude=lat, longitude=lon, elevation=ele or 0.0, timestamp=ts)
            )
        if points:
            name = _child_text(trk, "name") or DEFAULT_TRACK_NAME
            tracks.append(Track(name=name, points=points))

    if not tracks:
        logger.info("GPX parse failed for %s: no track points", source_file)
        return None

    if missing_times:
        logger.warning(
            "%s: %d point(s) had no timestamp; duration and pace are unreliable",
            source_file,
            missing_times,
        )

    summary = summarize_tracks(tracks)
    return RunRecord(
        source_file=source_file,
        tracks=tracks,
        total_distance_m=summary.total_distance_m,
        total_duration_s=summary.duration_s,
        elevation_gain_m=summary.elevation_gain_m,
        elevation_loss_m=summary.elevation_loss_m,
        start_time=summary.start_time,
        end_time=summary.end_time,
        average_pace=summary.average_pace,
        splits=summary.splits,
        origin=RunOrigin.upload,
        timestamps_complete=missing_times == 0,
    )


def parse_track_files(files: Iterable[tuple[str, bytes]]) -> tuple[list[RunRecord], list[str]]:
    """Parse (filename, content) pairs; return parsed records and names that failed."""
    records: list[RunRecord] = []
    failed: list[str] = []
    for filename, content in files:
        record = parse_gpx(content, filename)
        if record is None:
            failed.append(filename)
        else:
            records.append(record)
    return records, failed
