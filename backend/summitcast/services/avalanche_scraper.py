"""
Avalanche Center Page Scraper

Used only when the structured avalanche.org forecast product is unavailable.
Pulls what it can out of an avalanche center's public forecast page:
- Bottom line (HTML summary blocks, embedded JSON, CAIC's __NEXT_DATA__)
- Avalanche problem names
- Danger ratings by elevation band (lower / middle / upper)

Also parses the Utah Avalanche Center's JSON advisory feed.
"""
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlparse

from bs4 import BeautifulSoup

# Configure logging
logger = logging.getLogger(__name__)

MIN_BOTTOM_LINE_CHARS = 40
LONG_BOTTOM_LINE_CHARS = 1500
AVALANCHE_VOCABULARY = re.compile(r"avalanche|danger|snow|terrain|slab|trigger|wind", re.IGNORECASE)

SUMMARY_CLASSES = ("field--name-field-avalanche-summary", "field-bottom-line")
JSON_BOTTOM_LINE = re.compile(r'"(?:bottom_line|bottom_line_summary|overall_summary)"\s*:\s*"((?:[^"\\]|\\.)+)"')
JSON_LONG_SUMMARY = re.compile(r'"summary"\s*:\s*"((?:[^"\\]|\\.){100,})"')
NEXT_DATA_TEXT = re.compile(
    r'"(?:bottom_line|bottomLine|summary|forecastSummary|discussion)"\s*:\s*"((?:[^"\\]|\\.){80,})"'
)
PROBLEM_NAME = re.compile(r'"avalanche_problem_id"\s*:\s*\d+,\s*"name"\s*:\s*"([^"]+)"')
DANGER_BANDS = {
    "lower": re.compile(r'"danger_lower"\s*:\s*(\d)'),
    "middle": re.compile(r'"danger_middle"\s*:\s*(\d)'),
    "upper": re.compile(r'"danger_upper"\s*:\s*(\d)'),
}


def _unescape_json_string(raw: str) -> str:
    try:
        return json.loads(f'"{raw}"')
    except ValueError:
        return raw.replace('\\"', '"')


def clean_forecast_text(text: Optional[str]) -> str:
    """Strip markup and collapse whitespace."""
    if not text:
        return ""
    plain = BeautifulSoup(text, "html.parser").get_text(" ")
    return re.sub(r"\s+", " ", plain.replace("\\n", " ")).strip()


def score_bottom_line(text: str) -> int:
    score = len(text)
    if AVALANCHE_VOCABULARY.search(text):
        score += 200
    if len(text) > LONG_BOTTOM_LINE_CHARS:
        score -= 250
    return score


def pick_best_bottom_line(candidates: List[Optional[str]]) -> Optional[str]:
    """
    Choose the most forecast-like candidate.

    Candidates shorter than 40 characters (after cleaning) are ignored; longer
    text with avalanche vocabulary wins, very long text is penalized.
    """
    cleaned = [clean_forecast_text(c) for c in candidates if isinstance(c, str)]
    cleaned = [c for c in cleaned if len(c) >= MIN_BOTTOM_LINE_CHARS]
    if not cleaned:
        return None
    return max(cleaned, key=score_bottom_line)


def _next_data_candidates(soup: BeautifulSoup) -> List[str]:
    script = soup.find("script", id="__NEXT_DATA__")
    if script is None or not script.string:
        return []
    try:
        serialized = json.dumps(json.loads(script.string))
    except ValueError:
        logger.debug("CAIC __NEXT_DATA__ block is not valid JSON")
        return []
    return [_unescape_json_string(m) for m in NEXT_DATA_TEXT.findall(serialized)]


def parse_center_page(html: str, center_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Extract forecast details from an avalanche center page.

    Args:
        html: Page body
        center_id: Avalanche center id (CAIC pages carry Next.js data)

    Returns:
        {"bottom_line", "problems", "danger"} or None when nothing useful was found
    """
    soup = BeautifulSoup(html, "html.parser")
    candidates: List[Optional[str]] = []

    match = JSON_BOTTOM_LINE.search(html)
    if match:
        candidates.append(_unescape_json_string(match.group(1)))
    for class_name in SUMMARY_CLASSES:
        for block in soup.find_all(class_=class_name):
            candidates.append(block.get_text(" "))
    match = JSON_LONG_SUMMARY.search(html)
    if match:
        candidates.append(_unescape_json_string(match.group(1)))
    if (center_id or "").upper() == "CAIC":
        candidates.extend(_next_data_candidates(soup))

    problems = []
    for name in PROBLEM_NAME.findall(html):
        if name not in problems:
            problems.append(name)

    bands = {band: pattern.search(html) for band, pattern in DANGER_BANDS.items()}
    danger = None
    if all(bands.values()):
        danger = {band: int(found.group(1)) for band, found in bands.items()}

    bottom_line = pick_best_bottom_line(candidates)
    if bottom_line is None and not problems and danger is None:
        return None
    return {"bottom_line": bottom_line, "problems": problems, "danger": danger}


# ============================================================================
# UTAH AVALANCHE CENTER JSON FEED
# ============================================================================

def build_uac_json_url(forecast_link: Optional[str]) -> Optional[str]:
    """
    Map a UAC forecast page link onto its JSON advisory feed.

    Example:
        >>> build_uac_json_url("https://utahavalanchecenter.org/forecast/salt-lake")
        'https://utahavalanchecenter.org/forecast/salt-lake/json'
    """
    if not isinstance(forecast_link, str) or not forecast_link.strip():
        return None
    parsed = urlparse(forecast_link.strip())
    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    if host != "utahavalanchecenter.org":
        return None
    match = re.match(r"^/forecast/([^/?#]+)", parsed.path, re.IGNORECASE)
    if not match:
        return None
    return f"https://utahavalanchecenter.org/forecast/{quote(match.group(1).strip('/'))}/json"


def parse_uac_advisory(payload: Any) -> Optional[Dict[str, Any]]:
    """Pull bottom line, problems and issue time out of a UAC advisory feed."""
    advisories = payload.get("advisories") if isinstance(payload, dict) else None
    if not isinstance(advisories, list) or not advisories:
        return None
    advisory = (advisories[0] or {}).get("advisory")
    if not isinstance(advisory, dict):
        return None

    bottom_line = None
    for key in ("bottom_line", "current_conditions", "mountain_weather"):
        value = advisory.get(key)
        if isinstance(value, str) and value.strip():
            bottom_line = clean_forecast_text(value)
            break

    problems = []
    for idx in (1, 2, 3):
        name = advisory.get(f"avalanche_problem_{idx}")
        if not isinstance(name, str) or not name.strip():
            continue
        discussion = advisory.get(f"avalanche_problem_{idx}_description")
        problems.append({
            "id": idx,
            "name": name.strip(),
            "discussion": clean_forecast_text(discussion) or None,
        })

    published = None
    try:
        issued = float(advisory.get("date_issued_timestamp"))
    except (TypeError, ValueError):
        issued = 0
    if issued > 0:
        published = datetime.fromtimestamp(issued, tz=timezone.utc).isoformat()

    if not bottom_line and not problems:
        return None
    return {"bottom_line": bottom_line, "problems": problems, "published_time": published}
