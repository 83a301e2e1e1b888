import json
import logging

import requests

log = logging.getLogger(__name__)

OSU_API_URL = "https://osu.ppy.sh/api"
REQUEST_TIMEOUT = 15


# --- Helper Function: Get Beatmap Star Rating ---
def get_beatmap_rating(beatmap_id, api_key, session=None):
    """Fetches the star rating of a beatmap from the osu! API.

    Returns None when the key is missing or the lookup fails in any way;
    callers treat that as "rating unknown".
    """
    if not api_key:
        log.debug(f"No API key, skipping rating lookup for beatmap {beatmap_id}.")
        return None

    http = session or requests
    try:
        log.debug(f"Requesting beatmap info for ID: {beatmap_id}")
        response = http.get(f"{OSU_API_URL}/get_beatmaps", params={'k': api_key, 'b': beatmap_id}, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        data = response.json()
        log.debug(f"API response for {beatmap_id}: {data}")
    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else "?"
        log.warning(f"HTTP error fetching beatmap {beatmap_id}: {status}")
        if status == 401:
            log.error(" -> Unauthorized (401): Check your API_KEY.")
        return None
    except (requests.exceptions.RequestException, json.JSONDecodeError) as e:
        log.error(f"Network/JSON error fetching beatmap {beatmap_id}: {e}")
        return None

    if not isinstance(data, list) or not data:
        log.warning(f"Beatmap {beatmap_id} not found. It might be deleted or restricted.")
        return None

    try:
        return float(data[0].get('difficultyrating'))
    except (TypeError, ValueError):
        log.warning(f"Beatmap {beatmap_id} has no usable difficulty rating: {data[0].get('difficultyrating')!r}")
        return None
