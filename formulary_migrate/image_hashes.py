"""Legacy cleaning-photo paths and the content hashes of their uploaded copies."""

from __future__ import annotations

from typing import Dict, Optional

NON_HAZ_CLEANING = "9089504298f77ee549a5208b987def0cd0ea46d5afcc90d34e485506bd77756a"
HAZ_30_SECOND_CLEANING = "f04db7802986c6642b67bd6ea40dcdf9315d1b39c6a06fba283edc754f261d7d"
HAZ_5_MINUTE_CLEANING = "0ceaaa4e437dab367cdf71a4e3858fdf47a9e30538e3a8cb20821a750f6d13f7"

IMAGE_HASHES: Dict[str, str] = {
    r"N:\INFPH\MOORESRX\MF Pictures\_final-non-haz-Cleaning.jpg": NON_HAZ_CLEANING,
    r"C:\Users\vanle\Documents\Master Formula\2024\Cleaning\_final-non-haz-Cleaning.jpg": NON_HAZ_CLEANING,
    r"N:\INFPH\MOORESRX\MF Pictures\_final-30-seconds-haz-Cleaning.jpg": HAZ_30_SECOND_CLEANING,
    r"C:\Users\vanle\Documents\Master Formula\2024\Cleaning\_final-30-seconds-haz-Cleaning.jpg": HAZ_30_SECOND_CLEANING,
    r"N:\INFPH\MOORESRX\MF Pictures\_final-5-minutes-haz-Cleaning.jpg": HAZ_5_MINUTE_CLEANING,
}

_CASEFOLDED = {path.casefold(): digest for path, digest in IMAGE_HASHES.items()}


def resolve_image_hash(path: Optional[str]) -> Optional[str]:
    """Return the content hash for a legacy picture path, or None if it was never uploaded."""

    if not isinstance(path, str):
        return None
    path = path.strip()
    if not path:
        return None
    return IMAGE_HASHES.get(path) or _CASEFOLDED.get(path.casefold())
