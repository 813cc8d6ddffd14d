"""Scrape-mode decoding.

Callers pass either the display label or its numeric shortcut; anything else
(including no value) means the full-profile mode.
"""

from __future__ import annotations

from typing import Dict, Optional

from leadrun.models.run import ProfileScraperMode

_BY_LABEL: Dict[str, ProfileScraperMode] = {
    "Short ($4 per 1k)": ProfileScraperMode.SHORT,
    "Full ($8 per 1k)": ProfileScraperMode.FULL,
    "Full + email search ($12 per 1k)": ProfileScraperMode.EMAIL,
}
_BY_NUMBER: Dict[str, ProfileScraperMode] = {
    "1": ProfileScraperMode.SHORT,
    "2": ProfileScraperMode.FULL,
    "3": ProfileScraperMode.EMAIL,
}

# dataset event / category per mode; EMAIL falls back to the plain full profile
# when the email search did not pay out
SHORT_PROFILE = "short-profile"
FULL_PROFILE = "full-profile"
FULL_PROFILE_WITH_EMAIL = "full-profile-with-email"
EMAIL_PAYMENT = "linkedinProfileWithEmail"


def parse_scrape_mode(raw: Optional[str]) -> ProfileScraperMode:
    if raw is None:
        return ProfileScraperMode.FULL
    return _BY_LABEL.get(raw) or _BY_NUMBER.get(raw) or ProfileScraperMode.FULL
