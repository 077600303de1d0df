"""
Trip-Type Classifier

Rule of thumb for commute receipts: if the ride ends somewhere that looks
like an office it was a trip to work, if it starts there it was a trip
home. Anything else keeps whatever the extraction model proposed.

The keyword list lives in settings (APP office_keywords) so new office
names can be added without a code change.
"""

from typing import Iterable, Optional

from travel_tracker.config import get_settings
from travel_tracker.models.receipt import TRIP_TYPE_MAX_LENGTH, TripType


def _mentions_office(location: Optional[str], keywords: Iterable[str]) -> bool:
    if not location:
        return False
    lowered = location.lower()
    return any(keyword in lowered for keyword in keywords)


def classify_trip_type(
    pickup: Optional[str],
    dropoff: Optional[str],
    proposed: Optional[str] = None,
    office_keywords: Optional[Iterable[str]] = None,
) -> str:
    """
    Derive a trip type from the pickup and dropoff locations.

    Args:
        pickup: Pickup location as extracted
        dropoff: Dropoff location as extracted
        proposed: The extraction model's own guess, used as the fallback
        office_keywords: Lower-case substrings that mark an office location.
                         Defaults to AppSettings.office_keywords.

    Returns:
        "Home to Office", "Office to Home", or the proposed type
        ("Commute" when it is missing or too long to store)
    """
    if office_keywords is None:
        office_keywords = get_settings().app.office_keywords_list
    keywords = [keyword.lower() for keyword in office_keywords if keyword]

    pickup_is_office = _mentions_office(pickup, keywords)
    dropoff_is_office = _mentions_office(dropoff, keywords)

    if dropoff_is_office and not pickup_is_office:
        return TripType.HOME_TO_OFFICE.value
    if pickup_is_office and not dropoff_is_office:
        return TripType.OFFICE_TO_HOME.value
    proposed = (proposed or "").strip()
    if proposed and len(proposed) <= TRIP_TYPE_MAX_LENGTH:
        return proposed
    return TripType.COMMUTE.value
