"""
Text-based matching of priced offerings to availability slots.

The scheduling API does not link a service to the staff member who performs
it, so the link is recovered from the service's free-text name. Both the
treatment and the staff member must appear in the name: a staff-only match
would pair e.g. an acupuncture service with a massage slot of the same
therapist.
"""

from typing import Iterable, List

from .models import Offering


def staff_name_tokens(staff_full_name: str) -> List[str]:
    """
    Return the lowercase names an offering may use to refer to a staff member.

    "Katia Narain Phillips" -> ["katia narain phillips", "katia", "narain", "phillips"]
    """
    full_name = " ".join(staff_full_name.lower().split())
    if not full_name:
        return []

    tokens = [full_name]
    for token in full_name.split(" "):
        if token not in tokens:
            tokens.append(token)
    return tokens


def offering_matches(offering: Offering, treatment_name: str, staff_full_name: str) -> bool:
    """Check both the treatment and the staff containment predicates."""
    treatment = treatment_name.strip().lower()
    staff_tokens = staff_name_tokens(staff_full_name)

    if not treatment or not staff_tokens:
        return False

    name = offering.name.lower()

    if treatment not in name:
        return False

    return any(token in name for token in staff_tokens)


def match_offerings(
    offerings: Iterable[Offering],
    treatment_name: str,
    staff_full_name: str,
) -> List[Offering]:
    """
    Select the offerings naming both the treatment and the staff member.

    Matching is case-insensitive and substring-based. Every matching offering
    is returned in candidate pool order; no single best match is picked.
    An empty result means the price is unknown, not an error.
    """
    return [
        offering
        for offering in offerings
        if offering_matches(offering, treatment_name, staff_full_name)
    ]
