"""Entity domains: how raw Sportlink records become trackable entities.

Each domain names its mirror table, the field its identity key is hashed
under, and a batch preparation function.  Preparation is where data
errors surface: a record without its identity field is skipped and
counted, and never reaches the mirror store.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from sportlink_sync.errors import DataError
from sportlink_sync.sync.store import PreparedEntity

logger = logging.getLogger(__name__)

RawRecord = Mapping[str, Any]

PARENT_SLOTS = (1, 2)


@dataclass
class PreparationResult:
    """Outcome of preparing one raw batch."""

    entities: list[PreparedEntity] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def keys(self) -> list[str]:
        return [e.identity_key for e in self.entities]


@dataclass(frozen=True)
class EntityDomain:
    """Configuration for one kind of synced entity.

    Attributes:
        name: Short domain name used on the CLI and in logs.
        table: Mirror table name.
        key_field: Field the identity key is hashed under.
        prepare_batch: Turns a raw batch into prepared entities.
        lookup_meta_key: Remote meta field holding the identity key, used
            for the primary remote lookup.  ``None`` skips that tier.
        email_fallback: Whether remote lookup may fall back to matching
            the entity's email address.
    """

    name: str
    table: str
    key_field: str
    prepare_batch: Callable[[Sequence[RawRecord]], PreparationResult]
    lookup_meta_key: str | None = None
    email_fallback: bool = False


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def clean(value: Any) -> str:
    """Return *value* as a stripped string, ``''`` for missing values."""
    if value is None:
        return ""
    return str(value).strip()


def normalize_email(value: Any) -> str:
    return clean(value).lower()


def is_valid_email(value: Any) -> bool:
    return "@" in normalize_email(value)


def prepare_each(
    records: Sequence[RawRecord],
    prepare_one: Callable[[RawRecord], PreparedEntity],
    label: str,
) -> PreparationResult:
    """Apply *prepare_one* to every record, collecting data errors."""
    result = PreparationResult()
    for index, record in enumerate(records):
        try:
            result.entities.append(prepare_one(record))
        except DataError as exc:
            reason = f"{label} at index {index}: {exc}"
            logger.debug("Skipping %s", reason)
            result.skipped.append(reason)
    return result


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

_GENDER_MAP = {"Male": "M", "Female": "F"}


def build_name(member: RawRecord) -> tuple[str, str]:
    """Return ``(first_name, last_name)`` with the infix merged into the last name."""
    first_name = clean(member.get("FirstName"))
    last_name = " ".join(
        part for part in (clean(member.get("Infix")), clean(member.get("LastName"))) if part
    )
    return first_name, last_name


def build_contact_info(member: RawRecord) -> list[dict[str, str]]:
    contacts = []
    for contact_type, source in (("email", "Email"), ("mobile", "Mobile"), ("phone", "Telephone")):
        value = clean(member.get(source))
        if value:
            contacts.append({"type": contact_type, "value": value})
    return contacts


def build_addresses(member: RawRecord) -> list[dict[str, str]]:
    street = clean(member.get("StreetName"))
    city = clean(member.get("City"))
    if not street and not city:
        return []
    return [
        {
            "street": street,
            "number": clean(member.get("AddressNumber")),
            "addition": clean(member.get("AddressNumberAppendix")),
            "postal_code": clean(member.get("ZipCode")),
            "city": city,
        }
    ]


def build_important_dates(member: RawRecord) -> list[dict[str, str]]:
    birth_date = clean(member.get("DateOfBirth"))
    if not birth_date:
        return []
    return [{"type": "birth_date", "date": birth_date}]


def prepare_member(member: RawRecord) -> PreparedEntity:
    """Transform a Sportlink member into a Stadion person entity.

    Raises:
        DataError: If the KNVB ID or both name parts are missing.
    """
    knvb_id = clean(member.get("PublicPersonId"))
    if not knvb_id:
        raise DataError("missing KNVB ID")
    if not has_value(member.get("FirstName")) and not has_value(member.get("LastName")):
        raise DataError("missing name")

    first_name, last_name = build_name(member)
    email = normalize_email(member.get("Email"))
    return PreparedEntity(
        identity_key=knvb_id,
        secondary_key=email or None,
        payload={
            "title": " ".join(p for p in (first_name, last_name) if p),
            "status": "publish",
            "meta": {
                "knvb_id": knvb_id,
                "first_name": first_name,
                "last_name": last_name,
                "gender": _GENDER_MAP.get(clean(member.get("GenderCode")), ""),
            },
            "acf": {
                "contact_info": build_contact_info(member),
                "addresses": build_addresses(member),
                "important_dates": build_important_dates(member),
            },
        },
    )


def prepare_members(records: Sequence[RawRecord]) -> PreparationResult:
    return prepare_each(records, prepare_member, "member")


# ---------------------------------------------------------------------------
# Parents
# ---------------------------------------------------------------------------


def _split_name(full_name: str) -> tuple[str, str]:
    parts = full_name.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def prepare_parents(records: Sequence[RawRecord]) -> PreparationResult:
    """Derive parent entities from the parent fields of member records.

    Parents are keyed by normalized email.  Every member that lists the
    same parent email contributes its KNVB ID to the parent's
    ``child_keys``.  Members are visited in KNVB ID order so the derived
    payload does not depend on the order of the source export.
    """
    result = PreparationResult()
    grouped: dict[str, dict[str, Any]] = {}

    members = sorted(
        (m for m in records if clean(m.get("PublicPersonId"))),
        key=lambda m: clean(m.get("PublicPersonId")),
    )
    for member in members:
        child_key = clean(member.get("PublicPersonId"))
        for slot in PARENT_SLOTS:
            raw_email = member.get(f"EmailAddressParent{slot}")
            if not has_value(raw_email):
                continue
            if not is_valid_email(raw_email):
                reason = f"parent {slot} of member {child_key}: invalid email {clean(raw_email)!r}"
                logger.debug("Skipping %s", reason)
                result.skipped.append(reason)
                continue

            email = normalize_email(raw_email)
            entry = grouped.setdefault(
                email, {"name": "", "phones": [], "children": set()}
            )
            entry["children"].add(child_key)
            name = clean(member.get(f"NameParent{slot}"))
            if name and not entry["name"]:
                entry["name"] = name
            phone = clean(member.get(f"TelephoneParent{slot}"))
            if phone and phone not in entry["phones"]:
                entry["phones"].append(phone)

    for email in sorted(grouped):
        entry = grouped[email]
        first_name, last_name = _split_name(entry["name"])
        contact_info = [{"type": "email", "value": email}]
        contact_info.extend({"type": "phone", "value": p} for p in entry["phones"])
        result.entities.append(
            PreparedEntity(
                identity_key=email,
                payload={
                    "title": entry["name"] or email,
                    "status": "publish",
                    "meta": {"first_name": first_name, "last_name": last_name},
                    "acf": {"contact_info": contact_info},
                    "child_keys": sorted(entry["children"]),
                },
            )
        )
    return result


# ---------------------------------------------------------------------------
# Nikki contributions
# ---------------------------------------------------------------------------


def _optional_float(value: Any, name: str) -> float | None:
    if not has_value(value):
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise DataError(f"invalid {name} {value!r}") from exc


def prepare_contribution(record: RawRecord) -> PreparedEntity:
    """Transform a Nikki contribution row keyed by member and year.

    Raises:
        DataError: If the KNVB ID or year is missing or the year is not
            an integer.
    """
    knvb_id = clean(record.get("knvb_id"))
    if not knvb_id:
        raise DataError("missing KNVB ID")
    try:
        year = int(clean(record.get("year")))
    except ValueError as exc:
        raise DataError(f"invalid year {record.get('year')!r}") from exc

    key = f"{knvb_id}:{year}"
    return PreparedEntity(
        identity_key=key,
        secondary_key=knvb_id,
        payload={
            "title": f"Contributie {year} {knvb_id}",
            "status": "publish",
            "meta": {
                "contribution_key": key,
                "knvb_id": knvb_id,
                "year": year,
                "nikki_id": clean(record.get("nikki_id")),
                "saldo": _optional_float(record.get("saldo"), "saldo"),
                "hoofdsom": _optional_float(record.get("hoofdsom"), "hoofdsom"),
                "nikki_status": clean(record.get("status")) or None,
            },
        },
    )


def prepare_contributions(records: Sequence[RawRecord]) -> PreparationResult:
    return prepare_each(records, prepare_contribution, "contribution")


# ---------------------------------------------------------------------------
# Discipline cases
# ---------------------------------------------------------------------------


def prepare_case(record: RawRecord) -> PreparedEntity:
    """Transform a Sportlink discipline case keyed by dossier ID.

    Raises:
        DataError: If the dossier ID is missing.
    """
    dossier_id = clean(record.get("DossierId"))
    if not dossier_id:
        raise DataError("missing dossier ID")

    person_id = clean(record.get("PublicPersonId")) or None
    charge_codes = record.get("ChargeCodes")
    is_charged = record.get("IsCharged")
    description = clean(record.get("MatchDescription"))
    return PreparedEntity(
        identity_key=dossier_id,
        secondary_key=person_id,
        payload={
            "title": f"{dossier_id} {description}".strip(),
            "status": "publish",
            "meta": {
                "dossier_id": dossier_id,
                "public_person_id": person_id,
                "match_date": record.get("MatchDate"),
                "match_description": description or None,
                "team_name": record.get("TeamName"),
                "charge_codes": list(charge_codes) if isinstance(charge_codes, list) else charge_codes,
                "charge_description": record.get("ChargeDescription"),
                "sanction_description": record.get("SanctionDescription"),
                "processing_date": record.get("ProcessingDate"),
                "administrative_fee": _optional_float(
                    record.get("AdministrativeFee"), "administrative fee"
                ),
                "is_charged": is_charged if isinstance(is_charged, bool) else None,
            },
        },
    )


def prepare_cases(records: Sequence[RawRecord]) -> PreparationResult:
    return prepare_each(records, prepare_case, "case")


# ---------------------------------------------------------------------------
# Laposta list members
# ---------------------------------------------------------------------------


def prepare_laposta_members(records: Sequence[RawRecord]) -> PreparationResult:
    """One mailing-list entry per email; the lowest KNVB ID wins on duplicates."""
    result = PreparationResult()
    seen: set[str] = set()
    members = sorted(records, key=lambda m: clean(m.get("PublicPersonId")))
    for member in members:
        knvb_id = clean(member.get("PublicPersonId"))
        if not is_valid_email(member.get("Email")):
            reason = f"laposta member {knvb_id or '?'}: missing or invalid email"
            logger.debug("Skipping %s", reason)
            result.skipped.append(reason)
            continue
        email = normalize_email(member.get("Email"))
        if email in seen:
            continue
        seen.add(email)
        result.entities.append(
            PreparedEntity(
                identity_key=email,
                secondary_key=knvb_id or None,
                payload={
                    "email": email,
                    "custom_fields": {
                        "voornaam": clean(member.get("FirstName")),
                        "tussenvoegsel": clean(member.get("Infix")),
                        "achternaam": clean(member.get("LastName")),
                        "relatiecode": knvb_id,
                    },
                },
            )
        )
    return result


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

MEMBERS = EntityDomain(
    name="members",
    table="stadion_members",
    key_field="knvb_id",
    prepare_batch=prepare_members,
    lookup_meta_key="knvb_id",
    email_fallback=True,
)

PARENTS = EntityDomain(
    name="parents",
    table="stadion_parents",
    key_field="email",
    prepare_batch=prepare_parents,
    email_fallback=True,
)

CONTRIBUTIONS = EntityDomain(
    name="contributions",
    table="nikki_contributions",
    key_field="contribution_key",
    prepare_batch=prepare_contributions,
    lookup_meta_key="contribution_key",
)

CASES = EntityDomain(
    name="cases",
    table="discipline_cases",
    key_field="dossier_id",
    prepare_batch=prepare_cases,
    lookup_meta_key="dossier_id",
)

LAPOSTA = EntityDomain(
    name="laposta",
    table="laposta_members",
    key_field="email",
    prepare_batch=prepare_laposta_members,
)

DOMAINS: dict[str, EntityDomain] = {
    d.name: d for d in (MEMBERS, PARENTS, CONTRIBUTIONS, CASES, LAPOSTA)
}
