"""
Companies House XML Gateway extension.

Companies House authenticates with ``CHMD5``: the hex MD5 of the sender
ID, password and transaction ID concatenated, supplied through the
``alternative`` authentication type.
"""

from __future__ import annotations

__all__ = [
    "CompaniesHouseClient",
    "CompanyDetails",
    "CompanyMatch",
    "CompanySearchResult",
    "Disqualification",
    "OfficerAppointment",
    "OfficerDetails",
    "OfficerMatch",
    "OfficerSearchResult",
    "chmd5_token",
]

import hashlib
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from ..client import GovTalkClient
from ..constants import __version__
from ..core.auth import AuthToken
from ..core.body import ElementBody

_logger = logging.getLogger(__name__)

GATEWAY_URL = "https://xmlgw.companieshouse.gov.uk/v1-0/xmlgw/Gateway"
SCHEMA_LOCATION = "http://xmlgw.companieshouse.gov.uk/v1-1/schema/Egov_ch-v2-0.xsd"
_REQUEST_SCHEMA_BASE = "http://xmlgw.companieshouse.gov.uk/v1-0/schema/"

DATASETS = frozenset({"LIVE", "DISSOLVED", "FORMER", "PROPOSED"})
MAX_COMPANY_NAME_LENGTH = 160

# CUR: current appointments, DIS: disqualified directors, LLP: LLP members,
# EUR: SE and ES appointments
OFFICER_TYPES = frozenset({"CUR", "DIS", "LLP", "EUR"})
MAX_USER_REFERENCE_LENGTH = 24
_MAX_FORENAMES = 2

_COMPANY_NUMBER_PATTERN = re.compile(r"[A-Z0-9]{8}")
_PARTIAL_NUMBER_PATTERN = re.compile(r"[A-Z0-9]{1,8}\*?")

_CH_ROUTE = (
    "urn:govtalk:python-client:companies-house",
    "govtalk-python Companies House extension",
    __version__,
)


def chmd5_token(sender_id: str, password: str, transaction_id: str) -> AuthToken | None:
    """Derive the CHMD5 token; None unless the transaction ID is numeric."""
    if not transaction_id.isdigit():
        _logger.warning("CHMD5 needs a numeric transaction ID, got %r", transaction_id)
        return None
    value = hashlib.md5(  # noqa: S324 -- mandated by Companies House
        f"{sender_id}{password}{transaction_id}".encode()
    ).hexdigest()
    return AuthToken(method="CHMD5", value=value)


# ── Result types ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class CompanyMatch:
    name: str
    number: str


@dataclass(frozen=True)
class CompanySearchResult:
    """Search hits; ``exact`` is the hit flagged as an exact match, if any."""

    exact: CompanyMatch | None
    matches: list[CompanyMatch] = field(default_factory=list)


@dataclass(frozen=True)
class CompanyDetails:
    name: str
    number: str
    category: str
    status: str
    in_liquidation: str
    has_branch_info: str
    has_appointments: str
    registration_date: date | None = None
    dissolution_date: date | None = None
    incorporation_date: date | None = None
    closure_date: date | None = None
    accounts: dict[str, Any] | None = None
    returns: dict[str, Any] | None = None
    mortgages: dict[str, str] | None = None
    previous_names: list[str] = field(default_factory=list)
    address: list[str] = field(default_factory=list)
    sic_codes: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class OfficerMatch:
    person_id: str
    title: str
    surname: str
    forename: str
    date_of_birth: date | None
    post_town: str
    postcode: str


@dataclass(frozen=True)
class OfficerSearchResult:
    """Search hits; ``nearest`` is the hit Companies House flags as nearest."""

    nearest: OfficerMatch | None
    matches: list[OfficerMatch] = field(default_factory=list)


@dataclass(frozen=True)
class OfficerAppointment:
    company_number: str
    company_name: str
    company_status: str
    appointment_type: str
    status: str
    appointed: date | None
    resigned: date | None = None
    occupation: str | None = None


@dataclass(frozen=True)
class Disqualification:
    """A disqualification and the companies exempted from it."""

    reason: str
    start: date | None
    end: date | None
    exemptions: list[CompanyMatch] = field(default_factory=list)


@dataclass(frozen=True)
class OfficerDetails:
    title: str
    honours: str
    surname: str
    forenames: list[str]
    date_of_birth: date | None
    nationality: str
    address: list[str] = field(default_factory=list)
    post_town: str = ""
    postcode: str = ""
    appointments: list[OfficerAppointment] = field(default_factory=list)
    disqualifications: list[Disqualification] = field(default_factory=list)


def _text(parent: ET.Element | None, path: str) -> str:
    if parent is None:
        return ""
    node = parent.find(path)
    return (node.text or "").strip() if node is not None else ""


def _date(parent: ET.Element | None, path: str) -> date | None:
    value = _text(parent, path)
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


# ── Client ───────────────────────────────────────────────────────────


class CompaniesHouseClient(GovTalkClient):
    """Searches and company details from the Companies House XML Gateway."""

    def __init__(
        self, sender_id: str, password: str, server_url: str = GATEWAY_URL, **kwargs: Any
    ) -> None:
        kwargs.setdefault("alternative_auth", chmd5_token)
        super().__init__(server_url, sender_id, password, **kwargs)
        self.set_schema_location(SCHEMA_LOCATION, False)
        self.set_message_authentication("alternative")
        self.set_message_qualifier("request")

    def _request_body(self, name: str, schema: str, fields: list[tuple[str, str]]) -> ElementBody:
        root = ET.Element(name)
        root.set("xsi:noNamespaceSchemaLocation", _REQUEST_SCHEMA_BASE + schema)
        for tag, value in fields:
            ET.SubElement(root, tag).text = value
        return ElementBody(root)

    def _exchange(self, message_class: str, body: ElementBody) -> ET.Element | None:
        """Send one request; the response body, or None on any failure."""
        if not self.set_message_class(message_class):
            return None
        self.set_message_qualifier("request")
        self.set_message_function(None)
        self.set_message_correlation_id("")
        self.request.body = body
        self.add_channel_route(*_CH_ROUTE)
        if not self.send_message() or self.response_has_errors():
            return None
        return self.get_response_body()

    def _dataset(self, dataset: str, function: str) -> str | None:
        dataset = dataset.upper()
        if dataset not in DATASETS:
            self._log_error("validation", f"Unknown dataset: {dataset!r}", function)
            return None
        return dataset

    @staticmethod
    def _parse_search(result: ET.Element | None) -> CompanySearchResult:
        exact: CompanyMatch | None = None
        matches: list[CompanyMatch] = []
        for item in result.findall("CoSearchItem") if result is not None else []:
            match = CompanyMatch(_text(item, "CompanyName"), _text(item, "CompanyNumber"))
            matches.append(match)
            if _text(item, "SearchMatch") == "EXACT":
                exact = match
        return CompanySearchResult(exact=exact, matches=matches)

    def company_name_search(
        self, company_name: str, dataset: str = "LIVE"
    ) -> CompanySearchResult | None:
        """Search for companies by name."""
        if not company_name or len(company_name) > MAX_COMPANY_NAME_LENGTH:
            self._log_error(
                "validation", f"Invalid company name: {company_name!r}", "company_name_search"
            )
            return None
        chosen = self._dataset(dataset, "company_name_search")
        if chosen is None:
            return None
        body = self._request_body(
            "NameSearchRequest",
            "NameSearch.xsd",
            [("CompanyName", company_name), ("DataSet", chosen)],
        )
        response = self._exchange("NameSearch", body)
        if response is None:
            return None
        return self._parse_search(response.find("NameSearch"))

    def company_number_search(
        self, company_number: str, dataset: str = "LIVE"
    ) -> CompanySearchResult | None:
        """Search by (partial) company number; a trailing ``*`` is a wildcard."""
        if not _PARTIAL_NUMBER_PATTERN.fullmatch(company_number or ""):
            self._log_error(
                "validation", f"Invalid company number: {company_number!r}", "company_number_search"
            )
            return None
        chosen = self._dataset(dataset, "company_number_search")
        if chosen is None:
            return None
        body = self._request_body(
            "NumberSearchRequest",
            "NumberSearch.xsd",
            [("PartialCompanyNumber", company_number), ("DataSet", chosen)],
        )
        response = self._exchange("NumberSearch", body)
        if response is None:
            return None
        return self._parse_search(response.find("NumberSearch"))

    def company_details(
        self, company_number: str, mortgage_totals: bool = False
    ) -> CompanyDetails | None:
        """Fetch the register details of one company."""
        if not _COMPANY_NUMBER_PATTERN.fullmatch(company_number or ""):
            self._log_error(
                "validation", f"Invalid company number: {company_number!r}", "company_details"
            )
            return None
        fields = [("CompanyNumber", company_number)]
        if mortgage_totals:
            fields.append(("GiveMortTotals", "1"))
        body = self._request_body("CompanyDetailsRequest", "CompanyDetails.xsd", fields)
        response = self._exchange("CompanyDetails", body)
        if response is None:
            return None
        details = response.find("CompanyDetails")
        if details is None:
            return None
        return self._parse_details(details)

    @staticmethod
    def _parse_details(node: ET.Element) -> CompanyDetails:
        accounts = None
        accounts_node = node.find("Accounts")
        if accounts_node is not None:
            accounts = {
                "overdue": _text(accounts_node, "Overdue"),
                "document": _text(accounts_node, "DocumentAvailable"),
                "reference_date": _text(accounts_node, "AccountRefDate") or None,
                "due_date": _date(accounts_node, "NextDueDate"),
                "last_made_up": _date(accounts_node, "LastMadeUpDate"),
                "category": _text(accounts_node, "AccountCategory") or None,
            }
        returns = None
        returns_node = node.find("Returns")
        if returns_node is not None:
            returns = {
                "overdue": _text(returns_node, "Overdue"),
                "document": _text(returns_node, "DocumentAvailable"),
                "due_date": _date(returns_node, "NextDueDate"),
                "last_made_up": _date(returns_node, "LastMadeUpDate"),
            }
        mortgages = None
        mortgages_node = node.find("Mortgages")
        if mortgages_node is not None:
            mortgages = {
                "register": _text(mortgages_node, "MortgageInd"),
                "charges": _text(mortgages_node, "NumMortCharges"),
                "outstanding": _text(mortgages_node, "NumMortOutstanding"),
                "part_satisfied": _text(mortgages_node, "NumMortPartSatisfied"),
                "fully_satisfied": _text(mortgages_node, "NumMortSatisfied"),
            }
        return CompanyDetails(
            name=_text(node, "CompanyName"),
            number=_text(node, "CompanyNumber"),
            category=_text(node, "CompanyCategory"),
            status=_text(node, "CompanyStatus"),
            in_liquidation=_text(node, "InLiquidation"),
            has_branch_info=_text(node, "HasBranchInfo"),
            has_appointments=_text(node, "HasAppointments"),
            registration_date=_date(node, "RegistrationDate"),
            dissolution_date=_date(node, "DissolutionDate"),
            incorporation_date=_date(node, "IncorporationDate"),
            closure_date=_date(node, "ClosureDate"),
            accounts=accounts,
            returns=returns,
            mortgages=mortgages,
            previous_names=[
                (n.text or "").strip() for n in node.findall("PreviousNames/CompanyName")
            ],
            address=[(n.text or "").strip() for n in node.findall("RegAddress/AddressLine")],
            sic_codes=[(n.text or "").strip() for n in node.findall("SICCodes/SicText")],
        )

    # -- Officers --

    def officer_search(
        self,
        surname: str,
        forename: str | list[str] | None = None,
        officer_type: str = "CUR",
        post_town: str | None = None,
    ) -> OfficerSearchResult | None:
        """
        Search for company officers by name.

        Args:
            surname: Officer surname.
            forename: One forename, or a list of which the first two are sent.
            officer_type: One of :data:`OFFICER_TYPES`.
            post_town: Optional post town to narrow the search.
        """
        if not surname:
            self._log_error("validation", "Officer surname is required", "officer_search")
            return None
        officer_type = officer_type.upper()
        if officer_type not in OFFICER_TYPES:
            self._log_error(
                "validation", f"Unknown officer type: {officer_type!r}", "officer_search"
            )
            return None
        fields = [("Surname", surname), ("OfficerType", officer_type)]
        forenames = [forename] if isinstance(forename, str) else list(forename or [])
        fields.extend(("Forename", name) for name in forenames[:_MAX_FORENAMES])
        if post_town:
            fields.append(("PostTown", post_town))
        body = self._request_body("OfficerSearchRequest", "OfficerSearch.xsd", fields)
        response = self._exchange("OfficerSearch", body)
        if response is None:
            return None

        nearest: OfficerMatch | None = None
        matches: list[OfficerMatch] = []
        result = response.find("OfficerSearch")
        for item in result.findall("OfficerSearchItem") if result is not None else []:
            match = OfficerMatch(
                person_id=_text(item, "PersonID"),
                title=_text(item, "Title").replace(",", ""),
                surname=_text(item, "Surname"),
                forename=_text(item, "Forename"),
                date_of_birth=_date(item, "DOB"),
                post_town=_text(item, "PostTown"),
                postcode=_text(item, "PostCode"),
            )
            matches.append(match)
            if _text(item, "SearchMatch") == "NEAR":
                nearest = match
        return OfficerSearchResult(nearest=nearest, matches=matches)

    def officer_details(self, person_id: str, reference: str) -> OfficerDetails | None:
        """
        Fetch an officer's personal details, appointments and disqualifications.

        Args:
            person_id: ``PersonID`` from :meth:`officer_search`.
            reference: User reference quoted on the billing breakdown
                (1 to 24 characters).
        """
        if not person_id:
            self._log_error("validation", "Person ID is required", "officer_details")
            return None
        if not reference or len(reference) > MAX_USER_REFERENCE_LENGTH:
            self._log_error(
                "validation", f"Invalid user reference: {reference!r}", "officer_details"
            )
            return None
        body = self._request_body(
            "OfficerDetailsRequest",
            "OfficerDetails.xsd",
            [("PersonID", person_id), ("UserReference", reference)],
        )
        response = self._exchange("OfficerDetails", body)
        if response is None:
            return None
        details = response.find("OfficerDetails")
        if details is None:
            return None
        return self._parse_officer(details)

    @staticmethod
    def _parse_officer(node: ET.Element) -> OfficerDetails:
        person = node.find("Person")
        address = person.find("PersonAddress") if person is not None else None
        appointments = [
            OfficerAppointment(
                company_number=_text(appt, "CompanyNumber"),
                company_name=_text(appt, "CompanyName"),
                company_status=_text(appt, "CompanyStatus"),
                appointment_type=_text(appt, "AppointmentType"),
                status=_text(appt, "AppointmentStatus"),
                appointed=_date(appt, "AppointmentDate"),
                resigned=_date(appt, "ResignationDate"),
                occupation=_text(appt, "Occupation") or None,
            )
            for appt in node.findall("OfficerAppt")
        ]
        disqualifications = [
            Disqualification(
                reason=_text(disq, "DisqReason"),
                start=_date(disq, "StartDate"),
                end=_date(disq, "EndDate"),
                exemptions=[
                    CompanyMatch(_text(ex, "CompanyName"), _text(ex, "CompanyNumber"))
                    for ex in disq.findall("Exemption")
                ],
            )
            for disq in node.findall("OfficerDisq")
        ]
        return OfficerDetails(
            title=_text(person, "Title"),
            honours=_text(person, "Honours"),
            surname=_text(person, "Surname"),
            forenames=[
                (n.text or "").strip()
                for n in (person.findall("Forename") if person is not None else [])
            ],
            date_of_birth=_date(person, "DOB"),
            nationality=_text(person, "Nationality"),
            address=[
                (n.text or "").strip()
                for n in (address.findall("AddressLine") if address is not None else [])
            ],
            post_town=_text(address, "PostTown"),
            postcode=_text(address, "Postcode"),
            appointments=appointments,
            disqualifications=disqualifications,
        )
