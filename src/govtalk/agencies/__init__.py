"""Agency-specific clients built on the generic GovTalk client."""

from __future__ import annotations

from .companies_house import CompaniesHouseClient
from .hmrc import HmrcClient, HmrcVatClient, irmark_digest

__all__ = ["CompaniesHouseClient", "HmrcClient", "HmrcVatClient", "irmark_digest"]
