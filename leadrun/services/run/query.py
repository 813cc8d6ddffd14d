"""Search query construction from run input.

Filter values travel to the API as comma-joined lists, so commas inside a
value are replaced by spaces; whitespace is collapsed and empty values are
dropped.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional

from leadrun.models.run import RunInput

_WS = re.compile(r"\s+")

# input field -> API filter name
_LIST_FILTERS = {
    "companies": "companies",
    "locations": "location",
    "job_titles": "currentJobTitles",
    "industry_ids": "industryIds",
    "years_at_current_company_ids": "yearsAtCurrentCompanyIds",
    "seniority_level_ids": "seniorityLevelIds",
    "function_ids": "functionIds",
    "company_headcount": "companyHeadcount",
    "years_of_experience_ids": "yearsOfExperienceIds",
    "exclude_past_companies": "excludePastCompanies",
    "exclude_locations": "excludeLocations",
    "exclude_schools": "excludeSchools",
    "exclude_current_job_titles": "excludeCurrentJobTitles",
    "exclude_past_job_titles": "excludePastJobTitles",
    "exclude_industry_ids": "excludeIndustryIds",
    "exclude_seniority_level_ids": "excludeSeniorityLevelIds",
    "exclude_function_ids": "excludeFunctionIds",
}


def clean_values(values: Optional[Iterable[Optional[str]]]) -> List[str]:
    out: List[str] = []
    for v in values or []:
        s = _WS.sub(" ", (v or "").replace(",", " ")).strip()
        if s:
            out.append(s)
    return out


def build_search_query(run_input: RunInput) -> Dict[str, Any]:
    """Return the filter query with every empty filter removed."""
    query: Dict[str, Any] = {}
    for field_name, api_name in _LIST_FILTERS.items():
        values = clean_values(getattr(run_input, field_name))
        if values:
            query[api_name] = values
    if run_input.search_query:
        query["search"] = run_input.search_query
    if run_input.recently_changed_jobs:
        query["recentlyChangedJobs"] = True
    return query


def group_query(query: Dict[str, Any], companies: List[str]) -> Dict[str, Any]:
    """Query for one group: the filters with `companies` moved to `currentCompanies`."""
    scoped = {k: v for k, v in query.items() if k != "companies"}
    scoped["currentCompanies"] = list(companies)
    return scoped
