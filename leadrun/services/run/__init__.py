"""Lead-search run control package.

Split into focused modules; the main entry points are re-exported here.
"""
from .errors import RunExit
from .group_key import ALL_COMPANIES, GroupKey
from .scrape_mode import parse_scrape_mode
from .query import build_search_query, group_query
from .state import CRAWL_STATE_KEY, CrawlStateStore, RunFlags
from .budget import BudgetGate, RunConfig
from .page_handler import PageEventHandler, is_rate_limited
from .item_gate import ItemFetchGate
from .push_item import item_category, push_item
from .orchestrator import BatchOrchestrator, listing_headers
from .controller import RunController
from .supervisor import RunAlreadyActive, RunSupervisor

__all__ = [
    'RunExit', 'ALL_COMPANIES', 'GroupKey', 'parse_scrape_mode',
    'build_search_query', 'group_query',
    'CRAWL_STATE_KEY', 'CrawlStateStore', 'RunFlags',
    'BudgetGate', 'RunConfig',
    'PageEventHandler', 'is_rate_limited',
    'ItemFetchGate', 'item_category', 'push_item',
    'BatchOrchestrator', 'listing_headers',
    'RunController', 'RunAlreadyActive', 'RunSupervisor',
]
