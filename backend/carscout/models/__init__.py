"""Models package: import all models so relationships resolve."""

from carscout.models.base import Base  # noqa: F401
from carscout.models.dealership import Dealership  # noqa: F401
from carscout.models.discovered_url import DiscoveredURL  # noqa: F401
from carscout.models.listing import Listing  # noqa: F401
from carscout.models.scrape_run import ScrapeRun  # noqa: F401
