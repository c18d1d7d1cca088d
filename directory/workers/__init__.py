"""
Pipeline workers. Importing this package registers every worker with the
job queue (see DirectoryConfig.ready).
"""

from directory.workers import (  # noqa: F401
    batch_research,
    enrich,
    overpass_import,
    region_discovery,
    translate,
    web_search,
    website_crawl,
)
