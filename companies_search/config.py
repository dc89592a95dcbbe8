import os
from dotenv import load_dotenv

load_dotenv()

# Companies House API
COMPANIES_HOUSE_API_KEY = os.getenv("COMPANIES_HOUSE_API_KEY", "")
COMPANIES_HOUSE_BASE_URL = os.getenv("COMPANIES_HOUSE_BASE_URL", "https://api.company-information.service.gov.uk")

# API Settings
REQUEST_TIMEOUT = 30  # seconds per upstream call
DEFAULT_RETRY_AFTER = 5  # seconds to wait on 429 without a usable Retry-After
RATE_LIMIT_DELAY = float(os.getenv("RATE_LIMIT_DELAY", "0.2"))  # seconds between enrichment batches
ITEMS_PER_PAGE = 500  # advanced search page size when collecting candidates
KEYWORD_PAGE_SIZE = 100  # max allowed by /search/companies

# Enrichment
ENRICHMENT_CANDIDATE_LIMIT = 5000
PROFILE_BATCH_SIZE = 5
OFFICER_BATCH_SIZE = 10

# Cache TTLs (seconds)
SEARCH_CACHE_TTL = 600
PROFILE_CACHE_TTL = 86400
PROFILE_DURABLE_CACHE_TTL = 30 * 86400
VOLATILE_CACHE_MAX_ENTRIES = int(os.getenv("VOLATILE_CACHE_MAX_ENTRIES", "10000"))

# Persistence
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///companies_search.db")
SNAPSHOT_RETENTION_HOURS = 24

# CORS - allow all origins in production (frontend served from same domain)
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",") if os.getenv("CORS_ORIGINS") else ["*"]
