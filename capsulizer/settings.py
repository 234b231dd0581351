BOT_NAME = "capsulizer"

# worker pool
CONCURRENCY = 4
JOB_ATTEMPTS = 3

# politeness
USER_AGENT = "AgentNet-Capsulizer/1.0"
PER_HOST_DELAY_MS = 500
ROBOTSTXT_OBEY = False

# traversal
MAX_DEPTH = 10
MAX_PAGES_PER_SITE = 10
SINGLE_PAGE = False
RENDER_TIMEOUT_MS = 30000

# capsule options
DETERMINISTIC_FP = True
ENABLE_LLM = False
LLM_MODEL = "gpt-4o-mini"
OPENAI_API_KEY = ""
ENABLE_SCHEMA_VALIDATION = True
SCHEMA_PATH = ""          # empty: bundled capsulizer/schemas/capsule.schema.json
WRITE_SNAPSHOTS = False

# storage
DB_PATH = "db/capsules.sqlite"
RUNS_DIR = "runs"
SNAPSHOTS_DIR = "snapshots"
CRAWL_LOG_PATH = "crawler.log"

LOG_LEVEL = "INFO"
