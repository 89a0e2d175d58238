"""Application constants."""

USER_AGENT = "soldcomp/2.1 (+comparables research; contact: configured-email)"
STAGES = (
    "ingest",
    "reconcile",
    "enrich",
    "rank",
    "export",
)
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
SQFT_PER_SQM = 10.764
HEADER_SCAN_ROWS = 10
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "event",
    "status",
    "record",
    "field",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
OUTPUT_HEADERS = (
    "Date of sale",
    "Address",
    "Postcode",
    "Type",
    "Tenure",
    "Age at sale",
    "Price",
    "Sq. ft",
    "Sqm",
    "£/sqft",
    "Bedrooms",
    "Distance",
    "Latitude",
    "Longitude",
    "URL",
    "Link",
    "URL_Rightmove",
    "URL_PropertyData",
    "Image_URL",
    "EPC rating",
    "EPC Certificate",
    "Google Streetview URL",
    "Google Streetview Link",
    "isTarget",
    "Ranking",
    "needs_review",
)
