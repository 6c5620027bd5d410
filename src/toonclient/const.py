"""Constants for the Toon API Client."""

API_BASE_URL = "https://api.toonapi.com/toon/api/v1"
AUTH_BASE_URL = "https://api.toonapi.com"

# OAuth endpoints
ENDPOINT_AUTHORIZE = f"{AUTH_BASE_URL}/authorize"
ENDPOINT_TOKEN = f"{AUTH_BASE_URL}/token"

# API endpoints (relative to API_BASE_URL)
ENDPOINT_AGREEMENTS = "/agreements"
ENDPOINT_STATUS = "/status"
ENDPOINT_TEMPERATURE = "/temperature"
ENDPOINT_TEMPERATURE_STATES = "/temperature/states"
ENDPOINT_CONSUMPTION_ELECTRICITY = "/consumption/electricity/flows"
ENDPOINT_CONSUMPTION_GAS = "/consumption/gas/flows"

# Error body signature for an unreachable thermostat
COMMUNICATION_ERROR = "communicationError"

# Program state values for the temperature/states endpoint
PROGRAM_OFF = 0
PROGRAM_ON = 1
PROGRAM_KEEP = 2

# Seconds before expiry at which a token is refreshed proactively
TOKEN_EXPIRY_MARGIN = 60

DEFAULT_CONCURRENCY = 1
DEFAULT_POLL_INTERVAL = 15
