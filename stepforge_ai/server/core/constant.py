"""Server-wide constants."""

PROJECT_NAME = "stepforge-ai"
API_V1_STR = "/api/v1"
VERSION = "0.1.0"
