"""Constants for the pet companion voice, assistant and weather services."""

import os

# Watson speech-to-text
WATSON_STT_APIKEY = os.getenv("WATSON_STT_APIKEY", "")
WATSON_STT_URL = os.getenv(
    "WATSON_STT_URL",
    "wss://api.au-syd.speech-to-text.watson.cloud.ibm.com/v1/recognize",
)
WATSON_STT_MODEL = os.getenv("WATSON_STT_MODEL", "en-US_BroadbandModel")

# IBM Cloud IAM token exchange
WATSON_IAM_URL = os.getenv("WATSON_IAM_URL", "https://iam.cloud.ibm.com/identity/token")
IAM_GRANT_TYPE = "urn:ibm:params:oauth:grant-type:apikey"
IAM_DEFAULT_LIFETIME = 3600  # Assumed when the server omits expires_in
TOKEN_SAFETY_MARGIN = float(os.getenv("PET_TOKEN_SAFETY_MARGIN", "300"))
IAM_REQUEST_TIMEOUT = 15

# Watson machine learning deployment (chat assistant)
WATSON_AI_APIKEY = os.getenv("WATSON_AI_APIKEY", "")
WATSON_AI_BASE_URL = os.getenv("WATSON_AI_BASE_URL", "https://eu-gb.ml.cloud.ibm.com")
WATSON_AI_DEPLOYMENT_ID = os.getenv("WATSON_AI_DEPLOYMENT_ID", "")
WATSON_AI_VERSION = os.getenv("WATSON_AI_VERSION", "2021-05-01")
ASSISTANT_REQUEST_TIMEOUT = 60
ASSISTANT_GREETING = "Hello, please introduce yourself."

# Weather (wttr.in JSON format)
WEATHER_BASE_URL = os.getenv("PET_WEATHER_URL", "https://wttr.in")
WEATHER_REQUEST_TIMEOUT = 10

# Recording format (Watson accepts 16kHz mono 16-bit PCM WAV)
SAMPLE_RATE = 16000
CHANNELS = 1
SAMPLE_WIDTH = 2  # bytes
CHUNK_MS = 100

# Recording limits
MAX_RECORDING_SECONDS = float(os.getenv("PET_MAX_RECORDING_SECONDS", "300"))
WARNING_RATIO = float(os.getenv("PET_WARNING_RATIO", "0.9"))
MAX_AUDIO_BYTES = int(os.getenv("PET_MAX_AUDIO_BYTES", str(100 * 1024 * 1024)))

# Streaming recognition timing (seconds)
SETTLE_DELAY = float(os.getenv("PET_SETTLE_DELAY", "1.5"))
STOP_DELAY = float(os.getenv("PET_STOP_DELAY", "2.0"))
CONNECT_TIMEOUT = float(os.getenv("PET_CONNECT_TIMEOUT", "20"))
OVERALL_TIMEOUT = float(os.getenv("PET_OVERALL_TIMEOUT", "60"))
AUDIO_CHUNK_BYTES = 32 * 1024

# Fallback chain
STRATEGY_RETRY_DELAY = 1.0

# Close codes
WS_NORMAL_CLOSURE = 1000
