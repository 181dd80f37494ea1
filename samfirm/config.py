"""Configuration constants for the Samsung FUS firmware downloader."""

import os

# ---------------------------------------------------------------------------
# Endpoints (overridable for test environments)
# ---------------------------------------------------------------------------
VERSION_URL = os.environ.get(
    "SAMFIRM_VERSION_URL",
    "http://fota-cloud-dn.ospserver.net/firmware/{region}/{model}/version.xml",
)
TEST_VERSION_URL = os.environ.get(
    "SAMFIRM_TEST_VERSION_URL",
    "https://fota-cloud-dn.ospserver.net/firmware/{region}/{model}/version.test.xml",
)
FUS_URL = os.environ.get("SAMFIRM_FUS_URL", "https://neofussvr.sslcs.cdngc.net")
CLOUD_URL = os.environ.get("SAMFIRM_CLOUD_URL", "http://cloud-neofussvr.samsungmobile.com")

NONCE_ENDPOINT    = "NF_DownloadGenerateNonce.do"
INFORM_ENDPOINT   = "NF_DownloadBinaryInform.do"
INIT_ENDPOINT     = "NF_DownloadBinaryInitForMass.do"
DOWNLOAD_ENDPOINT = "NF_DownloadBinaryForMass.do"

# "module:attr" of the Crypto Collaborator implementation
CRYPTO_PROVIDER = os.environ.get("SAMFIRM_CRYPTO", "")
CRYPTO_ENTRY_POINT_GROUP = "samfirm.crypto"

USER_AGENT = "Kies2.0_FUS"

# ---------------------------------------------------------------------------
# Protocol tuning
# ---------------------------------------------------------------------------
REQUEST_TIMEOUT   = 30          # seconds per handshake request
DOWNLOAD_TIMEOUT  = (30, 300)   # (connect, read) for the binary stream
NO_RESPONSE_STATUS     = 0x385  # network-level failure, no HTTP response at all
UNREADABLE_BODY_STATUS = 900    # response received but its body could not be read

# ---------------------------------------------------------------------------
# Acquisition pipeline
# ---------------------------------------------------------------------------
EXTRACT_BUFFER_SIZE = 4 * 1024 * 1024   # reused copy buffer for entry extraction
READ_CHUNK_SIZE     = 1024 * 1024       # ciphertext bytes pulled per read
TAR_REPLAY_LIMIT    = 1024 * 1024       # bytes of a nested tar kept for the disk fallback
LARGE_ENTRY_LOG_SIZE = 10 * 1024 * 1024

TAR_SUFFIXES = (".tar", ".tar.md5")
COMPONENT_TAGS = ("AP", "BL", "CP", "CSC", "HOME_CSC")

# ---------------------------------------------------------------------------
# Fallback transport (aria2c)
# ---------------------------------------------------------------------------
ARIA2C_BINARY          = os.environ.get("SAMFIRM_ARIA2C", "aria2c")
ARIA2_CONNECTIONS      = 16
ARIA2_MIN_SPLIT_SIZE   = "1M"
ARIA2_MAX_TRIES        = 5
ARIA2_RETRY_WAIT       = 3      # seconds
ARIA2_TIMEOUT          = 60     # seconds
ARIA2_CONNECT_TIMEOUT  = 30     # seconds
ARIA2_PROCESS_TIMEOUT  = 6 * 60 * 60   # hard wall-clock limit for the whole download

# ---------------------------------------------------------------------------
# Version search
# ---------------------------------------------------------------------------
PDA_SUFFIX_LENGTH = 6   # update type + bootloader + train + year + month + serial
CSC_SUFFIX_LENGTH = 5   # bootloader + train + year + month + serial
SEARCH_PROGRESS_EVERY = 100_000
