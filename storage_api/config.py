"""Configuration settings for the storage API service."""

import os

from common.constants import (
    DEFAULT_SEGMENT_SIZE_BYTES,
    DEFAULT_STORAGE_PATH,
    DOWNLOAD_STREAM_TOPIC,
    UPLOAD_ACKNOWLEDGE_TOPIC,
    UPLOAD_STREAM_TOPIC,
)


STORAGE_PATH = os.environ.get("STORAGE_PATH", DEFAULT_STORAGE_PATH)

DATABASE_PATH = os.environ.get("STORAGE_DATABASE_PATH", "./data/storage-api.db")

STORAGE_API_HOST = os.environ.get("STORAGE_API_HOST", "0.0.0.0")

STORAGE_API_PORT = int(os.environ.get("STORAGE_API_PORT", "3000"))

REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

KAFKA_BOOTSTRAP_SERVERS = os.environ.get("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")

KAFKA_CLIENT_ID = os.environ.get("KAFKA_CLIENT_ID", "storage-api")

KAFKA_GROUP_ID = os.environ.get("KAFKA_GROUP_ID", "storage-api-group")

UPLOAD_TOPIC = os.environ.get("UPLOAD_STREAM_TOPIC", UPLOAD_STREAM_TOPIC)

ACKNOWLEDGE_TOPIC = os.environ.get("UPLOAD_ACKNOWLEDGE_TOPIC", UPLOAD_ACKNOWLEDGE_TOPIC)

DOWNLOAD_TOPIC = os.environ.get("DOWNLOAD_STREAM_TOPIC", DOWNLOAD_STREAM_TOPIC)

# First orderNumber a client sends; reference clients count from 1
ORDER_NUMBER_BASE = int(os.environ.get("ORDER_NUMBER_BASE", "0"))

DOWNLOAD_SEGMENT_SIZE = int(os.environ.get("DOWNLOAD_SEGMENT_SIZE", str(DEFAULT_SEGMENT_SIZE_BYTES)))

# 0 disables the idle upload reaper
UPLOAD_IDLE_TIMEOUT_SECONDS = int(os.environ.get("UPLOAD_IDLE_TIMEOUT_SECONDS", "0"))

UPLOAD_REAPER_INTERVAL_SECONDS = int(os.environ.get("UPLOAD_REAPER_INTERVAL_SECONDS", "300"))

API_KEY_PREFIX = "Bearer "
