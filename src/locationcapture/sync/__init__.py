"""Sync module for the upload queue, connectivity policy and uploader."""

from locationcapture.sync.connectivity import (
    ConnectionType,
    ConnectivityProbe,
    NetworkType,
    StaticConnectivity,
    network_allows,
)
from locationcapture.sync.queue import UploadQueue
from locationcapture.sync.uploader import LocationUploader, RequestFormat, UploadResult

__all__ = [
    "ConnectionType",
    "ConnectivityProbe",
    "LocationUploader",
    "NetworkType",
    "RequestFormat",
    "StaticConnectivity",
    "UploadQueue",
    "UploadResult",
    "network_allows",
]
