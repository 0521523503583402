"""Test doubles for external collaborators.

The FHIR store is the only external service the gateway talks to; it is
replaced by an in-memory store behind ``httpx.MockTransport``.
"""

from .fhir_store import STORE_URL, FakeFHIRStore, RecordedRequest

__all__ = ["FakeFHIRStore", "RecordedRequest", "STORE_URL"]
