"""Clinical Gateway.

Aggregation and access-policy layer in front of a Cloud Healthcare FHIR store.
"""

__version__ = "0.1.0"
