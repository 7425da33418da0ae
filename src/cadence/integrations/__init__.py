"""Concrete external collaborators over httpx."""

from cadence.integrations.documents import (
    HttpDocumentDestination,
    HttpDocumentDestinationFactory,
    HttpDocumentProducer,
)
from cadence.integrations.hubspot import HubSpotProvider, HubSpotTokenRefresher
from cadence.integrations.slack import SlackClient, SlackClientFactory

__all__ = [
    "HttpDocumentDestination",
    "HttpDocumentDestinationFactory",
    "HttpDocumentProducer",
    "HubSpotProvider",
    "HubSpotTokenRefresher",
    "SlackClient",
    "SlackClientFactory",
]
