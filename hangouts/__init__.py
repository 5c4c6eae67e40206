"""Client for the Hangouts long-poll chat protocol."""

from hangouts.client import ClientState, ProtocolClient

__all__ = ["ClientState", "ProtocolClient"]
