"""Clients for the external embedding and semantic-judge providers."""
