"""Adapters for the external services: Etherscan and OpenAI."""
