"""Crosscutting: config, logging, excepciones, rate gates."""
