"""Infraestructura: cache en memoria, durable store, audit log, asset source."""
