"""Stateless helpers with no dependency on services or clients."""
