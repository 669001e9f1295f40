"""Deployable applications built on the chat gateway core."""
