"""Conversion services: detection, dispatch, storage, and the facade."""
