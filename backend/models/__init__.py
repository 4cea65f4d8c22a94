"""
Models for the pickup settlement backend

- models.domain: storage-agnostic dataclasses (PickupRequest, UserPoints, ...)
- models.api: pydantic request/response models for the HTTP layer
"""
