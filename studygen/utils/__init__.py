"""Utility helpers for studygen."""

from studygen.utils.service_factory import Services, create_job_store, create_services

__all__ = ["Services", "create_job_store", "create_services"]
