"""Storefront Catalog HTTP API."""
