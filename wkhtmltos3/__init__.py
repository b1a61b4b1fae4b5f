"""Render html pages to images and upload them to S3."""

__version__ = "1.3.0"
