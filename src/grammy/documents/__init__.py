"""Byte-range helpers over UTF-8 documents."""
