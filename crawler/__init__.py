"""
Product crawling and structured extraction engine.
"""
