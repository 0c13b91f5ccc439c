"""
Core ebook processing.
"""
