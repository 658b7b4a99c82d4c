"""
Storefront edge package.
Mirrors artist/shop data from the system of record into a local SQLite
snapshot, resolves custom domains to shops, and renders SEO metadata.
"""

__version__ = "0.1.0"
