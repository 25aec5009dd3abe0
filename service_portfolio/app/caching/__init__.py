"""
Portfolio caching package.

Provides the cache primitives used to serve portfolio content when the
upstream API is slow or down. Fresh entries are short-lived; each has a
long-lived "_stale" companion used as a fallback.
"""
