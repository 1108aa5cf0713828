"""
Environment caching package.

Cache-aside over the shared key-value store: entries carry an absolute
expiry and are overwritten on every successful refresh.
"""
