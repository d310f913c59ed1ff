"""Caching Service Implementation.

Provides the concrete CacheService used for Graph result caching and
fallback (L1: in-memory, L2: diskcache).
Bounded Context: Cache Management
"""
