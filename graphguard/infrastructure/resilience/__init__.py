"""API Resilience Implementations.

Contains the rate limiter, the retry handler, the circuit breaker and the
pipeline that composes them around a single Graph call.
Bounded Context: API Resilience
"""
