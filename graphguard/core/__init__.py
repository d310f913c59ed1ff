"""Core Application Layer: Orchestrates use cases and application logic.

Contains the Graph application services and the command handler.
"""
