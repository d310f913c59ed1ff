"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the application to the outside world (Microsoft Graph, the token
endpoint, the disk cache, the console) by implementing the interfaces
defined in the domain layer.
"""
