"""Domain Layer: value objects, payload views, events and port interfaces."""
