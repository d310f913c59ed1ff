"""Microsoft Graph adapters: token acquisition and the async REST client."""
