"""Settings, logging, security, error taxonomy and the document store."""
