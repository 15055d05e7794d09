"""Store service: answers bridge commands against a credential store."""
